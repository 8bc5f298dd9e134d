import os
from dataclasses import dataclass, field
from typing import Tuple

# ---------- Shopify (single store) ----------
SHOPIFY_API_VERSION = os.environ.get("SHOPIFY_API_VERSION", "2025-01").strip()


def _truthy(val: str) -> bool:
    return (val or "").strip() in ("1", "true", "TRUE", "yes", "on")


def resolve_store_settings() -> Tuple[str, str]:
    """Return (domain, access_token) for the connected store.

    Read on every call so tests and long-running workers pick up changes.
    """
    domain = os.environ.get("SHOPIFY_STORE_DOMAIN", "").strip().lower()
    token = os.environ.get("SHOPIFY_ACCESS_TOKEN", "").strip()
    return (domain, token)


def webhook_secret() -> str:
    return os.environ.get("SHOPIFY_API_SECRET", "").strip()


def _split_csv_env(name: str, default: str) -> Tuple[str, ...]:
    raw = os.environ.get(name, default).strip()
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class ExportConfig:
    """Everything an export needs that is not part of the orders themselves."""

    customer_code: str = ""
    export_dir: str = "./public/exports"
    public_base_url: str = ""
    exported_tag: str = "exported"
    tagging_enabled: bool = True
    marketplaces: Tuple[str, ...] = field(default_factory=lambda: ("amazon",))

    def file_location(self, filename: str) -> str:
        base = (self.public_base_url or "").rstrip("/")
        if base:
            return f"{base}/{filename}"
        return f"/exports/{filename}"


def load_export_config() -> ExportConfig:
    return ExportConfig(
        customer_code=os.environ.get("EXPORT_CUSTOMER_CODE", "").strip(),
        export_dir=os.environ.get("EXPORT_DIR", "./public/exports").strip() or "./public/exports",
        public_base_url=os.environ.get("EXPORT_PUBLIC_BASE_URL", "").strip(),
        exported_tag=os.environ.get("EXPORT_TAG", "exported").strip() or "exported",
        tagging_enabled=_truthy(os.environ.get("EXPORT_TAGGING_ENABLED", "1")),
        marketplaces=_split_csv_env("MARKETPLACE_CHANNELS", "amazon") or ("amazon",),
    )
