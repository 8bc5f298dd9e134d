class ExportError(Exception):
    """Base class for failures surfaced to the caller of an export."""


class InvalidInputError(ExportError):
    """The order collection is missing, not a list, or otherwise unusable."""


class NoInputError(InvalidInputError):
    """The order collection is empty."""


class EmptyResultError(ExportError):
    """Every order was processed but no CSV rows came out."""


class DownstreamTaggingError(ExportError):
    """Tagging an exported order back in Shopify failed. Never fatal to an export."""

    def __init__(self, order_id: str, detail: str):
        super().__init__(f"tagging {order_id} failed: {detail}")
        self.order_id = order_id
        self.detail = detail


class ShopifyAPIError(Exception):
    """Transport or GraphQL-level failure talking to the Admin API."""

    def __init__(self, detail: str, status_code: int = 502):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class MalformedLineItemsWarning(UserWarning):
    """An order had no usable line-item list and contributed no rows."""

    def __init__(self, order_ref: str, index: int):
        super().__init__(f"order {order_ref or index} has no lineItems")
        self.order_ref = order_ref
        self.index = index
