# storefront/domain/errors.py


class StorefrontError(Exception):
    """Bazowy wyjatek domeny sklepu."""


class NotFound(StorefrontError):
    pass


class InvalidQuantity(StorefrontError, ValueError):
    pass


class InsufficientStock(StorefrontError):
    def __init__(self, variant_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for variant {variant_id}: requested {requested}, available {available}"
        )
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class EmptyCart(StorefrontError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class IdentityRequired(StorefrontError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class InvalidSignature(StorefrontError):
    pass


class PaymentProviderError(StorefrontError):
    pass


class SettlementFailure(StorefrontError):
    def __init__(self, event_id: str, detail: str):
        super().__init__(f"Settlement of event {event_id} failed: {detail}")
        self.event_id = event_id
        self.detail = detail


class EventAlreadyRecorded(StorefrontError):
    def __init__(self, event_id: str, status: str):
        super().__init__(f"Event {event_id} already recorded as {status}")
        self.event_id = event_id
        self.status = status
