"""Custom exceptions for the storefront API."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class DatabaseNotConfiguredError(StorefrontError):
    """Raised when DATABASE_URL / DATABASE_NAME are not set."""

    def __init__(self):
        super().__init__("Database not configured")


class InvalidIdError(StorefrontError):
    """Raised when a value is not a valid ObjectId."""

    def __init__(self, kind: str, value: str):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind} id: {value}")


class InvalidReferenceError(StorefrontError):
    """Raised when a referenced document does not exist."""

    def __init__(self, kind: str, value: str):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind}: {value}")


class EmptyOrderError(StorefrontError):
    """Raised when an order is submitted without items."""

    def __init__(self):
        super().__init__("Cart is empty")


class OrderNotCreatedError(StorefrontError):
    """Raised when the order document could not be persisted."""

    def __init__(self, reason: str | None = None):
        msg = "Could not complete your order"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class NotFoundError(StorefrontError):
    """Base for lookups by id that found nothing."""

    kind = "Document"

    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"{self.kind} not found: {doc_id}")


class OrderNotFoundError(NotFoundError):
    kind = "Order"


class ProductNotFoundError(NotFoundError):
    kind = "Product"


class CategoryNotFoundError(NotFoundError):
    kind = "Category"


class UserNotFoundError(NotFoundError):
    kind = "User"


class CategoryInUseError(StorefrontError):
    """Raised when deleting a category that products still reference."""

    def __init__(self, category_id: str, product_count: int):
        self.category_id = category_id
        self.product_count = product_count
        super().__init__(f"Category {category_id} is still used by {product_count} product(s)")
