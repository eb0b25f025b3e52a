class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    def __init__(self, product_id: str, name: str, requested: int, available: int):
        super().__init__(f"Not enough stock for {name or product_id}. Requested: {requested}, available: {available}")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class StoreMismatchError(AppError):
    def __init__(self, expected: str, actual: str, item: str = ""):
        label = f"{item} " if item else ""
        super().__init__(f"Product {label}belongs to store {actual!r}, transaction store is {expected!r}.")
        self.expected = expected
        self.actual = actual


class CounterCommitError(AppError):
    pass


class ConcurrencyError(AppError):
    """A record kept changing under us and the retry budget ran out."""


class InvalidStateError(AppError):
    pass


class FxUnavailableError(AppError):
    pass


class DuplicateRecordError(AppError):
    pass
