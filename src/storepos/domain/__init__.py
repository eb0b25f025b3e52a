from .models import (
    BundleRule,
    CartLine,
    Customer,
    CustomerInfo,
    LedgerResult,
    Payment,
    PointsConfig,
    Product,
    Reserve,
    Sale,
    SaleItem,
    TradeIn,
)
from .errors import (
    ConcurrencyError,
    CounterCommitError,
    DuplicateRecordError,
    FxUnavailableError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    StoreMismatchError,
    ValidationError,
)

__all__ = [
    "BundleRule",
    "CartLine",
    "Customer",
    "CustomerInfo",
    "LedgerResult",
    "Payment",
    "PointsConfig",
    "Product",
    "Reserve",
    "Sale",
    "SaleItem",
    "TradeIn",
    "ConcurrencyError",
    "CounterCommitError",
    "DuplicateRecordError",
    "FxUnavailableError",
    "InsufficientStockError",
    "InvalidStateError",
    "NotFoundError",
    "StoreMismatchError",
    "ValidationError",
]
