from .fx_service import FxService, to_display_currency
from .sequence_service import SequenceCounter
from .bundle_service import model_number, resolve_bundles
from .cart_service import Cart
from .loyalty_service import LoyaltyService, compute_ledger
from .customer_service import CustomerService
from .stock_service import StockTransactionManager
from .sales_service import SalesService

__all__ = [
    "FxService",
    "to_display_currency",
    "SequenceCounter",
    "model_number",
    "resolve_bundles",
    "Cart",
    "LoyaltyService",
    "compute_ledger",
    "CustomerService",
    "StockTransactionManager",
    "SalesService",
]
