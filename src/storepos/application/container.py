from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from storepos.config import DEFAULT_SETTINGS, PosSettings, get_app_paths
from storepos.logging_config import setup_logging
from storepos.repositories.sqlite_store import SqliteDocumentStore
from storepos.repositories.store_repo import StoreRepository
from storepos.services.customer_service import CustomerService
from storepos.services.fx_service import FxService
from storepos.services.loyalty_service import LoyaltyService
from storepos.services.sales_service import SalesService
from storepos.services.sequence_service import SequenceCounter
from storepos.services.stock_service import StockTransactionManager


@dataclass(frozen=True)
class AppContainer:
    store: SqliteDocumentStore
    repo: StoreRepository
    fx: FxService
    counter: SequenceCounter
    loyalty: LoyaltyService
    customers: CustomerService
    stock: StockTransactionManager
    sales: SalesService


def build_container(db_path: Path | str, settings: PosSettings = DEFAULT_SETTINGS, fx: FxService | None = None) -> AppContainer:
    store = SqliteDocumentStore(db_path)
    store.init_db()
    repo = StoreRepository(store)

    fx = fx or FxService(repo)
    counter = SequenceCounter(repo, settings)
    loyalty = LoyaltyService(repo, settings)
    customers = CustomerService(repo, settings)
    stock = StockTransactionManager(repo, settings)
    sales = SalesService(
        repo,
        fx,
        stock=stock,
        counter=counter,
        loyalty=loyalty,
        customers=customers,
        settings=settings,
    )

    return AppContainer(
        store=store,
        repo=repo,
        fx=fx,
        counter=counter,
        loyalty=loyalty,
        customers=customers,
        stock=stock,
        sales=sales,
    )


def build_default_container(level: int = logging.INFO) -> AppContainer:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=level)
    return build_container(paths.db_path)
