from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional

from storepos.domain.errors import DuplicateRecordError
from storepos.domain.models import (
    BundleRule,
    Counter,
    Customer,
    CustomerInfo,
    Product,
    Reserve,
    Sale,
    StockMovement,
)
from storepos.repositories.document_store import DocumentStore

PRODUCTS = "products"
BUNDLES = "accessoryBundles"
CUSTOMERS = "customers"
SALES = "sales"
RESERVES = "reserves"
COUNTERS = "counters"
CONFIG = "config"
MOVEMENTS = "stockMovements"


def customer_key(dni: str) -> str:
    return "".join(ch for ch in str(dni) if ch.isalnum()).upper()


class StoreRepository:
    """Typed access to the document store collections used by the POS core."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # ---------- Products ----------
    def get_product(self, product_id: str) -> Optional[Product]:
        found = self.get_product_versioned(product_id)
        return found[0] if found else None

    def get_product_versioned(self, product_id: str) -> Optional[tuple[Product, int]]:
        doc = self.store.get(PRODUCTS, str(product_id))
        if doc is None:
            return None
        return Product.from_record(doc.key, doc.data), doc.version

    def list_products(self, store: str | None = None) -> list[Product]:
        products = [Product.from_record(d.key, d.data) for d in self.store.list(PRODUCTS)]
        if store is not None:
            products = [p for p in products if p.store == store]
        return products

    def add_product(self, product: Product) -> Product:
        key = product.id or self.store.new_key(PRODUCTS)
        created = replace(product, id=key)
        if not self.store.insert_if_absent(PRODUCTS, key, created.to_record()):
            raise DuplicateRecordError(f"Product {key} already exists.")
        return created

    def restore_product(self, product: Product) -> bool:
        return self.store.insert_if_absent(PRODUCTS, product.id, product.to_record())

    def cas_product(self, product: Product, expected_version: int) -> bool:
        return self.store.compare_and_set(PRODUCTS, product.id, expected_version, product.to_record())

    def delete_product_if_version(self, product_id: str, expected_version: int) -> bool:
        return self.store.delete_if_version(PRODUCTS, str(product_id), expected_version)

    def find_same_item(self, product: Product, store: str) -> Optional[tuple[Product, int]]:
        for doc in self.store.list(PRODUCTS):
            candidate = Product.from_record(doc.key, doc.data)
            if candidate.id != product.id and candidate.store == store and candidate.same_item(product):
                return candidate, doc.version
        return None

    # ---------- Bundle rules ----------
    def list_bundle_rules(self) -> list[BundleRule]:
        return [BundleRule.from_record(d.key, d.data) for d in self.store.list(BUNDLES)]

    def add_bundle_rule(self, rule: BundleRule) -> BundleRule:
        key = rule.id or self.store.new_key(BUNDLES)
        self.store.put(BUNDLES, key, rule.to_record())
        return replace(rule, id=key)

    # ---------- Customers ----------
    def find_customer_by_dni(self, dni: str) -> Optional[tuple[Customer, int]]:
        doc = self.store.get(CUSTOMERS, customer_key(dni))
        if doc is None:
            return None
        return Customer.from_record(doc.key, doc.data), doc.version

    def get_customer_versioned(self, customer_id: str) -> Optional[tuple[Customer, int]]:
        doc = self.store.get(CUSTOMERS, str(customer_id))
        if doc is None:
            return None
        return Customer.from_record(doc.key, doc.data), doc.version

    def create_customer(self, info: CustomerInfo) -> bool:
        customer = Customer(id=customer_key(info.dni), dni=info.dni, name=info.name, phone=info.phone, email=info.email)
        record = customer.to_record()
        record["createdAt"] = datetime.now().isoformat(timespec="seconds")
        return self.store.insert_if_absent(CUSTOMERS, customer.id, record)

    def cas_customer(self, customer: Customer, expected_version: int) -> bool:
        return self.store.compare_and_set(CUSTOMERS, customer.id, expected_version, customer.to_record())

    # ---------- Sales ----------
    def new_sale_id(self) -> str:
        return self.store.new_key(SALES)

    def add_sale(self, sale: Sale) -> None:
        if not self.store.insert_if_absent(SALES, sale.id, sale.to_record()):
            raise DuplicateRecordError(f"Sale {sale.id} already exists.")

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        doc = self.store.get(SALES, str(sale_id))
        return Sale.from_record(doc.key, doc.data) if doc else None

    def list_sales(self) -> list[Sale]:
        return [Sale.from_record(d.key, d.data) for d in self.store.list(SALES)]

    # ---------- Reserves ----------
    def new_reserve_id(self) -> str:
        return self.store.new_key(RESERVES)

    def add_reserve(self, reserve: Reserve) -> None:
        if not self.store.insert_if_absent(RESERVES, reserve.id, reserve.to_record()):
            raise DuplicateRecordError(f"Reserve {reserve.id} already exists.")

    def get_reserve_versioned(self, reserve_id: str) -> Optional[tuple[Reserve, int]]:
        doc = self.store.get(RESERVES, str(reserve_id))
        if doc is None:
            return None
        return Reserve.from_record(doc.key, doc.data), doc.version

    def cas_reserve(self, reserve: Reserve, expected_version: int) -> bool:
        return self.store.compare_and_set(RESERVES, reserve.id, expected_version, reserve.to_record())

    def list_reserves(self) -> list[Reserve]:
        return [Reserve.from_record(d.key, d.data) for d in self.store.list(RESERVES)]

    # ---------- Counters ----------
    def get_counter_versioned(self, series: str) -> Optional[tuple[Counter, int]]:
        doc = self.store.get(COUNTERS, series)
        if doc is None:
            return None
        counter = Counter(series=series, value=int(doc.data.get("value") or 0), prefix=str(doc.data.get("prefix") or ""))
        return counter, doc.version

    def create_counter(self, series: str, prefix: str) -> bool:
        return self.store.insert_if_absent(COUNTERS, series, {"value": 0, "prefix": prefix})

    def cas_counter(self, counter: Counter, expected_version: int) -> bool:
        return self.store.compare_and_set(
            COUNTERS, counter.series, expected_version, {"value": counter.value, "prefix": counter.prefix}
        )

    # ---------- Config ----------
    def get_config(self, name: str) -> Optional[dict]:
        doc = self.store.get(CONFIG, name)
        return dict(doc.data) if doc else None

    def set_config(self, name: str, data: dict) -> None:
        self.store.put(CONFIG, name, data)

    # ---------- Stock movements ----------
    def append_movement(
        self,
        product_id: str,
        delta: int,
        stock_after: int,
        reason: str,
        reference: Optional[str],
        store: str,
    ) -> None:
        key = self.store.new_key(MOVEMENTS)
        self.store.put(
            MOVEMENTS,
            key,
            {
                "date": datetime.now().isoformat(timespec="seconds"),
                "productId": str(product_id),
                "delta": int(delta),
                "stockAfter": int(stock_after),
                "reason": reason,
                "reference": reference,
                "store": store,
            },
        )

    def list_movements(self, product_id: str | None = None) -> list[StockMovement]:
        out = []
        for d in self.store.list(MOVEMENTS):
            if product_id is not None and d.data.get("productId") != str(product_id):
                continue
            out.append(
                StockMovement(
                    id=d.key,
                    date=str(d.data.get("date", "")),
                    product_id=str(d.data.get("productId", "")),
                    delta=int(d.data.get("delta", 0)),
                    stock_after=int(d.data.get("stockAfter", 0)),
                    reason=str(d.data.get("reason", "")),
                    reference=d.data.get("reference"),
                    store=str(d.data.get("store", "")),
                )
            )
        return out
