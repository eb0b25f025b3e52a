from __future__ import annotations

from typing import Optional, Protocol

from storepos.domain.models import BundleRule, Counter, Customer, CustomerInfo, Product


class ProductRepository(Protocol):
    def get_product(self, product_id: str) -> Optional[Product]: ...
    def get_product_versioned(self, product_id: str) -> Optional[tuple[Product, int]]: ...
    def list_products(self, store: str | None = None) -> list[Product]: ...
    def add_product(self, product: Product) -> Product: ...
    def restore_product(self, product: Product) -> bool: ...
    def cas_product(self, product: Product, expected_version: int) -> bool: ...
    def delete_product_if_version(self, product_id: str, expected_version: int) -> bool: ...
    def find_same_item(self, product: Product, store: str) -> Optional[tuple[Product, int]]: ...
    def list_bundle_rules(self) -> list[BundleRule]: ...
    def append_movement(
        self, product_id: str, delta: int, stock_after: int, reason: str, reference: Optional[str], store: str
    ) -> None: ...


class CustomerRepository(Protocol):
    def find_customer_by_dni(self, dni: str) -> Optional[tuple[Customer, int]]: ...
    def get_customer_versioned(self, customer_id: str) -> Optional[tuple[Customer, int]]: ...
    def create_customer(self, info: CustomerInfo) -> bool: ...
    def cas_customer(self, customer: Customer, expected_version: int) -> bool: ...


class CounterRepository(Protocol):
    def get_counter_versioned(self, series: str) -> Optional[tuple[Counter, int]]: ...
    def create_counter(self, series: str, prefix: str) -> bool: ...
    def cas_counter(self, counter: Counter, expected_version: int) -> bool: ...


class ConfigRepository(Protocol):
    def get_config(self, name: str) -> Optional[dict]: ...
    def set_config(self, name: str, data: dict) -> None: ...
