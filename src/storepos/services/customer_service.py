from __future__ import annotations

from dataclasses import replace

from storepos.config import DEFAULT_SETTINGS, PosSettings
from storepos.domain.errors import ConcurrencyError, ValidationError
from storepos.domain.models import Customer, CustomerInfo
from storepos.repositories.contracts import CustomerRepository


def validate_customer(info: CustomerInfo | None) -> CustomerInfo:
    if info is None:
        raise ValidationError("Customer data is required.")
    dni = (info.dni or "").strip()
    name = (info.name or "").strip()
    if not dni or not name:
        raise ValidationError("Customer DNI and name are required.")
    return CustomerInfo(dni=dni, name=name, phone=(info.phone or "").strip(), email=(info.email or "").strip())


class CustomerService:
    def __init__(self, repo: CustomerRepository, settings: PosSettings = DEFAULT_SETTINGS):
        self.repo = repo
        self.settings = settings

    def find_by_dni(self, dni: str) -> Customer | None:
        found = self.repo.find_customer_by_dni(dni)
        return found[0] if found else None

    def upsert(self, info: CustomerInfo) -> Customer:
        info = validate_customer(info)
        for _ in range(self.settings.cas_max_retries):
            found = self.repo.find_customer_by_dni(info.dni)
            if found is None:
                self.repo.create_customer(info)
                continue
            customer, version = found
            refreshed = replace(
                customer,
                name=info.name,
                phone=info.phone or customer.phone,
                email=info.email or customer.email,
            )
            if refreshed == customer or self.repo.cas_customer(refreshed, version):
                return refreshed
        raise ConcurrencyError(f"Could not save customer {info.dni}.")
