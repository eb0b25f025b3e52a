from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from storepos.config import DEFAULT_SETTINGS
from storepos.domain.errors import InsufficientStockError, NotFoundError, StoreMismatchError, ValidationError
from storepos.domain.models import BundleRule, CartLine, Product
from storepos.services.bundle_service import resolve_bundles
from storepos.services.fx_service import to_display_currency


class Cart:
    """Lines for one transaction, all drawn from a single store.

    The store is taken from the first product added unless given up front.
    """

    def __init__(self, store: Optional[str] = None, threshold: float = DEFAULT_SETTINGS.usd_price_threshold):
        self.store = store
        self.threshold = threshold
        self._lines: list[CartLine] = []

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def quantity_of(self, product_id: str) -> int:
        return sum(line.quantity for line in self._lines if line.product_id == product_id)

    def add(
        self,
        product: Product,
        quantity: int = 1,
        price: float | None = None,
        catalog: Iterable[Product] = (),
        rules: Iterable[BundleRule] = (),
    ) -> list[CartLine]:
        """Add ``product`` and return the gift lines its bundle rules attached."""
        quantity = int(quantity)
        if quantity <= 0:
            raise ValidationError("Qty must be >= 1.")
        if price is not None and float(price) < 0:
            raise ValidationError("Price must be >= 0.")
        if self.store is not None and product.store != self.store:
            raise StoreMismatchError(expected=self.store, actual=product.store, item=product.name)
        if self.quantity_of(product.id) + quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, self.quantity_of(product.id) + quantity, product.stock)

        if self.store is None:
            self.store = product.store

        for idx, line in enumerate(self._lines):
            if line.product_id == product.id and not line.gift:
                new_price = line.price if price is None else float(price)
                self._lines[idx] = replace(line, quantity=line.quantity + quantity, price=new_price)
                added = self._lines[idx]
                break
        else:
            added = CartLine.from_product(product, quantity=quantity, price=price)
            self._lines.append(added)

        gifts = resolve_bundles(added, self._lines, catalog, rules, store=self.store)
        self._lines.extend(gifts)
        return gifts

    def set_price(self, product_id: str, price: float) -> None:
        if float(price) < 0:
            raise ValidationError("Price must be >= 0.")
        for idx, line in enumerate(self._lines):
            if line.product_id == product_id:
                self._lines[idx] = replace(line, price=float(price), gift=float(price) == 0)
                return
        raise NotFoundError("Product not in cart.")

    def remove(self, product_id: str) -> None:
        before = len(self._lines)
        self._lines = [line for line in self._lines if line.product_id != product_id]
        if len(self._lines) == before:
            raise NotFoundError("Product not in cart.")
        if not self._lines:
            self.store = None

    def subtotal(self, rate: float) -> float:
        return sum(to_display_currency(line.price, rate, self.threshold) * line.quantity for line in self._lines)

    @classmethod
    def of(cls, lines: Iterable[CartLine], store: Optional[str] = None) -> "Cart":
        """Cart from already-built lines; rejects mixed stores."""
        cart = cls(store=store)
        for line in lines:
            if cart.store is None:
                cart.store = line.store
            elif line.store != cart.store:
                raise StoreMismatchError(expected=cart.store, actual=line.store, item=line.name)
            cart._lines.append(line)
        return cart
