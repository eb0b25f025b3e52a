from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from typing import Iterable, Mapping, Optional

from storepos.config import DEFAULT_SETTINGS, PosSettings
from storepos.domain.errors import (
    ConcurrencyError,
    InsufficientStockError,
    NotFoundError,
    StoreMismatchError,
    ValidationError,
)
from storepos.domain.models import CartLine, Product, TradeIn
from storepos.repositories.contracts import ProductRepository
from storepos.repositories.unit_of_work import AppliedDelta, StockUnitOfWork

log = logging.getLogger("storepos.stock")


class StockTransactionManager:
    """Stock debits, credits and transfers over per-record compare-and-swap.

    Serialized (phone) products represent one physical unit each; when their
    stock reaches zero the record is removed. Other products stay at zero so
    they can be restocked.
    """

    def __init__(self, repo: ProductRepository, settings: PosSettings = DEFAULT_SETTINGS):
        self.repo = repo
        self.settings = settings

    def unit_of_work(self) -> StockUnitOfWork:
        return StockUnitOfWork(compensate=self._compensate)

    def apply_stock_delta(
        self,
        product_id: str,
        delta: int,
        store: Optional[str],
        reason: str = "adjustment",
        reference: Optional[str] = None,
        uow: Optional[StockUnitOfWork] = None,
    ) -> Optional[Product]:
        """Apply ``delta`` to one product. Returns the product after the write, or None if it was removed."""
        delta = int(delta)
        for attempt in range(1, self.settings.cas_max_retries + 1):
            found = self.repo.get_product_versioned(product_id)
            if found is None:
                raise NotFoundError(f"Product {product_id} not found.")
            product, version = found
            if store and product.store != store:
                raise StoreMismatchError(expected=store, actual=product.store, item=product.name)

            new_stock = product.stock + delta
            if new_stock < 0:
                raise InsufficientStockError(product.id, product.name, -delta, product.stock)

            remove = new_stock == 0 and delta < 0 and self.settings.is_serialized(product.category)
            if remove:
                ok = self.repo.delete_product_if_version(product.id, version)
                after = None
            else:
                after = replace(product, stock=new_stock)
                ok = self.repo.cas_product(after, version)

            if ok:
                if uow is not None:
                    uow.record(AppliedDelta(before=product, delta=delta, deleted=remove))
                self.repo.append_movement(product.id, delta, new_stock, reason, reference, product.store)
                log.info(
                    "stock_delta product_id=%s delta=%s stock_after=%s removed=%s reason=%s ref=%s",
                    product.id,
                    delta,
                    new_stock,
                    remove,
                    reason,
                    reference,
                )
                return after
            log.warning("stock_cas_conflict product_id=%s attempt=%s", product_id, attempt)
        raise ConcurrencyError(f"Stock for product {product_id} kept changing; try again.")

    def _compensate(self, entry: AppliedDelta) -> None:
        before = entry.before
        if entry.created:
            found = self.repo.get_product_versioned(before.id)
            if found is not None:
                self.repo.delete_product_if_version(before.id, found[1])
        elif entry.moved:
            self._set_store(before.id, before.store)
        elif entry.deleted and self.repo.restore_product(before):
            self.repo.append_movement(before.id, -entry.delta, before.stock, "compensation", None, before.store)
        else:
            self.apply_stock_delta(before.id, -entry.delta, store=None, reason="compensation")
        log.warning("stock_compensation product_id=%s delta=%s", before.id, -entry.delta)

    def _set_store(
        self,
        product_id: str,
        store: str,
        whole_stock: Optional[int] = None,
        from_store: Optional[str] = None,
    ) -> Optional[tuple[Product, Product]]:
        """Move a record to ``store``; returns (before, after).

        With ``whole_stock`` the record only moves while it holds exactly that
        many units. Fewer raises InsufficientStockError; more returns None so
        the caller can split instead.
        """
        for attempt in range(1, self.settings.cas_max_retries + 1):
            found = self.repo.get_product_versioned(product_id)
            if found is None:
                raise NotFoundError(f"Product {product_id} not found.")
            product, version = found
            if from_store and product.store != from_store:
                raise StoreMismatchError(expected=from_store, actual=product.store, item=product.name)
            if whole_stock is not None:
                if product.stock < whole_stock:
                    raise InsufficientStockError(product.id, product.name, whole_stock, product.stock)
                if product.stock > whole_stock:
                    return None
            moved = replace(product, store=store)
            if self.repo.cas_product(moved, version):
                return product, moved
            log.warning("stock_cas_conflict product_id=%s attempt=%s", product_id, attempt)
        raise ConcurrencyError(f"Product {product_id} kept changing; try again.")

    def plan_debits(
        self,
        lines: Iterable[CartLine],
        store: Optional[str],
        already_debited: Optional[Mapping[str, int]] = None,
    ) -> dict[str, int]:
        """Quantities to debit per product, validated against one snapshot.

        ``already_debited`` holds units a reservation has removed already; only
        the excess over them is debited again.
        """
        wanted: Counter[str] = Counter()
        for line in lines:
            if int(line.quantity) <= 0:
                raise ValidationError("Qty must be >= 1.")
            wanted[line.product_id] += int(line.quantity)

        held = dict(already_debited or {})
        plan: dict[str, int] = {}
        for product_id, qty in wanted.items():
            excess = qty - int(held.get(product_id, 0))
            if excess <= 0:
                continue
            product = self.repo.get_product(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found.")
            if store and product.store != store:
                raise StoreMismatchError(expected=store, actual=product.store, item=product.name)
            if excess > product.stock:
                raise InsufficientStockError(product.id, product.name, excess, product.stock)
            plan[product_id] = excess
        return plan

    def commit_lines(
        self,
        lines: Iterable[CartLine],
        store: Optional[str],
        reason: str,
        reference: Optional[str] = None,
        already_debited: Optional[Mapping[str, int]] = None,
        uow: Optional[StockUnitOfWork] = None,
    ) -> dict[str, int]:
        """Debit every line or none of them."""
        plan = self.plan_debits(lines, store, already_debited)
        if uow is not None:
            for product_id, qty in plan.items():
                self.apply_stock_delta(product_id, -qty, store, reason, reference, uow)
            return plan
        with self.unit_of_work() as own:
            for product_id, qty in plan.items():
                self.apply_stock_delta(product_id, -qty, store, reason, reference, own)
        return plan

    def restock(
        self,
        snapshot: Product,
        quantity: int,
        store: str,
        reason: str = "restock",
        reference: Optional[str] = None,
        uow: Optional[StockUnitOfWork] = None,
    ) -> Product:
        """Credit ``quantity`` units at ``store``, merging into an identical product when one exists."""
        quantity = int(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be > 0.")

        current = self.repo.get_product(snapshot.id) if snapshot.id else None
        if current is not None and current.store == store:
            return self.apply_stock_delta(current.id, quantity, store, reason, reference, uow)

        match = self.repo.find_same_item(snapshot, store)
        if match is not None:
            return self.apply_stock_delta(match[0].id, quantity, store, reason, reference, uow)

        fresh = replace(snapshot, stock=quantity, store=store)
        if current is not None or not snapshot.id or not self.repo.restore_product(fresh):
            fresh = self.repo.add_product(replace(fresh, id=""))
        if uow is not None:
            uow.record(AppliedDelta(before=fresh, delta=quantity, created=True))
        self.repo.append_movement(fresh.id, quantity, quantity, reason, reference, store)
        log.info("stock_created product_id=%s qty=%s store=%s reason=%s", fresh.id, quantity, store, reason)
        return fresh

    def transfer(self, product_id: str, quantity: int, target_store: str) -> Product:
        """Move units to another store; returns the product record at the destination."""
        quantity = int(quantity)
        if target_store not in self.settings.stores:
            raise ValidationError(f"Unknown store: {target_store}")
        if quantity <= 0:
            raise ValidationError("Quantity to transfer must be > 0.")

        product = self.repo.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        if product.store == target_store:
            raise ValidationError("Product is already in the target store.")
        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, quantity, product.stock)

        reference = f"{product.store}->{target_store}"
        with self.unit_of_work() as uow:
            dest: Optional[Product] = None
            match = self.repo.find_same_item(product, target_store)
            if match is not None:
                dest = self.apply_stock_delta(match[0].id, quantity, target_store, "transfer_in", reference, uow)
                self.apply_stock_delta(product.id, -quantity, product.store, "transfer_out", reference, uow)
            elif quantity == product.stock:
                moved = self._set_store(product.id, target_store, whole_stock=quantity, from_store=product.store)
                if moved is not None:
                    before, dest = moved
                    uow.record(AppliedDelta(before=before, delta=0, moved=True))
                    self.repo.append_movement(product.id, 0, dest.stock, "transfer_move", reference, target_store)
            if dest is None:
                split = replace(product, id="", stock=quantity, store=target_store)
                dest = self.repo.add_product(split)
                uow.record(AppliedDelta(before=dest, delta=quantity, created=True))
                self.repo.append_movement(dest.id, quantity, quantity, "transfer_in", reference, target_store)
                self.apply_stock_delta(product.id, -quantity, product.store, "transfer_out", reference, uow)

        log.info("stock_transfer product_id=%s qty=%s to=%s dest_id=%s", product.id, quantity, target_store, dest.id)
        return dest

    def create_trade_in(
        self,
        trade_in: TradeIn,
        store: str,
        reference: Optional[str] = None,
        uow: Optional[StockUnitOfWork] = None,
    ) -> Product:
        if not (trade_in.name or "").strip():
            raise ValidationError("Trade-in device name is required.")
        if trade_in.value < 0:
            raise ValidationError("Trade-in value must be >= 0.")
        product = Product(
            id="",
            name=trade_in.name.strip(),
            brand=trade_in.brand,
            model=trade_in.model,
            category=trade_in.category or self.settings.trade_in_category,
            price=float(round(trade_in.value * self.settings.trade_in_markup)),
            cost=float(trade_in.value),
            stock=1,
            store=store,
            imei=trade_in.imei,
        )
        created = self.repo.add_product(product)
        if uow is not None:
            uow.record(AppliedDelta(before=created, delta=1, created=True))
        self.repo.append_movement(created.id, 1, 1, "trade_in", reference, store)
        log.info("trade_in_created product_id=%s value=%.2f store=%s", created.id, trade_in.value, store)
        return created
