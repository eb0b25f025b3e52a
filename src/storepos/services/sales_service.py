from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Iterable, Optional

from storepos.config import DEFAULT_SETTINGS, PosSettings
from storepos.domain.errors import (
    ConcurrencyError,
    FxUnavailableError,
    InvalidStateError,
    NotFoundError,
    StoreMismatchError,
    ValidationError,
)
from storepos.domain.models import (
    PAYMENT_METHODS,
    RESERVE_CANCELLED,
    RESERVE_COMPLETED,
    RESERVE_RESERVED,
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
from storepos.repositories.store_repo import StoreRepository
from storepos.services.cart_service import Cart
from storepos.services.customer_service import CustomerService, validate_customer
from storepos.services.fx_service import is_usd_price, to_display_currency
from storepos.services.loyalty_service import LoyaltyService
from storepos.services.sequence_service import SequenceCounter
from storepos.services.stock_service import StockTransactionManager

log = logging.getLogger("storepos.sales")


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat()


class SalesService:
    """Sell, reserve, complete and cancel reservations, transfer stock.

    Every validation runs before the first write. Stock debits happen inside a
    compensating unit of work, so a failure later in the flow (receipt number,
    record write) puts the units back.
    """

    def __init__(
        self,
        repo: StoreRepository,
        fx_service,
        stock: StockTransactionManager | None = None,
        counter: SequenceCounter | None = None,
        loyalty: LoyaltyService | None = None,
        customers: CustomerService | None = None,
        settings: PosSettings = DEFAULT_SETTINGS,
    ):
        self.repo = repo
        self.fx = fx_service
        self.settings = settings
        self.stock = stock or StockTransactionManager(repo, settings)
        self.counter = counter or SequenceCounter(repo, settings)
        self.loyalty = loyalty or LoyaltyService(repo, settings)
        self.customers = customers or CustomerService(repo, settings)

    # ---------- Validation ----------
    def _rate(self) -> float:
        try:
            rate = float(self.fx.get_rate())
        except (TypeError, ValueError) as e:
            raise FxUnavailableError(str(e)) from e
        if rate <= 0:
            raise FxUnavailableError(f"FX rate must be > 0. Received: {rate}")
        return rate

    def _validate_cart(self, cart: Cart | Iterable[CartLine]) -> tuple[list[CartLine], str]:
        if not isinstance(cart, Cart):
            cart = Cart.of(cart)
        if cart.is_empty():
            raise ValidationError("Cart is empty.")
        lines = cart.lines
        if not cart.store:
            raise ValidationError("Store could not be resolved for this cart.")
        for line in lines:
            if line.store != cart.store:
                raise StoreMismatchError(expected=cart.store, actual=line.store, item=line.name)
            if int(line.quantity) <= 0:
                raise ValidationError("Qty must be >= 1.")
            if float(line.price) < 0:
                raise ValidationError("Price must be >= 0.")
        return lines, cart.store

    def _validate_payment(self, payment: Payment | None, amount_due: float, rate: float) -> Payment:
        if payment is None or payment.method not in PAYMENT_METHODS:
            raise ValidationError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}.")
        if payment.method != "multiple":
            return payment

        if not payment.breakdown:
            raise ValidationError("Split payment needs at least one amount.")
        declared = 0.0
        for method, amount in payment.breakdown.items():
            if method not in PAYMENT_METHODS or method == "multiple":
                raise ValidationError(f"Unknown payment method in breakdown: {method}")
            if float(amount) < 0:
                raise ValidationError("Payment amounts must be >= 0.")
            declared += float(amount) * rate if method == "usd" else float(amount)
        if abs(declared - amount_due) > self.settings.payment_epsilon:
            raise ValidationError(f"Payment breakdown adds up to {declared:.2f}, expected {amount_due:.2f}.")
        return payment

    def _sale_items(self, lines: list[CartLine], rate: float) -> tuple[tuple[SaleItem, ...], float]:
        threshold = self.settings.usd_price_threshold
        items = tuple(
            SaleItem(
                product_id=line.product_id,
                name=line.name,
                quantity=int(line.quantity),
                price=float(line.price),
                price_local=to_display_currency(line.price, rate, threshold),
                is_usd=is_usd_price(line.price, threshold),
                cost=float(line.cost),
                category=line.category,
                gift=line.gift or float(line.price) == 0,
            )
            for line in lines
        )
        subtotal = sum(it.price_local * it.quantity for it in items)
        return items, subtotal

    @staticmethod
    def _expiration(value) -> str:
        if value is None or value == "":
            raise ValidationError("Reservation expiration date is required.")
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        try:
            return datetime.fromisoformat(str(value)).isoformat()
        except ValueError as e:
            raise ValidationError(f"Invalid expiration date: {value}") from e

    # ---------- Sales ----------
    def sell(
        self,
        cart: Cart | Iterable[CartLine],
        customer: CustomerInfo,
        payment: Payment,
        redeem_points: bool = False,
        trade_in: TradeIn | None = None,
        notes: Optional[str] = None,
    ) -> Sale:
        return self._checkout(cart, customer, payment, redeem_points, trade_in, notes, None)

    def complete_reservation(
        self,
        reserve_id: str,
        cart: Cart | Iterable[CartLine],
        customer: CustomerInfo,
        payment: Payment,
        redeem_points: bool = False,
        notes: Optional[str] = None,
    ) -> Sale:
        found = self.repo.get_reserve_versioned(reserve_id)
        if found is None:
            raise NotFoundError("Reserve not found.")
        reserve, _ = found
        if reserve.is_terminal:
            raise InvalidStateError(f"Reserve {reserve.receipt_number} is already {reserve.status}.")
        return self._checkout(cart, customer, payment, redeem_points, None, notes, reserve)

    def _checkout(
        self,
        cart,
        customer: CustomerInfo,
        payment: Payment,
        redeem_points: bool,
        trade_in: TradeIn | None,
        notes: Optional[str],
        reserve: Reserve | None,
    ) -> Sale:
        info = validate_customer(customer)
        lines, store = self._validate_cart(cart)
        if reserve is not None:
            if reserve.store and reserve.store != store:
                raise StoreMismatchError(expected=reserve.store, actual=store)
            if not any(line.product_id == reserve.product_id for line in lines):
                raise ValidationError("Cart does not contain the reserved product.")
        if trade_in is not None and (not (trade_in.name or "").strip() or trade_in.value < 0):
            raise ValidationError("Trade-in needs a device name and a value >= 0.")

        rate = self._rate()
        items, subtotal = self._sale_items(lines, rate)
        existing = self.customers.find_by_dni(info.dni)
        config = self.loyalty.load_config()
        ledger = self.loyalty.quote(subtotal, existing, redeem_points, config)

        trade_value = float(trade_in.value) if trade_in else 0.0
        total = max(ledger.final_total - trade_value, 0.0)
        down_payment = reserve.down_payment if reserve else 0.0
        self._validate_payment(payment, max(total - down_payment, 0.0), rate)

        saved = self.customers.upsert(info)
        sale_id = self.repo.new_sale_id()
        held = {reserve.product_id: reserve.quantity} if reserve else None

        with self.stock.unit_of_work() as uow:
            self.stock.commit_lines(lines, store, "sale", sale_id, already_debited=held, uow=uow)
            trade_record = None
            if trade_in is not None:
                trade_record = self.stock.create_trade_in(trade_in, store, sale_id, uow=uow)
            receipt = self.counter.next_receipt("sale")

            balance = self._apply_points(saved, ledger, config)
            try:
                if reserve is not None:
                    self._mark_completed(reserve.id, sale_id)
                sale = Sale(
                    id=sale_id,
                    receipt_number=receipt,
                    date=_now_iso(),
                    customer_id=saved.id,
                    customer=saved.info(),
                    items=items,
                    payment_method=payment.method,
                    payment_breakdown=dict(payment.breakdown),
                    subtotal=subtotal,
                    discount=ledger.discount,
                    total_amount=total,
                    usd_rate=rate,
                    store=store,
                    points_used=ledger.points_used,
                    points_earned=ledger.points_earned,
                    points_accumulated=balance,
                    trade_in=self._trade_in_record(trade_in, trade_record),
                    reserve_id=reserve.id if reserve else None,
                    down_payment=down_payment,
                    notes=notes,
                )
                self.repo.add_sale(sale)
            except Exception:
                self._revert_points(saved, ledger, config)
                if reserve is not None:
                    self._reopen(reserve.id, sale_id)
                raise

        log.info(
            "sale_created sale_id=%s receipt=%s items=%s total=%.2f rate=%.4f store=%s reserve=%s",
            sale.id,
            sale.receipt_number,
            len(items),
            total,
            rate,
            store,
            sale.reserve_id,
        )
        return sale

    @staticmethod
    def _trade_in_record(trade_in: TradeIn | None, product: Product | None) -> Optional[dict]:
        if trade_in is None:
            return None
        return {
            "name": trade_in.name,
            "brand": trade_in.brand,
            "model": trade_in.model,
            "value": float(trade_in.value),
            "productId": product.id if product else None,
        }

    def _apply_points(self, customer: Customer, ledger: LedgerResult, config: PointsConfig) -> int:
        if config.paused:
            return customer.points
        return self.loyalty.apply(customer.id, ledger.points_used, ledger.points_earned)

    def _revert_points(self, customer: Customer, ledger: LedgerResult, config: PointsConfig) -> None:
        if config.paused or (ledger.points_used == 0 and ledger.points_earned == 0):
            return
        self.loyalty.revert(customer.id, ledger.points_used, ledger.points_earned)

    def _mark_completed(self, reserve_id: str, sale_id: str) -> Reserve:
        found = self.repo.get_reserve_versioned(reserve_id)
        if found is None:
            raise NotFoundError("Reserve not found.")
        reserve, version = found
        if reserve.is_terminal:
            raise InvalidStateError(f"Reserve {reserve.receipt_number} is already {reserve.status}.")
        completed = replace(
            reserve,
            status=RESERVE_COMPLETED,
            remaining_amount=0.0,
            remaining_usd=0.0,
            remaining_ars=0.0,
            sale_id=sale_id,
            completed_at=_now_iso(),
        )
        if not self.repo.cas_reserve(completed, version):
            raise ConcurrencyError(f"Reserve {reserve.receipt_number} changed while completing it.")
        return completed

    def _reopen(self, reserve_id: str, sale_id: str) -> None:
        found = self.repo.get_reserve_versioned(reserve_id)
        if found is None:
            return
        reserve, version = found
        if reserve.status == RESERVE_COMPLETED and reserve.sale_id == sale_id:
            reopened = replace(reserve, status=RESERVE_RESERVED, sale_id=None, completed_at=None)
            self.repo.cas_reserve(reopened, version)

    # ---------- Reserves ----------
    def reserve(
        self,
        cart: Cart | Iterable[CartLine],
        customer: CustomerInfo,
        down_payment: float,
        expiration,
        notes: Optional[str] = None,
    ) -> Reserve:
        info = validate_customer(customer)
        lines, store = self._validate_cart(cart)
        if len(lines) != 1:
            raise ValidationError("A reservation holds exactly one product line.")
        try:
            down_payment = float(down_payment)
        except (TypeError, ValueError) as e:
            raise ValidationError("Down payment must be a number.") from e
        if down_payment <= 0:
            raise ValidationError("Down payment must be > 0.")
        expiration_iso = self._expiration(expiration)

        line = lines[0]
        rate = self._rate()
        price_local = to_display_currency(line.price, rate, self.settings.usd_price_threshold) * line.quantity
        if down_payment > price_local + self.settings.payment_epsilon:
            raise ValidationError("Down payment cannot exceed the product price.")
        remaining = max(price_local - down_payment, 0.0)

        saved = self.customers.upsert(info)
        reserve_id = self.repo.new_reserve_id()
        snapshot = line.snapshot().to_record()

        with self.stock.unit_of_work() as uow:
            self.stock.commit_lines(lines, store, "reserve", reserve_id, uow=uow)
            receipt = self.counter.next_receipt("reserve")
            reserve = Reserve(
                id=reserve_id,
                receipt_number=receipt,
                date=_now_iso(),
                customer_id=saved.id,
                customer=saved.info(),
                product_id=line.product_id,
                product_name=line.name,
                product_price=float(line.price),
                quantity=int(line.quantity),
                down_payment=down_payment,
                remaining_amount=remaining,
                status=RESERVE_RESERVED,
                expiration_date=expiration_iso,
                store=store,
                usd_rate=rate,
                price_usd=price_local / rate,
                price_ars=price_local,
                down_payment_usd=down_payment / rate,
                down_payment_ars=down_payment,
                remaining_usd=remaining / rate,
                remaining_ars=remaining,
                product_snapshot=snapshot,
                notes=notes,
            )
            self.repo.add_reserve(reserve)

        log.info(
            "reserve_created reserve_id=%s receipt=%s product_id=%s qty=%s down=%.2f remaining=%.2f",
            reserve.id,
            receipt,
            reserve.product_id,
            reserve.quantity,
            down_payment,
            remaining,
        )
        return reserve

    def cancel_reservation(self, reserve_id: str) -> Reserve:
        """Cancel a pending reservation and put the held units back in stock."""
        found = self.repo.get_reserve_versioned(reserve_id)
        if found is None:
            raise NotFoundError("Reserve not found.")
        reserve, version = found
        if reserve.is_terminal:
            raise InvalidStateError(f"Reserve {reserve.receipt_number} is already {reserve.status}.")

        cancelled = replace(reserve, status=RESERVE_CANCELLED, cancelled_at=_now_iso())
        if not self.repo.cas_reserve(cancelled, version):
            raise ConcurrencyError(f"Reserve {reserve.receipt_number} changed while cancelling it.")

        snapshot = Product.from_record(reserve.product_id, reserve.product_snapshot)
        try:
            self.stock.restock(snapshot, reserve.quantity, reserve.store, "reserve_cancel", reserve.id)
        except Exception:
            log.exception("reserve_cancel_restock_failed reserve_id=%s", reserve.id)
            latest = self.repo.get_reserve_versioned(reserve.id)
            if latest is not None:
                self.repo.cas_reserve(reserve, latest[1])
            raise

        log.info("reserve_cancelled reserve_id=%s receipt=%s", reserve.id, reserve.receipt_number)
        return cancelled

    @staticmethod
    def is_expired(reserve: Reserve, now: datetime | None = None) -> bool:
        """Advisory only; nothing transitions a reserve on expiry."""
        if reserve.status != RESERVE_RESERVED or not reserve.expiration_date:
            return False
        try:
            expires = datetime.fromisoformat(reserve.expiration_date)
        except ValueError:
            return False
        return expires <= (now or datetime.now())

    def get_reserve(self, reserve_id: str) -> Optional[Reserve]:
        found = self.repo.get_reserve_versioned(reserve_id)
        return found[0] if found else None

    def list_reserves(self, status: str | None = None) -> list[Reserve]:
        reserves = self.repo.list_reserves()
        if status is not None:
            reserves = [r for r in reserves if r.status == status]
        return reserves

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return self.repo.get_sale(sale_id)

    # ---------- Transfers ----------
    def transfer(self, product_id: str, quantity: int, target_store: str) -> None:
        self.stock.transfer(product_id, quantity, target_store)
