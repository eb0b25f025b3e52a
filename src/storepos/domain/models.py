from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


RESERVE_RESERVED = "reserved"
RESERVE_COMPLETED = "completed"
RESERVE_CANCELLED = "cancelled"

RULE_MODEL_RANGE = "model_range"
RULE_MODEL_START = "model_start"
RULE_CATEGORY = "category"

PAYMENT_METHODS = ("efectivo", "transferencia", "tarjeta", "usd", "multiple")


# Documents coming from the store are loosely typed; defaults are applied here
# and nowhere else.
def _num(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: int = 0) -> int:
    return int(_num(value, default))


def _str(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _opt(value: Any) -> Optional[str]:
    s = _str(value)
    return s or None


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    category: str
    price: float
    cost: float
    stock: int
    store: str
    brand: str = ""
    model: str = ""
    imei: Optional[str] = None
    barcode: Optional[str] = None

    @classmethod
    def from_record(cls, key: str, data: Mapping[str, Any]) -> "Product":
        return cls(
            id=str(key),
            name=_str(data.get("name")),
            category=_str(data.get("category")),
            price=_num(data.get("price")),
            cost=_num(data.get("cost")),
            stock=max(_int(data.get("stock")), 0),
            store=_str(data.get("store")),
            brand=_str(data.get("brand")),
            model=_str(data.get("model")),
            imei=_opt(data.get("imei")),
            barcode=_opt(data.get("barcode")),
        )

    def to_record(self) -> dict:
        rec = {
            "name": self.name,
            "brand": self.brand,
            "model": self.model,
            "category": self.category,
            "price": self.price,
            "cost": self.cost,
            "stock": self.stock,
            "store": self.store,
        }
        if self.imei:
            rec["imei"] = self.imei
        if self.barcode:
            rec["barcode"] = self.barcode
        return rec

    def same_item(self, other: "Product") -> bool:
        return (
            self.name.lower() == other.name.lower()
            and self.brand.lower() == other.brand.lower()
            and self.model.lower() == other.model.lower()
            and self.category.lower() == other.category.lower()
        )


@dataclass(frozen=True)
class CartLine:
    product_id: str
    name: str
    category: str
    quantity: int
    price: float
    cost: float
    store: str
    brand: str = ""
    model: str = ""
    imei: Optional[str] = None
    barcode: Optional[str] = None
    gift: bool = False
    bundle_rule_id: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1, price: float | None = None) -> "CartLine":
        return cls(
            product_id=product.id,
            name=product.name,
            category=product.category,
            quantity=int(quantity),
            price=product.price if price is None else float(price),
            cost=product.cost,
            store=product.store,
            brand=product.brand,
            model=product.model,
            imei=product.imei,
            barcode=product.barcode,
        )

    def snapshot(self, stock: int = 0) -> Product:
        """Product record rebuilt from the add-time snapshot."""
        return Product(
            id=self.product_id,
            name=self.name,
            category=self.category,
            price=self.price,
            cost=self.cost,
            stock=stock,
            store=self.store,
            brand=self.brand,
            model=self.model,
            imei=self.imei,
            barcode=self.barcode,
        )


@dataclass(frozen=True)
class AccessoryRef:
    id: str
    name: str = ""


@dataclass(frozen=True)
class BundleRule:
    id: str
    name: str
    type: str
    accessories: tuple[AccessoryRef, ...]
    start: Optional[str] = None
    end: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_record(cls, key: str, data: Mapping[str, Any]) -> "BundleRule":
        conditions = data.get("conditions") or {}
        accessories = tuple(
            AccessoryRef(id=_str(a.get("id")), name=_str(a.get("name")))
            for a in (data.get("accessories") or [])
            if isinstance(a, Mapping) and a.get("id")
        )
        return cls(
            id=str(key),
            name=_str(data.get("name")),
            type=_str(data.get("type")),
            accessories=accessories,
            start=_opt(conditions.get("start")),
            end=_opt(conditions.get("end")),
            category=_opt(conditions.get("category")),
        )

    def to_record(self) -> dict:
        conditions = {k: v for k, v in (("start", self.start), ("end", self.end), ("category", self.category)) if v}
        return {
            "name": self.name,
            "type": self.type,
            "conditions": conditions,
            "accessories": [{"id": a.id, "name": a.name} for a in self.accessories],
        }


@dataclass(frozen=True)
class CustomerInfo:
    dni: str
    name: str
    phone: str = ""
    email: str = ""

    def to_record(self) -> dict:
        return {"dni": self.dni, "name": self.name, "phone": self.phone, "email": self.email}

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "CustomerInfo":
        return cls(
            dni=_str(data.get("dni")),
            name=_str(data.get("name")),
            phone=_str(data.get("phone")),
            email=_str(data.get("email")),
        )


@dataclass(frozen=True)
class Customer:
    id: str
    dni: str
    name: str
    phone: str = ""
    email: str = ""
    points: int = 0

    @classmethod
    def from_record(cls, key: str, data: Mapping[str, Any]) -> "Customer":
        return cls(
            id=str(key),
            dni=_str(data.get("dni")),
            name=_str(data.get("name")),
            phone=_str(data.get("phone")),
            email=_str(data.get("email")),
            points=max(_int(data.get("points")), 0),
        )

    def info(self) -> CustomerInfo:
        return CustomerInfo(dni=self.dni, name=self.name, phone=self.phone, email=self.email)

    def to_record(self) -> dict:
        return {"dni": self.dni, "name": self.name, "phone": self.phone, "email": self.email, "points": self.points}


@dataclass(frozen=True)
class Payment:
    method: str
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TradeIn:
    name: str
    value: float
    brand: str = ""
    model: str = ""
    category: Optional[str] = None
    imei: Optional[str] = None


@dataclass(frozen=True)
class SaleItem:
    product_id: str
    name: str
    quantity: int
    price: float
    price_local: float
    is_usd: bool
    cost: float
    category: str = ""
    gift: bool = False

    def to_record(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "priceLocal": self.price_local,
            "currency": "USD" if self.is_usd else "ARS",
            "cost": self.cost,
            "category": self.category,
            "gift": self.gift,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "SaleItem":
        return cls(
            product_id=_str(data.get("productId")),
            name=_str(data.get("productName")),
            quantity=_int(data.get("quantity"), 1),
            price=_num(data.get("price")),
            price_local=_num(data.get("priceLocal")),
            is_usd=_str(data.get("currency")) == "USD",
            cost=_num(data.get("cost")),
            category=_str(data.get("category")),
            gift=bool(data.get("gift", False)),
        )


@dataclass(frozen=True)
class Sale:
    id: str
    receipt_number: str
    date: str
    customer_id: str
    customer: CustomerInfo
    items: tuple[SaleItem, ...]
    payment_method: str
    payment_breakdown: dict[str, float]
    subtotal: float
    discount: float
    total_amount: float
    usd_rate: float
    store: str
    points_used: int = 0
    points_earned: int = 0
    points_accumulated: int = 0
    trade_in: Optional[dict] = None
    reserve_id: Optional[str] = None
    down_payment: float = 0.0
    notes: Optional[str] = None

    def to_record(self) -> dict:
        return {
            "receiptNumber": self.receipt_number,
            "date": self.date,
            "customerId": self.customer_id,
            "customer": self.customer.to_record(),
            "items": [it.to_record() for it in self.items],
            "paymentMethod": self.payment_method,
            "paymentBreakdown": dict(self.payment_breakdown),
            "subtotal": self.subtotal,
            "discount": self.discount,
            "totalAmount": self.total_amount,
            "usdRate": self.usd_rate,
            "store": self.store,
            "pointsUsed": self.points_used,
            "pointsEarned": self.points_earned,
            "pointsAccumulated": self.points_accumulated,
            "tradeIn": self.trade_in,
            "reserveId": self.reserve_id,
            "downPayment": self.down_payment,
            "notes": self.notes,
        }

    @classmethod
    def from_record(cls, key: str, data: Mapping[str, Any]) -> "Sale":
        return cls(
            id=str(key),
            receipt_number=_str(data.get("receiptNumber")),
            date=_str(data.get("date")),
            customer_id=_str(data.get("customerId")),
            customer=CustomerInfo.from_record(data.get("customer") or {}),
            items=tuple(SaleItem.from_record(it) for it in (data.get("items") or [])),
            payment_method=_str(data.get("paymentMethod")),
            payment_breakdown={str(k): _num(v) for k, v in (data.get("paymentBreakdown") or {}).items()},
            subtotal=_num(data.get("subtotal")),
            discount=_num(data.get("discount")),
            total_amount=_num(data.get("totalAmount")),
            usd_rate=_num(data.get("usdRate")),
            store=_str(data.get("store")),
            points_used=_int(data.get("pointsUsed")),
            points_earned=_int(data.get("pointsEarned")),
            points_accumulated=_int(data.get("pointsAccumulated")),
            trade_in=data.get("tradeIn"),
            reserve_id=_opt(data.get("reserveId")),
            down_payment=_num(data.get("downPayment")),
            notes=_opt(data.get("notes")),
        )


@dataclass(frozen=True)
class Reserve:
    id: str
    receipt_number: str
    date: str
    customer_id: str
    customer: CustomerInfo
    product_id: str
    product_name: str
    product_price: float
    quantity: int
    down_payment: float
    remaining_amount: float
    status: str
    expiration_date: str
    store: str
    usd_rate: float = 0.0
    price_usd: float = 0.0
    price_ars: float = 0.0
    down_payment_usd: float = 0.0
    down_payment_ars: float = 0.0
    remaining_usd: float = 0.0
    remaining_ars: float = 0.0
    product_snapshot: dict = field(default_factory=dict)
    sale_id: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RESERVE_COMPLETED, RESERVE_CANCELLED)

    def to_record(self) -> dict:
        return {
            "receiptNumber": self.receipt_number,
            "date": self.date,
            "customerId": self.customer_id,
            "customer": self.customer.to_record(),
            "productId": self.product_id,
            "productName": self.product_name,
            "productPrice": self.product_price,
            "quantity": self.quantity,
            "downPayment": self.down_payment,
            "remainingAmount": self.remaining_amount,
            "status": self.status,
            "expirationDate": self.expiration_date,
            "store": self.store,
            "usdRate": self.usd_rate,
            "priceUsd": self.price_usd,
            "priceArs": self.price_ars,
            "downPaymentUsd": self.down_payment_usd,
            "downPaymentArs": self.down_payment_ars,
            "remainingUsd": self.remaining_usd,
            "remainingArs": self.remaining_ars,
            "productSnapshot": dict(self.product_snapshot),
            "saleId": self.sale_id,
            "completedAt": self.completed_at,
            "cancelledAt": self.cancelled_at,
            "notes": self.notes,
        }

    @classmethod
    def from_record(cls, key: str, data: Mapping[str, Any]) -> "Reserve":
        return cls(
            id=str(key),
            receipt_number=_str(data.get("receiptNumber")),
            date=_str(data.get("date")),
            customer_id=_str(data.get("customerId")),
            customer=CustomerInfo.from_record(data.get("customer") or {}),
            product_id=_str(data.get("productId")),
            product_name=_str(data.get("productName")),
            product_price=_num(data.get("productPrice")),
            quantity=_int(data.get("quantity"), 1),
            down_payment=_num(data.get("downPayment")),
            remaining_amount=_num(data.get("remainingAmount")),
            status=_str(data.get("status")) or RESERVE_RESERVED,
            expiration_date=_str(data.get("expirationDate")),
            store=_str(data.get("store")),
            usd_rate=_num(data.get("usdRate")),
            price_usd=_num(data.get("priceUsd")),
            price_ars=_num(data.get("priceArs")),
            down_payment_usd=_num(data.get("downPaymentUsd")),
            down_payment_ars=_num(data.get("downPaymentArs")),
            remaining_usd=_num(data.get("remainingUsd")),
            remaining_ars=_num(data.get("remainingArs")),
            product_snapshot=dict(data.get("productSnapshot") or {}),
            sale_id=_opt(data.get("saleId")),
            completed_at=_opt(data.get("completedAt")),
            cancelled_at=_opt(data.get("cancelledAt")),
            notes=_opt(data.get("notes")),
        )


@dataclass(frozen=True)
class Counter:
    series: str
    value: int
    prefix: str


@dataclass(frozen=True)
class PointsConfig:
    earn_rate: float = 0.0
    value: float = 0.0
    paused: bool = False

    @classmethod
    def from_record(cls, data: Optional[Mapping[str, Any]]) -> "PointsConfig":
        data = data or {}
        return cls(
            earn_rate=_num(data.get("earnRate")),
            value=_num(data.get("value")),
            paused=bool(data.get("paused", False)),
        )


@dataclass(frozen=True)
class LedgerResult:
    discount: float
    points_used: int
    points_earned: int
    final_total: float


@dataclass(frozen=True)
class StockMovement:
    id: str
    date: str
    product_id: str
    delta: int
    stock_after: int
    reason: str
    reference: Optional[str]
    store: str
