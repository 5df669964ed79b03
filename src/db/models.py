# provide dataclass models

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from math import ceil
from typing import List, Optional

from utils.pure import to_money


class Role(StrEnum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(StrEnum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    MOBILE_BANKING = "mobile_banking"
    CASH_ON_DELIVERY = "cash_on_delivery"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


@dataclass(frozen=True)
class Actor:
    """Identity and role handed over by the login step."""

    id: int
    role: str

    @property
    def is_privileged(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class User:
    id: int
    name: str
    email: str
    pwd: str
    role: str  # "customer" or "admin"
    cancellation_count: int = 0
    last_cancellation_date: Optional[date] = None

    @property
    def actor(self) -> Actor:
        return Actor(id=self.id, role=self.role)


@dataclass(frozen=True)
class UserSummary:
    """Owner details shown alongside an order."""

    id: int
    name: str
    email: str


@dataclass(frozen=True)
class ProductSummary:
    id: int
    name: str
    image_url: Optional[str] = None
    price: Optional[Decimal] = None  # current catalog price


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: Decimal
    stock: int
    descr: Optional[str] = None
    image_url: Optional[str] = None

    def summary(self) -> ProductSummary:
        return ProductSummary(
            id=self.id, name=self.name, image_url=self.image_url, price=self.price
        )


@dataclass(frozen=True)
class CartItem:
    cart_id: int
    product_id: int
    quantity: int
    product: Optional[Product] = None

    @property
    def line_total(self) -> Decimal:
        if self.product is None:
            return Decimal("0")
        return self.product.price * self.quantity


@dataclass(frozen=True)
class Cart:
    id: int
    user_id: int
    items: List[CartItem] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return to_money(sum((i.line_total for i in self.items), Decimal("0")))


@dataclass(frozen=True)
class OrderItem:
    id: int
    order_id: int
    product_id: int
    quantity: int
    price_at_purchase: Decimal  # unit price at time of order
    product: Optional[ProductSummary] = None

    @property
    def line_total(self) -> Decimal:
        return self.price_at_purchase * self.quantity


@dataclass(frozen=True)
class Order:
    id: int
    user_id: int
    total_amount: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    created_at: datetime
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipping_address: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)
    user: Optional[UserSummary] = None


@dataclass(frozen=True)
class OrderPage:
    orders: List[Order]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True)
class PaymentReceipt:
    method: str
    amount: Decimal
    paid_at: datetime
    status: str = "completed"


@dataclass(frozen=True)
class PaymentResult:
    order: Order
    payment: PaymentReceipt


@dataclass(frozen=True)
class CancellationResult:
    order: Order
    cancellations_today: int
    max_per_day: int
