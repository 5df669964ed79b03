import os
import random
import sqlite3
import sys
import unittest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import cancellations, lifecycle, validation
from db.errors import (
    InsufficientStockError,
    InternalError,
    InvalidStateError,
    InvalidTransitionError,
    LockTimeoutError,
    NotFoundError,
    ValidationError,
    describe_error,
    store_error,
)
from db.models import (
    Actor,
    Cart,
    CartItem,
    Order,
    OrderPage,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    User,
)
from db.payments import PaymentSimulator
from utils import config
from utils.pure import format_money, generate_markdown_table, to_decimal, to_int, to_money


def make_order(status, payment_status=PaymentStatus.UNPAID):
    return Order(
        id=7,
        user_id=2,
        total_amount=Decimal("10.00"),
        status=OrderStatus(status),
        payment_status=payment_status,
        created_at=datetime(2024, 5, 10, 9, 0),
    )


class LifecycleTestCase(unittest.TestCase):
    EXPECTED = {
        ("pending", "confirmed"),
        ("pending", "cancelled"),
        ("confirmed", "shipped"),
        ("confirmed", "cancelled"),
        ("shipped", "delivered"),
    }

    def test_transition_table_is_closed(self):
        for current in OrderStatus:
            for target in OrderStatus:
                with self.subTest(current=current, target=target):
                    self.assertEqual(
                        lifecycle.can_transition(current, target),
                        (current.value, target.value) in self.EXPECTED,
                    )

    def test_terminal_states(self):
        self.assertEqual(lifecycle.allowed_next("delivered"), ())
        self.assertEqual(lifecycle.allowed_next("cancelled"), ())

    def test_transition_returns_moved_copy(self):
        order = make_order("pending")
        moved = lifecycle.transition(order, "confirmed")
        self.assertEqual(moved.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(moved.id, order.id)

    def test_transition_error_lists_allowed(self):
        with self.assertRaises(InvalidTransitionError) as ctx:
            lifecycle.transition(make_order("pending"), "shipped")
        err = ctx.exception
        self.assertEqual(err.status, 409)
        self.assertEqual(err.current, "pending")
        self.assertEqual(err.target, "shipped")
        self.assertIn("Allowed: confirmed, cancelled", err.message)

        with self.assertRaises(InvalidTransitionError) as ctx:
            lifecycle.transition(make_order("delivered"), "pending")
        self.assertTrue(ctx.exception.message.endswith("Allowed: none"))

    def test_check_cancellable(self):
        lifecycle.check_cancellable(make_order("pending"))
        lifecycle.check_cancellable(make_order("confirmed"))
        for status in ("shipped", "delivered", "cancelled"):
            with self.subTest(status=status):
                with self.assertRaises(InvalidStateError):
                    lifecycle.check_cancellable(make_order(status))


class CancellationCounterTestCase(unittest.TestCase):
    TODAY = date(2024, 5, 10)

    def test_is_blocked(self):
        self.assertFalse(cancellations.is_blocked(0, None, self.TODAY, 3))
        self.assertFalse(cancellations.is_blocked(2, self.TODAY, self.TODAY, 3))
        self.assertTrue(cancellations.is_blocked(3, self.TODAY, self.TODAY, 3))
        self.assertTrue(cancellations.is_blocked(5, self.TODAY, self.TODAY, 3))
        yesterday = self.TODAY - timedelta(days=1)
        self.assertFalse(cancellations.is_blocked(3, yesterday, self.TODAY, 3))
        # a zero limit blocks even the first cancellation of the day
        self.assertTrue(cancellations.is_blocked(0, None, self.TODAY, 0))
        self.assertTrue(cancellations.is_blocked(4, yesterday, self.TODAY, 0))

    def test_next_count(self):
        self.assertEqual(cancellations.next_count(0, None, self.TODAY), 1)
        self.assertEqual(cancellations.next_count(2, self.TODAY, self.TODAY), 3)
        yesterday = self.TODAY - timedelta(days=1)
        self.assertEqual(cancellations.next_count(3, yesterday, self.TODAY), 1)


class PaymentSimulatorTestCase(unittest.TestCase):
    def test_fixed_outcomes(self):
        self.assertTrue(PaymentSimulator(1.0).approve())
        self.assertFalse(PaymentSimulator(0.0).approve())

    def test_seeded_rate(self):
        sim = PaymentSimulator(rng=random.Random(1234))
        approved = sum(sim.approve() for _ in range(2000))
        self.assertGreater(approved, 1700)
        self.assertLess(approved, 1900)

    def test_rejects_bad_rate(self):
        with self.assertRaises(ValueError):
            PaymentSimulator(1.5)
        with self.assertRaises(ValueError):
            PaymentSimulator(-0.1)


class ValidationTestCase(unittest.TestCase):
    def test_shipping_address(self):
        self.assertIsNone(validation.shipping_address(None))
        self.assertEqual(validation.shipping_address("  1 Main St  "), "1 Main St")
        self.assertEqual(validation.shipping_address("12345"), "12345")
        with self.assertRaises(ValidationError) as ctx:
            validation.shipping_address("   1234   ")
        self.assertEqual(ctx.exception.field, "shipping address")
        self.assertEqual(ctx.exception.status, 400)

    def test_enums(self):
        self.assertEqual(validation.order_status("shipped"), OrderStatus.SHIPPED)
        self.assertEqual(validation.payment_method("bank_transfer"), PaymentMethod.BANK_TRANSFER)
        with self.assertRaises(ValidationError):
            validation.order_status("SHIPPED")
        with self.assertRaises(ValidationError):
            validation.payment_method("cheque")

    def test_page_params(self):
        self.assertEqual(validation.page_params(1, 10), (1, 10))
        self.assertEqual(validation.page_params(3, 100), (3, 100))
        for page, limit in ((0, 10), (1, 0), (1, 101)):
            with self.subTest(page=page, limit=limit):
                with self.assertRaises(ValidationError):
                    validation.page_params(page, limit)


class ErrorsTestCase(unittest.TestCase):
    def test_store_error_mapping(self):
        locked = store_error(sqlite3.OperationalError("database is locked"))
        self.assertIsInstance(locked, LockTimeoutError)
        self.assertTrue(locked.retryable)
        self.assertEqual(locked.status, 503)

        other = store_error(sqlite3.IntegrityError("CHECK constraint failed: stock >= 0"))
        self.assertIsInstance(other, InternalError)
        self.assertFalse(other.retryable)
        self.assertEqual(other.status, 500)

    def test_describe_error(self):
        err = InsufficientStockError(4, "27in Monitor", 5, 3)
        payload = describe_error(err, debug=False)
        self.assertEqual(
            payload,
            {
                "success": False,
                "status": 409,
                "message": 'Insufficient stock for "27in Monitor". Requested: 5, Available: 3',
                "retryable": False,
            },
        )

    def test_describe_error_debug_stack(self):
        try:
            raise NotFoundError("Order", 9)
        except NotFoundError as exc:
            payload = describe_error(exc, debug=True)
        self.assertEqual(payload["status"], 404)
        self.assertIn("NotFoundError", payload["stack"])

    def test_describe_unknown_error(self):
        with mock.patch.dict(os.environ, {"DEBUG": ""}):
            payload = describe_error(KeyError("boom"))
        self.assertEqual(payload["status"], 500)
        self.assertEqual(payload["message"], "Internal error.")
        self.assertNotIn("stack", payload)


class ConfigTestCase(unittest.TestCase):
    def test_max_cancellations_per_day(self):
        cases = {"": 3, "5": 5, "1": 1, "0": 3, "-2": 3, "many": 3}
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                with mock.patch.dict(os.environ, {"MAX_CANCELLATIONS_PER_DAY": raw}):
                    self.assertEqual(config.max_cancellations_per_day(), expected)

    def test_lock_timeout(self):
        with mock.patch.dict(os.environ, {"LOCK_TIMEOUT": "2.5"}):
            self.assertEqual(config.lock_timeout(), 2.5)
        with mock.patch.dict(os.environ, {"LOCK_TIMEOUT": "soon"}):
            self.assertEqual(config.lock_timeout(), 5.0)

    def test_db_path_and_debug(self):
        with mock.patch.dict(os.environ, {"DB_PATH": "/tmp/shop.sqlite", "DEBUG": "1"}):
            self.assertEqual(config.db_path(), "/tmp/shop.sqlite")
            self.assertTrue(config.development_mode())
        with mock.patch.dict(os.environ, {"DB_PATH": "", "DEBUG": ""}):
            self.assertEqual(config.db_path(), "data/db.sqlite")
            self.assertFalse(config.development_mode())


class ModelsTestCase(unittest.TestCase):
    def test_cart_total_and_lines(self):
        mouse = Product(id=1, name="Mouse", price=Decimal("24.99"), stock=50)
        cable = Product(id=3, name="Cable", price=Decimal("9.99"), stock=100)
        cart = Cart(
            id=1,
            user_id=2,
            items=[
                CartItem(cart_id=1, product_id=1, quantity=3, product=mouse),
                CartItem(cart_id=1, product_id=3, quantity=2, product=cable),
            ],
        )
        self.assertEqual(cart.items[0].line_total, Decimal("74.97"))
        self.assertEqual(cart.total, Decimal("94.95"))

    def test_order_page_total_pages(self):
        self.assertEqual(OrderPage(orders=[], total=0, page=1, limit=10).total_pages, 0)
        self.assertEqual(OrderPage(orders=[], total=10, page=1, limit=10).total_pages, 1)
        self.assertEqual(OrderPage(orders=[], total=11, page=1, limit=10).total_pages, 2)

    def test_actor(self):
        user = User(id=2, name="John", email="j@x", pwd="pw", role="customer")
        self.assertEqual(user.actor, Actor(id=2, role="customer"))
        self.assertFalse(user.actor.is_privileged)
        self.assertTrue(Actor(id=1, role="admin").is_privileged)


class PureTestCase(unittest.TestCase):
    def test_money(self):
        self.assertEqual(to_money(Decimal("2.675")), Decimal("2.68"))
        self.assertEqual(to_money(Decimal("2.665")), Decimal("2.67"))
        self.assertEqual(to_decimal(0.1), Decimal("0.1"))
        self.assertEqual(to_decimal("89.50"), Decimal("89.50"))
        self.assertEqual(format_money(Decimal("1234.5")), "$1,234.50")
        with self.assertRaises(ValueError):
            to_decimal("abc")

    def test_to_int(self):
        self.assertEqual(to_int("7"), 7)
        self.assertIsNone(to_int("seven"))
        self.assertIsNone(to_int(None))

    def test_markdown_table(self):
        table = generate_markdown_table(
            ["Product", "Qty"], [["A | B", 2]], ["l", "r"]
        )
        self.assertEqual(
            table.splitlines(),
            ["| Product | Qty |", "| :--- | ---: |", "| A \\| B | 2 |"],
        )
        self.assertEqual(generate_markdown_table(None, []), "")
        # no headers: the first row becomes the header
        self.assertTrue(generate_markdown_table(None, [["k", "v"], [1, 2]]).startswith("| k | v |"))
        with self.assertRaises(ValueError):
            generate_markdown_table(["a", "b"], [], ["l"])


if __name__ == "__main__":
    unittest.main()
