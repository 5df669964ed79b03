from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Select

from db.errors import PaymentDeclinedError, ShopError
from db.models import Order, PaymentMethod, PaymentResult
from db.orders import pay_order
from utils.pure import format_money
from views.modal_dialog import ErrorDialogModal

METHOD_LABELS = {
    PaymentMethod.CREDIT_CARD: "Credit card",
    PaymentMethod.DEBIT_CARD: "Debit card",
    PaymentMethod.MOBILE_BANKING: "Mobile banking",
    PaymentMethod.CASH_ON_DELIVERY: "Cash on delivery",
    PaymentMethod.PAYPAL: "PayPal",
    PaymentMethod.BANK_TRANSFER: "Bank transfer",
}


class PaymentModal(ModalScreen[Optional[PaymentResult]]):
    """
    Pick a payment method and pay. A declined payment keeps the modal open
    so the user can retry; dismisses with the PaymentResult on success.
    """

    def __init__(self, order: Order):
        super().__init__()
        self._order = order

    def compose(self) -> ComposeResult:
        with Vertical(id="div-payment"):
            yield Label(
                f"Order #{self._order.id}: {format_money(self._order.total_amount)}",
                id="label-payment-amount",
            )
            yield Select(
                [(label, method.value) for method, label in METHOD_LABELS.items()],
                prompt="Payment method",
                id="select-method",
            )
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Pay", id="btn-pay", variant="success")

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-pay")
    @work(exclusive=True)
    async def handle_pay(self):
        method = self.query_one("#select-method", Select).value
        if not isinstance(method, str):
            self.notify("Choose a payment method first.", severity="warning")
            return

        try:
            result = await pay_order(self.app.state.actor, self._order.id, method)
        except PaymentDeclinedError as exc:
            self.notify(exc.message, severity="error")
            return
        except ShopError as exc:
            await self.app.push_screen_wait(ErrorDialogModal(exc))
            self.dismiss(None)
            return

        self.notify(
            f"Paid {format_money(result.payment.amount)} by {METHOD_LABELS[PaymentMethod(method)]}."
        )
        self.dismiss(result)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
