from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db.errors import ShopError
from db.models import Cart
from db.orders import place_order
from db.validation import SHIPPING_ADDRESS_MIN_LENGTH
from utils.pure import format_money, generate_markdown_table
from views.modal_dialog import DialogModal, ErrorDialogModal


class CheckoutModal(ModalScreen[Optional[int]]):
    """
    Order summary plus shipping address.
    Dismisses with the new order id, or None if nothing was placed.

    The summary shows the prices the cart was loaded with; the order itself
    is priced from the catalog at the moment it is placed.
    """

    def __init__(self, cart: Cart):
        super().__init__()
        self._cart = cart

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Shipping Address")
            yield Input(
                placeholder="123 Main St, Anytown, ST 00000",
                id="input-address-line",
            )
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        headers = ["Product Name", "Unit Price", "Quantity", "Line Total"]
        rows = [
            [
                item.product.name,
                format_money(item.product.price),
                item.quantity,
                format_money(item.line_total),
            ]
            for item in self._cart.items
        ]
        md = "### Order Summary\n\n" + generate_markdown_table(
            headers, rows, ["l", "r", "c", "r"]
        )
        md += f"\n\n**Subtotal:** {format_money(self._cart.total)}"
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-address-line").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        address_input = self.query_one("#input-address-line", Input)
        address_line = address_input.value.strip()
        if len(address_line) < SHIPPING_ADDRESS_MIN_LENGTH:
            address_input.focus()
            address_input.add_class("-invalid")
            self.notify(
                f"Address must be at least {SHIPPING_ADDRESS_MIN_LENGTH} characters.",
                severity="error",
            )
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? Stock is reserved until you cancel it.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        try:
            order = await place_order(self.app.state.uid, address_line)
        except ShopError as exc:
            await self.app.push_screen_wait(ErrorDialogModal(exc))
            self.dismiss(None)
            return

        self.notify(
            f"Order #{order.id} placed, total {format_money(order.total_amount)}. "
            "Pay for it from the Orders screen."
        )
        self.dismiss(order.id)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
