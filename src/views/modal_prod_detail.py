from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

from db.crud import add_to_cart, get_cart, get_product, set_cart_item_qty
from db.models import Product
from utils.pure import format_money, generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    Product detail plus a quantity picker for the cart.
    Dismisses with True if the cart changed.
    """

    order_qty = reactive(1)

    def __init__(self, pid: int) -> None:
        super().__init__()
        self._pid = pid
        self._prod: Product | None = None
        self._in_cart = 0

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        self._prod = await get_product(self._pid)
        if self._prod is None:
            self.notify(f"Product {self._pid} no longer exists.", severity="error")
            self.dismiss(False)
            return

        rows = [
            ["Name", self._prod.name],
            ["Price", format_money(self._prod.price)],
            ["In Stock", self._prod.stock],
            ["Description", self._prod.descr or "-"],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
        await self.query_one(MarkdownViewer).document.update(
            f"### {self._prod.name}\n\n" + md_table_str
        )

        if self._prod.stock < 1:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"

        qty_input = self.query_one("#input-order-qty", Input)
        qty_input.validators = [Number(minimum=1, maximum=max(self._prod.stock, 1))]

        cart = await get_cart(self.app.state.uid)
        for item in cart.items:
            if item.product_id == self._pid:
                self._in_cart = item.quantity
                self.order_qty = item.quantity
                self.query_one("#btn-addcart", Button).label = "Update Cart"
                break
        qty_input.focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and message.value.isdigit()
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def validate_order_qty(self, qty: int) -> int:
        upper = self._prod.stock if self._prod else qty
        return max(1, min(qty, max(upper, 1)))

    def watch_order_qty(self, qty: int):
        self.query_one("#btn-sub-qty", Button).disabled = qty <= 1
        self.query_one("#btn-add-qty", Button).disabled = bool(
            self._prod and qty >= self._prod.stock
        )
        self.query_one("#input-order-qty", Input).value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        if self._in_cart:
            qty = await set_cart_item_qty(self.app.state.uid, self._pid, self.order_qty)
            self.app.notify(f"Cart quantity set to {qty}.")
        else:
            qty = await add_to_cart(self.app.state.uid, self._pid, self.order_qty)
            self.app.notify(f"Added to cart ({qty} in cart).")
        self.dismiss(True)
