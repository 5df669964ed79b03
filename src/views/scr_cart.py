from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from db.crud import clear_cart, get_cart, remove_from_cart
from db.errors import ShopError
from db.models import CartItem
from utils.messages import CartChangedMessage, ModeSwitchedMessage, OrderChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import ConfirmModal, DialogModal
from views.modal_prod_detail import ProdDetailModal


class CartItemActionEditMessage(Message):
    bubble = True


class CartItemActionRemoveMessage(Message):
    bubble = True


class CartItemActionLabel(Label):
    def action_edit(self):
        self.post_message(CartItemActionEditMessage())

    def action_remove(self):
        self.post_message(CartItemActionRemoveMessage())


class CartItemWidget(HorizontalGroup):
    def __init__(self, item: CartItem):
        super().__init__()
        self.item = item

    def compose(self):
        product = self.item.product
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(product.name, id="label-item-name")
                yield Label(f"x {self.item.quantity}", id="label-item-qty")
                yield Label(format_money(product.price), id="label-item-price")
                yield Label(format_money(self.item.line_total), id="label-item-total")
            with Container(id="div-actions"):
                yield CartItemActionLabel("[@click=edit()]Edit[/]", id="link-item-edit")
                yield CartItemActionLabel("[@click=remove()]Remove[/]", id="link-item-remove")

    @on(CartItemActionEditMessage)
    @work()
    async def handle_edit_item(self):
        if await self.app.push_screen_wait(ProdDetailModal(self.item.product_id)):
            self.post_message(CartChangedMessage())

    @on(CartItemActionRemoveMessage)
    @work()
    async def handle_remove_item(self):
        if await self.app.push_screen_wait(
            ConfirmModal("Do you really want to remove this item from cart?")
        ):
            await remove_from_cart(self.app.state.uid, self.item.product_id)
            self.post_message(CartChangedMessage())
            self.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Cart contents with live prices; checkout turns it into an order.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total Cart Value: $0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Refresh", id="btn-refresh")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(OrderChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)  # overlapping reloads would mount duplicate rows
    async def handle_cart_change(self):
        try:
            cart = await get_cart(self.app.state.uid)
        except ShopError as exc:
            await self.report_error(exc)
            return

        content = self.query_one("#vertscroll-content")
        current = [(c.item.product_id, c.item.quantity, c.item.product) for c in content.children]
        fresh = [(i.product_id, i.quantity, i.product) for i in cart.items]
        if current != fresh:
            await content.remove_children()
            await content.mount_all([CartItemWidget(item) for item in cart.items])

        content.set_class(not cart.items, "no-items")
        self.query_one("#label-cart-total", Label).update(
            f"Total Cart Value: {format_money(cart.total)}"
        )

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        cart = await get_cart(self.app.state.uid)
        if not cart.items:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            await clear_cart(self.app.state.uid)
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        cart = await get_cart(self.app.state.uid)
        if not cart.items:
            self.app.notify("Cart is empty.", severity="warning")
            return

        order_id = await self.app.push_screen_wait(CheckoutModal(cart))
        if order_id:
            self.app.post_message(OrderChangedMessage(order_id))
        self.post_message(CartChangedMessage())
