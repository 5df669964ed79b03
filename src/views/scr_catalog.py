from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer, OptionList
from textual.widgets.option_list import Option

from db.crud import get_product, search_products, update_product
from utils.pure import format_money, generate_markdown_table
from views.base_screen import BaseScreen


class CatalogScreen(BaseScreen):
    """
    Admins look a product up and correct its price or restock it.
    Orders already placed keep the price they were bought at.
    """

    current_pid: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Search for product...")
            yield OptionList(id="optlist-prods")
            yield MarkdownViewer(id="md-prod", show_table_of_contents=False)
            with Horizontal(id="hort-controls"):
                with Vertical():
                    yield Label("Price ($):")
                    yield Input(
                        id="input-price",
                        type="number",
                        validators=[Number(minimum=0.01)],
                    )
                with Vertical():
                    yield Label("Stock:")
                    yield Input(
                        id="input-stock",
                        type="integer",
                        validators=[Number(minimum=0)],
                    )
                yield Button("Update", id="btn-update", variant="success")

    def on_mount(self) -> None:
        self.query_one("#input-search", Input).focus()
        for widget_id in ("#optlist-prods", "#md-prod", "#hort-controls"):
            self.query_one(widget_id).add_class("hidden")

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.query_one("#optlist-prods").remove_class("hidden")
            self.update_optlist(message.value)

    def on_option_list_option_selected(self, message: OptionList.OptionSelected):
        self.current_pid = int(message.option.id)
        self.render_product()

        self.query_one("#optlist-prods").add_class("hidden")
        self.query_one("#md-prod").remove_class("hidden")
        self.query_one("#hort-controls").remove_class("hidden")

    @work(exclusive=True)
    async def update_optlist(self, query: str):
        products, _ = await search_products(query, page=1, page_size=20)
        opt_list = self.query_one("#optlist-prods", OptionList)
        opt_list.clear_options()
        opt_list.add_options([Option(f"{p.id} {p.name}", id=str(p.id)) for p in products])

    @work(exclusive=True)
    async def render_product(self) -> None:
        prod = await get_product(self.current_pid)
        if prod is None:
            self.notify("Product not found.", severity="error")
            return

        rows = [
            ["ID", prod.id],
            ["Name", prod.name],
            ["Price", format_money(prod.price)],
            ["Stock", prod.stock],
            ["Description", prod.descr or "-"],
        ]
        md_table = generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
        await self.query_one("#md-prod", MarkdownViewer).document.update(
            f"### {prod.name}\n\n" + md_table
        )
        self.query_one("#input-price", Input).value = f"{prod.price:.2f}"
        self.query_one("#input-stock", Input).value = str(prod.stock)

    @on(Button.Pressed, "#btn-update")
    @work(exclusive=True)
    async def handle_update(self) -> None:
        prod = await get_product(self.current_pid)
        price_input = self.query_one("#input-price", Input)
        stock_input = self.query_one("#input-stock", Input)

        try:
            new_price = Decimal(price_input.value)
        except InvalidOperation:
            price_input.focus()
            price_input.add_class("-invalid")
            return
        if not stock_input.value.isdigit():
            stock_input.focus()
            stock_input.add_class("-invalid")
            return
        new_stock = int(stock_input.value)

        if new_price == prod.price and new_stock == prod.stock:
            self.notify("Nothing to update.", severity="warning")
            return

        try:
            updated = await update_product(prod.id, new_price, new_stock)
        except ValueError as exc:
            self.notify(str(exc), severity="error")
            return
        if updated:
            self.notify("Product updated successfully.")
        else:
            self.notify("Update failed.", severity="error")
        self.render_product()
