from math import ceil

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import DataTable, Input, Label

import db.crud
from db.errors import ShopError
from utils.messages import CartChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

PAGE_SIZE = 5


class ProdSearchScreen(BaseScreen):
    """
    Product search, for customers only. Enter on a row opens the detail modal.
    """

    page_idx = reactive(1)
    page_cnt = reactive(1)
    query_str = reactive("")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(id="input-search", placeholder="Start typing to search products...")
        yield DataTable(id="table-search-result")
        with Horizontal(id="hort-pager"):
            yield Input("1", id="input-page", type="integer")
            yield Label(" / 1", id="label-total-page-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Price", "In Stock", "Description")

        self.query_one("#input-search").focus()
        self.update_search_result("", 1)

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.query_str = message.value
            self.page_idx = 1
            self.update_search_result(self.query_str, 1)
        elif message.input.id == "input-page" and message.value.isdigit():
            self.page_idx = int(message.value)

    @work()
    async def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if event.key == "enter" and self.focused == table and table.row_count:
            pid = int(table.get_row_at(table.cursor_row)[0])
            if await self.app.push_screen_wait(ProdDetailModal(pid)):
                self.app.post_message(CartChangedMessage())
                self.update_search_result(self.query_str, self.page_idx)

    def validate_page_idx(self, page_idx):
        return max(1, min(page_idx, self.page_cnt))

    def watch_page_idx(self, _, new_page_idx):
        self.query_one("#input-page").value = str(new_page_idx)
        self.update_search_result(self.query_str, new_page_idx)

    @work(exclusive=True)
    async def update_search_result(self, query: str, page: int) -> None:
        try:
            products, total = await db.crud.search_products(query, page, PAGE_SIZE)
        except ShopError as exc:
            await self.report_error(exc)
            return

        table = self.query_one(DataTable)
        table.clear()
        table.add_rows(
            [p.id, p.name, format_money(p.price), p.stock, p.descr or ""] for p in products
        )
        self.page_cnt = max(ceil(total / PAGE_SIZE), 1)
        self.query_one("#label-total-page-cnt", Label).update(f" / {self.page_cnt}")
        self.query_one("#input-page").validators = [Number(minimum=1, maximum=self.page_cnt)]
