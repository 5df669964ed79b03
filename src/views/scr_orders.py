from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select

import db.orders
from db import lifecycle
from db.errors import ShopError
from db.models import Order, OrderStatus, PaymentStatus
from utils.messages import ModeSwitchedMessage, OrderChangedMessage
from utils.pure import format_money, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import ConfirmModal
from views.modal_payment import PaymentModal

PAGE_SIZE = 5


class OrdersScreen(BaseScreen):
    """
    Order history for customers, order management for admins.

    Layout:
    - Markdown detail of the highlighted order at the top.
    - Orders table below (newest first), PAGE_SIZE per page with Prev/Next.
    - Actions: pay, cancel, and for admins a status transition picker.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Order Detail", show=True, key_display="⏎"),
    ]

    page_idx = reactive(1)
    page_cnt = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []
        self._selected: Optional[Order] = None
        self._status_filter: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-order-actions"):
            yield Button("Pay", id="btn-pay", variant="success")
            yield Button("Cancel Order", id="btn-cancel", variant="error")
            yield Select([], prompt="Next status", id="select-next-status")
            yield Button("Apply", id="btn-apply-status", variant="primary")
        with Horizontal(id="hort-table-control"):
            yield Select(
                [(s.value.title(), s.value) for s in OrderStatus],
                prompt="All statuses",
                id="select-status-filter",
            )
            yield Button("Refresh", id="btn-refresh")
            yield Button("<", id="btn-prev")
            yield Label("1 / 1", id="label-page")
            yield Button(">", id="btn-next")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Date", "Customer", "Status", "Payment", "Total")

        self._load_orders(1)

    def action_noop(self) -> None:
        pass

    @on(Button.Pressed, "#btn-refresh")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(OrderChangedMessage)
    def handle_refresh(self):
        self._load_orders(self.page_idx)

    @on(Select.Changed, "#select-status-filter")
    def handle_filter(self, event: Select.Changed) -> None:
        self._status_filter = event.value if isinstance(event.value, str) else None
        self.page_idx = 1
        self._load_orders(1)

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        order_id = int(event.row_key.value)
        self._select(next((o for o in self._orders if o.id == order_id), None))

    def watch_page_idx(self, old: int, new: int) -> None:
        self._refresh_pager()
        self._load_orders(new)

    def _refresh_pager(self) -> None:
        self.query_one("#btn-prev", Button).disabled = self.page_idx <= 1
        self.query_one("#btn-next", Button).disabled = self.page_idx >= self.page_cnt
        self.query_one("#label-page", Label).update(f"{self.page_idx} / {self.page_cnt}")

    @on(Button.Pressed, "#btn-prev")
    def handle_prev(self) -> None:
        if self.page_idx > 1:
            self.page_idx -= 1

    @on(Button.Pressed, "#btn-next")
    def handle_next(self) -> None:
        if self.page_idx < self.page_cnt:
            self.page_idx += 1

    @work(exclusive=True, group="orders")
    async def _load_orders(self, page: int) -> None:
        try:
            result = await db.orders.list_orders(
                self.app.state.actor, page, PAGE_SIZE, self._status_filter
            )
        except ShopError as exc:
            await self.report_error(exc)
            return
        table = self.query_one(DataTable)
        table.clear()
        for o in result.orders:
            table.add_row(
                o.id,
                o.created_at.strftime("%Y-%m-%d %H:%M"),
                o.user.name if o.user else f"User {o.user_id}",
                o.status.value,
                o.payment_status.value,
                format_money(o.total_amount),
                key=str(o.id),
            )
        self._orders = result.orders
        self.page_cnt = max(result.total_pages, 1)
        self._refresh_pager()
        if result.orders:
            table.move_cursor(row=0)
            self._select(result.orders[0])
        else:
            self._select(None)

    def _select(self, order: Optional[Order]) -> None:
        self._selected = order
        self._render_detail(order)
        self._refresh_actions(order)

    def _refresh_actions(self, order: Optional[Order]) -> None:
        is_admin = self.app.state.is_admin
        self.query_one("#select-next-status").display = is_admin
        self.query_one("#btn-apply-status").display = is_admin
        self.query_one("#btn-pay", Button).disabled = (
            order is None
            or order.status == OrderStatus.CANCELLED
            or order.payment_status == PaymentStatus.PAID
        )
        self.query_one("#btn-cancel", Button).disabled = (
            order is None or order.status not in lifecycle.CANCELLABLE
        )
        next_status = self.query_one("#select-next-status", Select)
        allowed = lifecycle.allowed_next(order.status) if order else ()
        next_status.set_options([(s.value.title(), s.value) for s in allowed])
        next_status.disabled = not allowed
        self.query_one("#btn-apply-status", Button).disabled = not allowed

    def _render_detail(self, order: Optional[Order]) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if not order:
            viewer.document.update("### Select an order to view its details.")
            return

        owner = (
            f"{order.user.name} ({order.user.email})"
            if order.user
            else f"User {order.user_id}"
        )
        header = (
            f"### Order #{order.id}\n"
            f"Placed: {order.created_at:%Y-%m-%d %H:%M}  \n"
            f"Customer: {owner}  \n"
            f"Status: **{order.status}** / Payment: **{order.payment_status}**  \n"
            f"Ship To: {order.shipping_address or '-'}\n\n"
        )
        if order.paid_at:
            header += f"Paid {order.paid_at:%Y-%m-%d %H:%M} via {order.payment_method}\n\n"
        rows = [
            [
                item.product.name if item.product else f"Product {item.product_id}",
                item.quantity,
                format_money(item.price_at_purchase),
                format_money(item.line_total),
            ]
            for item in order.items
        ]
        table = generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
        )
        footer = f"\n\n**Grand Total:** {format_money(order.total_amount)}"
        viewer.document.update(header + table + footer)

    @on(Button.Pressed, "#btn-pay")
    @work(exclusive=True, group="order-action")
    async def handle_pay(self) -> None:
        if not self._selected:
            return
        result = await self.app.push_screen_wait(PaymentModal(self._selected))
        if result:
            self.post_message(OrderChangedMessage(result.order.id))

    @on(Button.Pressed, "#btn-cancel")
    @work(exclusive=True, group="order-action")
    async def handle_cancel(self) -> None:
        order = self._selected
        if not order:
            return
        if not await self.app.push_screen_wait(
            ConfirmModal(f"Cancel order #{order.id}? Its items go back into stock.", tone="error")
        ):
            return
        try:
            result = await db.orders.cancel_order(self.app.state.actor, order.id)
        except ShopError as exc:
            await self.report_error(exc)
            return

        if self.app.state.is_admin:
            self.notify(f"Order #{order.id} cancelled.")
        else:
            self.notify(
                f"Order #{order.id} cancelled. Cancellations today: "
                f"{result.cancellations_today}/{result.max_per_day}."
            )
        self.post_message(OrderChangedMessage(order.id))

    @on(Button.Pressed, "#btn-apply-status")
    @work(exclusive=True, group="order-action")
    async def handle_apply_status(self) -> None:
        order = self._selected
        target = self.query_one("#select-next-status", Select).value
        if not order or not isinstance(target, str):
            self.notify("Pick the next status first.", severity="warning")
            return
        try:
            updated = await db.orders.update_order_status(
                self.app.state.actor, order.id, target
            )
        except ShopError as exc:
            await self.report_error(exc)
            return
        self.notify(f"Order #{updated.id} is now {updated.status}.")
        self.post_message(OrderChangedMessage(updated.id))
