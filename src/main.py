from typing import Dict

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import GlobalState
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_login import LoginScreen
from views.scr_orders import OrdersScreen
from views.scr_prod_search import ProdSearchScreen

_logger = get_logger(__name__)


class ShopApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "prod_search": ProdSearchScreen,
        "cart": CartScreen,
        "orders": OrdersScreen,
        "catalog": CatalogScreen,
    }

    ADMIN_MODES = {"orders": "Order Management", "catalog": "Inventory"}
    CUSTOMER_MODES = {
        "prod_search": "Search Products",
        "cart": "Cart",
        "orders": "My Orders",
    }

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/search_prod.tcss",
        "styles/cart.tcss",
        "styles/orders.tcss",
        "styles/catalog.tcss",
    ]

    state: GlobalState

    def __init__(self):
        super().__init__()
        self.state = GlobalState()

    def modes_for(self, role: str) -> Dict[str, str]:
        return self.ADMIN_MODES if role == "admin" else self.CUSTOMER_MODES

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        _logger.info(f"User {self.state.uid} logged out")
        self.state.logout()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.exit()

    @work
    async def main_flow(self):
        await self.push_screen_wait(LoginScreen())
        first_mode = next(iter(self.modes_for(self.state.role)))
        self.post_message(ModeSwitchedMessage(self.current_mode, first_mode))
        await self.switch_mode(first_mode)


def run() -> None:
    ShopApp().run()


if __name__ == "__main__":
    run()
