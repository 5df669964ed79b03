from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, UserLoginMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import ConfirmModal, ErrorDialogModal, QuitDialogModal

_logger = get_logger(__name__)


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        state = self.app.state
        if not state.role:
            return

        table_rows = [
            ["User ID", state.uid],
            ["Name", state.name],
            ["Role", "Admin" if state.is_admin else "Customer"],
        ]
        md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        await self.query_one(Markdown).update(md_table_str)

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(v), id="list-menu-item-" + k)
                for k, v in self.app.modes_for(state.role).items()
            ]
        )
        self.highlight_item(self.init_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if await self.app.push_screen_wait(
            ConfirmModal("Are you sure you want to log out?")
        ):
            self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()
        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        self.app.title = "Shopfront"
        self.sub_title = header_sub_title
        role = self.app.state.role
        if role:
            for mode, label in self.app.modes_for(role).items():
                if isinstance(self, self.app.MODES[mode]):
                    self.sub_title = label
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def report_error(self, exc: BaseException) -> None:
        """Log a failed operation and show it; must run inside a worker."""
        _logger.warning(f"{type(exc).__name__} on {type(self).__name__}: {exc}")
        await self.app.push_screen_wait(ErrorDialogModal(exc))

    @on(UserLoginMessage)
    def handle_user_login(self):
        self.refresh()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
