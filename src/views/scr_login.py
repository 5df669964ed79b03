from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label

import db.crud
from utils.logger import get_logger
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal

_logger = get_logger(__name__)


class LoginScreen(BaseScreen):
    """
    Dismisses once a user is logged in; app.state then holds the actor.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            yield Label("Email")
            yield Input(placeholder="customer@shop.test", id="input-login-email")
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Login", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            return

        user = await db.crud.login(email, pwd)
        if user:
            self.app.state.login(user)
            _logger.info(f"User {user.id} logged in as {user.role}")
            self.notify(f"Hello {user.name}!")
            self.app.post_message(UserLoginMessage())
            self.dismiss()
        else:
            self.notify("Invalid email or password.", severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
