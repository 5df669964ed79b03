from typing import Dict, Literal, Tuple, override

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Label

from db.errors import describe_error
from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]


class DialogModal(ModalScreen[bool]):
    """
    Yes/no style dialog. Dismisses with True for the primary button.
    """

    VARIANT_MAP: Dict[str, Tuple[str, str]] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        primary_variant, secondary_variant = self.VARIANT_MAP[self.tone]
        with Container(id="div-dialog"):
            yield Label(self.caption, id="caption")
            with Horizontal(id="dialog"):
                if self.secondary_text:
                    yield Button(
                        self.secondary_text, variant=secondary_variant, id="btn-secondary"
                    )
                yield Button(self.primary_text, variant=primary_variant, id="btn-primary")

    def on_mount(self):
        # destructive prompts default to the safe answer
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-primary")


class ConfirmModal(DialogModal):
    def __init__(self, caption: str, tone: Tone = "warning"):
        super().__init__(caption, "Yes", "No", tone)


class ErrorDialogModal(DialogModal):
    """Shows a failed operation with its status code, e.g. "Error 409: Insufficient stock ..."."""

    def __init__(self, exc: BaseException):
        payload = describe_error(exc)
        retry = "\nYou can try again." if payload["retryable"] else ""
        super().__init__(f"Error {payload['status']}: {payload['message']}{retry}", tone="error")
        self.exc = exc


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__("Are you sure you want to quit?", "Yes", "No", "error")

    @override
    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.post_message(QuitRequestedMessage())
            self.dismiss(True)
        else:
            self.dismiss(False)
