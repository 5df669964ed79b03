from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    bubble = True


class UserLoginMessage(Message):
    """
    Fired once the login screen has filled in app.state
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired when cart contents change (added from product detail, edited or
    removed on the cart screen, emptied by checkout).
    Post at App level when sent from a modal.
    """

    bubble = True


class OrderChangedMessage(Message):
    """
    Fired after an order is placed, cancelled, paid or moved to a new status.
    Order lists and the cart listen to it to reload.
    """

    bubble = True

    def __init__(self, order_id: int) -> None:
        super().__init__()
        self.order_id = order_id


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
