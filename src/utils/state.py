from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from db.models import Actor, User


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - uid: id of the logged-in user (users.id)
      - role: "customer" | "admin" | None before login
      - name: display name for the sidebar
    """

    uid: Optional[int] = None
    role: Optional[Literal["customer", "admin"]] = None
    name: str = ""

    @property
    def actor(self) -> Actor:
        if self.uid is None or self.role is None:
            raise RuntimeError("No user is logged in.")
        return Actor(id=self.uid, role=self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def login(self, user: User) -> None:
        self.uid = user.id
        self.role = user.role
        self.name = user.name

    def logout(self) -> None:
        self.uid = None
        self.role = None
        self.name = ""
