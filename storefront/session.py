"""
Session context: who is logged in, and who wants to know when they leave.
"""
import logging
from typing import Callable, List, Optional

from storefront.models import SessionUser

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class Session:
    """Authenticated session state shared by the cart store and checkout"""

    def __init__(self, user: Optional[SessionUser] = None, token: Optional[str] = None):
        self.user = user
        self.token = token
        self._logout_listeners: List[Listener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and bool(self.token)

    def login(self, user: SessionUser, token: str) -> None:
        self.user = user
        self.token = token

    def logout(self) -> None:
        """End the session and notify listeners (the cart clears itself here)"""
        self.user = None
        self.token = None
        logger.info(f"Session ended, notifying {len(self._logout_listeners)} listener(s)")
        for listener in list(self._logout_listeners):
            listener()

    def on_logout(self, listener: Listener) -> None:
        self._logout_listeners.append(listener)

    def auth_headers(self) -> dict:
        """Headers identifying the session to the backend services"""
        if not self.is_authenticated:
            return {}
        return {
            "Authorization": f"Bearer {self.token}",
            "X-User-ID": self.user.id,
        }
