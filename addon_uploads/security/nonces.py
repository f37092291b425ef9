"""Time-windowed anti-forgery tokens for the upload form."""

from __future__ import annotations

import hashlib
import hmac
import math
import time
from typing import Callable

UPLOAD_ACTION = "addon_upload"
TOKEN_LENGTH = 12


class NonceManager:
    """Issue and verify HMAC tokens bound to an action and a context.

    A token stays valid for the current and the previous half-lifetime
    tick. Tokens are not single-use.
    """

    def __init__(
        self,
        secret_key: str,
        lifetime: int = 86400,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret_key.encode("utf-8")
        self.lifetime = lifetime
        self._clock = clock

    def tick(self) -> int:
        return math.ceil(self._clock() / (self.lifetime / 2))

    def _token_for(self, tick: int, action: str, context: str) -> str:
        message = f"{tick}|{action}|{context}".encode("utf-8")
        digest = hmac.new(self._secret, message, hashlib.sha256).hexdigest()
        return digest[-TOKEN_LENGTH:]

    def create(self, action: str = UPLOAD_ACTION, context: str = "") -> str:
        """Return a token for the current tick."""
        return self._token_for(self.tick(), action, context)

    def verify(self, token: str | None, action: str = UPLOAD_ACTION, context: str = "") -> bool:
        """Check the token against the current and previous ticks."""
        if not token:
            return False
        submitted = token.encode("utf-8")
        current = self.tick()
        for tick in (current, current - 1):
            expected = self._token_for(tick, action, context).encode("ascii")
            if hmac.compare_digest(submitted, expected):
                return True
        return False
