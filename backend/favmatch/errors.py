"""Exception hierarchy shared by the store, the services and the API layer.

Domain rejections (quota limits, incompatible users, full favorite lists)
are returned as typed results, not raised. Only store-level failures
propagate to callers.
"""


class StoreError(Exception):
    """The document store could not complete an operation."""


class ContentionError(StoreError):
    """A concurrent writer won the race; the whole operation may be retried."""

    def __init__(self, message: str = "Concurrent update, please try again", attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class UserNotFoundError(StoreError):
    """A caller operation referenced a user document that does not exist."""

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class QuotaExceeded(Exception):
    """Raised by the pure quota transition when the allowance is used up.

    Never escapes the quota service: it is converted to a QuotaDecision.
    """

    def __init__(self, reason: str, remaining: int = 0):
        super().__init__(f"Quota exceeded: {reason}")
        self.reason = reason
        self.remaining = remaining
