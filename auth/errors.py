from typing import Optional

PROFILE_NOT_FOUND_MESSAGE = "Profile not found. Please sign up first."


class AuthError(Exception):
    """Base class for identity errors."""


class BackendError(AuthError):
    """A failure reported by the identity backend (auth service or profile store)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class AuthenticationError(AuthError):
    """Login or sign-up rejected. The message is shown to the user as-is."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProfileNotFoundError(AuthError):
    def __init__(self, message: str = PROFILE_NOT_FOUND_MESSAGE):
        super().__init__(message)
        self.message = message
