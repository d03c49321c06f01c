"""
BurnEnv exceptions.

Structural and bounds errors carry a machine-readable ``code`` and the HTTP
``status`` the boundary layer answers with, so a rejected request can be
reported without re-deriving what went wrong.
"""


class BurnEnvError(Exception):
    """Base class for all BurnEnv errors."""


class StructuralError(BurnEnvError, ValueError):
    """Malformed or missing envelope field."""

    def __init__(self, message: str, code: str = "invalid_payload", status: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class BoundsError(BurnEnvError, ValueError):
    """Size, expiry or view-count outside the admission limits."""

    def __init__(self, message: str, code: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class AuthFailure(BurnEnvError):
    """Decryption failed.

    Deliberately generic: a wrong password and a corrupted envelope raise
    the same error with the same message.
    """

    def __init__(self, message: str = "decryption failed: wrong password or corrupted data"):
        super().__init__(message)


class RemoteError(BurnEnvError):
    """The drop server answered with an unexpected status."""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.message = message
        self.status = status
