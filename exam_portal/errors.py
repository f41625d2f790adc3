from typing import Dict, Optional


class PortalError(Exception):
    """Base class for every failure the portal surfaces to a candidate."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Client-side form errors. Raised before any collaborator call."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = dict(errors)


class CollaboratorError(Exception):
    """Raw error reported by the auth provider, identified by its code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class AuthError(PortalError):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class AccountExists(AuthError):
    pass


class WeakCredential(AuthError):
    pass


class InvalidEmail(AuthError):
    pass


class InvalidCredential(AuthError):
    pass


class RateLimited(AuthError):
    pass


class ProfileNotFound(AuthError):
    pass


class DuplicateIdentifier(PortalError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class PersistenceError(PortalError):
    pass


class PreconditionViolation(PortalError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
