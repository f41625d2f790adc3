import logging
from typing import Optional, Tuple

from .collaborator import Collaborator
from .errors import (
    AccountExists, AuthError, CollaboratorError, DuplicateIdentifier, InvalidCredential,
    InvalidEmail, ProfileNotFound, RateLimited, WeakCredential,
)
from .schemas import CandidateProfile, Principal
from .timing import utcnow
from .validation import validate_login, validate_signup

logger = logging.getLogger(__name__)

SIGNUP_ERRORS = {
    "auth/email-already-in-use": (AccountExists, "Email already exists"),
    "auth/weak-password": (WeakCredential, "Password is too weak"),
    "auth/invalid-email": (InvalidEmail, "Invalid email address"),
}

LOGIN_ERRORS = {
    "auth/user-not-found": (InvalidCredential, "Account does not exist"),
    "auth/wrong-password": (InvalidCredential, "Account does not exist"),
    "auth/invalid-credential": (InvalidCredential, "Account does not exist"),
    "auth/invalid-email": (InvalidEmail, "Invalid email address"),
    "auth/too-many-requests": (RateLimited, "Too many failed attempts. Please try again later"),
}


def map_provider_error(err: CollaboratorError, table: dict, fallback: str) -> AuthError:
    cls, message = table.get(err.code, (AuthError, err.message or fallback))
    return cls(message, code=err.code)


class IdentityGate:
    """Sign-up, sign-in and session lookup on top of the auth collaborator."""

    def __init__(self, collaborator: Collaborator):
        self.collaborator = collaborator

    async def _check_unique(self, admission_number: str, phone: str) -> None:
        if await self.collaborator.find_profiles("admissionNumber", admission_number):
            raise DuplicateIdentifier("admission_number", "Admission number already exists")
        if await self.collaborator.find_profiles("phone", phone):
            raise DuplicateIdentifier("phone", "Phone number already exists")

    async def signup(self, name: str, email: str, phone: str, admission_number: str,
                     branch: str, password: str, confirm_password: str) -> Tuple[Principal, CandidateProfile]:
        validate_signup(name=name, email=email, phone=phone, admission_number=admission_number,
                        branch=branch, password=password, confirm_password=confirm_password)

        # Uniqueness runs before the account exists so a duplicate never leaves an orphan account.
        await self._check_unique(admission_number, phone)

        try:
            principal = await self.collaborator.create_account(email, password)
        except CollaboratorError as e:
            logger.warning(f"Signup rejected by provider: {e.code}")
            raise map_provider_error(e, SIGNUP_ERRORS, "Signup failed") from e

        now = utcnow()
        profile = CandidateProfile(
            id=principal.uid,
            name=name.strip(),
            email=email,
            phone=phone,
            admission_number=admission_number,
            branch=branch,
            created_at=now,
            updated_at=now,
        )
        await self.collaborator.create_profile(profile)
        logger.info(f"✅ Registered candidate {principal.uid} ({admission_number})")
        return principal, profile

    async def login(self, email: str, password: str) -> Tuple[Principal, CandidateProfile]:
        validate_login(email, password)
        try:
            principal = await self.collaborator.authenticate(email, password)
        except CollaboratorError as e:
            logger.warning(f"Login rejected by provider: {e.code}")
            raise map_provider_error(e, LOGIN_ERRORS, "Login failed") from e

        profile = await self.collaborator.get_profile(principal.uid)
        if profile is None:
            logger.error(f"Principal {principal.uid} has no profile document")
            raise ProfileNotFound("User profile not found")
        return principal, profile

    async def logout(self) -> None:
        await self.collaborator.sign_out()

    async def get_current_user(self) -> Optional[Principal]:
        try:
            return await self.collaborator.current_principal()
        except CollaboratorError as e:
            raise map_provider_error(e, {}, "Could not check sign-in state") from e

    async def restore_session(self) -> Optional[Tuple[Principal, CandidateProfile]]:
        principal = await self.get_current_user()
        if principal is None:
            return None
        profile = await self.collaborator.get_profile(principal.uid)
        if profile is None:
            return None
        return principal, profile
