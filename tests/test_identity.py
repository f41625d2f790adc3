import pytest

from exam_portal.errors import (
    AccountExists, AuthError, DuplicateIdentifier, InvalidCredential, InvalidEmail, ProfileNotFound,
    RateLimited, ValidationError, WeakCredential,
)
from exam_portal.identity import IdentityGate

FORM = dict(
    name="Asha Verma",
    email="asha@example.com",
    phone="9876543210",
    admission_number="123456",
    branch="Information Technology",
    password="secret1",
    confirm_password="secret1",
)


@pytest.fixture
def gate(fake):
    return IdentityGate(fake)


async def signup(gate, **overrides):
    return await gate.signup(**{**FORM, **overrides})


class TestSignup:
    async def test_creates_account_and_profile(self, gate, fake):
        principal, profile = await signup(gate)
        assert profile.id == principal.uid
        assert fake.profiles[principal.uid].admission_number == "123456"
        assert profile.created_at is not None

    async def test_duplicate_admission_number_creates_nothing(self, gate, fake):
        await signup(gate)
        with pytest.raises(DuplicateIdentifier) as exc:
            await signup(gate, email="other@example.com", phone="9123456780")
        assert exc.value.field == "admission_number"
        assert exc.value.message == "Admission number already exists"
        assert fake.count("create_account") == 1
        assert len(fake.accounts) == 1

    async def test_duplicate_phone(self, gate, fake):
        await signup(gate)
        with pytest.raises(DuplicateIdentifier) as exc:
            await signup(gate, email="other@example.com", admission_number="654321")
        assert exc.value.field == "phone"
        assert len(fake.accounts) == 1

    async def test_invalid_form_never_reaches_collaborator(self, gate, fake):
        with pytest.raises(ValidationError) as exc:
            await signup(gate, phone="123")
        assert "phone" in exc.value.errors
        assert fake.calls == []

    async def test_existing_email(self, gate):
        await signup(gate)
        with pytest.raises(AccountExists, match="Email already exists"):
            await signup(gate, phone="9123456780", admission_number="654321")

    @pytest.mark.parametrize("code,error", [
        ("auth/weak-password", WeakCredential),
        ("auth/invalid-email", InvalidEmail),
    ])
    async def test_provider_errors_are_mapped(self, gate, fake, code, error):
        fake.auth_errors["create_account"] = code
        with pytest.raises(error) as exc:
            await signup(gate)
        assert exc.value.code == code
        assert fake.profiles == {}

    async def test_unknown_provider_error_keeps_message(self, gate, fake):
        fake.auth_errors["create_account"] = "auth/internal-error"
        with pytest.raises(AuthError) as exc:
            await signup(gate)
        assert type(exc.value) is AuthError
        assert exc.value.code == "auth/internal-error"


class TestLogin:
    async def test_login_returns_profile(self, gate):
        _, created = await signup(gate)
        principal, profile = await gate.login("asha@example.com", "secret1")
        assert principal.uid == created.id
        assert profile.name == "Asha Verma"

    async def test_wrong_password(self, gate):
        await signup(gate)
        with pytest.raises(InvalidCredential, match="Account does not exist"):
            await gate.login("asha@example.com", "nope")

    async def test_unknown_account(self, gate):
        with pytest.raises(InvalidCredential):
            await gate.login("ghost@example.com", "secret1")

    async def test_rate_limited(self, gate, fake):
        fake.auth_errors["authenticate"] = "auth/too-many-requests"
        with pytest.raises(RateLimited):
            await gate.login("asha@example.com", "secret1")

    async def test_account_without_profile(self, gate, fake):
        await fake.create_account("asha@example.com", "secret1")
        with pytest.raises(ProfileNotFound, match="User profile not found"):
            await gate.login("asha@example.com", "secret1")

    async def test_login_validates_first(self, gate, fake):
        with pytest.raises(ValidationError):
            await gate.login("not-an-email", "secret1")
        assert fake.calls == []


class TestSessionLookup:
    async def test_restore_after_signup(self, gate):
        principal, profile = await signup(gate)
        restored = await gate.restore_session()
        assert restored == (principal, profile)

    async def test_logout_clears_current_user(self, gate):
        await signup(gate)
        await gate.logout()
        assert await gate.get_current_user() is None
        assert await gate.restore_session() is None
