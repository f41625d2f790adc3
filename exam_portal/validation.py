import re
from typing import Dict

from .errors import ValidationError

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_RE = re.compile(r"[0-9]{10}")
ADMISSION_RE = re.compile(r"[0-9]{6}")

BRANCHES = [
    "Computer Science Engineering",
    "Information Technology",
    "Electronics & Communication",
    "Mechanical Engineering",
    "Civil Engineering",
    "Electrical Engineering",
    "Chemical Engineering",
    "Biotechnology",
]


def _check_credentials(email: str, password: str, errors: Dict[str, str]) -> None:
    if not email.strip():
        errors["email"] = "Email is required"
    elif not EMAIL_RE.fullmatch(email):
        errors["email"] = "Email must contain @ and . symbols"

    if not password.strip():
        errors["password"] = "Password is required"


def login_errors(email: str, password: str) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    _check_credentials(email, password, errors)
    return errors


def signup_errors(name: str, email: str, phone: str, admission_number: str,
                  branch: str, password: str, confirm_password: str) -> Dict[str, str]:
    """Field-level messages for the signup form, keyed by field name."""
    errors: Dict[str, str] = {}
    if not name.strip():
        errors["name"] = "Name is required"

    if not phone.strip():
        errors["phone"] = "Phone number is required"
    elif not PHONE_RE.fullmatch(phone):
        errors["phone"] = "Phone number must be exactly 10 digits"

    if not admission_number.strip():
        errors["admission_number"] = "Admission number is required"
    elif not ADMISSION_RE.fullmatch(admission_number):
        errors["admission_number"] = "Admission number must be exactly 6 digits"

    if not branch:
        errors["branch"] = "Branch is required"

    if password != confirm_password:
        errors["confirm_password"] = "Passwords do not match"

    _check_credentials(email, password, errors)
    return errors


def validate_login(email: str, password: str) -> None:
    errors = login_errors(email, password)
    if errors:
        raise ValidationError(errors)


def validate_signup(**fields) -> None:
    errors = signup_errors(**fields)
    if errors:
        raise ValidationError(errors)
