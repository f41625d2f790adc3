from .config import PortalSettings, load_settings
from .controller import TestSessionController
from .identity import IdentityGate
from .session import Phase, TestSession

__all__ = [
    "IdentityGate",
    "Phase",
    "PortalSettings",
    "TestSession",
    "TestSessionController",
    "load_settings",
]
