from .base import PROFILES, TEST_RESULTS, USER_TEST_STATUS, Collaborator, newest_first
from .http import HttpCollaborator

__all__ = [
    "Collaborator",
    "HttpCollaborator",
    "PROFILES",
    "TEST_RESULTS",
    "USER_TEST_STATUS",
    "newest_first",
]
