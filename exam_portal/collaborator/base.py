from abc import ABC, abstractmethod
from typing import List, Optional

from ..schemas import CandidateProfile, Principal, TestResult, UserTestStatus

PROFILES = "profiles"
TEST_RESULTS = "testResults"
USER_TEST_STATUS = "userTestStatus"


class Collaborator(ABC):
    """
    Client contract for the hosted auth + document store.

    Auth operations raise ``CollaboratorError`` carrying the provider code.
    Document operations raise ``PersistenceError``.
    """

    # --- Accounts ---
    @abstractmethod
    async def create_account(self, email: str, password: str) -> Principal: ...

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Principal: ...

    @abstractmethod
    async def sign_out(self) -> None: ...

    @abstractmethod
    async def current_principal(self) -> Optional[Principal]: ...

    # --- profiles ---
    @abstractmethod
    async def get_profile(self, uid: str) -> Optional[CandidateProfile]: ...

    @abstractmethod
    async def create_profile(self, profile: CandidateProfile) -> None: ...

    @abstractmethod
    async def find_profiles(self, field: str, value: str) -> List[CandidateProfile]:
        """Profiles whose camelCase `field` equals `value`."""

    # --- testResults ---
    @abstractmethod
    async def add_result(self, result: TestResult) -> str:
        """Append a result; returns the generated id."""

    @abstractmethod
    async def results_for(self, candidate_id: str) -> List[TestResult]:
        """Results of one candidate, newest first."""

    @abstractmethod
    async def all_results(self) -> List[TestResult]: ...

    # --- userTestStatus ---
    @abstractmethod
    async def get_status(self, candidate_id: str) -> Optional[UserTestStatus]: ...

    @abstractmethod
    async def ensure_status(self, candidate_id: str) -> UserTestStatus: ...

    @abstractmethod
    async def update_status(self, candidate_id: str, **fields) -> UserTestStatus:
        """Partial update; field names are UserTestStatus attribute names."""

    @abstractmethod
    async def increment_tab_switches(self, candidate_id: str) -> int:
        """Durably add one to tabSwitchCount and return the new value."""


def newest_first(results: List[TestResult]) -> List[TestResult]:
    return sorted(results, key=lambda r: r.completed_at, reverse=True)
