import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from exam_portal.collaborator import Collaborator, newest_first
from exam_portal.errors import CollaboratorError, PersistenceError
from exam_portal.schemas import CandidateProfile, Principal, TestResult, UserTestStatus


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeCollaborator(Collaborator):
    """In-memory collaborator with call recording, latency and failure injection."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.failures: Set[str] = set()
        self.auth_errors: Dict[str, str] = {}
        self.calls: List[tuple] = []

        self.accounts: Dict[str, tuple] = {}  # email -> (uid, password)
        self.principal: Optional[Principal] = None
        self.profiles: Dict[str, CandidateProfile] = {}
        self.results: Dict[str, TestResult] = {}
        self.statuses: Dict[str, UserTestStatus] = {}

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def _enter(self, name: str, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failures:
            raise PersistenceError(f"{name} failed")
        if name in self.auth_errors:
            raise CollaboratorError(self.auth_errors[name])

    # --- Accounts ---
    async def create_account(self, email, password):
        await self._enter("create_account", email)
        if email in self.accounts:
            raise CollaboratorError("auth/email-already-in-use")
        uid = f"uid-{len(self.accounts) + 1}"
        self.accounts[email] = (uid, password)
        self.principal = Principal(uid=uid, email=email, token=f"token-{uid}")
        return self.principal

    async def authenticate(self, email, password):
        await self._enter("authenticate", email)
        if email not in self.accounts:
            raise CollaboratorError("auth/user-not-found")
        uid, stored = self.accounts[email]
        if stored != password:
            raise CollaboratorError("auth/wrong-password")
        self.principal = Principal(uid=uid, email=email, token=f"token-{uid}")
        return self.principal

    async def sign_out(self):
        await self._enter("sign_out")
        self.principal = None

    async def current_principal(self):
        await self._enter("current_principal")
        return self.principal

    # --- profiles ---
    async def get_profile(self, uid):
        await self._enter("get_profile", uid)
        return self.profiles.get(uid)

    async def create_profile(self, profile):
        await self._enter("create_profile", profile.id)
        self.profiles[profile.id] = profile

    async def find_profiles(self, field, value):
        await self._enter("find_profiles", field, value)
        return [p for p in self.profiles.values() if p.to_document().get(field) == value]

    # --- testResults ---
    async def add_result(self, result):
        await self._enter("add_result", result.user_id)
        if any(r.user_id == result.user_id for r in self.results.values()):
            raise PersistenceError("A result for this candidate already exists")
        result_id = f"result-{len(self.results) + 1}"
        self.results[result_id] = result.model_copy(update={"id": result_id})
        return result_id

    async def results_for(self, candidate_id):
        await self._enter("results_for", candidate_id)
        return newest_first([r for r in self.results.values() if r.user_id == candidate_id])

    async def all_results(self):
        await self._enter("all_results")
        return newest_first(list(self.results.values()))

    # --- userTestStatus ---
    async def get_status(self, candidate_id):
        await self._enter("get_status", candidate_id)
        return self.statuses.get(candidate_id)

    async def ensure_status(self, candidate_id):
        await self._enter("ensure_status", candidate_id)
        if candidate_id not in self.statuses:
            self.statuses[candidate_id] = UserTestStatus(user_id=candidate_id)
        return self.statuses[candidate_id]

    async def update_status(self, candidate_id, **fields):
        await self._enter("update_status", candidate_id, **fields)
        if candidate_id not in self.statuses:
            raise PersistenceError(f"userTestStatus/{candidate_id} does not exist")
        self.statuses[candidate_id] = self.statuses[candidate_id].model_copy(update=fields)
        return self.statuses[candidate_id]

    async def increment_tab_switches(self, candidate_id):
        await self._enter("increment_tab_switches", candidate_id)
        status = self.statuses[candidate_id]
        self.statuses[candidate_id] = status.model_copy(update={"tab_switch_count": status.tab_switch_count + 1})
        return self.statuses[candidate_id].tab_switch_count
