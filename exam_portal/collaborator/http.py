import logging
from datetime import datetime
from typing import List, Optional, Tuple

import httpx
from pydantic.alias_generators import to_camel

from ..errors import CollaboratorError, PersistenceError
from ..schemas import CandidateProfile, Principal, TestResult, UserTestStatus
from ..timing import utcnow
from .base import PROFILES, TEST_RESULTS, USER_TEST_STATUS, Collaborator, newest_first

logger = logging.getLogger(__name__)

NETWORK_FAILED = "auth/network-request-failed"


def _error_of(resp: httpx.Response) -> Tuple[str, str]:
    try:
        detail = resp.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, dict):
        return detail.get("code") or f"http/{resp.status_code}", detail.get("message", "")
    return f"http/{resp.status_code}", str(detail or resp.text)


def _status_fields(fields: dict) -> dict:
    """Translate UserTestStatus attribute names to wire names and JSON values."""
    out = {}
    for name, value in fields.items():
        if name not in UserTestStatus.model_fields:
            raise ValueError(f"Unknown status field: {name}")
        out[to_camel(name)] = value.isoformat() if isinstance(value, datetime) else value
    return out


class HttpCollaborator(Collaborator):
    """SDK client for the store service REST API. Opens one AsyncClient per call."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._principal: Optional[Principal] = None

    def _headers(self) -> dict:
        headers = {"X-API-Key": self.api_key}
        if self._principal and self._principal.token:
            headers["Authorization"] = f"Bearer {self._principal.token}"
        return headers

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                     transport=self._transport, headers=self._headers()) as client:
            return await client.request(method, path, **kwargs)

    async def _auth_request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Auth request {method} {path} failed: {e}")
            raise CollaboratorError(NETWORK_FAILED, str(e)) from e
        if resp.is_error:
            code, message = _error_of(resp)
            raise CollaboratorError(code, message)
        return resp

    async def _doc_request(self, method: str, path: str, allow_missing: bool = False,
                           **kwargs) -> Optional[dict]:
        try:
            resp = await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Document request {method} {path} failed: {e}")
            raise PersistenceError(f"Could not reach the document store: {e}") from e
        if allow_missing and resp.status_code == 404:
            return None
        if resp.is_error:
            code, message = _error_of(resp)
            logger.error(f"Document request {method} {path} rejected: {code} {message}")
            raise PersistenceError(message or code)
        if resp.status_code == 204:
            return None
        return resp.json()

    async def _query(self, collection: str, filters: Optional[dict] = None,
                     order_by: Optional[str] = None, descending: bool = False) -> List[dict]:
        body = {
            "filters": [{"field": k, "value": v} for k, v in (filters or {}).items()],
            "orderBy": order_by,
            "descending": descending,
        }
        data = await self._doc_request("POST", f"/v1/{collection}/query", json=body)
        return data.get("documents", [])

    # --- Accounts ---
    def _adopt(self, resp: httpx.Response) -> Principal:
        self._principal = Principal.model_validate(resp.json())
        return self._principal

    async def create_account(self, email: str, password: str) -> Principal:
        resp = await self._auth_request("POST", "/v1/accounts", json={"email": email, "password": password})
        return self._adopt(resp)

    async def authenticate(self, email: str, password: str) -> Principal:
        resp = await self._auth_request("POST", "/v1/sessions", json={"email": email, "password": password})
        return self._adopt(resp)

    async def sign_out(self) -> None:
        if self._principal is None:
            return
        try:
            await self._send("DELETE", "/v1/sessions")
        except httpx.HTTPError as e:
            logger.warning(f"Token revocation failed, clearing local session anyway: {e}")
        self._principal = None

    async def current_principal(self) -> Optional[Principal]:
        if self._principal is None:
            return None
        try:
            resp = await self._send("GET", "/v1/me")
        except httpx.HTTPError as e:
            raise CollaboratorError(NETWORK_FAILED, str(e)) from e
        if resp.status_code == 401:
            self._principal = None
            return None
        if resp.is_error:
            raise CollaboratorError(*_error_of(resp))
        return self._principal

    # --- profiles ---
    async def get_profile(self, uid: str) -> Optional[CandidateProfile]:
        doc = await self._doc_request("GET", f"/v1/{PROFILES}/{uid}", allow_missing=True)
        return CandidateProfile.model_validate(doc["data"]) if doc else None

    async def create_profile(self, profile: CandidateProfile) -> None:
        await self._doc_request("PUT", f"/v1/{PROFILES}/{profile.id}", json={"data": profile.to_document()})

    async def find_profiles(self, field: str, value: str) -> List[CandidateProfile]:
        docs = await self._query(PROFILES, {field: value})
        return [CandidateProfile.model_validate(d["data"]) for d in docs]

    # --- testResults ---
    async def add_result(self, result: TestResult) -> str:
        data = result.to_document()
        data.pop("id", None)
        doc = await self._doc_request("POST", f"/v1/{TEST_RESULTS}", json={"data": data})
        return doc["id"]

    @staticmethod
    def _result(doc: dict) -> TestResult:
        return TestResult.model_validate({**doc["data"], "id": doc["id"]})

    async def results_for(self, candidate_id: str) -> List[TestResult]:
        docs = await self._query(TEST_RESULTS, {"userId": candidate_id})
        return newest_first([self._result(d) for d in docs])

    async def all_results(self) -> List[TestResult]:
        docs = await self._query(TEST_RESULTS, order_by="completedAt", descending=True)
        return newest_first([self._result(d) for d in docs])

    # --- userTestStatus ---
    async def get_status(self, candidate_id: str) -> Optional[UserTestStatus]:
        doc = await self._doc_request("GET", f"/v1/{USER_TEST_STATUS}/{candidate_id}", allow_missing=True)
        return UserTestStatus.model_validate(doc["data"]) if doc else None

    async def ensure_status(self, candidate_id: str) -> UserTestStatus:
        fresh = UserTestStatus(user_id=candidate_id, last_activity=utcnow())
        doc = await self._doc_request("PUT", f"/v1/{USER_TEST_STATUS}/{candidate_id}",
                                      params={"ifAbsent": "true"}, json={"data": fresh.to_document()})
        return UserTestStatus.model_validate(doc["data"])

    async def update_status(self, candidate_id: str, **fields) -> UserTestStatus:
        doc = await self._doc_request("PATCH", f"/v1/{USER_TEST_STATUS}/{candidate_id}",
                                      json={"set": _status_fields(fields)})
        return UserTestStatus.model_validate(doc["data"])

    async def increment_tab_switches(self, candidate_id: str) -> int:
        body = {
            "set": _status_fields({"last_activity": utcnow()}),
            "increment": {"tabSwitchCount": 1},
        }
        doc = await self._doc_request("PATCH", f"/v1/{USER_TEST_STATUS}/{candidate_id}", json=body)
        return int(doc["data"]["tabSwitchCount"])
