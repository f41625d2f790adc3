import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from store_service import app as store_app
from store_service import seed as seed_module
from store_service.models import Account, Document

KEY = {"X-API-Key": store_app.API_KEY}


def bearer(token):
    return {**KEY, "Authorization": f"Bearer {token}"}


def register(client, email="asha@example.com", password="secret1"):
    resp = client.post("/v1/accounts", json={"email": email, "password": password}, headers=KEY)
    assert resp.status_code == 201, resp.text
    return resp.json()


def error_code(resp):
    return resp.json()["detail"]["code"]


class TestAccounts:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_api_key_required(self, client):
        resp = client.post("/v1/accounts", json={"email": "a@b.co", "password": "secret1"})
        assert resp.status_code == 401
        assert error_code(resp) == "unauthenticated"

    def test_create_account_issues_token(self, client):
        principal = register(client, email="Asha@Example.com")
        assert principal["email"] == "asha@example.com"
        assert principal["token"]

    def test_duplicate_email(self, client):
        register(client)
        resp = client.post("/v1/accounts", json={"email": "asha@example.com", "password": "other12"},
                           headers=KEY)
        assert resp.status_code == 409
        assert error_code(resp) == "auth/email-already-in-use"

    @pytest.mark.parametrize("email,password,code", [
        ("not-an-email", "secret1", "auth/invalid-email"),
        ("asha@example.com", "abc", "auth/weak-password"),
    ])
    def test_rejected_signups(self, client, email, password, code):
        resp = client.post("/v1/accounts", json={"email": email, "password": password}, headers=KEY)
        assert resp.status_code == 400
        assert error_code(resp) == code

    def test_sign_in_and_out(self, client):
        register(client)
        resp = client.post("/v1/sessions", json={"email": "asha@example.com", "password": "secret1"},
                           headers=KEY)
        assert resp.status_code == 200
        token = resp.json()["token"]

        assert client.get("/v1/me", headers=bearer(token)).json()["email"] == "asha@example.com"
        assert client.delete("/v1/sessions", headers=bearer(token)).status_code == 204
        assert client.delete("/v1/sessions", headers=bearer(token)).status_code == 204

        resp = client.get("/v1/me", headers=bearer(token))
        assert resp.status_code == 401
        assert error_code(resp) == "auth/no-current-user"

    def test_unknown_user(self, client):
        resp = client.post("/v1/sessions", json={"email": "ghost@example.com", "password": "secret1"},
                           headers=KEY)
        assert resp.status_code == 404
        assert error_code(resp) == "auth/user-not-found"

    def test_lockout_after_repeated_failures(self, client):
        register(client)
        for _ in range(store_app.MAX_FAILED_LOGINS):
            resp = client.post("/v1/sessions", json={"email": "asha@example.com", "password": "wrong"},
                               headers=KEY)
            assert error_code(resp) == "auth/wrong-password"

        resp = client.post("/v1/sessions", json={"email": "asha@example.com", "password": "secret1"},
                           headers=KEY)
        assert resp.status_code == 429
        assert error_code(resp) == "auth/too-many-requests"


class TestDocuments:
    @pytest.fixture
    def owner(self, client):
        return register(client)

    def put_profile(self, client, owner, **data):
        body = {"data": {"id": owner["uid"], "admissionNumber": "123456", "phone": "9876543210", **data}}
        return client.put(f"/v1/profiles/{owner['uid']}", json=body, headers=bearer(owner["token"]))

    def test_profile_written_once(self, client, owner):
        assert self.put_profile(client, owner).status_code == 201
        resp = self.put_profile(client, owner, phone="9000000000")
        assert resp.status_code == 409
        assert error_code(resp) == "already-exists"

    def test_profile_owner_only(self, client, owner):
        other = register(client, email="other@example.com")
        resp = client.put(f"/v1/profiles/{owner['uid']}", json={"data": {}}, headers=bearer(other["token"]))
        assert resp.status_code == 403

    def test_writes_require_sign_in(self, client, owner):
        resp = client.put(f"/v1/profiles/{owner['uid']}", json={"data": {}}, headers=KEY)
        assert resp.status_code == 401

    def test_query_by_field(self, client, owner):
        self.put_profile(client, owner)
        found = client.post("/v1/profiles/query", headers=KEY,
                            json={"filters": [{"field": "admissionNumber", "value": "123456"}]})
        assert [d["id"] for d in found.json()["documents"]] == [owner["uid"]]

        none = client.post("/v1/profiles/query", headers=KEY,
                           json={"filters": [{"field": "admissionNumber", "value": "654321"}]})
        assert none.json()["documents"] == []

    def test_get_missing_document(self, client):
        resp = client.get("/v1/profiles/nobody", headers=KEY)
        assert resp.status_code == 404
        assert error_code(resp) == "not-found"

    def test_unknown_collection(self, client):
        assert client.get("/v1/secrets/x", headers=KEY).status_code == 404

    def test_status_if_absent_keeps_existing(self, client, owner):
        url = f"/v1/userTestStatus/{owner['uid']}?ifAbsent=true"
        first = client.put(url, json={"data": {"userId": owner["uid"], "tabSwitchCount": 1}},
                           headers=bearer(owner["token"]))
        assert first.status_code == 201
        second = client.put(url, json={"data": {"userId": owner["uid"], "tabSwitchCount": 0}},
                            headers=bearer(owner["token"]))
        assert second.status_code == 200
        assert second.json()["data"]["tabSwitchCount"] == 1

    def test_status_patch_increment_and_rules(self, client, owner):
        headers = bearer(owner["token"])
        url = f"/v1/userTestStatus/{owner['uid']}"
        client.put(url, json={"data": {"userId": owner["uid"], "tabSwitchCount": 0}}, headers=headers)

        resp = client.patch(url, json={"increment": {"tabSwitchCount": 1}}, headers=headers)
        assert resp.json()["data"]["tabSwitchCount"] == 1

        resp = client.patch(url, json={"set": {"tabSwitchCount": 0}}, headers=headers)
        assert resp.status_code == 403

        client.patch(url, json={"set": {"hasSubmitted": True}}, headers=headers)
        resp = client.patch(url, json={"set": {"hasSubmitted": False}}, headers=headers)
        assert resp.status_code == 403
        assert client.get(url, headers=KEY).json()["data"]["hasSubmitted"] is True

    def post_result(self, client, account, completed="2026-03-02T10:00:00+00:00"):
        return client.post("/v1/testResults", headers=bearer(account["token"]),
                           json={"data": {"userId": account["uid"], "completedAt": completed}})

    def test_results_are_append_only(self, client, owner):
        headers = bearer(owner["token"])
        resp = self.post_result(client, owner)
        assert resp.status_code == 201

        result_id = resp.json()["id"]
        assert client.put(f"/v1/testResults/{result_id}", json={"data": {}}, headers=headers).status_code == 403
        assert client.patch(f"/v1/testResults/{result_id}", json={}, headers=headers).status_code == 403

    def test_one_result_per_candidate(self, client, owner):
        assert self.post_result(client, owner).status_code == 201
        resp = self.post_result(client, owner, "2026-03-02T11:00:00+00:00")
        assert resp.status_code == 409
        assert error_code(resp) == "already-exists"

        listed = client.post("/v1/testResults/query", headers=KEY, json={
            "filters": [{"field": "userId", "value": owner["uid"]}],
        }).json()["documents"]
        assert len(listed) == 1

    def test_result_refused_after_status_marks_submission(self, client, owner):
        headers = bearer(owner["token"])
        client.put(f"/v1/userTestStatus/{owner['uid']}", headers=headers,
                   json={"data": {"userId": owner["uid"], "hasSubmitted": True}})
        resp = self.post_result(client, owner)
        assert resp.status_code == 409

    def test_results_query_newest_first(self, client, owner):
        other = register(client, email="other@example.com")
        self.post_result(client, owner, "2026-03-02T10:00:00+00:00")
        self.post_result(client, other, "2026-03-02T11:00:00+00:00")

        listed = client.post("/v1/testResults/query", headers=KEY, json={
            "orderBy": "completedAt",
            "descending": True,
        }).json()["documents"]
        assert [d["data"]["userId"] for d in listed] == [other["uid"], owner["uid"]]

    def test_results_written_for_self_only(self, client, owner):
        resp = client.post("/v1/testResults", headers=bearer(owner["token"]),
                           json={"data": {"userId": "someone-else"}})
        assert resp.status_code == 403


class TestSeed:
    def test_seed_creates_candidate_once(self, store_engine, monkeypatch):
        monkeypatch.setattr(seed_module, "engine", store_engine)
        monkeypatch.setattr(seed_module, "SessionLocal", sessionmaker(bind=store_engine))
        monkeypatch.setenv("SEED_EMAIL", "Seed@Example.com")

        seed_module.seed()
        seed_module.seed()

        db = sessionmaker(bind=store_engine)()
        try:
            accounts = db.execute(select(Account)).scalars().all()
            assert [a.email for a in accounts] == ["seed@example.com"]
            profile = db.execute(select(Document).where(Document.collection == "profiles")).scalar_one()
            assert profile.doc_id == accounts[0].uid
        finally:
            db.close()
