import os, re, logging, secrets
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional
from fastapi import FastAPI, Depends, HTTPException, Header, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import select
from dotenv import load_dotenv
from werkzeug.security import generate_password_hash, check_password_hash

from .db import Base, engine, get_db
from .models import Account, AuthToken, Document, new_id, utcnow
from .schemas import Credentials, PrincipalOut, DocumentIn, DocumentOut, DocumentPatch, QueryIn, QueryOut

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))

API_KEY = os.getenv("STORE_API_KEY", "local-dev-key")
MAX_FAILED_LOGINS = int(os.getenv("MAX_FAILED_LOGINS", 5))
LOCKOUT_SECONDS = int(os.getenv("LOCKOUT_SECONDS", 60))
MIN_PASSWORD_LENGTH = 6

PROFILES = "profiles"
TEST_RESULTS = "testResults"
USER_TEST_STATUS = "userTestStatus"
COLLECTIONS = {PROFILES, TEST_RESULTS, USER_TEST_STATUS}

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

# Status flags that may never go back to false once set
STICKY_FLAGS = ("hasSubmitted", "isTestCancelled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Portal Store", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def fail(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})

# --- Dependencies ---
def require_api_key(x_api_key: Optional[str] = Header(None)):
    if x_api_key != API_KEY:
        raise fail(401, "unauthenticated", "Missing or invalid API key")

def current_account(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)) -> Optional[Account]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    t = db.get(AuthToken, authorization[len("Bearer "):])
    if not t or t.revoked:
        return None
    return t.account

def require_account(account: Optional[Account] = Depends(current_account)) -> Account:
    if account is None:
        raise fail(401, "auth/no-current-user", "Sign in required")
    return account

def issue_token(db: Session, account: Account) -> PrincipalOut:
    t = AuthToken(token=secrets.token_urlsafe(32), uid=account.uid)
    db.add(t)
    db.commit()
    return PrincipalOut(uid=account.uid, email=account.email, token=t.token)

# =========================
# Accounts
# =========================
@app.post("/v1/accounts", response_model=PrincipalOut, status_code=201, dependencies=[Depends(require_api_key)])
def create_account(payload: Credentials, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    if not EMAIL_RE.fullmatch(email):
        raise fail(400, "auth/invalid-email", "The email address is badly formatted")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise fail(400, "auth/weak-password", f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
    if db.execute(select(Account).where(Account.email == email)).scalar_one_or_none():
        raise fail(409, "auth/email-already-in-use", "The email address is already in use")

    account = Account(uid=new_id(), email=email, password_hash=generate_password_hash(payload.password))
    db.add(account)
    db.commit()
    logger.info(f"Created account {account.uid}")
    return issue_token(db, account)

@app.post("/v1/sessions", response_model=PrincipalOut, dependencies=[Depends(require_api_key)])
def sign_in(payload: Credentials, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    if not EMAIL_RE.fullmatch(email):
        raise fail(400, "auth/invalid-email", "The email address is badly formatted")

    account = db.execute(select(Account).where(Account.email == email)).scalar_one_or_none()
    if not account:
        raise fail(404, "auth/user-not-found", "No account for this email")

    now = utcnow()
    if account.locked_until and account.locked_until > now:
        raise fail(429, "auth/too-many-requests", "Too many failed attempts")

    if not check_password_hash(account.password_hash, payload.password):
        account.failed_attempts += 1
        if account.failed_attempts >= MAX_FAILED_LOGINS:
            account.locked_until = now + timedelta(seconds=LOCKOUT_SECONDS)
            account.failed_attempts = 0
            logger.warning(f"Locked account {account.uid} for {LOCKOUT_SECONDS}s")
        db.commit()
        raise fail(401, "auth/wrong-password", "Wrong password")

    account.failed_attempts = 0
    account.locked_until = None
    db.commit()
    return issue_token(db, account)

@app.delete("/v1/sessions", status_code=204, dependencies=[Depends(require_api_key)])
def sign_out(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    if authorization and authorization.startswith("Bearer "):
        t = db.get(AuthToken, authorization[len("Bearer "):])
        if t and not t.revoked:
            t.revoked = True
            db.commit()
    return Response(status_code=204)

@app.get("/v1/me", response_model=PrincipalOut, dependencies=[Depends(require_api_key)])
def me(account: Account = Depends(require_account)):
    return PrincipalOut(uid=account.uid, email=account.email)

# =========================
# Documents
# =========================
def check_collection(collection: str):
    if collection not in COLLECTIONS:
        raise fail(404, "not-found", f"Unknown collection {collection}")

def find_doc(db: Session, collection: str, doc_id: str) -> Optional[Document]:
    return db.execute(
        select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
    ).scalar_one_or_none()

def check_owner(collection: str, doc_id: str, data: dict, account: Account):
    owner = data.get("userId") if collection == TEST_RESULTS else doc_id
    if owner != account.uid:
        raise fail(403, "permission-denied", "Documents can only be written by their owner")

def check_status_update(old: dict, new: dict):
    if new.get("tabSwitchCount", 0) < old.get("tabSwitchCount", 0):
        raise fail(403, "permission-denied", "tabSwitchCount cannot decrease")
    for flag in STICKY_FLAGS:
        if old.get(flag) and not new.get(flag):
            raise fail(403, "permission-denied", f"{flag} cannot be cleared")

def check_no_result_yet(db: Session, account: Account):
    status = find_doc(db, USER_TEST_STATUS, account.uid)
    if status and status.data.get("hasSubmitted"):
        raise fail(409, "already-exists", "This candidate has already submitted")
    existing = db.execute(
        select(Document.id).where(Document.collection == TEST_RESULTS, json_equals("userId", account.uid))
    ).first()
    if existing:
        raise fail(409, "already-exists", "A result for this candidate already exists")

def to_out(doc: Document) -> DocumentOut:
    return DocumentOut(id=doc.doc_id, data=doc.data)

def json_equals(field: str, value):
    column = Document.data[field]
    if isinstance(value, bool):
        return column.as_boolean() == value
    if isinstance(value, int):
        return column.as_integer() == value
    if isinstance(value, float):
        return column.as_float() == value
    return column.as_string() == str(value)

@app.post("/v1/{collection}/query", response_model=QueryOut, dependencies=[Depends(require_api_key)])
def query_documents(collection: str, payload: QueryIn, db: Session = Depends(get_db)):
    check_collection(collection)
    stmt = select(Document).where(Document.collection == collection)
    for f in payload.filters:
        stmt = stmt.where(json_equals(f.field, f.value))
    docs = db.execute(stmt).scalars().all()

    if payload.orderBy:
        present = [d for d in docs if d.data.get(payload.orderBy) is not None]
        missing = [d for d in docs if d.data.get(payload.orderBy) is None]
        present.sort(key=lambda d: d.data[payload.orderBy], reverse=payload.descending)
        docs = present + missing
    if payload.limit:
        docs = docs[:payload.limit]
    return QueryOut(documents=[to_out(d) for d in docs])

@app.get("/v1/{collection}/{doc_id}", response_model=DocumentOut, dependencies=[Depends(require_api_key)])
def get_document(collection: str, doc_id: str, db: Session = Depends(get_db)):
    check_collection(collection)
    doc = find_doc(db, collection, doc_id)
    if not doc:
        raise fail(404, "not-found", f"{collection}/{doc_id} does not exist")
    return to_out(doc)

@app.put("/v1/{collection}/{doc_id}", response_model=DocumentOut, dependencies=[Depends(require_api_key)])
def put_document(collection: str, doc_id: str, payload: DocumentIn, response: Response,
                 if_absent: bool = Query(False, alias="ifAbsent"),
                 db: Session = Depends(get_db), account: Account = Depends(require_account)):
    check_collection(collection)
    if collection == TEST_RESULTS:
        raise fail(403, "permission-denied", "testResults is append-only")
    check_owner(collection, doc_id, payload.data, account)

    doc = find_doc(db, collection, doc_id)
    if doc and if_absent:
        return to_out(doc)
    if doc:
        if collection == PROFILES:
            raise fail(409, "already-exists", "Profiles are written once")
        check_status_update(doc.data, payload.data)
        doc.data = dict(payload.data)
    else:
        doc = Document(collection=collection, doc_id=doc_id, data=dict(payload.data))
        db.add(doc)
        response.status_code = 201
    db.commit()
    db.refresh(doc)
    return to_out(doc)

@app.patch("/v1/{collection}/{doc_id}", response_model=DocumentOut, dependencies=[Depends(require_api_key)])
def patch_document(collection: str, doc_id: str, payload: DocumentPatch,
                   db: Session = Depends(get_db), account: Account = Depends(require_account)):
    check_collection(collection)
    if collection != USER_TEST_STATUS:
        raise fail(403, "permission-denied", f"{collection} documents cannot be updated")
    check_owner(collection, doc_id, {}, account)

    doc = find_doc(db, collection, doc_id)
    if not doc:
        raise fail(404, "not-found", f"{collection}/{doc_id} does not exist")

    data = {**doc.data, **payload.set_}
    for field, delta in payload.increment.items():
        data[field] = (data.get(field) or 0) + delta
    check_status_update(doc.data, data)

    doc.data = data
    db.commit()
    db.refresh(doc)
    return to_out(doc)

@app.post("/v1/{collection}", response_model=DocumentOut, status_code=201, dependencies=[Depends(require_api_key)])
def create_document(collection: str, payload: DocumentIn,
                    db: Session = Depends(get_db), account: Account = Depends(require_account)):
    check_collection(collection)
    if collection != TEST_RESULTS:
        raise fail(403, "permission-denied", f"{collection} documents are keyed by user id")
    check_owner(collection, "", payload.data, account)
    check_no_result_yet(db, account)

    doc = Document(collection=collection, doc_id=new_id(), data=dict(payload.data))
    db.add(doc)
    db.commit()
    db.refresh(doc)
    logger.info(f"Appended {collection}/{doc.doc_id} for {account.uid}")
    return to_out(doc)

# =========================
# Health Check
# =========================
@app.get("/health")
def health():
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("STORE_PORT", 8100)))
