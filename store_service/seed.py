# Optional helper to seed a candidate account + profile for testing (run once)
import os
from dotenv import load_dotenv
from sqlalchemy.orm import Session
from sqlalchemy import select
from werkzeug.security import generate_password_hash
from .db import Base, engine, SessionLocal
from .models import Account, Document, new_id, utcnow

load_dotenv()

def seed():
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        email = os.getenv("SEED_EMAIL", "test.candidate@example.com").lower()
        password = os.getenv("SEED_PASSWORD", "candidate123")
        a = db.execute(select(Account).where(Account.email == email)).scalar_one_or_none()
        if a:
            print("Candidate already exists:", email)
            return

        a = Account(uid=new_id(), email=email, password_hash=generate_password_hash(password))
        db.add(a)
        now = utcnow().isoformat() + "Z"
        db.add(Document(collection="profiles", doc_id=a.uid, data={
            "id": a.uid,
            "name": os.getenv("SEED_NAME", "Test Candidate"),
            "email": email,
            "phone": os.getenv("SEED_PHONE", "9000000001"),
            "admissionNumber": os.getenv("SEED_ADMISSION", "100001"),
            "branch": "Computer Science Engineering",
            "createdAt": now,
            "updatedAt": now,
        }))
        db.commit()
        print("Seeded candidate", email)
    finally:
        db.close()

if __name__ == "__main__":
    seed()
