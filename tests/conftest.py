from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("JWT_SECRET_KEY", "test-only-7f3c1d9a2b8e4f60a5c7d3e1b9f2a4c6")
os.environ.setdefault("APP_TIMEZONE", "UTC")
os.environ["RANKING_REFRESH_MINUTES"] = "0"

import pytest  # noqa: E402

from auth import get_password_hash  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from models import AdmissionState, School, StaffRole, StaffUser, Stall, Student  # noqa: E402
from token_codec import issue_stall_token, issue_student_token  # noqa: E402


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def school(db):
    row = School(school_name="School of Computer Science & Engineering")
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def make_stall(db, school):
    counter = {"n": 0}

    def _make(stall_number=None, stall_name=None):
        counter["n"] += 1
        number = stall_number or f"CS-{counter['n']:03d}"
        row = Stall(
            stall_number=number,
            stall_name=stall_name or f"Stall {number}",
            school_id=school.id,
            location="Ground Floor, Block A",
            qr_code_token=issue_stall_token(number),
            total_feedback_count=0,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def make_student(db, school):
    counter = {"n": 0}

    def _make(inside=False, feedback_count=0, password="student123"):
        counter["n"] += 1
        regno = f"2024SGTU{10000 + counter['n']}"
        row = Student(
            registration_no=regno,
            email=f"student{counter['n']}@sgtu.ac.in",
            hashed_password=get_password_hash(password),
            full_name=f"Student {counter['n']}",
            school_id=school.id,
            qr_code_token=issue_student_token(regno),
            admission_state=AdmissionState.INSIDE if inside else AdmissionState.OUTSIDE,
            feedback_count=feedback_count,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def make_staff(db):
    counter = {"n": 0}

    def _make(role=StaffRole.VOLUNTEER, password="volunteer123", is_active=True):
        counter["n"] += 1
        row = StaffUser(
            email=f"staff{counter['n']}@sgtu.ac.in",
            hashed_password=get_password_hash(password),
            full_name=f"Staff {counter['n']}",
            role=role,
            is_active=is_active,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make
