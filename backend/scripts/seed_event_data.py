#!/usr/bin/env python3
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from auth import get_password_hash  # noqa: E402
from models import School, StaffRole, StaffUser, Stall, Student  # noqa: E402
from token_codec import issue_stall_token, issue_student_token  # noqa: E402

STUDENT_PASSWORD = 'student123'
STAFF_PASSWORD = 'volunteer123'

SCHOOLS = [
    'School of Computer Science & Engineering',
    'School of Mechanical Engineering',
    'School of Business Management',
    'School of Biotechnology',
    'School of Civil Engineering',
]

STALLS = [
    ('CS-001', 'Computer Science Innovations', 'Ground Floor, Block A'),
    ('ME-001', 'Mechanical Engineering Projects', 'Ground Floor, Block B'),
    ('BM-001', 'Business Management Case Studies', 'First Floor, Block A'),
    ('BT-001', 'Biotechnology Research', 'Second Floor, Block B'),
    ('CS-002', 'AI & Machine Learning Lab', 'Ground Floor, Block A'),
    ('CE-001', 'Civil Engineering Models', 'Ground Floor, Block B'),
]

STUDENTS = [
    ('2024SGTU10001', 'Rahul Sharma', 'rahul.sharma@sgtu.ac.in'),
    ('2024SGTU10002', 'Priya Patel', 'priya.patel@sgtu.ac.in'),
    ('2024SGTU20001', 'Amit Kumar', 'amit.kumar@sgtu.ac.in'),
    ('2024SGTU20002', 'Sneha Gupta', 'sneha.gupta@sgtu.ac.in'),
    ('2024SGTU30001', 'Vikram Singh', 'vikram.singh@sgtu.ac.in'),
    ('2024SGTU30002', 'Anjali Verma', 'anjali.verma@sgtu.ac.in'),
    ('2024SGTU40001', 'Rohan Mehta', 'rohan.mehta@sgtu.ac.in'),
    ('2024SGTU40002', 'Kavya Reddy', 'kavya.reddy@sgtu.ac.in'),
    ('2024SGTU99999', 'Test Student', 'test@sgtu.ac.in'),
    ('2024SGTU00000', 'Demo User', 'demo@sgtu.ac.in'),
]

STAFF = [
    ('volunteer@sgtu.ac.in', 'Gate Volunteer', StaffRole.VOLUNTEER),
    ('stall.volunteer@sgtu.ac.in', 'Stall Volunteer', StaffRole.VOLUNTEER),
    ('admin@sgtu.ac.in', 'Event Admin', StaffRole.ADMIN),
]


def load_db_url() -> str:
    load_dotenv('backend/.env')
    db_url = os.environ.get('DATABASE_URL')
    if not db_url:
        raise RuntimeError('DATABASE_URL missing in backend/.env')
    return db_url


def make_session():
    engine = create_engine(load_db_url(), pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def ensure_school(db, name: str) -> School:
    row = db.query(School).filter(School.school_name == name).first()
    if row:
        return row
    row = School(school_name=name)
    db.add(row)
    db.flush()
    return row


def ensure_stall(db, stall_number: str, stall_name: str, location: str, school: School) -> Stall:
    row = db.query(Stall).filter(Stall.stall_number == stall_number).first()
    if row:
        if not row.qr_code_token:
            row.qr_code_token = issue_stall_token(stall_number)
            db.flush()
        return row
    row = Stall(
        stall_number=stall_number,
        stall_name=stall_name,
        school_id=school.id,
        description=f'{stall_name} showcased by {school.school_name}',
        location=location,
        qr_code_token=issue_stall_token(stall_number),
        total_feedback_count=0,
    )
    db.add(row)
    db.flush()
    return row


def ensure_student(db, registration_no: str, full_name: str, email: str, school: School) -> Student:
    row = db.query(Student).filter(Student.registration_no == registration_no).first()
    if row:
        if not row.qr_code_token:
            row.qr_code_token = issue_student_token(registration_no)
            db.flush()
        return row
    row = Student(
        registration_no=registration_no,
        email=email.lower(),
        hashed_password=get_password_hash(STUDENT_PASSWORD),
        full_name=full_name,
        phone='9876543210',
        school_id=school.id,
        qr_code_token=issue_student_token(registration_no),
    )
    db.add(row)
    db.flush()
    return row


def ensure_staff(db, email: str, full_name: str, role: StaffRole) -> StaffUser:
    row = db.query(StaffUser).filter(StaffUser.email == email).first()
    if row:
        return row
    row = StaffUser(
        email=email,
        hashed_password=get_password_hash(STAFF_PASSWORD),
        full_name=full_name,
        role=role,
        is_active=True,
    )
    db.add(row)
    db.flush()
    return row


def main() -> None:
    db = make_session()
    try:
        schools = [ensure_school(db, name) for name in SCHOOLS]
        # Schools are assigned round-robin.
        stalls = [
            ensure_stall(db, number, name, location, schools[i % len(schools)])
            for i, (number, name, location) in enumerate(STALLS)
        ]
        students = [
            ensure_student(db, regno, name, email, schools[i % len(schools)])
            for i, (regno, name, email) in enumerate(STUDENTS)
        ]
        staff = [ensure_staff(db, email, name, role) for email, name, role in STAFF]

        db.commit()

        print('Seeded/updated event data:')
        print(f'  - schools: {len(schools)}')
        print(f'  - stalls: {[s.stall_number for s in stalls]}')
        print(f'  - students: {len(students)} (password={STUDENT_PASSWORD})')
        print(f'  - staff: {[s.email for s in staff]} (password={STAFF_PASSWORD})')
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    main()
