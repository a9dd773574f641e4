from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Float,
    Enum as SQLEnum,
    ForeignKey,
    Text,
    JSON,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


FEEDBACK_LIMIT_PER_STUDENT = 200
RANKING_LOCK_KEY = "ranking:lock"
RANKING_LAST_RUN_KEY = "ranking:last_computed_at"


class AdmissionState(enum.Enum):
    OUTSIDE = "Outside"
    INSIDE = "Inside"


class AdmissionAction(enum.Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class StaffRole(enum.Enum):
    VOLUNTEER = "volunteer"
    ADMIN = "admin"


class School(Base):
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, index=True)
    school_name = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    stalls = relationship("Stall", back_populates="school")


class Stall(Base):
    __tablename__ = "stalls"

    id = Column(Integer, primary_key=True, index=True)
    stall_number = Column(String(16), unique=True, index=True, nullable=False)
    stall_name = Column(String(255), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id"), nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    qr_code_token = Column(String(50), unique=True, index=True, nullable=False)  # immutable once issued
    total_feedback_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    school = relationship("School", back_populates="stalls")


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint(f"feedback_count >= 0 AND feedback_count <= {FEEDBACK_LIMIT_PER_STUDENT}", name="ck_students_feedback_count"),
    )

    id = Column(Integer, primary_key=True, index=True)
    registration_no = Column(String(20), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    school_id = Column(Integer, ForeignKey("schools.id"), nullable=True)
    qr_code_token = Column(String(50), unique=True, index=True, nullable=True)
    admission_state = Column(SQLEnum(AdmissionState), default=AdmissionState.OUTSIDE, nullable=False)
    feedback_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    school = relationship("School")


class StaffUser(Base):
    __tablename__ = "staff_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(SQLEnum(StaffRole), default=StaffRole.VOLUNTEER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Feedback(Base):
    __tablename__ = "feedbacks"
    __table_args__ = (
        Index("uq_feedbacks_student_stall", "student_id", "stall_id", unique=True),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedbacks_rating"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    stall_id = Column(Integer, ForeignKey("stalls.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    stall = relationship("Stall")


class StallVisit(Base):
    __tablename__ = "stall_visits"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    stall_id = Column(Integer, ForeignKey("stalls.id"), nullable=False, index=True)
    recorded_by = Column(Integer, ForeignKey("staff_users.id"), nullable=True)
    visited_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AdmissionEvent(Base):
    __tablename__ = "admission_events"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    action = Column(SQLEnum(AdmissionAction), nullable=False)
    recorded_by = Column(Integer, ForeignKey("staff_users.id"), nullable=True)
    occurred_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class StallRanking(Base):
    __tablename__ = "stall_rankings"
    __table_args__ = (
        CheckConstraint("rank >= 1", name="ck_stall_rankings_rank"),
    )

    id = Column(Integer, primary_key=True, index=True)
    stall_id = Column(Integer, ForeignKey("stalls.id"), unique=True, nullable=False)
    rank = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    avg_rating = Column(Float, default=0, nullable=False)
    total_feedback = Column(Integer, default=0, nullable=False)
    total_visits = Column(Integer, default=0, nullable=False)
    computed_at = Column(DateTime(timezone=True), nullable=False)

    stall = relationship("Stall")


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=True)
    admin_email = Column(String(255), nullable=False)
    admin_name = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SystemConfig(Base):
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(500), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
