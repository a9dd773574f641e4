from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import Any, Optional, List
from enum import Enum
from datetime import datetime


class AdmissionStateEnum(str, Enum):
    OUTSIDE = "Outside"
    INSIDE = "Inside"


class AdmissionActionEnum(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class StaffRoleEnum(str, Enum):
    VOLUNTEER = "volunteer"
    ADMIN = "admin"


class ExportFormatEnum(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"


# Auth Schemas
class StudentLogin(BaseModel):
    email: Optional[EmailStr] = None
    registration_no: Optional[str] = None
    password: str = Field(..., min_length=1)

    @field_validator("registration_no")
    @classmethod
    def normalize_registration_no(cls, v):
        if v is None:
            return v
        return str(v).strip() or None

    @model_validator(mode="after")
    def require_identifier(self):
        if not self.email and not self.registration_no:
            raise ValueError("Email or registration number is required")
        return self


class StaffLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class StudentResponse(BaseModel):
    id: int
    full_name: str
    email: str
    registration_no: str
    school_name: Optional[str] = None
    phone: Optional[str] = None
    admission_state: AdmissionStateEnum
    feedback_count: int
    created_at: Optional[datetime] = None


class StaffResponse(BaseModel):
    id: int
    full_name: str
    email: str
    role: StaffRoleEnum

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: str
    student: Optional[StudentResponse] = None
    staff: Optional[StaffResponse] = None


class QrCodeResponse(BaseModel):
    token: str
    qr_code: str
    subject: str


# Access state
class GateScanRequest(BaseModel):
    student_qr_token: str = Field(..., min_length=1, max_length=200)


class AdmissionResponse(BaseModel):
    student_id: int
    registration_no: str
    full_name: str
    admission_state: AdmissionStateEnum
    action: AdmissionActionEnum
    occurred_at: datetime


class AdmissionEventResponse(BaseModel):
    id: int
    action: AdmissionActionEnum
    occurred_at: datetime
    recorded_by: Optional[int] = None


# Stall interaction
class StallScanRequest(BaseModel):
    stall_qr_token: str = Field(..., min_length=1, max_length=200)


class StallVisitRequest(BaseModel):
    student_qr_token: str = Field(..., min_length=1, max_length=200)
    stall_qr_token: str = Field(..., min_length=1, max_length=200)


class StallSummary(BaseModel):
    id: int
    stall_number: str
    stall_name: str
    school_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None


class ExistingFeedback(BaseModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: datetime


class StallScanResponse(BaseModel):
    stall: StallSummary
    already_reviewed: bool
    existing_feedback: Optional[ExistingFeedback] = None


class StallVisitResponse(BaseModel):
    id: int
    student_id: int
    stall_id: int
    stall_number: str
    visited_at: datetime


class FeedbackSubmitRequest(BaseModel):
    stall_id: int
    # Range is enforced by the ledger so it can report InvalidRating in order.
    rating: Any = None
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator("comment")
    @classmethod
    def normalize_comment(cls, v):
        if v is None:
            return v
        return str(v).strip() or None


class FeedbackRecordResponse(BaseModel):
    id: int
    stall_name: str
    stall_number: str
    rating: int
    comment: Optional[str] = None
    submitted_at: datetime


class FeedbackSubmitResponse(BaseModel):
    feedback: FeedbackRecordResponse
    total_feedbacks_given: int
    remaining_feedbacks: int


class VisitHistoryEntry(BaseModel):
    stall_id: int
    stall_number: str
    stall_name: str
    school_name: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    visited_at: datetime


class VisitHistoryResponse(BaseModel):
    total_visits: int
    remaining_feedbacks: int
    visits: List[VisitHistoryEntry]


# Ranking
class LeaderboardEntry(BaseModel):
    stall_id: int
    rank: int
    score: float
    avg_rating: float
    total_feedback: int
    total_visits: int
    computed_at: datetime
    stall_name: str
    stall_number: str
    school_name: Optional[str] = None


class RankingRunResponse(BaseModel):
    total_stalls: int
    changed: bool
    computed_at: Optional[datetime] = None
    rankings: List[LeaderboardEntry]


# Admin
class StallCreate(BaseModel):
    stall_number: str = Field(..., min_length=1, max_length=16)
    stall_name: str = Field(..., min_length=2, max_length=255)
    school_id: Optional[int] = None
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)

    @field_validator("stall_number")
    @classmethod
    def validate_stall_number(cls, v):
        value = str(v).strip().upper()
        if not value.replace("-", "").isalnum():
            raise ValueError("Stall number must contain only letters, digits or dashes")
        return value


class StallAdminResponse(BaseModel):
    id: int
    stall_number: str
    stall_name: str
    school_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    qr_code_token: str
    total_feedback_count: int


class EventStatsResponse(BaseModel):
    total_students: int
    total_volunteers: int
    total_stalls: int
    active_check_ins: int
    total_feedbacks: int
    total_visits: int
    ranked_stalls: int
    last_ranking_at: Optional[datetime] = None
