from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from auth import Principal, decode_token, issue_principal_tokens, principal_from_payload, verify_password
from database import get_db
from models import StaffUser
from schemas import RefreshTokenRequest, StaffLogin, StaffResponse, TokenResponse

router = APIRouter()


def _staff_tokens(staff: StaffUser) -> TokenResponse:
    role = staff.role.value
    tokens = issue_principal_tokens(Principal(id=staff.id, role=role))
    return TokenResponse(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        role=role,
        staff=StaffResponse(id=staff.id, full_name=staff.full_name, email=staff.email, role=role),
    )


@router.post("/staff/login", response_model=TokenResponse)
def staff_login(login_data: StaffLogin, db: Session = Depends(get_db)):
    staff = db.query(StaffUser).filter(StaffUser.email == login_data.email.lower()).first()
    if not staff or not verify_password(login_data.password, staff.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not staff.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")
    return _staff_tokens(staff)


@router.post("/staff/refresh", response_model=TokenResponse)
def staff_refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    principal = principal_from_payload(decode_token(request.refresh_token), expected_type="refresh")
    staff = db.query(StaffUser).filter(StaffUser.id == principal.id).first()
    if not staff or staff.role.value != principal.role or not staff.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    return _staff_tokens(staff)
