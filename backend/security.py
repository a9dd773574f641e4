from fastapi import Depends, HTTPException, status

from auth import ROLE_ADMIN, ROLE_STUDENT, ROLE_VOLUNTEER, Principal, get_current_principal


def require_student(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != ROLE_STUDENT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Student access required")
    return principal


def require_volunteer(principal: Principal = Depends(get_current_principal)) -> Principal:
    # Admins can operate every scanner a volunteer can.
    if principal.role not in {ROLE_VOLUNTEER, ROLE_ADMIN}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Volunteer access required")
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != ROLE_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return principal
