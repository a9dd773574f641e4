import base64
import io
from typing import Optional

import qrcode
from sqlalchemy.orm import Session

from auth import Principal
from models import AdminLog, StaffUser


def log_admin_action(
    db: Session,
    admin: Principal,
    action: str,
    method: Optional[str] = None,
    path: Optional[str] = None,
    meta: Optional[dict] = None,
):
    staff = db.query(StaffUser).filter(StaffUser.id == admin.id).first() if admin else None
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        admin_email=staff.email if staff else "",
        admin_name=staff.full_name if staff else "",
        action=action,
        method=method,
        path=path,
        meta=meta
    ))
    db.commit()


def render_qr_data_url(token: str) -> str:
    image = qrcode.make(token)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
