from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import logging

from settings import settings
from database import engine, Base, SessionLocal
from engine_errors import EngineError
from migrations import ensure_ranking_lock_row
from models import StaffUser, StaffRole
from auth import get_password_hash
from scheduler import start_scheduler, stop_scheduler
from routers import admin, auth_staff, auth_student, check_in_out, public, ranking, student

# Configure logging
logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

if settings.create_tables_on_startup:
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="Event Access & Stall Engagement API", version="1.0.0")
api_router = APIRouter(prefix="/api")


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def ensure_default_admin() -> None:
    if not settings.default_admin_email or not settings.default_admin_password:
        return
    db = SessionLocal()
    try:
        email = settings.default_admin_email.lower()
        admin = db.query(StaffUser).filter(StaffUser.email == email).first()
        if not admin:
            db.add(StaffUser(
                email=email,
                hashed_password=get_password_hash(settings.default_admin_password),
                full_name="Admin",
                role=StaffRole.ADMIN,
                is_active=True,
            ))
            db.commit()
            logger.info("Default admin created: email=%s", email)
    finally:
        db.close()


def ensure_ranking_lock() -> None:
    db = SessionLocal()
    try:
        ensure_ranking_lock_row(db)
    finally:
        db.close()


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    ensure_default_admin()
    ensure_ranking_lock()
    start_scheduler(settings.ranking_refresh_minutes)


@app.on_event("shutdown")
async def shutdown_event():
    stop_scheduler()


# Include routers and add middleware
for module in (public, auth_student, auth_staff, student, check_in_out, ranking, admin):
    api_router.include_router(module.router)
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
