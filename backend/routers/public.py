from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/")
def root():
    return {"message": "Event Access & Stall Engagement API is running"}


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/routes")
def list_routes(request: Request):
    # The OpenAPI schema lists every operation of the included routers.
    paths = request.app.openapi().get("paths", {})
    return [
        {"path": path, "methods": sorted(method.upper() for method in operations)}
        for path, operations in sorted(paths.items())
    ]
