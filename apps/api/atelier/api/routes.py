from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from atelier.ai.api import router as ai_router
from atelier.compliance.api import router as compliance_router
from atelier.core.auth import AuthUser, get_current_user
from atelier.core.config import get_settings
from atelier.crm.api import router as crm_router
from atelier.metrics import generate_metrics_payload, metrics_content_type
from atelier.tenancy.api import router as tenancy_router

router = APIRouter()
router.include_router(tenancy_router)
router.include_router(compliance_router)
router.include_router(crm_router)
router.include_router(ai_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str]]:
    return {
        "sub": user.sub,
        "roles": user.roles,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
