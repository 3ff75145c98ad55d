import logging

from fastapi import APIRouter, Depends

from tutor.api.deps import get_app_settings
from tutor.config import Settings
from tutor.models.responses import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
