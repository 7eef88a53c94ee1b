from fastapi import APIRouter, Depends

from app.dependencies import get_ai_service
from app.services.ai_service import AIService

router = APIRouter(tags=["health"])


@router.get("/api/v1/health")
async def health(ai_service: AIService = Depends(get_ai_service)):
    """Health check endpoint."""
    return {"status": "ok", "ai_configured": ai_service.is_configured}
