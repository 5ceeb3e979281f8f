# =============================================================================
# app/routers/public.py - Public Endpoints
# =============================================================================
# Read-only endpoints that need no authentication.
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Path

from core.models.summary import PublicSummaryResponse
from core.services.summary_service import SummaryService

router = APIRouter()


@router.get("/summaries/{share_token}", response_model=PublicSummaryResponse)
def get_shared_summary(
    share_token: Annotated[str, Path(min_length=16, max_length=64, description="Share token")]
):
    """
    A summary its owner shared.

    Raises:
        404: Unknown token, or sharing was turned off
    """
    return SummaryService.get_public_summary(share_token)
