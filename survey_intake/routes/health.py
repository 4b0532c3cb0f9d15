"""Health check endpoint for monitoring and deployment verification.

This module provides a health check endpoint that verifies the application
is running and can see its campaign definitions.
"""

from fastapi import APIRouter, Depends

from survey_intake.logging_config import get_logger
from survey_intake.services.campaign_loader import CampaignLoader, get_campaign_loader

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(loader: CampaignLoader = Depends(get_campaign_loader)) -> dict:
    """Health check endpoint.

    Returns:
        dict: Health check status with the number of campaign files found

    Example response:
        {
            "status": "healthy",
            "campaigns": 2
        }
    """
    campaigns = loader.list_campaigns()

    logger.debug("Health check passed")

    return {
        "status": "healthy",
        "campaigns": len(campaigns)
    }
