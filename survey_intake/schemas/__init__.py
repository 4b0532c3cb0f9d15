"""Pydantic schemas and response value types.

This package contains the campaign definition models, the tagged union for
uploaded prompt responses, and the HTTP models of the upload endpoint.
"""

from survey_intake.schemas.campaign import (
    PromptType,
    Prompt,
    RepeatableSet,
    SurveyItem,
    Survey,
    CampaignMetadata,
    Campaign,
)
from survey_intake.schemas.responses import (
    NoResponse,
    Answer,
    PromptResponse,
    parse_response_value,
)
from survey_intake.schemas.upload import UploadError, UploadFailure, UploadSuccess

__all__ = [
    "PromptType",
    "Prompt",
    "RepeatableSet",
    "SurveyItem",
    "Survey",
    "CampaignMetadata",
    "Campaign",
    "NoResponse",
    "Answer",
    "PromptResponse",
    "parse_response_value",
    "UploadError",
    "UploadFailure",
    "UploadSuccess",
]
