"""Pydantic schemas for survey upload responses.

The upload endpoint answers in the result/errors envelope clients of the
survey server already understand:

    {"result": "success", "accepted": 2, "survey_ids": ["morning", "evening"]}
    {"result": "failure", "errors": [{"code": "0600", "text": "..."}], ...}
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class UploadError(BaseModel):
    """One error reported to the client.

    Attributes:
        code: Four-digit error code (e.g. "0600" for invalid responses)
        text: Human-readable description
    """
    code: str = Field(..., pattern=r'^\d{4}$', description="Error code")
    text: str = Field(..., description="Error description")


class UploadFailure(BaseModel):
    """Response body for a rejected upload.

    Attributes:
        errors: Errors found (the first problem only)
        survey_index: Index of the rejected survey in the uploaded array
        reason_path: Location of the offending entry inside that survey
    """
    result: Literal["failure"] = "failure"
    errors: list[UploadError] = Field(..., min_length=1)
    survey_index: Optional[int] = Field(None, ge=0, description="Index of the rejected survey")
    reason_path: Optional[str] = Field(None, description="Path to the offending entry")


class UploadSuccess(BaseModel):
    """Response body for an accepted upload."""
    result: Literal["success"] = "success"
    accepted: int = Field(..., ge=0, description="Number of surveys accepted")
    survey_ids: list[str] = Field(default_factory=list, description="Survey ID of each accepted survey")
