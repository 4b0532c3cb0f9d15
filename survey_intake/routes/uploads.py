"""Survey upload endpoint.

This module accepts a JSON array of uploaded surveys for one campaign and
validates every survey against the campaign's configuration. The upload is
atomic: one invalid survey rejects the whole batch.
"""

import json
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from survey_intake.logging_config import get_logger, request_context
from survey_intake.schemas.upload import UploadError, UploadFailure, UploadSuccess
from survey_intake.services.campaign_loader import (
    CampaignLoader,
    CampaignNotFoundError,
    CampaignValidationError,
    get_campaign_loader,
)
from survey_intake.services.survey_engine import (
    CODE_INVALID_JSON,
    Rejected,
    SurveyResponseValidator,
)
from survey_intake.services.validation import ValidatorRegistry, get_validator_registry

logger = get_logger(__name__)

router = APIRouter()


def _failure(code: str, text: str, survey_index=None, reason_path=None) -> JSONResponse:
    body = UploadFailure(
        errors=[UploadError(code=code, text=text)],
        survey_index=survey_index,
        reason_path=reason_path,
    )
    return JSONResponse(status_code=400, content=body.model_dump())


@router.post("/campaigns/{campaign_id}/surveys", response_model=UploadSuccess)
async def upload_surveys(
    campaign_id: str,
    request: Request,
    loader: CampaignLoader = Depends(get_campaign_loader),
    registry: ValidatorRegistry = Depends(get_validator_registry),
):
    """Validate an uploaded array of surveys.

    Flow:
    1. Load the campaign configuration
    2. Decode the JSON body, which must be an array of survey objects
    3. Validate every survey in order, stopping at the first rejection

    Args:
        campaign_id: Campaign the surveys belong to
        request: Incoming request carrying the JSON body
        loader: Campaign loader
        registry: Prompt type validators

    Returns:
        UploadSuccess, or a 400 UploadFailure naming the first problem

    Raises:
        HTTPException: 404 for an unknown campaign, 500 for a campaign whose
            definition is broken
    """
    try:
        configuration = loader.load_campaign(campaign_id)
    except CampaignNotFoundError:
        raise HTTPException(status_code=404, detail=f"Campaign '{campaign_id}' not found")
    except CampaignValidationError as e:
        logger.error(f"Campaign {campaign_id} failed to load: {e}", extra={"campaign_id": campaign_id})
        raise HTTPException(status_code=500, detail=f"Campaign '{campaign_id}' is misconfigured")

    body = await request.body()
    try:
        surveys = json.loads(body)
    except ValueError as e:
        logger.info(f"Upload for campaign {campaign_id} is not valid JSON: {e}")
        return _failure(CODE_INVALID_JSON, f"The upload is not valid JSON: {e}")

    if not isinstance(surveys, list):
        return _failure(CODE_INVALID_JSON, "The upload must be a JSON array of surveys")

    with request_context(str(uuid.uuid4()), campaign_id):
        validator = SurveyResponseValidator(configuration, registry)
        survey_ids = []
        for index, survey_json in enumerate(surveys):
            result = validator.validate(survey_json)
            if isinstance(result, Rejected):
                logger.info(f"Rejected upload at survey {index}: {result.message}")
                return _failure(result.code, result.message, survey_index=index, reason_path=result.reason_path)
            survey_ids.append(result.survey_id)

        logger.info(f"Accepted {len(survey_ids)} surveys for campaign {campaign_id}")
        return UploadSuccess(accepted=len(survey_ids), survey_ids=survey_ids)
