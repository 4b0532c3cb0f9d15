"""Survey payload validation.

This module walks one uploaded survey object and decides whether it is
valid for the campaign. Entries of the survey's `responses` array are
processed in upload order:

- a prompt entry `{prompt_id, value, [custom_choices]}` is checked against
  its display condition, then validated by the prompt type's validator;
- a repeatable set entry `{repeatable_set_id, skipped, not_displayed,
  responses}` is checked against the set's condition, then every iteration
  is walked like a small survey of its own, scoped to the set.

Each accepted response is recorded in a response map (prompt ID to
normalized value, or a NoResponse) that later conditions are evaluated
against. A repeatable set is recorded as its iteration count, or as
NOT_DISPLAYED. Iterations get their own map layered over the survey's, so
prompts of one iteration never see another iteration's answers.

The first problem found ends the walk. It is reported as a single Rejected
value with a path to the offending entry, e.g. `responses[2].rs1[0][1].p3`.
"""

from collections import ChainMap
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping, Optional, Union

from survey_intake.conditions import ConditionError
from survey_intake.logging_config import get_logger
from survey_intake.schemas.responses import NoResponse, PromptResponse
from survey_intake.services.configuration import CampaignConfiguration, ConfigurationLookupError
from survey_intake.services.validation import (
    UnknownPromptTypeError,
    ValidatorRegistry,
    get_validator_registry,
)

logger = get_logger(__name__)

CODE_INVALID_JSON = "0300"
CODE_INVALID_RESPONSES = "0600"
CODE_INVALID_SURVEY_ID = "0603"
CODE_INVALID_PROMPT_ID = "0604"


class SurveyEngineError(Exception):
    """Raised when validation hits an inconsistency between engine and configuration."""
    pass


@dataclass(frozen=True)
class Accepted:
    """A survey that passed validation.

    Attributes:
        survey_id: Survey the upload answered
        responses: Top-level response map built during validation
    """
    survey_id: str
    responses: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
    """A survey that failed validation.

    Attributes:
        reason_path: Location of the offending entry, e.g. `responses[0].p1`
        message: Human-readable reason naming the prompt, set or survey
        code: Error code reported to the client
    """
    reason_path: str
    message: str
    code: str = CODE_INVALID_RESPONSES


SurveyResult = Union[Accepted, Rejected]


class _RejectUpload(Exception):
    """Ends the walk at the first problem found."""

    def __init__(self, rejection: Rejected):
        super().__init__(rejection.message)
        self.rejection = rejection


def _reject(path: str, message: str, code: str = CODE_INVALID_RESPONSES) -> _RejectUpload:
    return _RejectUpload(Rejected(reason_path=path, message=message, code=code))


def parse_flag(value: Any) -> Optional[bool]:
    """Parse a JSON boolean or "true"/"false" text; None for anything else."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


class SurveyResponseValidator:
    """Validates uploaded survey objects for one campaign."""

    def __init__(self, configuration: CampaignConfiguration, registry: Optional[ValidatorRegistry] = None):
        """Initialize the validator.

        Args:
            configuration: Campaign the uploads belong to
            registry: Prompt type validators (defaults to the shared registry)
        """
        self.configuration = configuration
        self.registry = registry or get_validator_registry()

    def validate(self, survey_json: Any) -> SurveyResult:
        """Validate one uploaded survey object.

        Args:
            survey_json: Decoded JSON survey object

        Returns:
            Accepted, or Rejected describing the first problem found

        Raises:
            SurveyEngineError: If the configuration and the engine disagree,
                e.g. a prompt type without a validator

        Example:
            >>> validator = SurveyResponseValidator(configuration)
            >>> validator.validate({"survey_id": "s1", "responses": []})
            Accepted(survey_id='s1', responses={})
        """
        try:
            return self._validate_survey(survey_json)
        except _RejectUpload as e:
            rejection = e.rejection
            logger.info(
                f"Rejected survey upload at {rejection.reason_path}: {rejection.message}",
                extra={"campaign_id": self.configuration.campaign_id},
            )
            return rejection
        except (ConditionError, ConfigurationLookupError, UnknownPromptTypeError) as e:
            logger.error(f"Survey engine error: {e}", extra={"campaign_id": self.configuration.campaign_id})
            raise SurveyEngineError(f"Survey validation failed unexpectedly: {e}") from e

    def _validate_survey(self, survey_json: Any) -> Accepted:
        if not isinstance(survey_json, dict):
            raise _reject("survey", "The survey is not a JSON object", CODE_INVALID_JSON)

        survey_id = survey_json.get("survey_id")
        if not isinstance(survey_id, str) or not self.configuration.survey_id_exists(survey_id):
            raise _reject(
                "survey_id",
                f"Unknown survey '{survey_id}' for campaign '{self.configuration.campaign_id}'",
                CODE_INVALID_SURVEY_ID,
            )

        entries = survey_json.get("responses")
        if not isinstance(entries, list):
            raise _reject("responses", f"The responses of survey '{survey_id}' are missing or not an array")

        responses: dict[str, Any] = {}
        for index, entry in enumerate(entries):
            path = f"responses[{index}]"
            if not isinstance(entry, dict):
                raise _reject(path, f"Response {index} of survey '{survey_id}' is not a JSON object")

            if "prompt_id" in entry:
                self._validate_prompt_response(survey_id, entry, path, responses, responses)
            elif "repeatable_set_id" in entry:
                self._validate_repeatable_set(survey_id, entry, path, responses)
            else:
                raise _reject(
                    path,
                    f"Response {index} of survey '{survey_id}' has neither a prompt_id nor a repeatable_set_id",
                )

        logger.debug(
            f"Accepted survey {survey_id} with {len(entries)} responses",
            extra={"survey_id": survey_id},
        )
        return Accepted(survey_id=survey_id, responses=dict(responses))

    def _check_displayed(
        self,
        survey_id: str,
        item_id: str,
        not_displayed: bool,
        responses: Mapping[str, Any],
        path: str,
        where: str,
    ) -> None:
        condition = self.configuration.get_condition(survey_id, item_id)

        if condition is None:
            if not_displayed:
                raise _reject(path, f"'{item_id}' in {where} was not displayed but has no condition")
            return

        missing = sorted(pid for pid in condition.prompt_ids() if pid not in responses)
        if missing:
            raise _reject(
                path,
                f"The condition of '{item_id}' in {where} references {missing}, which have no earlier response",
            )

        displayed = condition.evaluate(responses)
        logger.debug(
            f"Condition '{condition}' of {item_id} evaluated to {displayed}",
            extra={"survey_id": survey_id, "prompt_id": item_id},
        )

        if not_displayed and displayed:
            raise _reject(path, f"'{item_id}' in {where} was not displayed, but its condition '{condition}' is true")
        if not not_displayed and not displayed:
            raise _reject(path, f"'{item_id}' in {where} was responded to, but its condition '{condition}' is false")

    def _validate_prompt_response(
        self,
        survey_id: str,
        entry: dict,
        path: str,
        scope: MutableMapping[str, Any],
        responses: Mapping[str, Any],
        repeatable_set_id: Optional[str] = None,
    ) -> None:
        """Validate one prompt entry and record its value in `scope`.

        `scope` holds the responses of the current survey or iteration; it is
        where duplicates are detected. `responses` is what conditions see.
        """
        prompt_id = entry.get("prompt_id")
        where = f"repeatable set '{repeatable_set_id}'" if repeatable_set_id else f"survey '{survey_id}'"

        if not isinstance(prompt_id, str) or not self.configuration.prompt_exists(
            survey_id, prompt_id, repeatable_set_id
        ):
            raise _reject(path, f"Unknown prompt '{prompt_id}' in {where}", CODE_INVALID_PROMPT_ID)

        path = f"{path}.{prompt_id}"
        if prompt_id in scope:
            raise _reject(path, f"Prompt '{prompt_id}' was responded to more than once in {where}")
        if "value" not in entry:
            raise _reject(path, f"Prompt '{prompt_id}' in {where} is missing its value")

        response = PromptResponse.from_json(entry)
        prompt = self.configuration.get_prompt(survey_id, prompt_id, repeatable_set_id)

        self._check_displayed(
            survey_id,
            prompt_id,
            response.no_response == NoResponse.NOT_DISPLAYED,
            responses,
            path,
            where,
        )

        result = self.registry.validate(prompt, response)
        if not result.is_valid:
            raise _reject(path, f"Invalid response to prompt '{prompt_id}' in {where}: {result.error_message}")

        scope[prompt_id] = result.normalized_value

    def _validate_repeatable_set(
        self,
        survey_id: str,
        entry: dict,
        path: str,
        responses: dict[str, Any],
    ) -> None:
        repeatable_set_id = entry.get("repeatable_set_id")
        if not isinstance(repeatable_set_id, str) or not self.configuration.repeatable_set_exists(
            survey_id, repeatable_set_id
        ):
            raise _reject(
                path,
                f"Unknown repeatable set '{repeatable_set_id}' in survey '{survey_id}'",
                CODE_INVALID_PROMPT_ID,
            )

        path = f"{path}.{repeatable_set_id}"
        if repeatable_set_id in responses:
            raise _reject(path, f"Repeatable set '{repeatable_set_id}' was responded to more than once")

        # `skipped` only records that the continuation question was skipped.
        if parse_flag(entry.get("skipped")) is None:
            raise _reject(path, f"'skipped' is missing or non-boolean in repeatable set '{repeatable_set_id}'")

        not_displayed = parse_flag(entry.get("not_displayed"))
        if not_displayed is None:
            raise _reject(
                path, f"'not_displayed' is missing or non-boolean in repeatable set '{repeatable_set_id}'"
            )

        iterations = entry.get("responses")
        if not isinstance(iterations, list):
            raise _reject(path, f"Repeatable set '{repeatable_set_id}' is missing its responses array")
        if not_displayed and iterations:
            raise _reject(path, f"Repeatable set '{repeatable_set_id}' was not displayed but has responses")
        if not not_displayed and not iterations:
            raise _reject(path, f"Repeatable set '{repeatable_set_id}' was displayed but has no responses")

        self._check_displayed(survey_id, repeatable_set_id, not_displayed, responses, path, f"survey '{survey_id}'")

        expected = self.configuration.number_of_prompts_in_repeatable_set(survey_id, repeatable_set_id)
        for iteration_index, iteration in enumerate(iterations):
            iteration_path = f"{path}[{iteration_index}]"
            if not isinstance(iteration, list):
                raise _reject(
                    iteration_path,
                    f"Iteration {iteration_index} of repeatable set '{repeatable_set_id}' is not an array",
                )
            if len(iteration) != expected:
                raise _reject(
                    iteration_path,
                    f"Iteration {iteration_index} of repeatable set '{repeatable_set_id}' has "
                    f"{len(iteration)} responses, expected {expected}",
                )

            scope: dict[str, Any] = {}
            iteration_responses = ChainMap(scope, responses)
            for prompt_index, prompt_entry in enumerate(iteration):
                prompt_path = f"{iteration_path}[{prompt_index}]"
                if not isinstance(prompt_entry, dict) or "prompt_id" not in prompt_entry:
                    raise _reject(
                        prompt_path,
                        f"Response {prompt_index} of iteration {iteration_index} in repeatable set "
                        f"'{repeatable_set_id}' is missing its prompt_id",
                    )
                self._validate_prompt_response(
                    survey_id,
                    prompt_entry,
                    prompt_path,
                    scope,
                    iteration_responses,
                    repeatable_set_id,
                )

        responses[repeatable_set_id] = NoResponse.NOT_DISPLAYED if not_displayed else len(iterations)


def validate_survey(
    configuration: CampaignConfiguration,
    survey_json: Any,
    registry: Optional[ValidatorRegistry] = None,
) -> SurveyResult:
    """Validate one uploaded survey object against a campaign.

    Args:
        configuration: Campaign the upload belongs to
        survey_json: Decoded JSON survey object
        registry: Prompt type validators (defaults to the shared registry)

    Returns:
        Accepted, or Rejected describing the first problem found
    """
    return SurveyResponseValidator(configuration, registry).validate(survey_json)
