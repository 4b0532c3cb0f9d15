"""Prompt response validators.

This module holds one validator per prompt type and the registry that maps
prompt types to them. Every validator is a pure function of the prompt
configuration and the uploaded value: it never mutates either, and it
reports a bad value through its ValidationResult rather than by raising.

The registry applies the rules shared by every prompt type before
dispatching:

- NOT_DISPLAYED is always accepted here; whether the prompt really should
  have been hidden is decided by the survey engine from the display condition.
- SKIPPED is accepted only if the prompt is skippable.
- A null value is accepted only for prompt types that allow it.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache, partial
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Union

from survey_intake.conditions.tree import as_number
from survey_intake.config import get_settings
from survey_intake.logging_config import get_logger
from survey_intake.schemas.campaign import Prompt, PromptType
from survey_intake.schemas.responses import NoResponse, PromptResponse

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
# Used with fullmatch; ASCII digits only
TIMESTAMP_PATTERN = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}')
UUID_PATTERN = re.compile(
    r'[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}'
)
MILITARY_TIME_PATTERN = re.compile(r'([0-9]{2}):([0-9]{2})')
INTEGER_PATTERN = re.compile(r'[+-]?[0-9]+')
BOOLEAN_ARRAY_VALUES = frozenset({"t", "f"})


class UnknownPromptTypeError(Exception):
    """Raised when no validator exists for a prompt type."""
    pass


@dataclass
class ValidationResult:
    """Result of validating one prompt response.

    Attributes:
        is_valid: Whether the response passed validation
        normalized_value: Value recorded for later conditions (a NoResponse
            for skipped and hidden prompts)
        error_message: Error message if validation failed
    """
    is_valid: bool
    normalized_value: Any
    error_message: Optional[str]


PromptValidator = Callable[[Prompt, Any, PromptResponse], ValidationResult]


def _valid(normalized_value: Any) -> ValidationResult:
    return ValidationResult(is_valid=True, normalized_value=normalized_value, error_message=None)


def _invalid(error_message: str) -> ValidationResult:
    return ValidationResult(is_valid=False, normalized_value=None, error_message=error_message)


def parse_integer(value: Any) -> Optional[int]:
    """Parse a JSON integer or integer text; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and INTEGER_PATTERN.fullmatch(value):
        return int(value)
    return None


def parse_json_array(value: Any) -> Optional[list]:
    """Accept a JSON array, or text holding one; None for anything else."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        if isinstance(decoded, list):
            return decoded
    return None


def _choice_key(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def validate_range_number(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Integer within the prompt's inclusive [min, max]."""
    number = parse_integer(value)
    if number is None:
        return _invalid(f"value for {prompt.id} is not an integer: {value!r}")
    if number < prompt.min or number > prompt.max:
        return _invalid(f"value for {prompt.id} is outside [{prompt.min}, {prompt.max}]: {number}")
    return _valid(number)


def validate_text(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Text whose character length is within the prompt's inclusive [min, max]."""
    if not isinstance(value, str):
        return _invalid(f"value for {prompt.id} is not text")
    if len(value) < prompt.min or len(value) > prompt.max:
        return _invalid(
            f"text for {prompt.id} must be between {prompt.min} and {prompt.max} characters, "
            f"got {len(value)}"
        )
    return _valid(value)


def validate_single_choice(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """One of the configured choice keys."""
    key = _choice_key(value)
    if key is None or key not in prompt.choice_keys:
        return _invalid(f"value for {prompt.id} is not a valid choice: {value!r}")
    return _valid(key)


def validate_multi_choice(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """An array whose every element is a configured choice key."""
    selections = parse_json_array(value)
    if selections is None:
        return _invalid(f"value for {prompt.id} is not an array")

    keys = []
    for selection in selections:
        key = _choice_key(selection)
        if key is None or key not in prompt.choice_keys:
            return _invalid(f"value for {prompt.id} contains an invalid choice: {selection!r}")
        keys.append(key)
    return _valid(keys)


def parse_custom_choices(custom_choices: Any) -> tuple[Optional[dict[int, str]], Optional[str]]:
    """Check an uploaded custom choice set.

    Each entry must be an object with an integer `choice_id` and a non-empty
    `choice_value`, and no two entries may share a `choice_id`.

    Returns:
        Tuple of (choice_id to choice_value map, None) when valid, or
        (None, error message) when not
    """
    if not isinstance(custom_choices, list):
        return None, "custom_choices is missing or not an array"

    choices: dict[int, str] = {}
    for index, choice in enumerate(custom_choices):
        if not isinstance(choice, dict):
            return None, f"custom choice at index {index} is not an object"

        choice_id = parse_integer(choice.get("choice_id"))
        if choice_id is None:
            return None, f"custom choice at index {index} has a missing or non-integer choice_id"

        choice_value = choice.get("choice_value")
        if not isinstance(choice_value, str) or not choice_value.strip():
            return None, f"custom choice {choice_id} has an empty choice_value"

        if choice_id in choices:
            return None, f"custom choice id {choice_id} is not unique"
        choices[choice_id] = choice_value

    return choices, None


def validate_single_choice_custom(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """One choice id of the uploaded custom choice set."""
    choices, error = parse_custom_choices(response.custom_choices)
    if error:
        return _invalid(f"invalid custom choices for {prompt.id}: {error}")

    choice_id = parse_integer(value)
    if choice_id is None or choice_id not in choices:
        return _invalid(f"value for {prompt.id} is not one of its custom choices: {value!r}")
    return _valid(choice_id)


def validate_multi_choice_custom(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """An array of choice ids of the uploaded custom choice set."""
    choices, error = parse_custom_choices(response.custom_choices)
    if error:
        return _invalid(f"invalid custom choices for {prompt.id}: {error}")

    selections = parse_json_array(value)
    if selections is None:
        return _invalid(f"value for {prompt.id} is not an array")

    choice_ids = []
    for selection in selections:
        choice_id = parse_integer(selection)
        if choice_id is None or choice_id not in choices:
            return _invalid(f"value for {prompt.id} contains an invalid custom choice: {selection!r}")
        choice_ids.append(choice_id)
    return _valid(choice_ids)


def validate_timestamp(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Strict yyyy-MM-ddTHH:mm:ss; impossible dates and times are rejected."""
    if not isinstance(value, str) or not TIMESTAMP_PATTERN.fullmatch(value):
        return _invalid(f"value for {prompt.id} is not a yyyy-MM-ddTHH:mm:ss timestamp: {value!r}")
    try:
        datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        return _invalid(f"value for {prompt.id} is not a valid timestamp: {value}")
    return _valid(value)


def validate_uuid(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Canonical 8-4-4-4-12 hexadecimal UUID."""
    if not isinstance(value, str) or not UUID_PATTERN.fullmatch(value):
        return _invalid(f"value for {prompt.id} is not a UUID: {value!r}")
    return _valid(value)


def validate_military_time(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Exactly HH:MM with hours 0-23 and minutes 0-59."""
    match = MILITARY_TIME_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        return _invalid(f"value for {prompt.id} is not an HH:MM time: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return _invalid(f"value for {prompt.id} is not a valid time of day: {value}")
    return _valid(value)


def validate_boolean_array(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Array of exactly `length` "t"/"f" entries."""
    entries = parse_json_array(value)
    if entries is None:
        return _invalid(f"value for {prompt.id} is not an array")
    if len(entries) != prompt.length:
        return _invalid(f"value for {prompt.id} must have {prompt.length} entries, got {len(entries)}")
    for entry in entries:
        if not isinstance(entry, str) or entry not in BOOLEAN_ARRAY_VALUES:
            return _invalid(f"value for {prompt.id} contains {entry!r}; only \"t\" and \"f\" are allowed")
    return _valid(entries)


def validate_integer_map(prompt: Prompt, value: Any, response: PromptResponse) -> ValidationResult:
    """Integer that is one of the configured keys."""
    number = parse_integer(value)
    if number is None:
        return _invalid(f"value for {prompt.id} is not an integer: {value!r}")
    if number not in {int(key) for key in prompt.choice_keys}:
        return _invalid(f"value for {prompt.id} is not a configured key: {number}")
    return _valid(number)


def validate_remote_activity(
    prompt: Prompt,
    value: Any,
    response: PromptResponse,
    check_all_scores: bool = False,
) -> ValidationResult:
    """Array of at most retries + 1 runs, each run an object with a numeric score.

    Only the first `retries` runs are checked unless `check_all_scores` is
    set; runs beyond that are logged and accepted.
    """
    runs = parse_json_array(value)
    if runs is None:
        return _invalid(f"value for {prompt.id} is not an array")

    allowed = prompt.retries + 1
    if len(runs) > allowed:
        return _invalid(f"value for {prompt.id} has {len(runs)} runs; at most {allowed} are allowed")

    checked = len(runs) if check_all_scores else min(len(runs), prompt.retries)
    for index in range(checked):
        run = runs[index]
        if not isinstance(run, dict):
            return _invalid(f"run {index} for {prompt.id} is not an object")
        if as_number(run.get("score")) is None:
            return _invalid(f"run {index} for {prompt.id} must have a finite numeric 'score'")

    if checked < len(runs):
        logger.warning(
            f"Remote activity {prompt.id} uploaded {len(runs)} runs; "
            f"runs after the first {checked} were not checked",
            extra={"prompt_id": prompt.id},
        )

    return _valid(runs)


DEFAULT_VALIDATORS: Mapping[PromptType, PromptValidator] = MappingProxyType({
    PromptType.TIMESTAMP: validate_timestamp,
    PromptType.NUMBER: validate_range_number,
    PromptType.HOURS_BEFORE_NOW: validate_range_number,
    PromptType.TEXT: validate_text,
    PromptType.SINGLE_CHOICE: validate_single_choice,
    PromptType.SINGLE_CHOICE_CUSTOM: validate_single_choice_custom,
    PromptType.MULTI_CHOICE: validate_multi_choice,
    PromptType.MULTI_CHOICE_CUSTOM: validate_multi_choice_custom,
    PromptType.PHOTO: validate_uuid,
    PromptType.REMOTE_ACTIVITY: validate_remote_activity,
    PromptType.MILITARY_TIME: validate_military_time,
    PromptType.BOOLEAN_ARRAY: validate_boolean_array,
    PromptType.INTEGER_MAP: validate_integer_map,
})


class ValidatorRegistry:
    """Maps every prompt type to its validator.

    Built once and never modified afterwards, so it can be shared by
    concurrently validated uploads.
    """

    def __init__(self, validators: Mapping[PromptType, PromptValidator]):
        """Initialize the registry.

        Args:
            validators: Validator for each prompt type

        Raises:
            UnknownPromptTypeError: If a prompt type has no validator
        """
        missing = [prompt_type.value for prompt_type in PromptType if prompt_type not in validators]
        if missing:
            raise UnknownPromptTypeError(f"No validator registered for prompt types: {missing}")
        self._validators = MappingProxyType(dict(validators))

    @classmethod
    def build(cls, strict_remote_activity_scores: bool = False) -> "ValidatorRegistry":
        """Create a registry with the default validators.

        Args:
            strict_remote_activity_scores: Check the score of every remote
                activity run, not only the first `retries`
        """
        validators = dict(DEFAULT_VALIDATORS)
        validators[PromptType.REMOTE_ACTIVITY] = partial(
            validate_remote_activity,
            check_all_scores=strict_remote_activity_scores,
        )
        return cls(validators)

    def get_validator(self, prompt_type: Union[PromptType, str]) -> PromptValidator:
        """Get the validator for a prompt type.

        Raises:
            UnknownPromptTypeError: If the prompt type is not known
        """
        try:
            return self._validators[PromptType(prompt_type)]
        except (KeyError, ValueError):
            raise UnknownPromptTypeError(f"Unknown prompt type: {prompt_type}") from None

    def validate(self, prompt: Prompt, response: PromptResponse) -> ValidationResult:
        """Validate one uploaded response against its prompt.

        Args:
            prompt: Prompt configuration
            response: Uploaded response for the prompt

        Returns:
            ValidationResult; for skipped and hidden prompts the normalized
            value is the NoResponse reason

        Example:
            >>> registry = ValidatorRegistry.build()
            >>> result = registry.validate(prompt, PromptResponse("p1", Answer("1")))
            >>> result.is_valid
            True
        """
        if response.no_response == NoResponse.NOT_DISPLAYED:
            return _valid(NoResponse.NOT_DISPLAYED)

        if response.no_response == NoResponse.SKIPPED:
            if not prompt.skippable:
                return _invalid(f"prompt {prompt.id} was skipped but is not skippable")
            return _valid(NoResponse.SKIPPED)

        value = response.response.value
        if value is None:
            if prompt.type.allows_null:
                return _valid(None)
            return _invalid(f"null is not an allowed value for {prompt.type.value} prompt {prompt.id}")

        validator = self.get_validator(prompt.type)
        logger.debug(f"Validating {prompt.type.value} prompt {prompt.id}", extra={"prompt_id": prompt.id})
        return validator(prompt, value, response)


@lru_cache
def get_validator_registry() -> ValidatorRegistry:
    """Get the registry configured from application settings.

    Returns:
        ValidatorRegistry singleton
    """
    settings = get_settings()
    return ValidatorRegistry.build(strict_remote_activity_scores=settings.strict_remote_activity_scores)
