"""Per-upload prompt response values.

An uploaded prompt response carries either an actual value or a reason why
there is no value. The wire format encodes the reasons as the literal
strings "SKIPPED" and "NOT_DISPLAYED" inside the `value` field; this module
turns them into a tagged union once, at the boundary, so the rest of the
engine never compares sentinel strings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class NoResponse(str, Enum):
    """Reasons a prompt has no value."""
    SKIPPED = "SKIPPED"
    NOT_DISPLAYED = "NOT_DISPLAYED"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Answer:
    """An actual response value.

    `value` is the decoded JSON value. It is None when the client sent
    JSON null or the text "null"; validators decide whether the prompt type
    allows that.
    """
    value: Any


ResponseValue = Union[Answer, NoResponse]


@dataclass(frozen=True)
class PromptResponse:
    """A single uploaded prompt response.

    Attributes:
        prompt_id: Prompt the response belongs to
        response: The answer, or why there is none
        custom_choices: Raw `custom_choices` array for custom choice prompts
    """
    prompt_id: str
    response: ResponseValue
    custom_choices: Optional[Any] = None

    @property
    def is_answered(self) -> bool:
        return isinstance(self.response, Answer)

    @property
    def no_response(self) -> Optional[NoResponse]:
        """The no-response reason, or None when the prompt was answered."""
        return None if self.is_answered else self.response

    @classmethod
    def from_json(cls, entry: dict) -> "PromptResponse":
        """Decode one `{prompt_id, value, [custom_choices]}` object.

        The caller has already checked that `prompt_id` is present.
        """
        return cls(
            prompt_id=entry["prompt_id"],
            response=parse_response_value(entry.get("value")),
            custom_choices=entry.get("custom_choices"),
        )


def parse_response_value(raw: Any) -> ResponseValue:
    """Decode a wire `value` into an Answer or a NoResponse.

    Example:
        >>> parse_response_value("SKIPPED")
        <NoResponse.SKIPPED: 'SKIPPED'>
        >>> parse_response_value("null")
        Answer(value=None)
    """
    if isinstance(raw, str):
        if raw == NoResponse.SKIPPED.value:
            return NoResponse.SKIPPED
        if raw == NoResponse.NOT_DISPLAYED.value:
            return NoResponse.NOT_DISPLAYED
        if raw == "null":
            return Answer(None)
    return Answer(raw)
