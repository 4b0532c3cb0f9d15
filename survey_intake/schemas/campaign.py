"""Pydantic schemas for campaign YAML definitions.

This module defines the structure and validation rules for campaign files.
A campaign contains surveys; a survey is an ordered list of items, each of
which is either a prompt or a repeatable set of prompts. All campaigns must
conform to these schemas to be loaded by the system.
"""

from enum import Enum
from typing import Any, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PromptType(str, Enum):
    """Valid prompt types in campaign definitions."""
    TIMESTAMP = "timestamp"
    NUMBER = "number"
    HOURS_BEFORE_NOW = "hours_before_now"
    TEXT = "text"
    SINGLE_CHOICE = "single_choice"
    SINGLE_CHOICE_CUSTOM = "single_choice_custom"
    MULTI_CHOICE = "multi_choice"
    MULTI_CHOICE_CUSTOM = "multi_choice_custom"
    PHOTO = "photo"
    REMOTE_ACTIVITY = "remote_activity"
    MILITARY_TIME = "military_time"
    BOOLEAN_ARRAY = "boolean_array"
    INTEGER_MAP = "integer_map"

    @property
    def is_numeric(self) -> bool:
        """Whether responses are numbers that conditions may order with < and >."""
        return self in (PromptType.NUMBER, PromptType.HOURS_BEFORE_NOW)

    @property
    def allows_null(self) -> bool:
        """Whether a JSON null (or the text "null") is an acceptable value."""
        return self in (PromptType.PHOTO, PromptType.REMOTE_ACTIVITY)

    @property
    def is_custom_choice(self) -> bool:
        """Whether the upload carries its own choice set."""
        return self in (PromptType.SINGLE_CHOICE_CUSTOM, PromptType.MULTI_CHOICE_CUSTOM)


_BOUNDED_TYPES = (PromptType.NUMBER, PromptType.HOURS_BEFORE_NOW, PromptType.TEXT)
_CHOICE_TYPES = (PromptType.SINGLE_CHOICE, PromptType.MULTI_CHOICE, PromptType.INTEGER_MAP)


class Prompt(BaseModel):
    """A single question in a survey.

    Only the type-specific properties relevant to `type` are required; the
    rest are ignored by the validators.

    Attributes:
        id: Prompt identifier, unique within its survey
        type: Prompt type
        text: Question text shown to the participant
        display_label: Short label used when presenting results
        condition: Condition sentence deciding whether the prompt is displayed
        skippable: Whether the participant may skip the prompt
        default_response: Default value offered by clients
        min: Inclusive lower bound (number value or text length)
        max: Inclusive upper bound (number value or text length)
        choices: Choice key to label map for choice and integer map prompts
        length: Required array length for boolean array prompts
        retries: Number of retries allowed for remote activity prompts
        min_runs: Minimum number of runs for remote activity prompts
        package: Remote activity package name
        activity: Remote activity class name
        action: Remote activity intent action
        autolaunch: Whether the remote activity launches automatically
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Prompt identifier")
    type: PromptType = Field(..., description="Prompt type")
    text: str = Field(default="", description="Question text")
    display_label: Optional[str] = Field(None, description="Display label")
    condition: Optional[str] = Field(None, min_length=1, description="Display condition sentence")
    skippable: bool = Field(default=False, description="Whether the prompt may be skipped")
    default_response: Optional[Any] = Field(None, description="Default response value")

    min: Optional[int] = Field(None, description="Inclusive lower bound")
    max: Optional[int] = Field(None, description="Inclusive upper bound")
    choices: Optional[dict[str, str]] = Field(None, description="Choice key to label map")
    length: Optional[int] = Field(None, ge=1, description="Boolean array length")
    retries: Optional[int] = Field(None, ge=0, description="Remote activity retries")
    min_runs: Optional[int] = Field(None, ge=0, description="Remote activity minimum runs")
    package: Optional[str] = Field(None, min_length=1, description="Remote activity package")
    activity: Optional[str] = Field(None, min_length=1, description="Remote activity class")
    action: Optional[str] = Field(None, min_length=1, description="Remote activity action")
    autolaunch: bool = Field(default=False, description="Launch the remote activity automatically")

    @field_validator("choices", mode="before")
    @classmethod
    def choices_as_strings(cls, v):
        """YAML reads keys like `1:` as integers; choice keys are matched as text."""
        if isinstance(v, dict):
            return {str(key): str(label) for key, label in v.items()}
        return v

    @model_validator(mode="after")
    def validate_type_properties(self):
        """Validate type-specific properties based on the prompt type."""
        if self.type in _BOUNDED_TYPES:
            if self.min is None or self.max is None:
                raise ValueError(f"{self.type.value} prompt '{self.id}' must have 'min' and 'max'")
            if self.min > self.max:
                raise ValueError(f"Prompt '{self.id}' has 'min' greater than 'max'")
            if self.type == PromptType.TEXT and self.min < 0:
                raise ValueError(f"Text prompt '{self.id}' cannot have a negative 'min'")

        if self.type in _CHOICE_TYPES and not self.choices:
            raise ValueError(f"{self.type.value} prompt '{self.id}' must have 'choices'")

        if self.type == PromptType.INTEGER_MAP:
            for key in self.choices:
                try:
                    int(key)
                except ValueError:
                    raise ValueError(f"Integer map prompt '{self.id}' has non-integer key '{key}'")

        if self.type == PromptType.BOOLEAN_ARRAY and self.length is None:
            raise ValueError(f"Boolean array prompt '{self.id}' must have 'length'")

        if self.type == PromptType.REMOTE_ACTIVITY:
            if self.retries is None:
                raise ValueError(f"Remote activity prompt '{self.id}' must have 'retries'")
            if not (self.package and self.activity and self.action):
                raise ValueError(
                    f"Remote activity prompt '{self.id}' must have 'package', 'activity' and 'action'"
                )
            if self.min_runs is not None and self.min_runs > self.retries + 1:
                raise ValueError(
                    f"Remote activity prompt '{self.id}' has 'min_runs' greater than 'retries' + 1"
                )

        return self

    @property
    def choice_keys(self) -> frozenset[str]:
        """Configured choice keys, empty when the prompt has no choices."""
        return frozenset(self.choices or ())


class RepeatableSet(BaseModel):
    """A group of prompts answered zero or more times within one survey.

    Attributes:
        id: Repeatable set identifier, unique within its survey
        condition: Condition sentence deciding whether the set is displayed
        termination_question: Question asking whether to run another iteration
        prompts: Ordered prompts answered in every iteration
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Repeatable set identifier")
    condition: Optional[str] = Field(None, min_length=1, description="Display condition sentence")
    termination_question: str = Field(default="", description="Termination question text")
    prompts: list[Prompt] = Field(..., min_length=1, description="Prompts in each iteration")

    @model_validator(mode="after")
    def validate_unique_prompts(self):
        """Ensure prompt IDs are unique within the set."""
        prompt_ids = [prompt.id for prompt in self.prompts]
        if len(prompt_ids) != len(set(prompt_ids)):
            duplicates = sorted({pid for pid in prompt_ids if prompt_ids.count(pid) > 1})
            raise ValueError(f"Duplicate prompt IDs in repeatable set '{self.id}': {duplicates}")
        return self

    def get_prompt(self, prompt_id: str) -> Optional[Prompt]:
        """Get a prompt of this set by ID, or None."""
        for prompt in self.prompts:
            if prompt.id == prompt_id:
                return prompt
        return None


class SurveyItem(BaseModel):
    """One entry of a survey: either a prompt or a repeatable set."""
    model_config = ConfigDict(frozen=True)

    prompt: Optional[Prompt] = None
    repeatable_set: Optional[RepeatableSet] = None

    @model_validator(mode="after")
    def validate_exactly_one(self):
        """Ensure the item is exactly one of prompt / repeatable_set."""
        if (self.prompt is None) == (self.repeatable_set is None):
            raise ValueError("A survey item must define exactly one of 'prompt' or 'repeatable_set'")
        return self

    @property
    def item(self) -> Union[Prompt, RepeatableSet]:
        """The prompt or repeatable set this entry holds."""
        return self.prompt if self.prompt is not None else self.repeatable_set

    @property
    def id(self) -> str:
        return self.item.id


class Survey(BaseModel):
    """A survey definition.

    Attributes:
        id: Survey identifier, unique within the campaign
        title: Human-readable title
        description: Survey description
        items: Ordered prompts and repeatable sets
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Survey identifier")
    title: str = Field(..., min_length=1, description="Survey title")
    description: str = Field(default="", description="Survey description")
    items: list[SurveyItem] = Field(..., min_length=1, description="Ordered survey items")

    @model_validator(mode="after")
    def validate_unique_ids(self):
        """Ensure item IDs, including prompts inside repeatable sets, are unique."""
        seen = set()
        duplicates = set()
        for item in self.items:
            ids = [item.id]
            if item.repeatable_set is not None:
                ids.extend(prompt.id for prompt in item.repeatable_set.prompts)
            for item_id in ids:
                if item_id in seen:
                    duplicates.add(item_id)
                seen.add(item_id)
        if duplicates:
            raise ValueError(f"Duplicate item IDs in survey '{self.id}': {sorted(duplicates)}")
        return self

    def iter_items(self) -> Iterator[Union[Prompt, RepeatableSet]]:
        """Iterate over the top-level prompts and repeatable sets in order."""
        for item in self.items:
            yield item.item


class CampaignMetadata(BaseModel):
    """Campaign metadata and identification.

    Attributes:
        id: Campaign identifier (matches the YAML filename)
        name: Human-readable campaign name
        description: Campaign description
        version: Campaign version (semantic versioning)
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Campaign identifier")
    name: str = Field(..., min_length=1, description="Campaign name")
    description: str = Field(default="", description="Campaign description")
    version: str = Field(..., pattern=r'^\d+\.\d+\.\d+$', description="Semantic version")

    @field_validator('id')
    @classmethod
    def id_alphanumeric(cls, v):
        """Ensure ID is alphanumeric with underscores/hyphens only."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Campaign ID must be alphanumeric with underscores/hyphens')
        return v


class Campaign(BaseModel):
    """Complete campaign definition.

    Root schema for campaign YAML files.
    """
    model_config = ConfigDict(frozen=True)

    metadata: CampaignMetadata
    surveys: list[Survey] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_unique_surveys(self):
        """Ensure survey IDs are unique."""
        survey_ids = [survey.id for survey in self.surveys]
        if len(survey_ids) != len(set(survey_ids)):
            duplicates = sorted({sid for sid in survey_ids if survey_ids.count(sid) > 1})
            raise ValueError(f"Duplicate survey IDs found: {duplicates}")
        return self

    def get_survey(self, survey_id: str) -> Optional[Survey]:
        """Get survey by ID.

        Args:
            survey_id: Survey identifier

        Returns:
            Survey if found, None otherwise
        """
        for survey in self.surveys:
            if survey.id == survey_id:
                return survey
        return None
