"""Read-only lookups over a loaded campaign.

CampaignConfiguration is built once per campaign. Building it parses every
condition sentence in the campaign and validates each one against the items
declared before the item it conditions:

- a top-level prompt or repeatable set may reference earlier top-level
  prompts and repeatable sets;
- a prompt inside a repeatable set may also reference earlier prompts of
  the same set.

After construction nothing is modified, so one configuration may serve any
number of concurrent uploads.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Union

from survey_intake.conditions import Condition, ConditionError, parse_condition
from survey_intake.logging_config import get_logger
from survey_intake.schemas.campaign import Campaign, Prompt, PromptType, RepeatableSet, Survey

logger = get_logger(__name__)

SurveyElement = Union[Prompt, RepeatableSet]


class CampaignConfigurationError(Exception):
    """Raised when a campaign's conditions do not fit its surveys."""
    pass


class ConfigurationLookupError(Exception):
    """Raised when asking for a survey, prompt or repeatable set that does not exist."""
    pass


class CampaignConfiguration:
    """Lookups used while validating uploads for one campaign."""

    def __init__(self, campaign: Campaign):
        """Build lookups and parse every condition.

        Args:
            campaign: Validated campaign definition

        Raises:
            CampaignConfigurationError: If a condition cannot be parsed or
                references an item that is not declared before it
        """
        self.campaign = campaign
        self._surveys: dict[str, Survey] = {survey.id: survey for survey in campaign.surveys}
        self._items: dict[str, Mapping[str, SurveyElement]] = {}
        self._conditions: dict[tuple[str, str], Condition] = {}

        for survey in campaign.surveys:
            self._items[survey.id] = MappingProxyType({item.id: item.item for item in survey.items})
            self._parse_conditions(survey)

        logger.info(
            f"Built configuration for campaign {self.campaign_id}: "
            f"{len(self._surveys)} surveys, {len(self._conditions)} conditions",
            extra={"campaign_id": self.campaign_id},
        )

    @property
    def campaign_id(self) -> str:
        return self.campaign.metadata.id

    def _parse_conditions(self, survey: Survey) -> None:
        declared: dict[str, SurveyElement] = {}

        for item in survey.iter_items():
            self._parse_condition(survey.id, item, declared)

            if isinstance(item, RepeatableSet):
                declared_in_set = dict(declared)
                for prompt in item.prompts:
                    self._parse_condition(survey.id, prompt, declared_in_set)
                    declared_in_set[prompt.id] = prompt

            declared[item.id] = item

    def _parse_condition(self, survey_id: str, item: SurveyElement, declared: Mapping[str, SurveyElement]) -> None:
        if item.condition is None:
            return
        try:
            condition = parse_condition(item.condition)
            condition.validate(declared)
        except ConditionError as e:
            logger.error(
                f"Invalid condition on {survey_id}.{item.id}: {e}",
                extra={"campaign_id": self.campaign_id, "survey_id": survey_id, "prompt_id": item.id},
            )
            raise CampaignConfigurationError(
                f"Invalid condition on '{item.id}' in survey '{survey_id}': {e}"
            ) from e
        self._conditions[(survey_id, item.id)] = condition

    def survey_id_exists(self, survey_id: str) -> bool:
        return survey_id in self._surveys

    def get_survey(self, survey_id: str) -> Survey:
        try:
            return self._surveys[survey_id]
        except KeyError:
            raise ConfigurationLookupError(
                f"Survey '{survey_id}' does not exist in campaign '{self.campaign_id}'"
            ) from None

    def survey_items(self, survey_id: str) -> Mapping[str, SurveyElement]:
        """Top-level prompts and repeatable sets of a survey, by ID, in survey order."""
        self.get_survey(survey_id)
        return self._items[survey_id]

    def repeatable_set_exists(self, survey_id: str, repeatable_set_id: str) -> bool:
        items = self._items.get(survey_id, {})
        return isinstance(items.get(repeatable_set_id), RepeatableSet)

    def get_repeatable_set(self, survey_id: str, repeatable_set_id: str) -> RepeatableSet:
        if not self.repeatable_set_exists(survey_id, repeatable_set_id):
            raise ConfigurationLookupError(
                f"Repeatable set '{repeatable_set_id}' does not exist in survey '{survey_id}'"
            )
        return self._items[survey_id][repeatable_set_id]

    def number_of_prompts_in_repeatable_set(self, survey_id: str, repeatable_set_id: str) -> int:
        return len(self.get_repeatable_set(survey_id, repeatable_set_id).prompts)

    def _find_prompt(self, survey_id: str, prompt_id: str, repeatable_set_id: Optional[str]) -> Optional[Prompt]:
        if repeatable_set_id is not None:
            if not self.repeatable_set_exists(survey_id, repeatable_set_id):
                return None
            return self._items[survey_id][repeatable_set_id].get_prompt(prompt_id)

        item = self._items.get(survey_id, {}).get(prompt_id)
        return item if isinstance(item, Prompt) else None

    def prompt_exists(self, survey_id: str, prompt_id: str, repeatable_set_id: Optional[str] = None) -> bool:
        """Whether the prompt exists at the top level, or in the given repeatable set."""
        return self._find_prompt(survey_id, prompt_id, repeatable_set_id) is not None

    def get_prompt(self, survey_id: str, prompt_id: str, repeatable_set_id: Optional[str] = None) -> Prompt:
        """Get a prompt.

        Raises:
            ConfigurationLookupError: If the prompt does not exist in that scope
        """
        prompt = self._find_prompt(survey_id, prompt_id, repeatable_set_id)
        if prompt is None:
            scope = f"repeatable set '{repeatable_set_id}' of " if repeatable_set_id else ""
            raise ConfigurationLookupError(f"Prompt '{prompt_id}' does not exist in {scope}survey '{survey_id}'")
        return prompt

    def get_prompt_type(self, survey_id: str, prompt_id: str, repeatable_set_id: Optional[str] = None) -> PromptType:
        return self.get_prompt(survey_id, prompt_id, repeatable_set_id).type

    def get_condition(self, survey_id: str, item_id: str) -> Optional[Condition]:
        """Parsed condition of a prompt or repeatable set, or None if it has none.

        Item IDs are unique within a survey, including prompts nested in
        repeatable sets, so the survey and item ID identify one item.
        """
        self.get_survey(survey_id)
        return self._conditions.get((survey_id, item_id))
