"""Immutable condition trees.

A condition is a tree of fragments. Leaves are terminals (quoted text,
numbers, prompt references and the no-response keywords); inner nodes are
comparisons between two terminals, negations, parentheticals wrapping a
nested condition, and AND/OR conjunctions.

Trees hold no mutable state, so one parsed condition can be evaluated
against any number of response maps, from any number of threads.
"""

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from survey_intake.conditions.errors import (
    ConditionEvaluationError,
    ConditionValidationError,
)
from survey_intake.schemas.campaign import Prompt
from survey_intake.schemas.responses import NoResponse

NUMERIC_PATTERN = re.compile(r'[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')

_COLLECTION_TYPES = (list, tuple, set, frozenset)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def as_number(value: Any) -> Optional[float]:
    """Resolve a value to a finite float, or None if it is not numeric.

    Numbers and numeric strings resolve; booleans, NaN and infinities do not.
    """
    if isinstance(value, NoResponse):
        return None
    if _is_number(value):
        number = float(value)
    elif isinstance(value, str) and NUMERIC_PATTERN.fullmatch(value.strip()):
        number = float(value.strip())
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def values_equal(left: Any, right: Any) -> bool:
    """Equality used by == and !=.

    - No-response values only equal the same no-response value.
    - A collection equals a value when it contains that value.
    - When either side is a number, both sides compare as floats.
    - Otherwise natural equality.
    """
    if isinstance(left, NoResponse) or isinstance(right, NoResponse):
        return left is right
    if isinstance(left, _COLLECTION_TYPES):
        return any(values_equal(item, right) for item in left)
    if isinstance(right, _COLLECTION_TYPES):
        return any(values_equal(left, item) for item in right)
    if _is_number(left) or _is_number(right):
        left_number = as_number(left)
        right_number = as_number(right)
        if left_number is not None and right_number is not None:
            return left_number == right_number
    return left == right


class ComparisonOperator(str, Enum):
    """Comparators allowed between two terminals."""
    EQUALS = "=="
    NOT_EQUALS = "!="
    LESS_THAN = "<"
    LESS_THAN_EQUALS = "<="
    GREATER_THAN = ">"
    GREATER_THAN_EQUALS = ">="

    @property
    def is_ordering(self) -> bool:
        """Whether the comparator only makes sense between numbers."""
        return self not in (ComparisonOperator.EQUALS, ComparisonOperator.NOT_EQUALS)

    def apply(self, left: Any, right: Any) -> bool:
        if self == ComparisonOperator.EQUALS:
            return values_equal(left, right)
        if self == ComparisonOperator.NOT_EQUALS:
            return not values_equal(left, right)

        left_number = as_number(left)
        right_number = as_number(right)
        if left_number is None or right_number is None:
            return False

        if self == ComparisonOperator.LESS_THAN:
            return left_number < right_number
        if self == ComparisonOperator.LESS_THAN_EQUALS:
            return left_number <= right_number
        if self == ComparisonOperator.GREATER_THAN:
            return left_number > right_number
        return left_number >= right_number


class LogicalOperator(str, Enum):
    """Conjunctions joining two fragments."""
    AND = "AND"
    OR = "OR"


class Fragment(ABC):
    """A node of a condition tree."""

    @abstractmethod
    def evaluate(self, responses: Mapping[str, Any]) -> bool:
        """Decide this fragment's truth value given earlier responses."""

    @abstractmethod
    def validate(self, survey_items: Mapping[str, Any]) -> None:
        """Check this fragment against the survey items declared before it.

        Raises:
            ConditionValidationError: If the fragment does not fit the survey
        """

    @abstractmethod
    def iter_prompt_ids(self) -> Iterator[str]:
        """Yield the IDs of every prompt this fragment references."""


class Terminal(Fragment):
    """A leaf value."""

    @abstractmethod
    def resolve(self, responses: Mapping[str, Any]) -> Any:
        """The value this terminal stands for when compared."""

    def validate(self, survey_items: Mapping[str, Any]) -> None:
        pass

    def iter_prompt_ids(self) -> Iterator[str]:
        return iter(())

    def is_numeric(self, survey_items: Mapping[str, Any]) -> bool:
        """Whether the terminal always resolves to a number."""
        return False


@dataclass(frozen=True)
class Text(Terminal):
    """A quoted text literal."""
    value: str

    def resolve(self, responses):
        return self.value

    def evaluate(self, responses):
        return True

    def __str__(self) -> str:
        return f'"{self.value}"'


@dataclass(frozen=True)
class Number(Terminal):
    """A numeric literal."""
    value: Decimal

    def resolve(self, responses):
        return self.value

    def evaluate(self, responses):
        return True

    def is_numeric(self, survey_items):
        return True

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class NoResponseValue(Terminal):
    """The SKIPPED or NOT_DISPLAYED keyword."""
    value: NoResponse

    def resolve(self, responses):
        return self.value

    def evaluate(self, responses):
        return False

    def __str__(self) -> str:
        return self.value.value


@dataclass(frozen=True)
class PromptId(Terminal):
    """A reference to an earlier prompt's response."""
    prompt_id: str

    def resolve(self, responses):
        try:
            return responses[self.prompt_id]
        except KeyError:
            raise ConditionEvaluationError(
                f"No response for '{self.prompt_id}' in the response map"
            ) from None

    def evaluate(self, responses):
        return not isinstance(self.resolve(responses), NoResponse)

    def validate(self, survey_items):
        if self.prompt_id not in survey_items:
            raise ConditionValidationError(
                f"Condition references unknown or later prompt '{self.prompt_id}'"
            )

    def iter_prompt_ids(self):
        yield self.prompt_id

    def is_numeric(self, survey_items):
        item = survey_items.get(self.prompt_id)
        return isinstance(item, Prompt) and item.type.is_numeric

    def __str__(self) -> str:
        return self.prompt_id


@dataclass(frozen=True)
class Comparison(Fragment):
    """Two terminals joined by a comparator, e.g. `p1 == "a"`."""
    operator: ComparisonOperator
    left: Terminal
    right: Terminal

    def evaluate(self, responses):
        return self.operator.apply(self.left.resolve(responses), self.right.resolve(responses))

    def validate(self, survey_items):
        self.left.validate(survey_items)
        self.right.validate(survey_items)

        if self.operator.is_ordering:
            for operand in (self.left, self.right):
                if not operand.is_numeric(survey_items):
                    raise ConditionValidationError(
                        f"The '{self.operator.value}' operator may only be used with "
                        f"numbers and number prompts, not '{operand}'"
                    )

    def iter_prompt_ids(self):
        yield from self.left.iter_prompt_ids()
        yield from self.right.iter_prompt_ids()

    def __str__(self) -> str:
        return f"{self.left} {self.operator.value} {self.right}"


@dataclass(frozen=True)
class Not(Fragment):
    """Logical negation of one fragment."""
    operand: Fragment

    def evaluate(self, responses):
        return not self.operand.evaluate(responses)

    def validate(self, survey_items):
        self.operand.validate(survey_items)

    def iter_prompt_ids(self):
        return self.operand.iter_prompt_ids()

    def __str__(self) -> str:
        return f"! {self.operand}"


@dataclass(frozen=True)
class Conjunction(Fragment):
    """Two fragments joined by AND or OR."""
    operator: LogicalOperator
    left: Fragment
    right: Fragment

    def evaluate(self, responses):
        if self.operator == LogicalOperator.AND:
            return self.left.evaluate(responses) and self.right.evaluate(responses)
        return self.left.evaluate(responses) or self.right.evaluate(responses)

    def validate(self, survey_items):
        self.left.validate(survey_items)
        self.right.validate(survey_items)

    def iter_prompt_ids(self):
        yield from self.left.iter_prompt_ids()
        yield from self.right.iter_prompt_ids()

    def __str__(self) -> str:
        return f"{self.left} {self.operator.value} {self.right}"


@dataclass(frozen=True)
class Parenthetical(Fragment):
    """A nested condition written in parentheses."""
    condition: "Condition"

    def evaluate(self, responses):
        return self.condition.evaluate(responses)

    def validate(self, survey_items):
        self.condition.validate(survey_items)

    def iter_prompt_ids(self):
        return self.condition.root.iter_prompt_ids()

    def __str__(self) -> str:
        return f"({self.condition})"


@dataclass(frozen=True)
class Condition:
    """A parsed condition sentence.

    Two conditions are equal when their trees are equal, regardless of how
    the source sentences were spaced.

    Attributes:
        root: Root fragment of the tree
        sentence: Source text the tree was parsed from
    """
    root: Fragment
    sentence: str = field(default="", compare=False)

    def validate(self, survey_items: Mapping[str, Any]) -> None:
        """Check the condition against the items declared before its prompt.

        Args:
            survey_items: Map of survey item ID to its Prompt or RepeatableSet

        Raises:
            ConditionValidationError: If a referenced prompt is unknown, or an
                ordering comparator is used on a non-numeric operand
        """
        self.root.validate(survey_items)

    def evaluate(self, responses: Mapping[str, Any]) -> bool:
        """Decide whether the conditioned prompt should have been displayed.

        Args:
            responses: Map of earlier prompt IDs to their normalized values
                or NoResponse

        Returns:
            True if the prompt should have been displayed

        Raises:
            ConditionEvaluationError: If a referenced prompt is not in `responses`
        """
        return self.root.evaluate(responses)

    def prompt_ids(self) -> frozenset[str]:
        """IDs of every prompt the condition references."""
        return frozenset(self.root.iter_prompt_ids())

    def __str__(self) -> str:
        return str(self.root)
