"""Condition engine.

Parses condition sentences into immutable trees, validates them against the
survey items declared before the conditioned prompt, and evaluates them
against a map of earlier responses.
"""

from survey_intake.conditions.errors import (
    ConditionError,
    ConditionEvaluationError,
    ConditionSyntaxError,
    ConditionValidationError,
)
from survey_intake.conditions.parser import ConditionParser, parse_condition
from survey_intake.conditions.tree import (
    Comparison,
    ComparisonOperator,
    Condition,
    Conjunction,
    Fragment,
    LogicalOperator,
    NoResponseValue,
    Not,
    Number,
    Parenthetical,
    PromptId,
    Terminal,
    Text,
)

__all__ = [
    "ConditionError",
    "ConditionEvaluationError",
    "ConditionSyntaxError",
    "ConditionValidationError",
    "ConditionParser",
    "parse_condition",
    "Comparison",
    "ComparisonOperator",
    "Condition",
    "Conjunction",
    "Fragment",
    "LogicalOperator",
    "NoResponseValue",
    "Not",
    "Number",
    "Parenthetical",
    "PromptId",
    "Terminal",
    "Text",
]
