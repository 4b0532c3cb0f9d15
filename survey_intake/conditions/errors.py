"""Exceptions raised by the condition engine."""


class ConditionError(Exception):
    """Base class for condition errors."""
    pass


class ConditionSyntaxError(ConditionError):
    """Raised when a condition sentence cannot be parsed."""
    pass


class ConditionValidationError(ConditionError):
    """Raised when a parsed condition does not fit the survey it belongs to.

    Examples are references to unknown prompts and ordering comparisons
    on prompts that are not numeric.
    """
    pass


class ConditionEvaluationError(ConditionError):
    """Raised when a condition is evaluated against responses it cannot use.

    This indicates a caller bug: the response map must contain every prompt
    the condition references before it is evaluated.
    """
    pass
