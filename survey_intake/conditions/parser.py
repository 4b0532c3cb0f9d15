"""Parser for condition sentences.

A condition sentence decides whether a prompt is displayed, e.g.

    p1 == "a" AND (p2 < 5 OR NOT p3)

Sentences are split into words on whitespace and on the structural
characters `(` and `)`; double-quoted text is kept as a single word, so
parentheses inside it are part of the text. Each word is classified, in
this order:

1. `!` or `NOT`: negation
2. `AND` / `OR`: conjunction
3. `==`, `!=`, `<`, `<=`, `>`, `>=`: comparator
4. a terminal: `SKIPPED` / `NOT_DISPLAYED`, quoted text, a number, and
   otherwise a prompt ID

The words are then read by a small recursive-descent parser:

    or_expr  := and_expr ("OR" and_expr)*
    and_expr := unary ("AND" unary)*
    unary    := ("!" | "NOT") unary | primary
    primary  := "(" or_expr ")" | terminal [comparator terminal]

Each call to `parse_condition` builds a fresh parser, so parsers are never
shared between callers.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from survey_intake.conditions.errors import ConditionSyntaxError
from survey_intake.conditions.tree import (
    NUMERIC_PATTERN,
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
from survey_intake.logging_config import get_logger
from survey_intake.schemas.responses import NoResponse

logger = get_logger(__name__)

PARENTHETICAL_START = "("
PARENTHETICAL_END = ")"
QUOTE = '"'
NEGATIONS = frozenset({"!", "NOT"})


class TokenKind(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    NOT = "not"
    CONJUNCTION = "conjunction"
    COMPARATOR = "comparator"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Token:
    """A classified word and where it sits in the sentence."""
    kind: TokenKind
    text: str
    start: int
    end: int


def tokenize(sentence: str, start: int = 0) -> list[Token]:
    """Split a sentence into classified tokens, starting at `start`.

    Raises:
        ConditionSyntaxError: If a quoted text is never closed
    """
    tokens: list[Token] = []
    word_start: Optional[int] = None
    pos = start
    length = len(sentence)

    def end_word(end: int) -> None:
        nonlocal word_start
        if word_start is not None:
            tokens.append(_classify(sentence[word_start:end], word_start, end))
            word_start = None

    while pos < length:
        char = sentence[pos]
        if char.isspace():
            end_word(pos)
        elif char == PARENTHETICAL_START or char == PARENTHETICAL_END:
            end_word(pos)
            kind = TokenKind.OPEN if char == PARENTHETICAL_START else TokenKind.CLOSE
            tokens.append(Token(kind, char, pos, pos + 1))
        elif char == QUOTE and word_start is None:
            closing = sentence.find(QUOTE, pos + 1)
            if closing == -1:
                raise ConditionSyntaxError(f"Unterminated text starting at position {pos}: {sentence}")
            tokens.append(_classify(sentence[pos:closing + 1], pos, closing + 1))
            pos = closing
        elif word_start is None:
            word_start = pos
        pos += 1

    end_word(length)
    return tokens


def _classify(word: str, start: int, end: int) -> Token:
    if word in NEGATIONS:
        kind = TokenKind.NOT
    elif word in (LogicalOperator.AND.value, LogicalOperator.OR.value):
        kind = TokenKind.CONJUNCTION
    elif word in {op.value for op in ComparisonOperator}:
        kind = TokenKind.COMPARATOR
    else:
        kind = TokenKind.TERMINAL
    return Token(kind, word, start, end)


def parse_terminal(word: str) -> Terminal:
    """Turn a terminal word into its fragment.

    Example:
        >>> parse_terminal('"yes"')
        Text(value='yes')
        >>> parse_terminal("2.5")
        Number(value=Decimal('2.5'))
        >>> parse_terminal("p1")
        PromptId(prompt_id='p1')
    """
    if word == NoResponse.SKIPPED.value:
        return NoResponseValue(NoResponse.SKIPPED)
    if word == NoResponse.NOT_DISPLAYED.value:
        return NoResponseValue(NoResponse.NOT_DISPLAYED)
    if len(word) >= 2 and word.startswith(QUOTE) and word.endswith(QUOTE):
        return Text(word[1:-1])
    if NUMERIC_PATTERN.fullmatch(word):
        return Number(Decimal(word))
    return PromptId(word)


class ConditionParser:
    """Recursive-descent parser over one condition sentence."""

    def __init__(self, sentence: str):
        if sentence is None:
            raise ConditionSyntaxError("The condition is null")
        self.sentence = sentence
        self._tokens: list[Token] = []
        self._index = 0

    def parse(self, start: int = 0) -> tuple[Condition, int]:
        """Parse the sentence from `start` to its end.

        Args:
            start: Zero-based offset to begin parsing at

        Returns:
            Tuple of (condition, number of characters consumed)

        Raises:
            ConditionSyntaxError: If the sentence is not a valid condition
        """
        self._tokens = tokenize(self.sentence, start)
        self._index = 0

        if not self._tokens:
            raise ConditionSyntaxError(f"The condition is empty: '{self.sentence}'")

        root = self._parse_or()

        leftover = self._peek()
        if leftover is not None:
            raise ConditionSyntaxError(self._describe_leftover(leftover))

        return Condition(root=root, sentence=self.sentence[start:].strip()), len(self.sentence) - start

    def _peek(self) -> Optional[Token]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError(f"Unexpected end of condition: '{self.sentence}'")
        self._index += 1
        return token

    def _parse_or(self) -> Fragment:
        left = self._parse_and()
        while self._at_conjunction(LogicalOperator.OR):
            self._advance()
            left = Conjunction(LogicalOperator.OR, left, self._parse_and())
        return left

    def _parse_and(self) -> Fragment:
        left = self._parse_unary()
        while self._at_conjunction(LogicalOperator.AND):
            self._advance()
            left = Conjunction(LogicalOperator.AND, left, self._parse_unary())
        return left

    def _at_conjunction(self, operator: LogicalOperator) -> bool:
        token = self._peek()
        return token is not None and token.kind == TokenKind.CONJUNCTION and token.text == operator.value

    def _parse_unary(self) -> Fragment:
        token = self._peek()
        if token is not None and token.kind == TokenKind.NOT:
            self._advance()
            return Not(self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Fragment:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError(f"Expected an operand at the end of: '{self.sentence}'")

        if token.kind == TokenKind.OPEN:
            return self._parse_parenthetical()

        if token.kind == TokenKind.TERMINAL:
            self._advance()
            left = parse_terminal(token.text)
            comparator = self._peek()
            if comparator is None or comparator.kind != TokenKind.COMPARATOR:
                return left
            self._advance()
            right = self._peek()
            if right is None or right.kind != TokenKind.TERMINAL:
                raise ConditionSyntaxError(
                    f"The '{comparator.text}' comparator does not have a right operand: '{self.sentence}'"
                )
            self._advance()
            return Comparison(ComparisonOperator(comparator.text), left, parse_terminal(right.text))

        if token.kind == TokenKind.COMPARATOR:
            raise ConditionSyntaxError(
                f"The '{token.text}' comparator does not have a left operand: '{self.sentence}'"
            )
        if token.kind == TokenKind.CONJUNCTION:
            raise ConditionSyntaxError(
                f"The '{token.text}' conjunction does not have a left operand: '{self.sentence}'"
            )
        raise ConditionSyntaxError(f"Unexpected '{token.text}' at position {token.start}: '{self.sentence}'")

    def _parse_parenthetical(self) -> Parenthetical:
        opening = self._advance()
        if self._peek() is not None and self._peek().kind == TokenKind.CLOSE:
            raise ConditionSyntaxError(f"Empty parenthetical at position {opening.start}: '{self.sentence}'")

        inner = self._parse_or()

        closing = self._peek()
        if closing is None or closing.kind != TokenKind.CLOSE:
            raise ConditionSyntaxError(
                f"Parenthetical opened at position {opening.start} is never closed: '{self.sentence}'"
            )
        self._advance()

        sub_sentence = self.sentence[opening.end:closing.start].strip()
        return Parenthetical(Condition(root=inner, sentence=sub_sentence))

    def _describe_leftover(self, token: Token) -> str:
        if token.kind == TokenKind.CLOSE:
            return f"Unmatched ')' at position {token.start}: '{self.sentence}'"
        if token.kind == TokenKind.TERMINAL:
            return f"More than one terminal in a row at '{token.text}': '{self.sentence}'"
        if token.kind == TokenKind.COMPARATOR:
            return f"A comparator cannot be compared to another comparator at '{token.text}': '{self.sentence}'"
        return f"Unexpected '{token.text}' at position {token.start}: '{self.sentence}'"


def parse_condition(sentence: str) -> Condition:
    """Parse a condition sentence into an immutable tree.

    Args:
        sentence: The condition text

    Returns:
        The parsed Condition

    Raises:
        ConditionSyntaxError: If the parentheses do not balance or the
            sentence is otherwise malformed

    Example:
        >>> parse_condition('p1 == "a"').root
        Comparison(operator=<ComparisonOperator.EQUALS: '=='>, left=PromptId(prompt_id='p1'), right=Text(value='a'))
    """
    if sentence is None:
        raise ConditionSyntaxError("The condition is null")

    # Parentheses inside quoted text are not counted
    tokens = tokenize(sentence)
    opened = sum(1 for token in tokens if token.kind == TokenKind.OPEN)
    closed = sum(1 for token in tokens if token.kind == TokenKind.CLOSE)
    if opened != closed:
        raise ConditionSyntaxError(f"Parenthetical mismatch: {sentence}")

    condition, _ = ConditionParser(sentence).parse()
    logger.debug(f"Parsed condition '{sentence}' as '{condition}'")
    return condition
