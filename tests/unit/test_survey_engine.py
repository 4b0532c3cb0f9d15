"""Unit tests for survey payload validation.

Tests the walk over uploaded survey objects: flat prompts, repeatable sets,
display-condition consistency and the rejection paths reported to clients.
"""

import pytest

from survey_intake.schemas.responses import NoResponse
from survey_intake.services.survey_engine import (
    CODE_INVALID_JSON,
    CODE_INVALID_PROMPT_ID,
    CODE_INVALID_RESPONSES,
    CODE_INVALID_SURVEY_ID,
    Accepted,
    Rejected,
    SurveyEngineError,
    SurveyResponseValidator,
    parse_flag,
    validate_survey,
)
from survey_intake.services.validation import ValidatorRegistry


@pytest.fixture
def choice_configuration(configuration_factory):
    """Survey `s1`: p1 single_choice {"1": yes, "2": no}; p2 text shown when p1 == "1"."""
    return configuration_factory({
        "id": "s1",
        "title": "Choice",
        "items": [
            {"prompt": {"id": "p1", "type": "single_choice", "choices": {"1": "yes", "2": "no"}}},
            {"prompt": {"id": "p2", "type": "text", "min": 1, "max": 20, "condition": 'p1 == "1"'}},
        ],
    })


def prompt(prompt_id, value, **extra):
    return {"prompt_id": prompt_id, "value": value, **extra}


def repeatable(repeatable_set_id, iterations, skipped=False, not_displayed=False):
    return {
        "repeatable_set_id": repeatable_set_id,
        "skipped": skipped,
        "not_displayed": not_displayed,
        "responses": iterations,
    }


def survey(*responses, survey_id="s1"):
    return {"survey_id": survey_id, "responses": list(responses)}


class TestScenarios:
    """End-to-end scenarios over small surveys."""

    def test_single_choice_accepted(self, choice_configuration):
        """Test a valid choice is accepted."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "1"), prompt("p2", "hello")))
        assert isinstance(result, Accepted)
        assert result.survey_id == "s1"
        assert result.responses == {"p1": "1", "p2": "hello"}

    def test_only_first_prompt_accepted(self, choice_configuration):
        """Test a survey answering only p1 is accepted."""
        assert isinstance(validate_survey(choice_configuration, survey(prompt("p1", "1"))), Accepted)

    def test_unknown_choice_rejected(self, choice_configuration):
        """Test an unknown choice is rejected with a reason naming p1."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "3")))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[0].p1"
        assert "p1" in result.message
        assert result.code == CODE_INVALID_RESPONSES

    def test_iteration_with_too_few_prompts(self, configuration_factory):
        """Test an iteration supplying 1 of 2 prompts is rejected."""
        config = configuration_factory({
            "id": "s1",
            "title": "Sets",
            "items": [{"repeatable_set": {"id": "rs1", "prompts": [
                {"id": "a", "type": "photo"},
                {"id": "b", "type": "military_time"},
            ]}}],
        })
        result = validate_survey(config, survey(repeatable("rs1", [[prompt("a", "null")]])))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[0].rs1[0]"
        assert "has 1 responses, expected 2" in result.message

    def test_not_displayed_when_condition_false(self, choice_configuration):
        """Test p2 may be hidden when p1 is "2"."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "2"), prompt("p2", "NOT_DISPLAYED")))
        assert isinstance(result, Accepted)
        assert result.responses["p2"] is NoResponse.NOT_DISPLAYED

    def test_not_displayed_when_condition_true(self, choice_configuration):
        """Test p2 may not be hidden when p1 is "1"."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "1"), prompt("p2", "NOT_DISPLAYED")))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].p2"
        assert "condition" in result.message and "true" in result.message


class TestDisplayConsistency:
    """Tests that responses agree with display conditions."""

    def test_answer_when_condition_false(self, choice_configuration):
        """Test p2 may not be answered when it should have been hidden."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "2"), prompt("p2", "hi")))
        assert isinstance(result, Rejected)
        assert "false" in result.message

    def test_skipped_when_condition_false(self, configuration_factory):
        """Test a hidden prompt may not be reported as skipped either."""
        config = configuration_factory({
            "id": "s1",
            "title": "S",
            "items": [
                {"prompt": {"id": "a", "type": "number", "min": 0, "max": 9}},
                {"prompt": {"id": "b", "type": "photo", "skippable": True, "condition": "a > 5"}},
            ],
        })
        assert isinstance(validate_survey(config, survey(prompt("a", 6), prompt("b", "SKIPPED"))), Accepted)
        assert isinstance(validate_survey(config, survey(prompt("a", 2), prompt("b", "SKIPPED"))), Rejected)

    def test_not_displayed_without_condition(self, choice_configuration):
        """Test an unconditional prompt cannot be hidden."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "NOT_DISPLAYED")))
        assert isinstance(result, Rejected)
        assert "no condition" in result.message

    def test_condition_needs_earlier_response(self, choice_configuration):
        """Test a conditioned prompt uploaded before what it depends on is rejected."""
        result = validate_survey(choice_configuration, survey(prompt("p2", "hi"), prompt("p1", "1")))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[0].p2"
        assert "no earlier response" in result.message

    def test_skipped_dependency_hides_prompt(self, configuration_factory):
        """Test a condition on a skipped prompt evaluates against SKIPPED."""
        config = configuration_factory({
            "id": "s1",
            "title": "S",
            "items": [
                {"prompt": {"id": "a", "type": "text", "min": 1, "max": 9, "skippable": True}},
                {"prompt": {"id": "b", "type": "photo", "condition": "a"}},
                {"prompt": {"id": "c", "type": "photo", "condition": "a == SKIPPED"}},
            ],
        })
        result = validate_survey(config, survey(
            prompt("a", "SKIPPED"),
            prompt("b", "NOT_DISPLAYED"),
            prompt("c", "null"),
        ))
        assert isinstance(result, Accepted)

    def test_multi_choice_condition(self, diary_configuration):
        """Test a condition on a multi choice prompt matches any selected key."""
        base = [
            prompt("mood", 4),
            prompt("exercised", "no"),
            repeatable("workouts", [], not_displayed=True),
        ]
        with_dinner = survey(*base, prompt("meals", ["lunch", "dinner"]), prompt("snacks", "NOT_DISPLAYED"),
                             survey_id="evening")
        assert isinstance(validate_survey(diary_configuration, with_dinner), Accepted)

        without_dinner = survey(*base, prompt("meals", ["lunch"]), prompt("snacks", "NOT_DISPLAYED"),
                                survey_id="evening")
        result = validate_survey(diary_configuration, without_dinner)
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[4].snacks"


class TestRepeatableSets:
    """Tests for repeatable set entries."""

    def test_iterations_accepted(self, repeatable_configuration):
        """Test several iterations, with a per-iteration condition."""
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 2),
            repeatable("rs1", [
                [prompt("p1", 80), prompt("p2", "a"), prompt("p3", "long run")],
                [prompt("p1", 10), prompt("p2", "b"), prompt("p3", "NOT_DISPLAYED")],
            ]),
        ))
        assert isinstance(result, Accepted)
        assert result.responses == {"count": 2, "rs1": 2}

    def test_iterations_do_not_share_responses(self, repeatable_configuration):
        """Test a condition sees only its own iteration's answers."""
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 2),
            repeatable("rs1", [
                [prompt("p1", 80), prompt("p2", "a"), prompt("p3", "shown")],
                [prompt("p1", 10), prompt("p2", "b"), prompt("p3", "shown")],
            ]),
        ))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].rs1[1][2].p3"
        assert "rs1" in result.message

    def test_inner_prompt_rejection_path(self, repeatable_configuration):
        """Test a bad value deep in a set reports its full path."""
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [[prompt("p1", 500), prompt("p2", "a"), prompt("p3", "x")]]),
        ))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].rs1[0][0].p1"

    def test_not_displayed_with_responses_always_rejected(self, repeatable_configuration):
        """Test not_displayed=true with a non-empty responses array."""
        for not_displayed in (True, "true"):
            result = validate_survey(repeatable_configuration, survey(
                prompt("count", 0),
                repeatable("rs1", [[prompt("p1", 1), prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED")]],
                           not_displayed=not_displayed),
            ))
            assert isinstance(result, Rejected)
            assert "not displayed but has responses" in result.message

    def test_displayed_without_responses_always_rejected(self, repeatable_configuration):
        """Test not_displayed=false with an empty responses array."""
        for not_displayed in (False, "false"):
            result = validate_survey(repeatable_configuration, survey(
                prompt("count", 3),
                repeatable("rs1", [], not_displayed=not_displayed),
            ))
            assert isinstance(result, Rejected)
            assert "displayed but has no responses" in result.message

    def test_not_displayed_consistent_with_condition(self, repeatable_configuration):
        """Test a hidden set needs a false condition."""
        hidden = survey(prompt("count", 0), repeatable("rs1", [], not_displayed=True))
        result = validate_survey(repeatable_configuration, hidden)
        assert isinstance(result, Accepted)
        assert result.responses["rs1"] is NoResponse.NOT_DISPLAYED

        wrongly_hidden = survey(prompt("count", 4), repeatable("rs1", [], not_displayed=True))
        result = validate_survey(repeatable_configuration, wrongly_hidden)
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].rs1"

    def test_skipped_flag_is_independent(self, repeatable_configuration):
        """Test skipped only records the continuation answer."""
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [[prompt("p1", 1), prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED")]], skipped=True),
        ))
        assert isinstance(result, Accepted)

    @pytest.mark.parametrize("field,value", [
        ("skipped", "yes"),
        ("skipped", None),
        ("skipped", 1),
        ("not_displayed", "maybe"),
        ("not_displayed", None),
    ])
    def test_flags_must_be_booleans(self, repeatable_configuration, field, value):
        entry = repeatable("rs1", [[prompt("p1", 1), prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED")]])
        entry[field] = value
        result = validate_survey(repeatable_configuration, survey(prompt("count", 1), entry))
        assert isinstance(result, Rejected)
        assert f"'{field}' is missing or non-boolean" in result.message

    def test_missing_responses_array(self, repeatable_configuration):
        entry = repeatable("rs1", [])
        del entry["responses"]
        result = validate_survey(repeatable_configuration, survey(prompt("count", 1), entry))
        assert isinstance(result, Rejected)
        assert "missing its responses array" in result.message

    def test_iteration_must_be_array(self, repeatable_configuration):
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [{"prompt_id": "p1", "value": 1}]),
        ))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].rs1[0]"

    def test_iteration_with_too_many_prompts(self, repeatable_configuration):
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [[
                prompt("p1", 1), prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED"), prompt("p1", 2),
            ]]),
        ))
        assert isinstance(result, Rejected)
        assert "has 4 responses, expected 3" in result.message

    def test_duplicate_prompt_in_iteration(self, repeatable_configuration):
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [[prompt("p1", 1), prompt("p1", 2), prompt("p3", "NOT_DISPLAYED")]]),
        ))
        assert isinstance(result, Rejected)
        assert "more than once" in result.message

    def test_top_level_prompt_not_valid_in_set(self, repeatable_configuration):
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [[prompt("count", 1), prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED")]]),
        ))
        assert isinstance(result, Rejected)
        assert result.code == CODE_INVALID_PROMPT_ID

    def test_inner_entry_without_prompt_id(self, repeatable_configuration):
        result = validate_survey(repeatable_configuration, survey(
            prompt("count", 1),
            repeatable("rs1", [[{"value": 1}, prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED")]]),
        ))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].rs1[0][0]"

    def test_unknown_set(self, repeatable_configuration):
        result = validate_survey(repeatable_configuration, survey(repeatable("rs9", [])))
        assert isinstance(result, Rejected)
        assert result.code == CODE_INVALID_PROMPT_ID
        assert "rs9" in result.message

    def test_duplicate_set(self, repeatable_configuration):
        entry = repeatable("rs1", [[prompt("p1", 1), prompt("p2", "a"), prompt("p3", "NOT_DISPLAYED")]])
        result = validate_survey(repeatable_configuration, survey(prompt("count", 1), entry, entry))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[2].rs1"


class TestStructure:
    """Tests for the survey object's structure."""

    def test_not_an_object(self, choice_configuration):
        result = validate_survey(choice_configuration, ["s1"])
        assert isinstance(result, Rejected)
        assert result.code == CODE_INVALID_JSON

    @pytest.mark.parametrize("survey_id", ["s9", None, 5])
    def test_unknown_survey(self, choice_configuration, survey_id):
        result = validate_survey(choice_configuration, {"survey_id": survey_id, "responses": []})
        assert isinstance(result, Rejected)
        assert result.code == CODE_INVALID_SURVEY_ID
        assert result.reason_path == "survey_id"

    def test_responses_must_be_array(self, choice_configuration):
        result = validate_survey(choice_configuration, {"survey_id": "s1", "responses": {"p1": "1"}})
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses"

    def test_empty_responses_accepted(self, choice_configuration):
        assert validate_survey(choice_configuration, survey()) == Accepted(survey_id="s1", responses={})

    def test_entry_must_be_object(self, choice_configuration):
        result = validate_survey(choice_configuration, survey("p1"))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[0]"

    def test_entry_without_ids(self, choice_configuration):
        result = validate_survey(choice_configuration, survey({"value": "1"}))
        assert isinstance(result, Rejected)
        assert "neither a prompt_id nor a repeatable_set_id" in result.message

    def test_unknown_prompt(self, choice_configuration):
        result = validate_survey(choice_configuration, survey(prompt("p9", "1")))
        assert isinstance(result, Rejected)
        assert result.code == CODE_INVALID_PROMPT_ID
        assert "p9" in result.message

    def test_missing_value(self, choice_configuration):
        result = validate_survey(choice_configuration, survey({"prompt_id": "p1"}))
        assert isinstance(result, Rejected)
        assert "missing its value" in result.message

    def test_duplicate_prompt(self, choice_configuration):
        result = validate_survey(choice_configuration, survey(prompt("p1", "1"), prompt("p1", "2")))
        assert isinstance(result, Rejected)
        assert result.reason_path == "responses[1].p1"
        assert "more than once" in result.message

    @pytest.mark.parametrize("value", [[["t"], "f"], [{"t": True}, "f"]])
    def test_nested_array_entries_rejected(self, configuration_factory, value):
        """Test unhashable entries in an array value reject the field."""
        config = configuration_factory({
            "id": "s1",
            "title": "Days",
            "items": [{"prompt": {"id": "b1", "type": "boolean_array", "length": 2}}],
        })
        result = validate_survey(config, survey(prompt("b1", value)))
        assert isinstance(result, Rejected)
        assert result.code == CODE_INVALID_RESPONSES
        assert result.reason_path == "responses[0].b1"

    def test_first_failure_only(self, choice_configuration):
        """Test only the first problem is reported."""
        result = validate_survey(choice_configuration, survey(prompt("p1", "7"), prompt("p9", "x")))
        assert result.reason_path == "responses[0].p1"


class TestValidatorReuse:
    """Tests for reusing one validator across uploads."""

    def test_validator_keeps_no_state(self, choice_configuration):
        """Test validating one survey does not affect the next."""
        validator = SurveyResponseValidator(choice_configuration, ValidatorRegistry.build())
        first = validator.validate(survey(prompt("p1", "1"), prompt("p2", "hi")))
        second = validator.validate(survey(prompt("p1", "2"), prompt("p2", "NOT_DISPLAYED")))
        third = validator.validate(survey(prompt("p1", "1"), prompt("p2", "hi")))
        assert isinstance(first, Accepted)
        assert isinstance(second, Accepted)
        assert first == third

    def test_engine_errors_are_distinct(self, choice_configuration):
        """Test a validator failing unexpectedly is raised, not reported as a rejection."""
        class BrokenRegistry(ValidatorRegistry):
            def validate(self, prompt, response):
                return self.get_validator("audio")

        validator = SurveyResponseValidator(choice_configuration, BrokenRegistry.build())
        with pytest.raises(SurveyEngineError):
            validator.validate(survey(prompt("p1", "1")))


class TestParseFlag:
    """Tests for repeatable set boolean flags."""

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        (False, False),
        ("true", True),
        ("false", False),
        ("TRUE", True),
        ("yes", None),
        (1, None),
        (None, None),
    ])
    def test_parse_flag(self, value, expected):
        assert parse_flag(value) is expected
