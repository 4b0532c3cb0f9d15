"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from pathlib import Path

import pytest

CAMPAIGNS_DIR = Path(__file__).parent.parent / "campaigns"

# Set environment variables for tests BEFORE importing application modules
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("CAMPAIGNS_DIR", str(CAMPAIGNS_DIR))
os.environ.setdefault("STRICT_REMOTE_ACTIVITY_SCORES", "false")

from survey_intake.schemas.campaign import Campaign
from survey_intake.services.campaign_loader import CampaignLoader
from survey_intake.services.configuration import CampaignConfiguration
from survey_intake.services.validation import ValidatorRegistry


def build_configuration(*surveys: dict) -> CampaignConfiguration:
    """Build a configuration for a test campaign holding the given surveys.

    Args:
        surveys: Survey definitions as they would appear in campaign YAML

    Returns:
        CampaignConfiguration for campaign `test_campaign`
    """
    campaign = Campaign(
        metadata={"id": "test_campaign", "name": "Test Campaign", "version": "1.0.0"},
        surveys=list(surveys),
    )
    return CampaignConfiguration(campaign)


@pytest.fixture
def configuration_factory():
    """Provide build_configuration to tests that define their own surveys."""
    return build_configuration


@pytest.fixture
def registry() -> ValidatorRegistry:
    """Provide a validator registry with default settings."""
    return ValidatorRegistry.build()


@pytest.fixture
def diary_configuration() -> CampaignConfiguration:
    """Provide the configuration of the bundled daily diary campaign."""
    loader = CampaignLoader(str(CAMPAIGNS_DIR))
    loader.clear_cache()
    return loader.load_campaign("daily_diary")


@pytest.fixture
def simple_configuration() -> CampaignConfiguration:
    """Provide a small survey: a choice prompt and a text prompt shown on "yes".

    Survey `s1`:
        q1: single_choice yes/no
        q2: text, 1-50 characters, displayed when q1 == "yes"
    """
    return build_configuration({
        "id": "s1",
        "title": "Simple",
        "items": [
            {"prompt": {"id": "q1", "type": "single_choice", "choices": {"yes": "Yes", "no": "No"}}},
            {"prompt": {"id": "q2", "type": "text", "min": 1, "max": 50, "condition": 'q1 == "yes"'}},
        ],
    })


@pytest.fixture
def repeatable_configuration() -> CampaignConfiguration:
    """Provide a survey with a number prompt followed by a repeatable set.

    Survey `s1`:
        count: number 0-10
        rs1 (displayed when count > 0):
            p1: number 0-100
            p2: single_choice a/b
            p3: text 1-20 characters, displayed when p1 > 50
    """
    return build_configuration({
        "id": "s1",
        "title": "Repeating",
        "items": [
            {"prompt": {"id": "count", "type": "number", "min": 0, "max": 10}},
            {"repeatable_set": {
                "id": "rs1",
                "condition": "count > 0",
                "prompts": [
                    {"id": "p1", "type": "number", "min": 0, "max": 100},
                    {"id": "p2", "type": "single_choice", "choices": {"a": "A", "b": "B"}},
                    {"id": "p3", "type": "text", "min": 1, "max": 20, "condition": "p1 > 50"},
                ],
            }},
        ],
    })
