"""Campaign loader service with caching and validation.

This module loads campaign definitions from YAML files, validates them
against the Pydantic schemas, parses their conditions into a
CampaignConfiguration, and caches the results.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from survey_intake.config import get_settings
from survey_intake.logging_config import get_logger
from survey_intake.schemas.campaign import Campaign
from survey_intake.services.configuration import CampaignConfiguration, CampaignConfigurationError

logger = get_logger(__name__)

CAMPAIGN_ID_PATTERN = re.compile(r'[A-Za-z0-9_-]+')


class CampaignNotFoundError(Exception):
    """Raised when a campaign file is not found."""
    pass


class CampaignValidationError(Exception):
    """Raised when a campaign fails validation."""
    pass


class CampaignLoader:
    """Service for loading and caching campaign configurations.

    Campaigns are loaded from `<campaign_id>.yaml` files in the campaigns
    directory. A campaign is only cached once its schema and every one of
    its conditions are valid.
    """

    def __init__(self, campaigns_dir: Optional[str] = None):
        """Initialize campaign loader.

        Args:
            campaigns_dir: Path to campaigns directory (defaults to the
                `campaigns_dir` setting)
        """
        if campaigns_dir is None:
            campaigns_dir = get_settings().campaigns_dir

        self.campaigns_dir = Path(campaigns_dir)

        if not self.campaigns_dir.exists():
            logger.warning(f"Campaigns directory not found: {self.campaigns_dir}")

    @lru_cache(maxsize=128)
    def load_campaign(self, campaign_id: str) -> CampaignConfiguration:
        """Load, validate and index a campaign from its YAML file.

        Results are cached. Clear the cache with clear_cache() when campaign
        files change at runtime.

        Args:
            campaign_id: Campaign identifier (matches YAML filename without .yaml)

        Returns:
            CampaignConfiguration for the campaign

        Raises:
            CampaignNotFoundError: If the campaign file doesn't exist
            CampaignValidationError: If the campaign or one of its conditions
                fails validation

        Example:
            >>> loader = CampaignLoader("campaigns")
            >>> configuration = loader.load_campaign("daily_diary")
            >>> configuration.survey_id_exists("evening")
            True
        """
        if not CAMPAIGN_ID_PATTERN.fullmatch(campaign_id):
            raise CampaignNotFoundError(f"Campaign '{campaign_id}' is not a valid campaign identifier")

        yaml_path = self.campaigns_dir / f"{campaign_id}.yaml"

        if not yaml_path.exists():
            logger.error(f"Campaign file not found: {yaml_path}", extra={"campaign_id": campaign_id})
            raise CampaignNotFoundError(f"Campaign '{campaign_id}' not found at {yaml_path}")

        try:
            with open(yaml_path, 'r') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error for {campaign_id}: {e}", extra={"campaign_id": campaign_id})
            raise CampaignValidationError(f"Invalid YAML in campaign '{campaign_id}': {e}")
        except OSError as e:
            logger.error(f"Error reading campaign file {yaml_path}: {e}", extra={"campaign_id": campaign_id})
            raise CampaignValidationError(f"Error reading campaign '{campaign_id}': {e}")

        if not isinstance(raw_data, dict):
            raise CampaignValidationError(f"Campaign '{campaign_id}' is not a YAML mapping")

        try:
            campaign = Campaign(**raw_data)
        except ValidationError as e:
            logger.error(f"Validation error for campaign {campaign_id}: {e}", extra={"campaign_id": campaign_id})
            raise CampaignValidationError(f"Validation failed for campaign '{campaign_id}': {e}")

        if campaign.metadata.id != campaign_id:
            raise CampaignValidationError(
                f"Campaign file '{yaml_path.name}' declares id '{campaign.metadata.id}'"
            )

        try:
            configuration = CampaignConfiguration(campaign)
        except CampaignConfigurationError as e:
            raise CampaignValidationError(str(e)) from e

        logger.info(
            f"Successfully loaded campaign: {campaign_id} (version {campaign.metadata.version})",
            extra={"campaign_id": campaign_id},
        )
        return configuration

    def list_campaigns(self) -> list[str]:
        """List all available campaign IDs.

        Returns:
            Sorted campaign IDs (filenames without .yaml extension)
        """
        if not self.campaigns_dir.exists():
            return []

        campaign_ids = [f.stem for f in self.campaigns_dir.glob("*.yaml")]

        logger.debug(f"Found {len(campaign_ids)} campaigns: {campaign_ids}")
        return sorted(campaign_ids)

    def clear_cache(self):
        """Clear the campaign cache."""
        self.load_campaign.cache_clear()
        logger.info("Campaign cache cleared")


# Global singleton instance
_loader_instance: Optional[CampaignLoader] = None


def get_campaign_loader() -> CampaignLoader:
    """Get global CampaignLoader instance.

    Creates singleton instance on first call.

    Returns:
        Global CampaignLoader instance
    """
    global _loader_instance
    if _loader_instance is None:
        _loader_instance = CampaignLoader()
    return _loader_instance
