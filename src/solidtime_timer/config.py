"""Configuration management for the SolidTime timer client."""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from solidtime_timer.utils.storage import StorageManager

DEFAULT_BASE_URL = "https://app.solidtime.io/api"
TOKEN_SERVICE = "solidtime"
API_KEY_ENV = "SOLIDTIME_API_KEY"


class Settings(BaseModel):
    """User settings. ``api_key`` is persisted separately from the rest."""

    api_key: str = ""
    api_base_url: str = DEFAULT_BASE_URL
    selected_organization_id: str = ""
    selected_member_id: str = ""
    default_billable: bool = False
    status_refresh_interval_seconds: int = Field(default=30, ge=0)
    data_refresh_interval_minutes: int = Field(default=15, ge=0)

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_base_url)


class Config:
    """Loads, updates and persists :class:`Settings`."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize configuration.

        Args:
            config_dir: Directory for storing configuration.
        """
        self.storage = StorageManager(config_dir)
        self.settings = self._load()

    def _load(self) -> Settings:
        stored = self.storage.load_settings()
        stored.pop("api_key", None)
        api_key = os.environ.get(API_KEY_ENV) or self.storage.get_token(TOKEN_SERVICE) or ""
        return Settings(api_key=api_key, **stored)

    def reload(self) -> Settings:
        """Re-read settings from disk."""
        self.settings = self._load()
        return self.settings

    def save(self) -> None:
        """Persist current settings. The API key goes to the token file."""
        data = self.settings.model_dump(exclude={"api_key"})
        self.storage.save_settings(data)
        if self.settings.api_key and self.settings.api_key == os.environ.get(API_KEY_ENV):
            return
        if self.settings.api_key:
            self.storage.set_token(TOKEN_SERVICE, self.settings.api_key)
        else:
            self.storage.delete_token(TOKEN_SERVICE)

    def update(self, **changes: Any) -> Settings:
        """Apply and persist changes.

        Changing the organization without a new member id drops the stored
        member id, since it belongs to the previous organization.

        Args:
            **changes: Settings fields to change.

        Returns:
            The new settings.
        """
        unknown = set(changes) - set(Settings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        org_changed = (
            "selected_organization_id" in changes
            and changes["selected_organization_id"] != self.settings.selected_organization_id
        )
        if org_changed and "selected_member_id" not in changes:
            changes["selected_member_id"] = ""
        self.settings = Settings.model_validate({**self.settings.model_dump(), **changes})
        self.save()
        return self.settings

    def select_organization(self, organization_id: str, member_id: str) -> None:
        """Store the chosen organization and the member id seeded from it.

        Args:
            organization_id: Organization ID.
            member_id: Membership ID of the current user in that organization.
        """
        self.update(selected_organization_id=organization_id, selected_member_id=member_id)

    def set_member_id(self, member_id: str) -> None:
        """Store a re-derived member id for the selected organization."""
        if member_id != self.settings.selected_member_id:
            self.update(selected_member_id=member_id)

    def missing(self) -> list[str]:
        """Names of required settings that are not set.

        Returns:
            Human readable names, in the order they should be configured.
        """
        missing = []
        if not self.settings.api_key:
            missing.append("API key")
        if not self.settings.api_base_url:
            missing.append("API base URL")
        if not self.settings.selected_organization_id:
            missing.append("organization")
        return missing

    @property
    def is_configured(self) -> bool:
        """True when credentials and an organization are set."""
        return not self.missing()
