"""Credential data models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Platform = Literal["android", "ios"]


class CredentialDocument(BaseModel):
    """Server login and project settings for one environment."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    baseUrl: str
    username: str
    password: str = Field(repr=False)  # server password, never the encryption key
    tag: str
    platforms: list[Platform]
    environment: str | None = None

    @field_validator("platforms")
    @classmethod
    def _platforms_non_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one platform is required")
        return list(dict.fromkeys(value))

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize for disk. ``environment`` is omitted for the default environment."""
        return self.model_dump(exclude_none=True)

    def with_environment(self, environment: str | None) -> CredentialDocument:
        return self.model_copy(update={"environment": environment})
