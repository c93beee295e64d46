"""
Command Parameter Models - Pydantic models validating command input.

Every executor command validates its parameters through one of these models
before touching the store, so bad input aborts before any mutation.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from adminops.models.domain import Plan


class CommandContext(BaseModel):
    """Credential and request metadata presented with every command."""

    credential: str = Field(..., min_length=1)
    ip_address: str | None = Field(None, max_length=64)


# ============================================================================
# User Commands
# ============================================================================


class UserTarget(BaseModel):
    """Identifies the user a command acts on."""

    user_id: str = Field(..., min_length=1, max_length=128)


class UpdateUserPlanParams(UserTarget):
    """updateUserPlan parameters."""

    plan: Plan


class BanUserParams(UserTarget):
    """banUser parameters."""

    reason: str = Field("", max_length=1000)


class ListParams(BaseModel):
    """Pagination parameters."""

    limit: int = Field(100, ge=1, le=1000)
    cursor: str | None = Field(None, min_length=1)


# ============================================================================
# License Commands
# ============================================================================


class CreateLicenseParams(BaseModel):
    """createLicense parameters."""

    plan: Plan
    validity_days: int = Field(..., gt=0, strict=True)


class LicenseTarget(BaseModel):
    """Identifies the license a command acts on."""

    license_key: str = Field(..., min_length=1, max_length=128)


# ============================================================================
# Config / Maintenance Commands
# ============================================================================


class AIConfigUpdate(BaseModel):
    """Partial AI config update. Omitted fields keep their stored values."""

    model: str | None = Field(None, min_length=1, max_length=255)
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0, le=1_000_000)
    system_prompt: str | None = Field(None, max_length=20_000)

    model_config = {"protected_namespaces": ()}

    def to_document(self) -> dict[str, str | float | int]:
        """Stored field names for the fields that were provided."""
        names = {
            "model": "model",
            "temperature": "temperature",
            "max_tokens": "maxTokens",
            "system_prompt": "systemPrompt",
        }
        return {
            names[key]: value
            for key, value in self.model_dump(exclude_none=True).items()
        }


class MaintenanceMessageParams(BaseModel):
    """Optional operator message shown while maintenance is on."""

    message: str | None = Field(None, max_length=2000)


class PartialMaintenanceParams(MaintenanceMessageParams):
    """enablePartialMaintenance parameters."""

    services: list[str] = Field(..., min_length=1)

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: list[str]) -> list[str]:
        """Strip names, drop blanks and duplicates while keeping order."""
        cleaned: list[str] = []
        for name in v:
            name = name.strip()
            if name and name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            raise ValueError("services must name at least one service")
        return cleaned


class PlannedMaintenanceParams(MaintenanceMessageParams):
    """enablePlannedMaintenance parameters."""

    scheduled_at: datetime


class ClearOldLogsParams(BaseModel):
    """clearOldLogs parameters."""

    days_old: int = Field(..., gt=0, strict=True)
