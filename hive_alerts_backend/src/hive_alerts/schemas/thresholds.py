from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class GlobalScope(BaseModel):
    """Profile applies to every hive without its own override."""

    kind: Literal["global"] = "global"


class HiveScope(BaseModel):
    """Profile applies to one hive and fully replaces the global profile for it."""

    kind: Literal["hive"] = "hive"
    hive_id: str = Field(..., min_length=1, description="Hive the override belongs to.")


ThresholdScope = Annotated[Union[GlobalScope, HiveScope], Field(discriminator="kind")]


def scope_key(scope: Union[GlobalScope, HiveScope]) -> str:
    """Storage key for a scope; unique per profile."""
    if isinstance(scope, HiveScope):
        return f"hive:{scope.hive_id}"
    return "global"


class ThresholdValues(BaseModel):
    """
    Numeric limits used to judge a sensor sample.

    Defaults are the built-in profile used when neither a hive override nor a global
    profile is configured. The min < max rule is enforced by the threshold store on
    write, so a bad pair surfaces as a ConfigurationError rather than a parse error.
    """

    temperature_min: float = Field(32.0, description="Lowest acceptable brood temperature (°C).")
    temperature_max: float = Field(38.0, description="Highest acceptable brood temperature (°C).")
    humidity_min: float = Field(40.0, description="Lowest acceptable relative humidity (%).")
    humidity_max: float = Field(70.0, description="Highest acceptable relative humidity (%).")
    weight_change_threshold: float = Field(2.0, description="Weight change between samples (kg) that raises an alert.")
    sound_level_threshold: float = Field(85.0, description="Sound level (dB) at or above which an alert is raised.")
    battery_warning_level: float = Field(20.0, description="Battery percentage at or below which an alert is raised.")
    inspection_reminder_days: int = Field(7, description="Days after the last inspection before a reminder is raised.")


class ThresholdProfileIn(ThresholdValues):
    """Request body for setting the global profile or updating a profile by id."""


class HiveThresholdIn(ThresholdValues):
    """Request body for creating or updating a hive-level override."""

    hive_id: str = Field(..., min_length=1, description="Hive to override thresholds for.")


class ThresholdProfile(ThresholdValues):
    """A stored (or built-in) threshold profile."""

    id: Optional[str] = Field(default=None, description="Profile id; null for the built-in default profile.")
    scope: ThresholdScope = Field(default_factory=GlobalScope, description="Global or Hive(hive_id).")
    created_at: Optional[datetime] = Field(default=None, description="UTC timestamp when the profile was created.")
    updated_at: Optional[datetime] = Field(default=None, description="UTC timestamp when the profile was last saved.")


class ThresholdProfileListResponse(BaseModel):
    """Envelope for listing threshold profiles."""

    items: List[ThresholdProfile] = Field(..., description="Configured threshold profiles.")
    total: int = Field(..., ge=0, description="Total count of profiles returned.")


ThresholdSource = Literal["hive", "global", "default"]


class EffectiveThresholds(BaseModel):
    """The profile that applies to a hive, and where it came from."""

    hive_id: str = Field(..., description="Hive the profile was resolved for.")
    source: ThresholdSource = Field(..., description="hive override, global profile or built-in default.")
    profile: ThresholdProfile = Field(..., description="Effective threshold profile.")
