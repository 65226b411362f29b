from __future__ import annotations

from typing import Tuple

from src.hive_alerts.schemas.thresholds import (
    EffectiveThresholds,
    GlobalScope,
    ThresholdProfile,
    ThresholdSource,
)
from src.hive_alerts.services.threshold_store import ThresholdStore

# Built-in limits: 32-38 °C, 40-70 % RH, 2.0 kg weight change, 85 dB, 20 % battery, 7 days.
DEFAULT_PROFILE = ThresholdProfile(scope=GlobalScope())


class ThresholdResolver:
    """
    Computes the effective profile for a hive: hive override, else global, else built-in.

    An override replaces the global profile as a whole; fields are never merged. The store is
    queried on every call so saved changes apply to the next evaluation.
    """

    def __init__(self, store: ThresholdStore):
        self._store = store

    def resolve_with_source(self, hive_id: str) -> Tuple[ThresholdProfile, ThresholdSource]:
        override = self._store.get_for_hive(hive_id)
        if override is not None:
            return override, "hive"
        global_profile = self._store.get_global()
        if global_profile is not None:
            return global_profile, "global"
        return DEFAULT_PROFILE.model_copy(deep=True), "default"

    # PUBLIC_INTERFACE
    def resolve(self, hive_id: str) -> ThresholdProfile:
        """Return the threshold profile that applies to `hive_id`."""
        return self.resolve_with_source(hive_id)[0]

    # PUBLIC_INTERFACE
    def describe(self, hive_id: str) -> EffectiveThresholds:
        """Effective profile plus the level it was resolved from."""
        profile, source = self.resolve_with_source(hive_id)
        return EffectiveThresholds(hive_id=hive_id, source=source, profile=profile)
