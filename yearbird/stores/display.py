"""Display preferences."""
from yearbird.models.config import DisplaySettings
from yearbird.stores.base import FeatureStore


class DisplaySettingsStore(FeatureStore[DisplaySettings]):
    def __init__(self) -> None:
        super().__init__(DisplaySettings())

    def _copy(self, value: DisplaySettings) -> DisplaySettings:
        return value.model_copy()

    def update(self, **changes) -> DisplaySettings:
        """Apply the given field changes; unknown fields raise ValueError."""
        unknown = set(changes) - set(DisplaySettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown display settings: {', '.join(sorted(unknown))}")
        updated = DisplaySettings.model_validate({**self._value.model_dump(), **changes})
        if updated != self._value:
            self._commit(updated)
        return self.get()
