from yearbird.models.config import Category, CloudConfig, DisplaySettings, EventFilter
from yearbird.models.session import SessionSlot

__all__ = ["Category", "CloudConfig", "DisplaySettings", "EventFilter", "SessionSlot"]
