"""Core modules for Inkwell."""

from .state import (
    Beat, Chapter, Character, Location, LoreEntry, WorldSettings, Manuscript,
)
from .analysis import (
    EntityKind, StoryAnalysis, IncidentalFinding, IncidentalSuggestion, Extraction,
)
from .client import InkwellClient, GatewayError

__all__ = [
    "Beat", "Chapter", "Character", "Location", "LoreEntry",
    "WorldSettings", "Manuscript",
    "EntityKind", "StoryAnalysis", "IncidentalFinding", "IncidentalSuggestion",
    "Extraction",
    "InkwellClient", "GatewayError",
]
