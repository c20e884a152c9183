"""
Derived AI artifacts for Inkwell.

Everything in this module is a *proposal*: output of the model service
that has not (yet) become canonical data. These models double as the
response models handed to instructor for structured generation. Any ids
they carry are the model's own and are never used as keys in the
Manuscript.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EntityKind(str, Enum):
    """Collections an entity can live in."""

    CHAPTER = "chapter"
    CHARACTER = "character"
    LOCATION = "location"
    LORE = "lore"


class SuggestedBeat(BaseModel):
    chapter_id: str = Field(default="", description="Id of the chapter the beat belongs in")
    title: str = ""
    description: str = ""
    rationale: str = ""


class SuggestedChapterFlow(BaseModel):
    chapter_id: str = ""
    suggested_beat_ids: list[str] = Field(
        default_factory=list,
        description="Beat ids of the chapter in the recommended order"
    )
    reasoning: str = ""


class ProposedLore(BaseModel):
    category: str = "General"
    content: str = ""
    rationale: str = ""


class ProposedCharacter(BaseModel):
    name: str
    role: str = "Secondary"
    description: str = ""
    rationale: str = ""


class ProposedLocation(BaseModel):
    name: str
    atmosphere: str = "Atmospheric"
    description: str = ""
    rationale: str = ""


class StoryAnalysis(BaseModel):
    """
    Result of a full consistency pass over the manuscript.

    Replaced wholesale on each analysis run, never merged.
    """

    consistency: str = Field(
        default="",
        description="Narrative assessment of plot and character consistency"
    )
    suggestions: list[str] = Field(default_factory=list)
    suggested_beats: list[SuggestedBeat] = Field(default_factory=list)
    suggested_chapter_flow: list[SuggestedChapterFlow] = Field(default_factory=list)
    proposed_lore: list[ProposedLore] = Field(default_factory=list)
    proposed_characters: list[ProposedCharacter] = Field(default_factory=list)
    proposed_locations: list[ProposedLocation] = Field(default_factory=list)


class IncidentalFinding(BaseModel):
    """Response model for incidental-entity detection."""

    found: bool = False
    type: Optional[EntityKind] = Field(
        default=None,
        description="Either 'character' or 'location'"
    )
    name: str = ""
    description: str = ""


class IncidentalSuggestion(BaseModel):
    """A pending suggestion awaiting the author's accept/reject."""

    kind: EntityKind
    name: str
    description: str = ""


class ExtractedBeat(BaseModel):
    title: str = ""
    description: str = ""


class ExtractedChapter(BaseModel):
    title: str = "Untitled Chapter"
    beats: list[ExtractedBeat] = Field(default_factory=list)


class ExtractedCharacter(BaseModel):
    name: str
    role: str = "Secondary"
    description: str = ""


class ExtractedLocation(BaseModel):
    name: str
    atmosphere: str = "Atmospheric"
    description: str = ""


class Extraction(BaseModel):
    """Structure pulled out of an imported plain-text document."""

    chapters: list[ExtractedChapter] = Field(default_factory=list)
    characters: list[ExtractedCharacter] = Field(default_factory=list)
    locations: list[ExtractedLocation] = Field(default_factory=list)


class BeatVerdict(BaseModel):
    completed: bool = False


class CoWriterAdvice(BaseModel):
    advice: str = ""
    prose: str = ""
