"""
Pydantic models for Inkwell state management.

This module holds the canonical document model:
- Chapters with ordered beats (the narrative skeleton)
- Character and location rosters with image references
- Lore entries supplied to every AI request as world context
- World settings that parameterize generation and critique
- Manuscript as the root aggregate with atomic save/load
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id(prefix: str) -> str:
    """Generate a fresh identifier such as ``ch-1f3a9c2e``."""
    return f"{prefix}-{uuid4().hex[:8]}"


class Entity(BaseModel):
    """Base for editable entities: field edits are validated on assignment."""

    model_config = ConfigDict(validate_assignment=True)


class Beat(Entity):
    """A single narrative unit within a chapter, optionally holding prose."""

    id: str = Field(default_factory=lambda: new_id("b"))
    title: str = "Opening Beat"
    description: str = "What happens next?"
    draft: Optional[str] = None
    completed: Optional[bool] = None


class Chapter(Entity):
    """A chapter: a title and its beats in narrative order."""

    id: str = Field(default_factory=lambda: new_id("ch"))
    title: str = "New Chapter"
    beats: list[Beat] = Field(default_factory=list)

    def get_beat(self, beat_id: str) -> Optional[Beat]:
        """Find a beat by id."""
        for beat in self.beats:
            if beat.id == beat_id:
                return beat
        return None

    def add_beat(self, beat: Beat) -> Beat:
        """Append a beat, re-keying it if its id is already taken."""
        taken = {b.id for b in self.beats}
        while beat.id in taken:
            beat.id = new_id("b")
        self.beats.append(beat)
        return beat

    def draft_text(self) -> str:
        """All beat drafts of this chapter, in order."""
        return "\n".join(beat.draft or "" for beat in self.beats)


class Character(Entity):
    """A character in the story with their core attributes."""

    id: str = Field(default_factory=lambda: new_id("c"))
    name: str = "New Persona"
    role: str = "Protagonist"
    description: str = ""
    traits: list[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    rationale: Optional[str] = None

    def to_context_string(self) -> str:
        """Format character for LLM context injection."""
        traits = ", ".join(self.traits) if self.traits else "none noted"
        return (
            f"**{self.name}** ({self.role})\n"
            f"Traits: {traits}\n"
            f"Description: {self.description}"
        )


class Location(Entity):
    """A place in the story world."""

    id: str = Field(default_factory=lambda: new_id("l"))
    name: str = "New Region"
    atmosphere: str = "Vivid"
    description: str = ""
    image_url: Optional[str] = None
    rationale: Optional[str] = None

    def to_context_string(self) -> str:
        return f"**{self.name}** ({self.atmosphere})\nDescription: {self.description}"


class LoreEntry(Entity):
    """A categorized fact about the fictional world."""

    id: str = Field(default_factory=lambda: new_id("lore"))
    category: str = "General"
    content: str = ""

    def to_context_string(self) -> str:
        return f"[{self.category}]: {self.content}"


class WorldSettings(Entity):
    """World-building settings that parameterize every AI request."""

    genre: str = "Epic Fantasy"
    fantasy_level: int = Field(default=50, ge=0, le=100)
    tech_level: int = Field(default=10, ge=0, le=100)
    tone: str = "Serious"
    prose_style: str = "Lyrical"
    language: str = "English"
    criticism_level: int = Field(default=55, ge=0, le=100)

    def to_context_string(self, lore: list[LoreEntry] | None = None) -> str:
        """Format world settings (and optional lore) for LLM context injection."""
        lore_text = "\n".join(entry.to_context_string() for entry in lore or [])
        return (
            f"WORLD CONTEXT (LANGUAGE: {self.language}):\n"
            f"- Genre: {self.genre}\n"
            f"- Fantasy level: {self.fantasy_level}/100\n"
            f"- Tech level: {self.tech_level}/100\n"
            f"- Tone: {self.tone}\n"
            f"- Prose Style: {self.prose_style}\n"
            f"- Lore: {lore_text or 'None recorded'}"
        )

    def critic_voice(self) -> str:
        """The reviewer persona matching the current criticism level."""
        level = self.criticism_level
        if level == 0:
            return (
                "You are the second coming of Shakespeare. Every word you type makes "
                "the stars in distant galaxies shine brighter just to catch a glimpse "
                "of your genius."
            )
        if level < 20:
            return "Simply divine. Your prose isn't just writing; it's a celestial event."
        if level < 40:
            return "An inspiration to all the stars! You have a gift that comes once in a trillion years."
        if level <= 60:
            return "You're doing excellent work. The pacing is solid and your voice is developing beautifully."
        if level < 80:
            return "It's readable. But your protagonist has the personality of a damp sponge."
        if level < 95:
            return (
                "This plot is like a sieve made of holes. I've found seventeen "
                "contradictions in the last three paragraphs."
            )
        if level == 100:
            return (
                "This is completely hopeless. Your story is a crime against literacy. "
                "Please, start a career in plumbing immediately."
            )
        return "I'm not angry, just profoundly disappointed."


class Manuscript(BaseModel):
    """
    The root aggregate for a writing project.

    Holds the authoritative collections. It is owned by a single
    controller (see ``Workshop``) and assumes serialized access.
    """

    chapters: list[Chapter] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    lore: list[LoreEntry] = Field(default_factory=list)
    scratchpad: str = ""
    settings: WorldSettings = Field(default_factory=WorldSettings)

    # Lookups
    def get_chapter(self, chapter_id: str) -> Optional[Chapter]:
        """Find a chapter by its unique ID."""
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def get_beat(self, chapter_id: str, beat_id: str) -> Optional[Beat]:
        """Find a beat inside the identified chapter."""
        chapter = self.get_chapter(chapter_id)
        if chapter is None:
            return None
        return chapter.get_beat(beat_id)

    def get_character(self, char_id: str) -> Optional[Character]:
        for char in self.characters:
            if char.id == char_id:
                return char
        return None

    def get_character_by_name(self, name: str) -> Optional[Character]:
        """Find a character by name (case-insensitive)."""
        name_lower = name.lower()
        for char in self.characters:
            if char.name.lower() == name_lower:
                return char
        return None

    def get_location(self, location_id: str) -> Optional[Location]:
        for location in self.locations:
            if location.id == location_id:
                return location
        return None

    def get_lore(self, lore_id: str) -> Optional[LoreEntry]:
        for entry in self.lore:
            if entry.id == lore_id:
                return entry
        return None

    def all_ids(self) -> set[str]:
        """Every id currently in use, nested beats included."""
        ids: set[str] = set()
        for chapter in self.chapters:
            ids.add(chapter.id)
            ids.update(beat.id for beat in chapter.beats)
        ids.update(c.id for c in self.characters)
        ids.update(l.id for l in self.locations)
        ids.update(e.id for e in self.lore)
        return ids

    def roster_names(self) -> list[str]:
        """Names of all known characters followed by all known locations."""
        return [c.name for c in self.characters] + [l.name for l in self.locations]

    # Derived text
    def manuscript_snapshot(self) -> str:
        """
        Concatenate the drafted prose in chapter order, then beat order.

        Falls back to the scratchpad when no chapters exist.
        """
        if not self.chapters:
            return self.scratchpad
        return "\n\n".join(
            f"Chapter: {chapter.title}\n{chapter.draft_text()}"
            for chapter in self.chapters
        )

    def world_context(self) -> str:
        """World settings plus lore, formatted for LLM context."""
        return self.settings.to_context_string(self.lore)

    def characters_context(self) -> str:
        """Get all characters formatted for LLM context."""
        if not self.characters:
            return "No characters defined yet."
        return "\n\n".join(char.to_context_string() for char in self.characters)

    def word_count(self) -> int:
        """Total word count across beat drafts (or the scratchpad)."""
        if not self.chapters:
            return len(self.scratchpad.split())
        return sum(
            len((beat.draft or "").split())
            for chapter in self.chapters
            for beat in chapter.beats
        )

    # Persistence
    def save(self, path: Path) -> None:
        """
        Atomically save the Manuscript to JSON.

        Uses temp file + rename pattern to prevent data corruption
        if the process is interrupted during write.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            suffix=".json.tmp",
            prefix="manuscript_",
            dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.model_dump(), f, indent=2, ensure_ascii=False)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    @classmethod
    def load(cls, path: Path) -> Manuscript:
        """
        Load a Manuscript from a JSON file.

        Returns a fresh instance if the file doesn't exist.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.model_validate(data)
