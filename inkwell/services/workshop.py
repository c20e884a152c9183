"""
Workshop: the application-state controller for Inkwell.

Owns the Manuscript and everything derived from it:
- Document mutations (chapters, beats, rosters, lore, scratchpad)
- The single pending incidental suggestion and its acceptance
- The current StoryAnalysis and inscription of its proposals
- Background model calls, written back by entity id

All mutations happen on the thread that owns the Workshop. Background
results are applied during ``drain()``/``settle()``, and every
write-back re-resolves its target by id first, so a response for an
entity deleted in the meantime is dropped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from inkwell.core.analysis import (
    CoWriterAdvice,
    EntityKind,
    Extraction,
    IncidentalSuggestion,
    StoryAnalysis,
)
from inkwell.core.client import InkwellClient
from inkwell.core.state import (
    Beat,
    Chapter,
    Character,
    Location,
    LoreEntry,
    Manuscript,
    new_id,
)
from inkwell.services import muse
from inkwell.services.detector import IncidentalDetector
from inkwell.services.dispatch import Dispatcher, Outcome, Task, guarded_call

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    EntityKind.CHAPTER: "ch",
    EntityKind.CHARACTER: "c",
    EntityKind.LOCATION: "l",
    EntityKind.LORE: "lore",
}


class Workshop:
    """
    High-level controller over a single Manuscript.

    Background tasks are keyed as follows:
    - ``analysis``: full manuscript consistency pass
    - ``import``: structure extraction from a text document
    - ``detect``: incidental-entity detection
    - ``visualize:<id>``: image generation for a character/location
    - ``verify:<beat id>``, ``title:<id>``: beat/chapter helpers
    """

    def __init__(
        self,
        manuscript: Manuscript | None = None,
        client: InkwellClient | None = None,
        dispatcher: Dispatcher | None = None,
        detector: IncidentalDetector | None = None,
    ):
        self.manuscript = manuscript or Manuscript()
        self._client = client
        self.dispatcher = dispatcher or Dispatcher()
        self.detector = detector or IncidentalDetector()

        self.analysis: Optional[StoryAnalysis] = None
        self.suggestion: Optional[IncidentalSuggestion] = None
        self.chat_history: list[dict[str, str]] = []
        self._inscribed: set[tuple[str, int]] = set()

    @property
    def client(self) -> InkwellClient:
        """The gateway, created lazily so pure editing needs no configuration."""
        if self._client is None:
            self._client = InkwellClient()
        return self._client

    @property
    def loading(self) -> bool:
        """True while an analysis or import is in flight."""
        return self.dispatcher.in_flight("analysis") or self.dispatcher.in_flight("import")

    def is_busy(self, entity_id: str) -> bool:
        """True while an image is being generated for ``entity_id``."""
        return self.dispatcher.in_flight(f"visualize:{entity_id}")

    def drain(self) -> int:
        """Apply finished background results."""
        return self.dispatcher.drain()

    def settle(self, timeout: float | None = None) -> int:
        """Wait for background work and apply all results."""
        return self.dispatcher.settle(timeout)

    def close(self) -> None:
        """Stop the background worker threads."""
        self.dispatcher.shutdown()

    def __enter__(self) -> Workshop:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # =========================================================================
    # Identity
    # =========================================================================

    def _fresh_id(self, kind: EntityKind, taken: set[str] | None = None) -> str:
        taken = taken if taken is not None else self.manuscript.all_ids()
        while True:
            candidate = new_id(ID_PREFIXES[kind])
            if candidate not in taken:
                taken.add(candidate)
                return candidate

    def _fresh_beat_id(self, taken: set[str]) -> str:
        while True:
            candidate = new_id("b")
            if candidate not in taken:
                taken.add(candidate)
                return candidate

    # =========================================================================
    # Chapters and Beats
    # =========================================================================

    def add_chapter(self) -> Chapter:
        """Append a new chapter seeded with one opening beat."""
        taken = self.manuscript.all_ids()
        chapter = Chapter(
            id=self._fresh_id(EntityKind.CHAPTER, taken),
            beats=[Beat(id=self._fresh_beat_id(taken))],
        )
        self.manuscript.chapters.append(chapter)
        logger.debug("Added chapter %s", chapter.id)
        return chapter

    def add_beat(
        self,
        chapter_id: str,
        title: str = "Opening Beat",
        description: str = "What happens next?",
    ) -> Optional[Beat]:
        """Append a beat to a chapter. Returns None if the chapter is absent."""
        chapter = self.manuscript.get_chapter(chapter_id)
        if chapter is None:
            return None
        beat = Beat(
            id=self._fresh_beat_id(self.manuscript.all_ids()),
            title=title,
            description=description,
        )
        return chapter.add_beat(beat)

    def edit_chapter(self, chapter_id: str, **fields) -> Optional[Chapter]:
        chapter = self.manuscript.get_chapter(chapter_id)
        if chapter is None:
            return None
        return _apply_fields(chapter, fields, protected={"id", "beats"})

    def edit_beat(self, chapter_id: str, beat_id: str, **fields) -> Optional[Beat]:
        beat = self.manuscript.get_beat(chapter_id, beat_id)
        if beat is None:
            return None
        return _apply_fields(beat, fields, protected={"id"})

    def update_beat_draft(self, chapter_id: str, beat_id: str, text: str) -> bool:
        """
        Replace a beat's draft.

        Silently ignored if either id is unknown. A successful update is
        fed to the incidental-entity detector.

        Returns:
            True if a beat was updated
        """
        beat = self.manuscript.get_beat(chapter_id, beat_id)
        if beat is None:
            return False
        beat.draft = text
        self._sentinel_check(text)
        return True

    def update_scratchpad(self, text: str) -> None:
        """Replace the scratchpad and feed it to the detector."""
        self.manuscript.scratchpad = text
        self._sentinel_check(text)

    def delete_beat(self, chapter_id: str, beat_id: str) -> bool:
        chapter = self.manuscript.get_chapter(chapter_id)
        if chapter is None:
            return False
        for i, beat in enumerate(chapter.beats):
            if beat.id == beat_id:
                del chapter.beats[i]
                return True
        return False

    # =========================================================================
    # Rosters and Lore
    # =========================================================================

    def add_character(self, **fields) -> Character:
        """Add a character with default field values (overridable)."""
        character = Character(**fields)
        character.id = self._fresh_id(EntityKind.CHARACTER)
        self.manuscript.characters.append(character)
        return character

    def add_location(self, **fields) -> Location:
        """Add a location with default field values (overridable)."""
        location = Location(**fields)
        location.id = self._fresh_id(EntityKind.LOCATION)
        self.manuscript.locations.append(location)
        return location

    def add_lore(self, category: str = "General", content: str = "") -> LoreEntry:
        entry = LoreEntry(
            id=self._fresh_id(EntityKind.LORE),
            category=category,
            content=content,
        )
        self.manuscript.lore.append(entry)
        return entry

    def edit_character(self, character_id: str, **fields) -> Optional[Character]:
        character = self.manuscript.get_character(character_id)
        if character is None:
            return None
        return _apply_fields(character, fields, protected={"id"})

    def edit_location(self, location_id: str, **fields) -> Optional[Location]:
        location = self.manuscript.get_location(location_id)
        if location is None:
            return None
        return _apply_fields(location, fields, protected={"id"})

    def edit_lore(self, lore_id: str, **fields) -> Optional[LoreEntry]:
        entry = self.manuscript.get_lore(lore_id)
        if entry is None:
            return None
        return _apply_fields(entry, fields, protected={"id"})

    def edit_settings(self, **fields) -> None:
        """Change world settings; values are validated (levels are 0-100)."""
        _apply_fields(self.manuscript.settings, fields, protected=set())

    def delete_entity(self, kind: EntityKind | str, entity_id: str) -> bool:
        """
        Banish an entity from its collection.

        No cascade: prose mentioning a deleted character is left as is.

        Returns:
            True if something was removed
        """
        collection = self._collection(EntityKind(kind))
        for i, entity in enumerate(collection):
            if entity.id == entity_id:
                del collection[i]
                logger.debug("Deleted %s %s", EntityKind(kind).value, entity_id)
                return True
        return False

    def _collection(self, kind: EntityKind) -> list:
        if kind == EntityKind.CHAPTER:
            return self.manuscript.chapters
        if kind == EntityKind.CHARACTER:
            return self.manuscript.characters
        if kind == EntityKind.LOCATION:
            return self.manuscript.locations
        if kind == EntityKind.LORE:
            return self.manuscript.lore
        raise ValueError(f"Unknown entity kind: {kind}")

    # =========================================================================
    # Import
    # =========================================================================

    def import_extracted(self, extraction: Extraction) -> None:
        """
        Merge extracted structure into the existing collections.

        Every nested object gets a fresh id that collides with nothing
        already present.
        """
        taken = self.manuscript.all_ids()

        for extracted in extraction.chapters:
            chapter = Chapter(id=self._fresh_id(EntityKind.CHAPTER, taken), title=extracted.title)
            for extracted_beat in extracted.beats:
                chapter.beats.append(Beat(
                    id=self._fresh_beat_id(taken),
                    title=extracted_beat.title,
                    description=extracted_beat.description,
                ))
            self.manuscript.chapters.append(chapter)

        for extracted in extraction.characters:
            self.manuscript.characters.append(Character(
                id=self._fresh_id(EntityKind.CHARACTER, taken),
                name=extracted.name,
                role=extracted.role,
                description=extracted.description,
                traits=[],
            ))

        for extracted in extraction.locations:
            self.manuscript.locations.append(Location(
                id=self._fresh_id(EntityKind.LOCATION, taken),
                name=extracted.name,
                atmosphere=extracted.atmosphere,
                description=extracted.description,
            ))

        logger.info(
            "Imported %d chapters, %d characters, %d locations",
            len(extraction.chapters),
            len(extraction.characters),
            len(extraction.locations),
        )

    def import_text(self, text: str) -> Task:
        """Extract structure from a document in the background and merge it."""
        settings = self.manuscript.settings.model_copy()
        client = self.client

        def apply(outcome: Outcome) -> None:
            if outcome.ok:
                self.import_extracted(outcome.value)

        return self.dispatcher.submit(
            "import",
            lambda: muse.extract_from_text(client, text, settings),
            apply,
        )

    def import_file(self, path: Path) -> Task:
        """Import a plain-text file."""
        text = Path(path).read_text(encoding="utf-8")
        return self.import_text(text)

    # =========================================================================
    # Incidental suggestions
    # =========================================================================

    def _sentinel_check(self, text: str) -> Optional[Task]:
        if not self.detector.should_fire(text):
            return None

        roster = self.manuscript.roster_names()
        settings = self.manuscript.settings.model_copy()
        lore = [entry.model_copy() for entry in self.manuscript.lore]
        client = self.client

        def apply(outcome: Outcome) -> None:
            if outcome.ok and outcome.value is not None:
                self.suggestion = outcome.value

        return self.dispatcher.submit(
            "detect",
            lambda: self.detector.detect(client, text, roster, settings, lore),
            apply,
        )

    def accept_suggestion(self) -> Character | Location | None:
        """
        Inscribe the pending incidental suggestion into the rosters.

        Returns:
            The new entity, or None if there was no suggestion
        """
        suggestion = self.suggestion
        if suggestion is None:
            return None
        self.suggestion = None

        if suggestion.kind == EntityKind.CHARACTER:
            return self.add_character(
                name=suggestion.name,
                role="Secondary",
                description=suggestion.description,
                traits=[],
            )
        return self.add_location(
            name=suggestion.name,
            atmosphere="Atmospheric",
            description=suggestion.description,
        )

    def reject_suggestion(self) -> None:
        self.suggestion = None

    # =========================================================================
    # Analysis
    # =========================================================================

    def run_analysis(self) -> Task:
        """
        Start a full consistency pass.

        On success the previous analysis is replaced wholesale; on
        failure it is left untouched.
        """
        m = self.manuscript
        snapshot = m.manuscript_snapshot()
        chapters = [c.model_copy(deep=True) for c in m.chapters]
        characters = [c.model_copy(deep=True) for c in m.characters]
        locations = [l.model_copy(deep=True) for l in m.locations]
        lore = [e.model_copy() for e in m.lore]
        settings = m.settings.model_copy()
        client = self.client

        def apply(outcome: Outcome) -> None:
            if outcome.ok:
                self.analysis = outcome.value
                self._inscribed.clear()
            else:
                logger.info("Analysis failed; keeping previous result")

        return self.dispatcher.submit(
            "analysis",
            lambda: muse.analyze_plot(
                client, snapshot, chapters, characters, locations, settings, lore
            ),
            apply,
        )

    def _take_proposal(self, kind: str, index: int, items: list):
        if self.analysis is None or not 0 <= index < len(items):
            return None
        if (kind, index) in self._inscribed:
            return None
        return items[index]

    def inscribe_character(self, index: int) -> Optional[Character]:
        """Accept a proposed character from the current analysis."""
        items = self.analysis.proposed_characters if self.analysis else []
        proposal = self._take_proposal("character", index, items)
        if proposal is None:
            return None
        self._inscribed.add(("character", index))
        return self.add_character(
            name=proposal.name,
            role=proposal.role,
            description=proposal.description,
            rationale=proposal.rationale or None,
        )

    def inscribe_location(self, index: int) -> Optional[Location]:
        """Accept a proposed location from the current analysis."""
        items = self.analysis.proposed_locations if self.analysis else []
        proposal = self._take_proposal("location", index, items)
        if proposal is None:
            return None
        self._inscribed.add(("location", index))
        return self.add_location(
            name=proposal.name,
            atmosphere=proposal.atmosphere,
            description=proposal.description,
            rationale=proposal.rationale or None,
        )

    def inscribe_lore(self, index: int) -> Optional[LoreEntry]:
        """Accept a proposed lore entry from the current analysis."""
        items = self.analysis.proposed_lore if self.analysis else []
        proposal = self._take_proposal("lore", index, items)
        if proposal is None:
            return None
        self._inscribed.add(("lore", index))
        return self.add_lore(proposal.category, proposal.content)

    def inscribe_beat(self, index: int) -> Optional[Beat]:
        """
        Accept a suggested beat, appending it to the chapter it names.

        Refused if that chapter no longer exists.
        """
        items = self.analysis.suggested_beats if self.analysis else []
        proposal = self._take_proposal("beat", index, items)
        if proposal is None:
            return None
        beat = self.add_beat(proposal.chapter_id, proposal.title, proposal.description)
        if beat is not None:
            self._inscribed.add(("beat", index))
        return beat

    # =========================================================================
    # Other model-backed helpers
    # =========================================================================

    def visualize(self, kind: EntityKind | str, entity_id: str) -> Optional[Task]:
        """
        Generate an image for a character or location.

        The result is written back only if the entity still exists.
        """
        kind = EntityKind(kind)
        if kind == EntityKind.CHARACTER:
            entity = self.manuscript.get_character(entity_id)
        elif kind == EntityKind.LOCATION:
            entity = self.manuscript.get_location(entity_id)
        else:
            raise ValueError(f"Cannot visualize a {kind.value}")
        if entity is None:
            return None

        snapshot = entity.model_copy()
        settings = self.manuscript.settings.model_copy()
        client = self.client

        def apply(outcome: Outcome) -> None:
            if not outcome.ok or outcome.value is None:
                return
            if kind == EntityKind.CHARACTER:
                target = self.manuscript.get_character(entity_id)
            else:
                target = self.manuscript.get_location(entity_id)
            if target is None:
                logger.debug("Dropping image for deleted %s %s", kind.value, entity_id)
                return
            target.image_url = outcome.value

        return self.dispatcher.submit(
            f"visualize:{entity_id}",
            lambda: muse.visualize_asset(client, kind, snapshot, settings),
            apply,
        )

    def verify_beat(self, chapter_id: str, beat_id: str) -> Optional[Task]:
        """Ask whether a beat's draft achieves its goal; sets ``completed``."""
        beat = self.manuscript.get_beat(chapter_id, beat_id)
        if beat is None:
            return None
        snapshot = beat.model_copy()
        settings = self.manuscript.settings.model_copy()
        client = self.client

        def apply(outcome: Outcome) -> None:
            target = self.manuscript.get_beat(chapter_id, beat_id)
            if outcome.ok and target is not None:
                target.completed = outcome.value

        return self.dispatcher.submit(
            f"verify:{beat_id}",
            lambda: muse.verify_beat_completion(client, snapshot, snapshot.draft or "", settings),
            apply,
        )

    def consult(self, chapter_id: str, beat_id: str, request_prose: bool = False) -> Optional[CoWriterAdvice]:
        """
        Ask the co-writer how to bridge from this beat to the next one.

        Blocking; returns None if the beat is unknown or the call fails.
        """
        chapter = self.manuscript.get_chapter(chapter_id)
        beat = chapter.get_beat(beat_id) if chapter else None
        if beat is None:
            return None
        position = chapter.beats.index(beat)
        next_beat = chapter.beats[position + 1] if position + 1 < len(chapter.beats) else None

        outcome = self._call(lambda: muse.consult_co_writer(
            self.client,
            beat,
            next_beat,
            self.manuscript.characters,
            self.manuscript.settings,
            self.manuscript.lore,
            request_prose,
        ))
        return outcome.value if outcome.ok else None

    def chat(self, message: str) -> Optional[str]:
        """
        Talk to Inkwell with the world as context.

        Blocking. The exchange is recorded in ``chat_history`` only if a
        reply arrives.
        """
        outcome = self._call(lambda: muse.chat_with_inkwell(
            self.client,
            self.chat_history,
            message,
            self.manuscript.settings,
            self.manuscript.lore,
        ))
        if not outcome.ok:
            return None
        self.chat_history.append({"role": "user", "text": message})
        self.chat_history.append({"role": "model", "text": outcome.value})
        return outcome.value

    def name_beat(self, chapter_id: str, beat_id: str) -> Optional[Task]:
        """Generate a title for a beat from its description."""
        beat = self.manuscript.get_beat(chapter_id, beat_id)
        if beat is None:
            return None
        description = beat.description
        settings = self.manuscript.settings.model_copy()
        client = self.client

        def apply(outcome: Outcome) -> None:
            target = self.manuscript.get_beat(chapter_id, beat_id)
            if outcome.ok and outcome.value and target is not None:
                target.title = outcome.value

        return self.dispatcher.submit(
            f"title:{beat_id}",
            lambda: muse.generate_beat_title(client, description, settings),
            apply,
        )

    def name_chapter(self, chapter_id: str) -> Optional[Task]:
        """Generate a title for a chapter from its beats."""
        chapter = self.manuscript.get_chapter(chapter_id)
        if chapter is None:
            return None
        beats = [b.model_copy() for b in chapter.beats]
        settings = self.manuscript.settings.model_copy()
        client = self.client

        def apply(outcome: Outcome) -> None:
            target = self.manuscript.get_chapter(chapter_id)
            if outcome.ok and outcome.value and target is not None:
                target.title = outcome.value

        return self.dispatcher.submit(
            f"title:{chapter_id}",
            lambda: muse.generate_chapter_title(client, beats, settings),
            apply,
        )

    def _call(self, fn) -> Outcome:
        return guarded_call("call", fn)


def _apply_fields(model, fields: dict, protected: set[str]):
    """
    Assign field edits in place, refusing protected fields.

    The edits are validated together before any is assigned, so a
    rejected edit leaves the model untouched.
    """
    for name in fields:
        if name in protected or name not in type(model).model_fields:
            raise ValueError(f"Cannot edit field {name!r} of {type(model).__name__}")

    validated = type(model).model_validate({**model.model_dump(), **fields})
    for name in fields:
        setattr(model, name, getattr(validated, name))
    return model
