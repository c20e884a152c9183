"""
Unit tests for the Inkwell document model.

Tests entity defaults, manuscript lookups, the manuscript snapshot,
world context formatting and atomic persistence.
"""

import json

import pytest
from pydantic import ValidationError

from inkwell.core.state import (
    Beat,
    Chapter,
    Character,
    Location,
    LoreEntry,
    Manuscript,
    WorldSettings,
)


class TestEntities:
    """Tests for entity defaults and validation."""

    def test_beat_defaults(self):
        beat = Beat()

        assert beat.id.startswith("b-")
        assert len(beat.id) == 10
        assert beat.title == "Opening Beat"
        assert beat.description == "What happens next?"
        assert beat.draft is None
        assert beat.completed is None

    def test_character_defaults(self):
        char = Character()

        assert char.id.startswith("c-")
        assert char.name == "New Persona"
        assert char.role == "Protagonist"
        assert char.traits == []
        assert char.image_url is None

    def test_location_defaults(self):
        loc = Location()

        assert loc.id.startswith("l-")
        assert loc.name == "New Region"
        assert loc.atmosphere == "Vivid"

    def test_ids_are_distinct(self):
        ids = {Character().id for _ in range(200)}
        assert len(ids) == 200

    def test_settings_levels_bounded(self):
        with pytest.raises(ValidationError):
            WorldSettings(criticism_level=101)
        with pytest.raises(ValidationError):
            WorldSettings(fantasy_level=-1)

    def test_assignment_is_validated(self):
        settings = WorldSettings()
        with pytest.raises(ValidationError):
            settings.tech_level = 150
        assert settings.tech_level == 10

    def test_chapter_add_beat_rekeys_duplicate(self):
        chapter = Chapter(beats=[Beat(id="b-same")])
        added = chapter.add_beat(Beat(id="b-same"))

        assert added.id != "b-same"
        assert len({b.id for b in chapter.beats}) == 2


class TestWorldSettings:
    """Tests for world context and critic voice."""

    def test_defaults(self):
        settings = WorldSettings()

        assert settings.genre == "Epic Fantasy"
        assert settings.fantasy_level == 50
        assert settings.tech_level == 10
        assert settings.tone == "Serious"
        assert settings.prose_style == "Lyrical"
        assert settings.language == "English"
        assert settings.criticism_level == 55

    def test_context_includes_lore(self):
        settings = WorldSettings(language="French")
        lore = [LoreEntry(category="Magic", content="Spells cost memories.")]

        context = settings.to_context_string(lore)

        assert "LANGUAGE: French" in context
        assert "[Magic]: Spells cost memories." in context

    @pytest.mark.parametrize("level, fragment", [
        (0, "second coming of Shakespeare"),
        (19, "celestial event"),
        (39, "once in a trillion years"),
        (60, "excellent work"),
        (79, "damp sponge"),
        (94, "sieve made of holes"),
        (97, "profoundly disappointed"),
        (100, "career in plumbing"),
    ])
    def test_critic_voice(self, level, fragment):
        assert fragment in WorldSettings(criticism_level=level).critic_voice()


class TestManuscript:
    """Tests for the root aggregate."""

    def _sample(self) -> Manuscript:
        return Manuscript(
            chapters=[
                Chapter(id="ch-1", title="Ashes", beats=[
                    Beat(id="b-1", draft="The forge was cold."),
                    Beat(id="b-2", draft="Mara lit it anyway."),
                ]),
                Chapter(id="ch-2", title="Embers", beats=[
                    Beat(id="b-3"),
                ]),
            ],
            characters=[Character(id="c-1", name="Mara")],
            locations=[Location(id="l-1", name="The Forge")],
            lore=[LoreEntry(id="lore-1", category="Craft", content="Iron remembers.")],
        )

    def test_lookups(self):
        m = self._sample()

        assert m.get_chapter("ch-2").title == "Embers"
        assert m.get_beat("ch-1", "b-2").draft == "Mara lit it anyway."
        assert m.get_beat("ch-2", "b-1") is None
        assert m.get_beat("ch-9", "b-1") is None
        assert m.get_character("c-1").name == "Mara"
        assert m.get_character_by_name("mara").id == "c-1"
        assert m.get_location("l-1").name == "The Forge"
        assert m.get_lore("lore-1").content == "Iron remembers."

    def test_all_ids_includes_beats(self):
        assert self._sample().all_ids() == {
            "ch-1", "ch-2", "b-1", "b-2", "b-3", "c-1", "l-1", "lore-1",
        }

    def test_roster_names(self):
        assert self._sample().roster_names() == ["Mara", "The Forge"]

    def test_snapshot_in_chapter_then_beat_order(self):
        snapshot = self._sample().manuscript_snapshot()

        assert snapshot == (
            "Chapter: Ashes\nThe forge was cold.\nMara lit it anyway."
            "\n\n"
            "Chapter: Embers\n"
        )

    def test_snapshot_falls_back_to_scratchpad(self):
        m = Manuscript(scratchpad="Once, in the salt marshes...")
        assert m.manuscript_snapshot() == "Once, in the salt marshes..."

    def test_word_count(self):
        assert self._sample().word_count() == 8
        assert Manuscript(scratchpad="three little words").word_count() == 3


class TestPersistence:
    """Tests for save/load."""

    def test_save_and_load(self, tmp_path):
        m = Manuscript(scratchpad="draft")
        m.characters.append(Character(name="Thorne", traits=["stubborn"]))
        path = tmp_path / "project" / "manuscript.json"

        m.save(path)
        loaded = Manuscript.load(path)

        assert loaded == m
        assert not list(path.parent.glob("*.tmp"))

    def test_saved_file_is_plain_json(self, tmp_path):
        path = tmp_path / "manuscript.json"
        Manuscript(settings=WorldSettings(genre="Noir")).save(path)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["settings"]["genre"] == "Noir"

    def test_load_missing_returns_empty(self, tmp_path):
        m = Manuscript.load(tmp_path / "nope.json")
        assert m.chapters == []
        assert m.settings == WorldSettings()
