"""
Unit tests for the Muse service prompts and result handling.
"""

import base64

import pytest

from inkwell.core.analysis import (
    BeatVerdict,
    EntityKind,
    Extraction,
    StoryAnalysis,
)
from inkwell.core.client import GatewayError
from inkwell.core.state import Beat, Chapter, Character, Location, LoreEntry, WorldSettings
from inkwell.services import muse

from conftest import FakeClient

LONG_PROSE = "Mara struck the anvil until the blade finally held its edge. " * 2


class TestVerifyBeat:
    """Tests for verify_beat_completion."""

    def test_short_prose_skips_call(self):
        client = FakeClient({BeatVerdict: BeatVerdict(completed=True)})

        assert muse.verify_beat_completion(client, Beat(), "Too short.", WorldSettings()) is False
        assert client.calls == []

    def test_verdict_returned(self):
        client = FakeClient({BeatVerdict: BeatVerdict(completed=True)})
        beat = Beat(title="Forge the blade", description="Mara finishes the sword")

        assert muse.verify_beat_completion(client, beat, LONG_PROSE, WorldSettings()) is True
        assert "BEAT GOAL: Forge the blade - Mara finishes the sword" in client.calls[0][1]

    def test_failure_means_not_completed(self):
        client = FakeClient({BeatVerdict: GatewayError("down")})
        assert muse.verify_beat_completion(client, Beat(), LONG_PROSE, WorldSettings()) is False


class TestAnalyzePlot:
    """Tests for the analysis prompt."""

    def test_prompt_contents(self):
        client = FakeClient({StoryAnalysis: StoryAnalysis(consistency="ok")})
        chapters = [Chapter(id="ch-1", title="Ashes", beats=[Beat(id="b-1", draft="SECRET DRAFT")])]
        settings = WorldSettings(criticism_level=100)

        result = muse.analyze_plot(
            client,
            "Chapter: Ashes\nSECRET DRAFT",
            chapters,
            [Character(name="Mara", image_url="data:image/png;base64,AAAA")],
            [Location(name="The Forge")],
            settings,
            [LoreEntry(category="Craft", content="Iron remembers.")],
        )

        assert result.consistency == "ok"
        _, prompt, model, system_prompt = client.calls[0]
        assert model is StoryAnalysis
        assert '"id": "ch-1"' in prompt
        assert "Mara" in prompt and "The Forge" in prompt
        assert "[Craft]: Iron remembers." in prompt
        assert prompt.count("SECRET DRAFT") == 1
        assert "base64" not in prompt
        assert "career in plumbing" in system_prompt

    def test_empty_manuscript_marked(self):
        client = FakeClient({StoryAnalysis: StoryAnalysis()})
        muse.analyze_plot(client, "", [], [], [], WorldSettings(), [])
        assert "(No prose written yet)" in client.calls[0][1]

    def test_failure_propagates(self):
        client = FakeClient({StoryAnalysis: GatewayError("down")})
        with pytest.raises(GatewayError):
            muse.analyze_plot(client, "", [], [], [], WorldSettings(), [])


class TestVisualize:
    """Tests for visualize_asset."""

    def test_returns_data_uri(self):
        client = FakeClient(image=b"pixels")

        ref = muse.visualize_asset(client, EntityKind.CHARACTER, Character(name="Mara"), WorldSettings())

        assert ref == "data:image/png;base64," + base64.b64encode(b"pixels").decode("ascii")
        assert client.calls[0][1].startswith("Portrait: Mara.")

    def test_location_prompt(self):
        client = FakeClient()
        muse.visualize_asset(client, EntityKind.LOCATION, Location(name="Glass Road"), WorldSettings())

        assert client.calls[0][1].startswith("Setting: Glass Road.")
        assert client.calls[0][2] == "16:9"

    def test_no_image(self):
        client = FakeClient(image=None)
        assert muse.visualize_asset(client, EntityKind.CHARACTER, Character(), WorldSettings()) is None

    def test_invalid_kind(self):
        with pytest.raises(ValueError):
            muse.visualize_asset(FakeClient(), EntityKind.CHAPTER, Character(), WorldSettings())


class TestTextHelpers:
    """Tests for extraction, chat and titles."""

    def test_extract(self):
        extraction = Extraction()
        client = FakeClient({Extraction: extraction})

        assert muse.extract_from_text(client, "Once upon a time", WorldSettings()) is extraction
        assert "Once upon a time" in client.calls[0][1]

    def test_chat_uses_world_context(self):
        client = FakeClient(chat_reply="Yes.")
        lore = [LoreEntry(category="Magic", content="Runes fade.")]

        reply = muse.chat_with_inkwell(client, [], "Can runes fade?", WorldSettings(), lore)

        assert reply == "Yes."
        system_context = client.calls[0][3]
        assert system_context.startswith("You are Inkwell")
        assert "[Magic]: Runes fade." in system_context

    @pytest.mark.parametrize("raw, expected", [
        ('"The Cold Forge"', "The Cold Forge"),
        ("  Embers \n", "Embers"),
    ])
    def test_titles_are_cleaned(self, raw, expected):
        client = FakeClient({None: raw})

        assert muse.generate_beat_title(client, "Mara lights the forge", WorldSettings()) == expected
        assert muse.generate_chapter_title(client, [Beat(title="Spark")], WorldSettings()) == expected
        assert "Spark" in client.calls[1][1]
