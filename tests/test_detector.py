"""
Unit tests for the Incidental-Entity Detector.

Tests the length sampling trigger, roster exclusion and
fail-silent handling of bad or failed responses.
"""

import pytest
from pydantic import ValidationError

from inkwell.core.analysis import EntityKind, IncidentalFinding
from inkwell.core.client import GatewayError
from inkwell.core.state import WorldSettings
from inkwell.services.detector import IncidentalDetector

from conftest import FakeClient


class TestTrigger:
    """Tests for should_fire."""

    @pytest.mark.parametrize("length", [0, 10, 49, 50])
    def test_short_text_never_fires(self, length):
        assert IncidentalDetector().should_fire("x" * length) is False

    def test_between_windows_does_not_fire(self):
        detector = IncidentalDetector()
        assert detector.should_fire("x" * 51) is False
        assert detector.should_fire("x" * 200) is False

    def test_window_upper_bound_is_exclusive(self):
        detector = IncidentalDetector()
        assert detector.should_fire("x" * 369) is True
        assert detector.should_fire("x" * 370) is False

    def test_window_start_fires(self):
        detector = IncidentalDetector()
        assert detector.should_fire("x" * 350) is True
        assert detector.should_fire("x" * 700) is True
        assert detector.should_fire("x" * 719) is True
        assert detector.should_fire("x" * 720) is False

    def test_custom_thresholds(self):
        detector = IncidentalDetector(min_length=5, period=10, window=2)
        assert detector.should_fire("x" * 11) is True
        assert detector.should_fire("x" * 12) is False


class TestDetect:
    """Tests for detect and to_suggestion."""

    def test_finding_becomes_suggestion(self):
        client = FakeClient({IncidentalFinding: IncidentalFinding(
            found=True,
            type=EntityKind.CHARACTER,
            name="Thorne",
            description="A wandering smith",
        )})

        suggestion = IncidentalDetector().detect(
            client, "Thorne hammered...", ["Mara"], WorldSettings()
        )

        assert suggestion.kind == EntityKind.CHARACTER
        assert suggestion.name == "Thorne"
        assert suggestion.description == "A wandering smith"

    def test_roster_is_sent_as_exclusion(self):
        client = FakeClient({IncidentalFinding: IncidentalFinding()})

        IncidentalDetector().detect(client, "text", ["Mara", "The Forge"], WorldSettings())

        _, prompt, model, _ = client.calls[0]
        assert model is IncidentalFinding
        assert "[Mara, The Forge]" in prompt

    def test_nothing_found(self):
        client = FakeClient({IncidentalFinding: IncidentalFinding(found=False)})
        assert IncidentalDetector().detect(client, "text", [], WorldSettings()) is None

    def test_known_name_discarded(self):
        client = FakeClient({IncidentalFinding: IncidentalFinding(
            found=True, type=EntityKind.LOCATION, name="the forge",
        )})
        result = IncidentalDetector().detect(client, "text", ["The Forge"], WorldSettings())
        assert result is None

    def test_missing_type_or_name_discarded(self):
        detector = IncidentalDetector()
        assert detector.to_suggestion(IncidentalFinding(found=True, name="Thorne"), []) is None
        assert detector.to_suggestion(
            IncidentalFinding(found=True, type=EntityKind.CHARACTER, name="  "), []
        ) is None

    def test_non_roster_kind_discarded(self):
        finding = IncidentalFinding(found=True, type=EntityKind.LORE, name="The Pact")
        assert IncidentalDetector().to_suggestion(finding, []) is None

    def test_gateway_failure_is_silent(self):
        client = FakeClient({IncidentalFinding: GatewayError("timeout")})
        assert IncidentalDetector().detect(client, "text", [], WorldSettings()) is None

    def test_malformed_response_is_silent(self):
        with pytest.raises(ValidationError) as excinfo:
            IncidentalFinding.model_validate({"found": "maybe?"})
        client = FakeClient({IncidentalFinding: excinfo.value})

        assert IncidentalDetector().detect(client, "text", [], WorldSettings()) is None
