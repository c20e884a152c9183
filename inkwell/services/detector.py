"""
Incidental-Entity Detector for Inkwell.

Watches freshly typed prose for a named character or place that is
not yet on the rosters. Implements:
- A sampling trigger on text length, so the model is consulted
  periodically rather than on every keystroke
- Roster exclusion (names already known are never proposed)
- Fail-silent handling: a miss is never an error
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError

from inkwell.core.analysis import EntityKind, IncidentalFinding, IncidentalSuggestion
from inkwell.core.client import GatewayError

if TYPE_CHECKING:
    from inkwell.core.client import InkwellClient
    from inkwell.core.state import LoreEntry, WorldSettings

logger = logging.getLogger(__name__)


class IncidentalDetector:
    """
    Decides when to look for new entities and asks the model to look.

    The trigger is a literal modulo window: text longer than
    ``min_length`` whose length falls within ``window`` characters past
    a multiple of ``period``. A single edit that jumps over a window
    (e.g. a large paste) skips that window entirely.
    """

    MIN_LENGTH = 50
    PERIOD = 350
    WINDOW = 20

    def __init__(
        self,
        min_length: int = MIN_LENGTH,
        period: int = PERIOD,
        window: int = WINDOW,
    ):
        self.min_length = min_length
        self.period = period
        self.window = window

    def should_fire(self, text: str) -> bool:
        """Check whether a change to ``text`` should trigger detection."""
        length = len(text)
        return length > self.min_length and length % self.period < self.window

    def detect(
        self,
        client: InkwellClient,
        text: str,
        roster: list[str],
        settings: WorldSettings,
        lore: list[LoreEntry] | None = None,
    ) -> Optional[IncidentalSuggestion]:
        """
        Ask the model for one new character or location in ``text``.

        Args:
            client: Model service gateway
            text: The prose that triggered detection
            roster: Names already known (excluded from proposals)
            settings: World settings for context
            lore: Optional lore entries for context

        Returns:
            A suggestion, or None if nothing new was found or the call failed
        """
        known = ", ".join(roster)
        prompt = f"""Identify one new named character or place in this text that is NOT in [{known}].
If there is none, answer with found = false.

TEXT:
{text}"""

        try:
            finding = client.generate_text(
                prompt,
                response_model=IncidentalFinding,
                system_prompt=f"You are Inkwell. {settings.to_context_string(lore)}",
                fast=True,
            )
        except (GatewayError, ValidationError) as e:
            logger.debug("Incidental detection produced nothing: %s", e)
            return None

        return self.to_suggestion(finding, roster)

    def to_suggestion(
        self,
        finding: IncidentalFinding,
        roster: list[str],
    ) -> Optional[IncidentalSuggestion]:
        """Turn a raw finding into a suggestion, dropping unusable ones."""
        if not finding.found or finding.type is None:
            return None
        if finding.type not in (EntityKind.CHARACTER, EntityKind.LOCATION):
            return None

        name = finding.name.strip()
        if not name:
            return None
        if name.lower() in {n.lower() for n in roster}:
            logger.debug("Discarding finding for known name %r", name)
            return None

        return IncidentalSuggestion(
            kind=finding.type,
            name=name,
            description=finding.description,
        )
