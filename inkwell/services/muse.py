"""
Muse Service for Inkwell.

Prompt-level operations against the model service: co-writing,
beat verification, manuscript analysis, chat, portraits, import
extraction and title generation. Functions here are stateless: they
take the pieces of the Manuscript they need and return results; the
Workshop decides what to do with them.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import TYPE_CHECKING, Optional

from inkwell.core.analysis import (
    BeatVerdict,
    CoWriterAdvice,
    EntityKind,
    Extraction,
    StoryAnalysis,
)
from inkwell.core.client import GatewayError

if TYPE_CHECKING:
    from inkwell.core.client import InkwellClient
    from inkwell.core.state import (
        Beat,
        Chapter,
        Character,
        Location,
        LoreEntry,
        WorldSettings,
    )

logger = logging.getLogger(__name__)

PERSONA = "You are Inkwell, a master co-writer."

# Prose shorter than this is never judged complete
MIN_VERIFIABLE_PROSE = 50

ASPECT_RATIOS = {
    EntityKind.CHARACTER: "3:4",
    EntityKind.LOCATION: "16:9",
}


def verify_beat_completion(
    client: InkwellClient,
    beat: Beat,
    prose: str,
    settings: WorldSettings,
) -> bool:
    """
    Ask the model whether the prose accomplishes the beat's goal.

    Returns False for short prose and on any failure.
    """
    if not prose or len(prose) < MIN_VERIFIABLE_PROSE:
        return False

    prompt = f"""Act as a narrative auditor. Answer in {settings.language}.
BEAT GOAL: {beat.title} - {beat.description}
CURRENT PROSE: {prose}

TASK: Has the author successfully written the events described in the Beat Goal?
Be lenient but ensure the core event occurred."""

    try:
        verdict = client.generate_text(prompt, response_model=BeatVerdict, fast=True)
    except GatewayError as e:
        logger.debug("Beat verification unavailable: %s", e)
        return False
    return verdict.completed


def consult_co_writer(
    client: InkwellClient,
    current_beat: Beat,
    next_beat: Optional[Beat],
    characters: list[Character],
    settings: WorldSettings,
    lore: list[LoreEntry],
    request_prose: bool,
) -> CoWriterAdvice:
    """
    Get bridging advice (and optionally a few sentences of prose).

    Raises:
        GatewayError: if the model service call fails
    """
    next_point = (
        f"{next_beat.title} - {next_beat.description}" if next_beat else "End of Story"
    )
    task = "Write the next 3-5 sentences." if request_prose else "Provide bridge advice."

    prompt = f"""{PERSONA}
CURRENT BEAT GOAL: {current_beat.title} - {current_beat.description}
CURRENT PROSE: {current_beat.draft or "(Empty)"}
NEXT INTENDED PLOT POINT: {next_point}

CONTEXT: {settings.to_context_string(lore)}
CHARACTERS: {json.dumps([c.name for c in characters], ensure_ascii=False)}

TASK: {task}"""

    return client.generate_text(prompt, response_model=CoWriterAdvice)


def analyze_plot(
    client: InkwellClient,
    snapshot: str,
    chapters: list[Chapter],
    characters: list[Character],
    locations: list[Location],
    settings: WorldSettings,
    lore: list[LoreEntry],
) -> StoryAnalysis:
    """
    Run a full consistency pass over the manuscript.

    Raises:
        GatewayError: if the model service call fails
    """
    structure = [chapter.model_dump(exclude={"beats": {"__all__": {"draft"}}}) for chapter in chapters]

    prompt = f"""Analyze this story for consistency and propose additions.
{settings.to_context_string(lore)}

CHAPTERS: {json.dumps(structure, ensure_ascii=False)}
CHARACTERS: {json.dumps([c.model_dump(exclude={"image_url"}) for c in characters], ensure_ascii=False)}
LOCATIONS: {json.dumps([l.model_dump(exclude={"image_url"}) for l in locations], ensure_ascii=False)}

MANUSCRIPT:
{snapshot or "(No prose written yet)"}

Reference chapters and beats by the ids given above. Propose only
characters, locations and lore that are not already recorded."""

    system_prompt = f"""{PERSONA}
You critique manuscripts for plot holes, continuity errors and character drift.
Critic persona: {settings.critic_voice()}"""

    return client.generate_text(
        prompt,
        response_model=StoryAnalysis,
        system_prompt=system_prompt,
    )


def chat_with_inkwell(
    client: InkwellClient,
    history: list[dict[str, str]],
    message: str,
    settings: WorldSettings,
    lore: list[LoreEntry],
) -> str:
    """Send a chat message with the world as system context."""
    return client.chat(history, message, f"{PERSONA} {settings.to_context_string(lore)}")


def visualize_asset(
    client: InkwellClient,
    kind: EntityKind,
    entity: Character | Location,
    settings: WorldSettings,
) -> Optional[str]:
    """
    Generate a portrait (characters) or a scene (locations).

    Returns:
        A ``data:image/png;base64,...`` reference, or None if no image came back
    """
    aspect_ratio = ASPECT_RATIOS.get(kind)
    if aspect_ratio is None:
        raise ValueError(f"Cannot visualize a {kind.value}")

    label = "Portrait" if kind == EntityKind.CHARACTER else "Setting"
    prompt = (
        f"{label}: {entity.name}. {entity.description} "
        f"Style: {settings.genre}, {settings.tone}."
    )

    image = client.generate_image(prompt, aspect_ratio)
    if not image:
        return None
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")


def extract_from_text(
    client: InkwellClient,
    text: str,
    settings: WorldSettings,
) -> Extraction:
    """
    Pull chapters, beats, characters and locations out of a document.

    Raises:
        GatewayError: if the model service call fails
    """
    prompt = (
        f"Extract chapters, beats, characters, and locations "
        f"(answer in {settings.language}) from:\n\n{text}"
    )
    return client.generate_text(prompt, response_model=Extraction)


def _clean_title(raw: str) -> str:
    return raw.strip().strip('"')


def generate_beat_title(client: InkwellClient, description: str, settings: WorldSettings) -> str:
    prompt = (
        f"Give a short {settings.language} title (a few words, no quotes) "
        f"for this story beat: {description}"
    )
    return _clean_title(client.generate_text(prompt, fast=True))


def generate_chapter_title(client: InkwellClient, beats: list[Beat], settings: WorldSettings) -> str:
    prompt = (
        f"Give a short {settings.language} chapter title (no quotes) "
        f"for these beats: {', '.join(b.title for b in beats)}"
    )
    return _clean_title(client.generate_text(prompt, fast=True))
