"""
Model service gateway for Inkwell.

Universal client for an OpenAI-compatible endpoint (hosted API or a
local Jan/Ollama server).

Features:
- Plain text and structured JSON generation (via instructor)
- Image generation returned as raw bytes
- Multi-turn chat with a system context
- <think> tag stripping for reasoning models
"""

from __future__ import annotations

import base64
import logging
import os
import re
from typing import Optional, TypeVar

import instructor
from dotenv import load_dotenv
from instructor.core.exceptions import InstructorError
from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)

# Aspect ratio -> nearest size the images endpoint accepts
IMAGE_SIZES = {
    "1:1": "1024x1024",
    "3:4": "1024x1536",
    "16:9": "1536x1024",
}


class GatewayError(RuntimeError):
    """Raised when a call to the model service cannot be completed."""


def strip_think(text: str) -> str:
    """Remove <think>...</think> blocks emitted by reasoning models."""
    return THINK_PATTERN.sub("", text).strip()


def reply_text(response) -> str:
    """Pull the first choice's content out of a chat completion."""
    choices = getattr(response, "choices", None)
    if not choices or choices[0].message is None:
        raise GatewayError("Model service returned no choices")
    return strip_think(choices[0].message.content or "")


class InkwellClient:
    """
    Stateless request/response gateway to the model service.

    Every failure (transport, HTTP status, schema validation) surfaces
    as ``GatewayError`` so call sites can pick their own fallback.
    """

    def __init__(self) -> None:
        base_url = os.getenv("LLM_BASE_URL", "http://localhost:1337/v1")
        api_key = os.getenv("LLM_API_KEY", "not-needed")

        self.client = OpenAI(base_url=base_url, api_key=api_key)
        self.model = os.getenv("LLM_MODEL", "deepseek-r1-distill-qwen-7b")
        self.fast_model = os.getenv("LLM_FAST_MODEL", self.model)
        self.image_model = os.getenv("LLM_IMAGE_MODEL", "gpt-image-1")
        self.instructor_client = instructor.from_openai(self.client)

    def generate_text(
        self,
        prompt: str,
        response_model: type[T] | None = None,
        system_prompt: str | None = None,
        fast: bool = False,
    ) -> str | T:
        """
        Generate text, or structured output validated against a Pydantic model.

        Args:
            prompt: The user prompt describing what to generate
            response_model: Optional Pydantic model class to validate against
            system_prompt: Optional system prompt for context
            fast: Use the cheaper model configured for short tasks

        Returns:
            The generated text, or an instance of response_model
        """
        messages: list[dict[str, str]] = []

        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        messages.append({"role": "user", "content": prompt})
        model = self.fast_model if fast else self.model

        try:
            if response_model is not None:
                return self.instructor_client.chat.completions.create(
                    model=model,
                    messages=messages,
                    response_model=response_model,
                )
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
            )
            return reply_text(response)
        except (OpenAIError, InstructorError, ValidationError) as e:
            logger.warning("Text generation failed: %s", e)
            raise GatewayError(str(e)) from e

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> Optional[bytes]:
        """
        Generate a single image.

        Returns:
            PNG bytes, or None when the service returned no image data
        """
        size = IMAGE_SIZES.get(aspect_ratio)
        if size is None:
            raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")

        try:
            response = self.client.images.generate(
                model=self.image_model,
                prompt=prompt,
                size=size,
                n=1,
            )
        except OpenAIError as e:
            logger.warning("Image generation failed: %s", e)
            raise GatewayError(str(e)) from e

        for image in response.data or []:
            if image.b64_json:
                return base64.b64decode(image.b64_json)
        return None

    def chat(
        self,
        history: list[dict[str, str]],
        message: str,
        system_context: str,
    ) -> str:
        """
        Continue a conversation.

        Args:
            history: Prior turns as ``{"role": "user"|"model", "text": ...}``
            message: The new user message
            system_context: System instruction (persona plus world context)

        Returns:
            The model's reply with any <think> content removed
        """
        messages = [{"role": "system", "content": system_context}]
        for turn in history:
            role = "assistant" if turn["role"] == "model" else "user"
            messages.append({"role": role, "content": turn["text"]})
        messages.append({"role": "user", "content": message})

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except OpenAIError as e:
            logger.warning("Chat request failed: %s", e)
            raise GatewayError(str(e)) from e

        return reply_text(response)
