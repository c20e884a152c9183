"""Shared fixtures: an in-memory stand-in for the model service."""

import threading

import pytest

from inkwell.core.state import Manuscript
from inkwell.services.dispatch import Dispatcher
from inkwell.services.workshop import Workshop


class FakeClient:
    """
    Records calls and answers from canned responses.

    ``responses`` maps a response model class (or None for plain text)
    to the value to return, or to an exception to raise.
    """

    def __init__(self, responses=None, image=b"\x89PNG fake", chat_reply="Onward."):
        self.responses = dict(responses or {})
        self.image = image
        self.chat_reply = chat_reply
        self.image_gate = None
        self.calls = []

    def generate_text(self, prompt, response_model=None, system_prompt=None, fast=False):
        self.calls.append(("text", prompt, response_model, system_prompt))
        result = self.responses.get(response_model, "")
        if isinstance(result, Exception):
            raise result
        return result

    def generate_image(self, prompt, aspect_ratio="1:1"):
        self.calls.append(("image", prompt, aspect_ratio))
        if self.image_gate is not None:
            self.image_gate.wait(timeout=5)
        if isinstance(self.image, Exception):
            raise self.image
        return self.image

    def chat(self, history, message, system_context):
        self.calls.append(("chat", list(history), message, system_context))
        if isinstance(self.chat_reply, Exception):
            raise self.chat_reply
        return self.chat_reply

    def hold_images(self):
        """Make image generation block until the returned event is set."""
        self.image_gate = threading.Event()
        return self.image_gate


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def workshop(client):
    dispatcher = Dispatcher(max_workers=2)
    shop = Workshop(Manuscript(), client=client, dispatcher=dispatcher)
    yield shop
    dispatcher.shutdown()
