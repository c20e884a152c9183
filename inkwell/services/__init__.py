"""Services for Inkwell."""

from .detector import IncidentalDetector
from .dispatch import Dispatcher, Success, Failure
from .workshop import Workshop

__all__ = [
    "IncidentalDetector", "Dispatcher", "Success", "Failure", "Workshop",
]
