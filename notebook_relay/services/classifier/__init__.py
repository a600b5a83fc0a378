"""Response classification."""

from .phrases import PhraseSets
from .response_classifier import (
    ClassificationOutcome,
    ResponseClassifier,
    ResponseSnapshot,
    text_hash,
)

__all__ = [
    "ClassificationOutcome",
    "PhraseSets",
    "ResponseClassifier",
    "ResponseSnapshot",
    "text_hash",
]
