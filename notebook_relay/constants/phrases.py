"""Default phrase sets used to classify streamed answer text.

These lists are tuned against the knowledge service's current UI wording and
change whenever the service rewords its messages. They are defaults only;
``config/phrases.yaml`` (or ``RELAY_PHRASES_FILE``) overrides them at runtime.
"""

from typing import Final, Tuple

# Loading messages shown before real content streams in
PLACEHOLDER_PHRASES: Final[Tuple[str, ...]] = (
    "antwort wird erstellt",
    "answer wird erstellt",
    "answer is being created",
    "answer is being generated",
    "creating answer",
    "generating answer",
    "wird erstellt",
    "getting the context",
    "getting the gist",
    "analyse en cours",
    "loading",
    "please wait",
    "looking for clues",
    "reading full chapters",
    "examining the specifics",
    "checking the scope",
    "opening your notes",
    "analyzing your files",
    "searching your docs",
    "scanning sources",
    "reviewing content",
    "processing request",
)

# Service-side failures: returned immediately, the same session may retry
HARD_ERROR_PHRASES: Final[Tuple[str, ...]] = (
    "le système n'a pas pu répondre",
    "the system could not respond",
    "le système n'a pas réussi",
    "the system failed",
    "an error occurred",
    "une erreur est survenue",
    "try again later",
    "réessayez plus tard",
)

# Quota exhaustion inside the answer area. Keep these narrow: generic phrases
# such as "daily limit" show up in legitimate answers.
RATE_LIMIT_PHRASES: Final[Tuple[str, ...]] = (
    "vous avez atteint la limite quotidienne",
    "limite quotidienne de discussions",
    "daily discussion limit",
    "daily limit reached",
    "query limit reached",
    "rate limit exceeded",
)

# Quota exhaustion echoed by the prompt input (placeholder or value)
INPUT_RATE_LIMIT_PHRASES: Final[Tuple[str, ...]] = RATE_LIMIT_PHRASES + (
    "atteint la limite quotidienne",
    "vous avez atteint la limite",
    "too many requests",
    "request limit reached",
    "quota exhausted",
)

ELLIPSIS_SUFFIXES: Final[Tuple[str, ...]] = ("...", "…")
