"""notebook-relay - session orchestration for a UI-only AI knowledge service."""

__version__ = "1.0.0"
