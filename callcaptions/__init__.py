"""Two-party call orchestration with live, translated captions."""

__version__ = "0.1.0"
