"""Alert-generation core: scheduled analysis agents, deduplication and feedback-driven accuracy."""

__version__ = "1.0.0"
