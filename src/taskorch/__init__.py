"""In-process task coordination core: registry, readiness, conflicts, lifecycle."""

__version__ = "0.1.0"
