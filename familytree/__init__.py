"""Family tree record service: people, typed relationships, derived tree views."""

__version__ = "0.1.0"
