"""Live dashboard backend for coding-agent session storage."""

__version__ = "0.1.0"
