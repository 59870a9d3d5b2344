"""Command and interaction routing runtime for a Discord community bot."""

__version__ = "0.1.0"
