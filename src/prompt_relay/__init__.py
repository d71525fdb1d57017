"""Run prompts through external CLI agents with bounded fallback."""

__version__ = "0.1.0"
