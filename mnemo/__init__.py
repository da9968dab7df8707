"""Discover and parse local AI coding-agent session transcripts."""

__version__ = "0.1.0"