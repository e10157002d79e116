"""Slackspin keeps a Slack profile photo and status moving."""

__version__ = "0.1.0"
