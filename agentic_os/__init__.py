"""Agentic OS: fan one prompt out to several AI providers and track the results."""

__version__ = "0.1.0"
