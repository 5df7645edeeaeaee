"""Relay: a tool-calling runtime for AI coding assistants."""

__version__ = "0.1.0"
