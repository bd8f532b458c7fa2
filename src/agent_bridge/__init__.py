"""Relay chat threads to persistent coding-agent terminal sessions."""

__version__ = "0.1.0"
