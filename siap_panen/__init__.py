"""Siap Panen: agentic chat assistant for Indonesian farmers."""

__version__ = "0.1.0"
