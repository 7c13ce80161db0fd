"""Simulated leveraged trading account with signal-driven auto trading."""

__version__ = "0.1.0"
