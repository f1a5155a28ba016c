"""Real-time conversation and messaging service for the alumni platform."""

__version__ = "0.1.0"
