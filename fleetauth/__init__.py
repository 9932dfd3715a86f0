"""Authentication and session lifecycle core for the fleet platform."""

__version__ = "0.1.0"
