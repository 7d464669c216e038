"""SolidTime active-timer client."""

__version__ = "0.1.0"
