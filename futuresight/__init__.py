"""FutureSight: AI flow gateway and calendar import service."""

__version__ = "1.0.0"
