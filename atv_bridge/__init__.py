"""HTTP bridge between a home-automation hub and Android TVs."""

__version__ = "1.0.0"
