"""Configuration, logging, WSGI middleware and webhook management for a banking partner integration."""

__version__ = "0.1.0"