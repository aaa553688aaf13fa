"""Core utilities: settings, logging and exceptions."""
