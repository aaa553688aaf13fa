"""Corpus agent: watch remote filesystems and keep a document index in sync."""

__version__ = "0.1.0"
