"""Curiosity Engine - concept graph, clustering and adaptive daily tags."""

__version__ = "0.1.0"
