"""Concept clustering."""
