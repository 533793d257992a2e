"""Concept graph engine."""
