"""Graph queries."""
