"""Recommendation and analytics layer over a Neo4j shop graph."""

__version__ = "0.1.0"
