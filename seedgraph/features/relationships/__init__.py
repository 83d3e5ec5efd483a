"""Relationships feature module exposing dependency analysis via REST API.

This feature provides REST endpoints for the relationship analysis engine,
allowing the data generation pipeline to fetch the dependency graph and a
safe seeding order.
"""

from seedgraph.features.relationships.routes import router

__all__ = ["router"]
