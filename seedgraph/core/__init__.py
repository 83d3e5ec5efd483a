"""Core infrastructure: config, database, logging, middleware, exceptions."""

from seedgraph.core.config import Settings, get_settings
from seedgraph.core.database import get_db, get_engine
from seedgraph.core.logging import analysis_id_ctx, get_logger, request_id_ctx

__all__ = [
    "Settings",
    "analysis_id_ctx",
    "get_db",
    "get_engine",
    "get_logger",
    "get_settings",
    "request_id_ctx",
]
