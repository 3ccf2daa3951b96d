"""
Infrastructure: engines and sessions for source and archive stores.
"""

from archivable.infrastructure.db import create_store_engine, make_session_factory, session_scope

__all__ = ["create_store_engine", "make_session_factory", "session_scope"]
