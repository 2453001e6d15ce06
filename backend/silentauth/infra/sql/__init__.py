from .sql_session_store import SqlSessionStore

__all__ = ["SqlSessionStore"]
