from .client import create_session_factory, init_schema, session_scope
from .models import Base, RecordRow

__all__ = ["Base", "RecordRow", "create_session_factory", "init_schema", "session_scope"]
