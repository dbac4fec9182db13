from .database import get_engine, init_db, make_engine, make_session_factory, session_scope
from .models import Base, LearnerItemStateRow, ReviewEventRow, UTCDateTime

__all__ = [
    "Base",
    "LearnerItemStateRow",
    "ReviewEventRow",
    "UTCDateTime",
    "get_engine",
    "init_db",
    "make_engine",
    "make_session_factory",
    "session_scope",
]
