from .base import StateStore
from .memory import InMemoryStateStore
from .sql import SqlStateStore

__all__ = ["StateStore", "InMemoryStateStore", "SqlStateStore"]
