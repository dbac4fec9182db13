"""
SQLAlchemy-backed StateStore.

Compare-and-swap is one conditional UPDATE keyed on (user_id, item_id,
version), so atomicity comes from the database and no row lock is held
between read and write.
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..db.database import session_scope
from ..db.models import LearnerItemStateRow
from ..errors import StoreUnavailableError, UnknownItemError
from ..models import LearnerItemState
from .base import StateStore, check_successor


def _to_state(row: LearnerItemStateRow) -> LearnerItemState:
    return LearnerItemState(
        user_id=row.user_id,
        item_id=row.item_id,
        stage=row.stage,
        due_at=row.due_at,
        last_reviewed_at=row.last_reviewed_at,
        consecutive_correct=row.consecutive_correct,
        version=row.version,
    )


def _to_row(state: LearnerItemState) -> LearnerItemStateRow:
    return LearnerItemStateRow(
        user_id=state.user_id,
        item_id=state.item_id,
        stage=state.stage,
        due_at=state.due_at,
        last_reviewed_at=state.last_reviewed_at,
        consecutive_correct=state.consecutive_correct,
        version=state.version,
    )


class SqlStateStore(StateStore):
    """
    StateStore over any SQLAlchemy database.

    Each call runs in its own short transaction via ``session_scope``.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._factory = session_factory

    def read(self, user_id: str, item_id: str) -> LearnerItemState | None:
        try:
            with session_scope(self._factory) as session:
                row = session.get(LearnerItemStateRow, (user_id, item_id))
                return _to_state(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"read failed for ({user_id}, {item_id}): {e}") from e

    def compare_and_swap(
        self,
        user_id: str,
        item_id: str,
        expected_version: int,
        new_state: LearnerItemState,
    ) -> bool:
        check_successor(expected_version, new_state)
        stmt = (
            update(LearnerItemStateRow)
            .where(
                LearnerItemStateRow.user_id == user_id,
                LearnerItemStateRow.item_id == item_id,
                LearnerItemStateRow.version == expected_version,
            )
            .values(
                stage=new_state.stage,
                due_at=new_state.due_at,
                last_reviewed_at=new_state.last_reviewed_at,
                consecutive_correct=new_state.consecutive_correct,
                version=new_state.version,
            )
        )
        try:
            with session_scope(self._factory) as session:
                result = session.execute(stmt)
                if result.rowcount == 1:
                    return True
                if session.get(LearnerItemStateRow, (user_id, item_id)) is None:
                    raise UnknownItemError(user_id, item_id)
                return False
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"CAS failed for ({user_id}, {item_id}): {e}") from e

    def insert_if_absent(self, state: LearnerItemState) -> tuple[LearnerItemState, bool]:
        try:
            with session_scope(self._factory) as session:
                existing = session.get(LearnerItemStateRow, (state.user_id, state.item_id))
                if existing is not None:
                    return _to_state(existing), False
                session.add(_to_row(state))
            return state, True
        except IntegrityError:
            # Lost an insert race; the other writer's row wins.
            logger.debug(f"Concurrent attach of ({state.user_id}, {state.item_id})")
            stored = self.read(state.user_id, state.item_id)
            if stored is None:
                raise StoreUnavailableError(
                    f"insert of ({state.user_id}, {state.item_id}) conflicted but no row exists"
                )
            return stored, False
        except SQLAlchemyError as e:
            raise StoreUnavailableError(
                f"insert failed for ({state.user_id}, {state.item_id}): {e}"
            ) from e

    def query_due(self, user_id: str, as_of: datetime, limit: int) -> list[LearnerItemState]:
        stmt = (
            select(LearnerItemStateRow)
            .where(
                LearnerItemStateRow.user_id == user_id,
                LearnerItemStateRow.due_at <= as_of,
            )
            .order_by(LearnerItemStateRow.due_at, LearnerItemStateRow.item_id)
            .limit(limit)
        )
        try:
            with session_scope(self._factory) as session:
                return [_to_state(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"due query failed for {user_id}: {e}") from e

    def count_for_user(self, user_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(LearnerItemStateRow)
            .where(LearnerItemStateRow.user_id == user_id)
        )
        try:
            with session_scope(self._factory) as session:
                return session.scalar(stmt) or 0
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"count failed for {user_id}: {e}") from e

    def list_for_user(self, user_id: str) -> list[LearnerItemState]:
        stmt = (
            select(LearnerItemStateRow)
            .where(LearnerItemStateRow.user_id == user_id)
            .order_by(LearnerItemStateRow.item_id)
        )
        try:
            with session_scope(self._factory) as session:
                return [_to_state(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"list failed for {user_id}: {e}") from e
