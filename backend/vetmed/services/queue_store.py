"""
Durable device-side storage for the offline mutation queue.
A local SQLite file that survives restarts; never part of the server schema.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.config import settings
from ..core.timeutil import ensure_utc, utcnow
from ..models.base import make_engine
from .mutations import QueuedMutation

logger = logging.getLogger(__name__)

QueueBase = declarative_base()


class QueueStorageError(Exception):
    """The local queue database could not be read or written."""


class QueuedMutationRow(QueueBase):
    __tablename__ = "offline_mutation_queue"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(255), unique=True, nullable=False, index=True)
    type = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    retries = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    last_error = Column(Text, nullable=True)
    household_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)

    def to_mutation(self) -> QueuedMutation:
        return QueuedMutation(
            id=self.id,
            type=self.type,
            payload=self.payload,
            timestamp=ensure_utc(self.timestamp),
            household_id=self.household_id,
            user_id=self.user_id,
            retries=self.retries,
            max_retries=self.max_retries,
            last_error=self.last_error,
        )


class QueueLease(QueueBase):
    """Names the queue instance currently allowed to drain a household."""
    __tablename__ = "queue_leases"

    household_id = Column(String, primary_key=True)
    holder_id = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class QueueStore:
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.OFFLINE_QUEUE_DATABASE_URL
        try:
            self.engine = make_engine(self.url)
            QueueBase.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise QueueStorageError(f"Cannot open offline queue at {self.url}: {exc}") from exc
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def _session(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise QueueStorageError(str(exc)) from exc
        finally:
            session.close()

    def _row(self, session, mutation_id: str) -> Optional[QueuedMutationRow]:
        return session.query(QueuedMutationRow).filter(QueuedMutationRow.id == mutation_id).first()

    def add(self, mutation: QueuedMutation) -> bool:
        """Insert a new entry. Returns False if the id is already queued."""
        session = self._session_factory()
        try:
            if self._row(session, mutation.id) is not None:
                return False
            session.add(
                QueuedMutationRow(
                    id=mutation.id,
                    type=mutation.type,
                    payload=mutation.payload,
                    timestamp=mutation.timestamp,
                    retries=mutation.retries,
                    max_retries=mutation.max_retries,
                    last_error=mutation.last_error,
                    household_id=mutation.household_id,
                    user_id=mutation.user_id,
                )
            )
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            return False
        except SQLAlchemyError as exc:
            session.rollback()
            raise QueueStorageError(str(exc)) from exc
        finally:
            session.close()

    def put(self, mutation: QueuedMutation) -> None:
        """Persist retry bookkeeping for an existing entry."""
        with self._session() as session:
            row = self._row(session, mutation.id)
            if row is None:
                logger.debug("Queue entry %s vanished before update", mutation.id)
                return
            row.retries = mutation.retries
            row.last_error = mutation.last_error
            row.payload = mutation.payload

    def get(self, mutation_id: str) -> Optional[QueuedMutation]:
        with self._session() as session:
            row = self._row(session, mutation_id)
            return row.to_mutation() if row is not None else None

    def delete(self, mutation_id: str) -> None:
        with self._session() as session:
            session.query(QueuedMutationRow).filter(QueuedMutationRow.id == mutation_id).delete()

    def list_for_household(self, household_id: str) -> List[QueuedMutation]:
        """Entries in enqueue order; the wall-clock timestamp is informational only."""
        with self._session() as session:
            rows = (
                session.query(QueuedMutationRow)
                .filter(QueuedMutationRow.household_id == household_id)
                .order_by(QueuedMutationRow.seq.asc())
                .all()
            )
            return [row.to_mutation() for row in rows]

    def count(self, household_id: Optional[str] = None) -> int:
        with self._session() as session:
            q = session.query(QueuedMutationRow)
            if household_id:
                q = q.filter(QueuedMutationRow.household_id == household_id)
            return q.count()

    def clear(self, household_id: str) -> int:
        with self._session() as session:
            return (
                session.query(QueuedMutationRow)
                .filter(QueuedMutationRow.household_id == household_id)
                .delete()
            )

    def acquire_lease(
        self,
        household_id: str,
        holder_id: str,
        ttl_seconds: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Take or renew the drain lease. False while another live holder owns it."""
        now = ensure_utc(now) if now else utcnow()
        session = self._session_factory()
        try:
            lease = session.query(QueueLease).filter(QueueLease.household_id == household_id).first()
            if lease is not None and lease.holder_id != holder_id and ensure_utc(lease.expires_at) > now:
                return False
            if lease is None:
                lease = QueueLease(household_id=household_id)
                session.add(lease)
            lease.holder_id = holder_id
            lease.expires_at = now + timedelta(seconds=ttl_seconds)
            session.commit()
            return True
        except IntegrityError:
            # Another holder inserted the lease row first
            session.rollback()
            return False
        except SQLAlchemyError as exc:
            session.rollback()
            raise QueueStorageError(str(exc)) from exc
        finally:
            session.close()

    def release_lease(self, household_id: str, holder_id: str) -> None:
        with self._session() as session:
            session.query(QueueLease).filter(
                QueueLease.household_id == household_id,
                QueueLease.holder_id == holder_id,
            ).delete()
