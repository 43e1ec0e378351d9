"""SQLAlchemy-backed status store.

Implements ``StatusStore`` over the tables in ``src.db.models``. Each
operation runs in its own short session; database errors on the
preference and duplicate-check paths are translated to the engine's
domain errors so callers can degrade gracefully.
"""

import json
import logging
import zlib
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy import func, insert, literal, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from src.animal_status.config import (
    EventType,
    LifecycleState,
    NotificationCategory,
    Severity,
)
from src.animal_status.errors import (
    DuplicateCheckUnavailableError,
    EntityNotFoundError,
    PreferenceUnavailableError,
)
from src.animal_status.models import (
    ChannelPreference,
    EntityMeta,
    NotificationRecord,
    NotificationStats,
    StatSnapshot,
    StatUpdate,
)
from src.animal_status.store import StatusStore
from src.db.engine import get_sync_session_factory
from src.db.models import (
    AnimalRecord,
    AnimalStatHistoryRecord,
    NotificationPreferenceRecord,
    NotificationRecordRow,
    UserRecord,
)

logger = logging.getLogger(__name__)

_ACTIVE = LifecycleState.ACTIVE.value


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _dedup_lock_key(record: NotificationRecord) -> int:
    """Stable advisory lock id for an (owner, animal, event type) key."""
    raw = f"{record.owner_id}:{record.entity_id}:{record.event_type.value}"
    return zlib.crc32(raw.encode("utf-8"))


def _to_snapshot(row: AnimalStatHistoryRecord) -> StatSnapshot:
    return StatSnapshot(
        entity_id=row.animal_id,
        hunger_percent=row.hunger_percent,
        happiness_percent=row.happiness_percent,
        heat_percent=row.heat_percent,
        is_operable=bool(row.is_operable),
        is_breedable=bool(row.is_breedable),
        lifecycle_state=LifecycleState(row.animal_status or _ACTIVE),
        recorded_at=_as_utc(row.recorded_at),
    )


def _to_preference(row: NotificationPreferenceRecord) -> ChannelPreference:
    now = _utc_now()
    return ChannelPreference(
        owner_id=row.user_id,
        in_app_enabled=bool(row.in_app_enabled),
        email_enabled=bool(row.email_enabled),
        created_at=_as_utc(row.created_at) or now,
        updated_at=_as_utc(row.updated_at) or now,
    )


def _to_record(row: NotificationRecordRow) -> NotificationRecord:
    return NotificationRecord(
        id=row.id,
        owner_id=row.user_id,
        entity_id=row.animal_id,
        event_type=EventType(row.event_type),
        title=row.title,
        message=row.message,
        severity=Severity(row.severity),
        category=NotificationCategory(row.category),
        metadata=json.loads(row.metadata_json) if row.metadata_json else {},
        created_at=_as_utc(row.created_at),
        is_read=bool(row.is_read),
        is_dismissed=bool(row.is_dismissed),
        read_at=_as_utc(row.read_at),
        dismissed_at=_as_utc(row.dismissed_at),
    )


class SqlStatusStore(StatusStore):
    """Status store backed by a SQLAlchemy session factory.

    Args:
        session_factory: Callable returning a new Session. Defaults to the
                         application's configured database.
        clock: Source of "now" for windows and timestamps.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory or get_sync_session_factory()
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- Seeding helpers ---

    def add_entity(self, meta: EntityMeta, stats: Optional[StatUpdate] = None) -> EntityMeta:
        """Insert an animal, creating its owner row if needed."""
        stats = stats or StatUpdate()
        position = meta.position or (None, None, None)
        with self._session() as session:
            if session.get(UserRecord, meta.owner_id) is None:
                session.add(UserRecord(
                    id=meta.owner_id,
                    username=f"user{meta.owner_id}",
                    email=meta.owner_email,
                ))
                session.flush()
            session.add(AnimalRecord(
                id=meta.entity_id,
                user_id=meta.owner_id,
                name=meta.display_name,
                animal_status=meta.lifecycle_state.value,
                hunger_percent=stats.hunger_percent,
                happiness_percent=stats.happiness_percent,
                heat_percent=stats.heat_percent,
                is_operable=stats.is_operable,
                is_breedable=stats.is_breedable,
                age_days=meta.age_days or stats.age_days,
                region=meta.region,
                position_x=position[0],
                position_y=position[1],
                position_z=position[2],
            ))
        return meta

    def set_current_stats(self, entity_id: int, stats: StatUpdate) -> None:
        with self._session() as session:
            animal = session.get(AnimalRecord, entity_id)
            if animal is None:
                raise EntityNotFoundError(entity_id)
            animal.hunger_percent = stats.hunger_percent
            animal.happiness_percent = stats.happiness_percent
            animal.heat_percent = stats.heat_percent
            animal.is_operable = stats.is_operable
            animal.is_breedable = stats.is_breedable
            animal.age_days = stats.age_days

    def set_lifecycle_state(self, entity_id: int, state: LifecycleState) -> None:
        with self._session() as session:
            animal = session.get(AnimalRecord, entity_id)
            if animal is None:
                raise EntityNotFoundError(entity_id)
            animal.animal_status = state.value

    # --- Stat history ---

    def get_previous_snapshot(self, entity_id: int) -> Optional[StatSnapshot]:
        with self._session() as session:
            row = (
                session.query(AnimalStatHistoryRecord)
                .filter(AnimalStatHistoryRecord.animal_id == entity_id)
                .order_by(
                    AnimalStatHistoryRecord.recorded_at.desc(),
                    AnimalStatHistoryRecord.id.desc(),
                )
                .first()
            )
            return _to_snapshot(row) if row is not None else None

    def record_snapshot(self, entity_id: int, snapshot: StatSnapshot) -> None:
        values = {
            "animal_id": entity_id,
            "hunger_percent": snapshot.hunger_percent,
            "happiness_percent": snapshot.happiness_percent,
            "heat_percent": snapshot.heat_percent,
            "is_operable": snapshot.is_operable,
            "is_breedable": snapshot.is_breedable,
            "recorded_at": snapshot.recorded_at,
        }
        try:
            with self._session() as session:
                session.execute(
                    insert(AnimalStatHistoryRecord),
                    [{**values, "animal_status": snapshot.lifecycle_state.value}],
                )
            return
        except SQLAlchemyError as e:
            logger.warning(
                "Stat history insert with lifecycle state failed for animal %s, "
                "retrying without it: %s",
                entity_id, e,
            )

        try:
            with self._session() as session:
                session.execute(insert(AnimalStatHistoryRecord), [values])
        except SQLAlchemyError:
            logger.error("Could not record stats for animal %s", entity_id, exc_info=True)

    def purge_snapshots_before(self, cutoff: datetime) -> int:
        with self._session() as session:
            return (
                session.query(AnimalStatHistoryRecord)
                .filter(AnimalStatHistoryRecord.recorded_at < cutoff)
                .delete(synchronize_session=False)
            )

    # --- Animals ---

    def get_owner_and_entity_meta(self, entity_id: int) -> EntityMeta:
        with self._session() as session:
            result = (
                session.query(AnimalRecord, UserRecord.email)
                .outerjoin(UserRecord, UserRecord.id == AnimalRecord.user_id)
                .filter(AnimalRecord.id == entity_id)
                .first()
            )
            if result is None:
                raise EntityNotFoundError(entity_id)
            animal, email = result
            position = None
            if animal.position_x is not None:
                position = (animal.position_x, animal.position_y or 0.0, animal.position_z or 0.0)
            return EntityMeta(
                entity_id=animal.id,
                owner_id=animal.user_id,
                display_name=animal.name or "Unnamed Animal",
                lifecycle_state=LifecycleState(animal.animal_status or _ACTIVE),
                owner_email=email,
                age_days=animal.age_days or 0,
                region=animal.region,
                position=position,
            )

    def list_active_owner_ids(self) -> list[int]:
        with self._session() as session:
            rows = (
                session.query(AnimalRecord.user_id)
                .filter(AnimalRecord.animal_status == _ACTIVE)
                .distinct()
                .order_by(AnimalRecord.user_id)
                .all()
            )
            return [r[0] for r in rows]

    def list_active_entities(self, owner_id: int) -> list[tuple[int, StatUpdate]]:
        with self._session() as session:
            animals = (
                session.query(AnimalRecord)
                .filter(
                    AnimalRecord.user_id == owner_id,
                    AnimalRecord.animal_status == _ACTIVE,
                )
                .order_by(AnimalRecord.id)
                .all()
            )
            return [
                (a.id, StatUpdate(
                    hunger_percent=a.hunger_percent or 0,
                    happiness_percent=100 if a.happiness_percent is None else a.happiness_percent,
                    heat_percent=a.heat_percent or 0,
                    is_operable=True if a.is_operable is None else bool(a.is_operable),
                    is_breedable=bool(a.is_breedable),
                    age_days=a.age_days or 0,
                ))
                for a in animals
            ]

    # --- Preferences ---

    def get_preference(self, owner_id: int) -> Optional[ChannelPreference]:
        try:
            with self._session() as session:
                row = self._preference_row(session, owner_id)
                return _to_preference(row) if row is not None else None
        except SQLAlchemyError as e:
            raise PreferenceUnavailableError(owner_id, str(e)) from e

    def upsert_preference(
        self,
        preference: ChannelPreference,
        overwrite: bool = True,
    ) -> ChannelPreference:
        owner_id = preference.owner_id
        try:
            try:
                return self._write_preference(preference, overwrite)
            except IntegrityError:
                # Another writer inserted the row first.
                logger.debug("Concurrent preference insert for user %s", owner_id)
                if overwrite:
                    return self._write_preference(preference, overwrite)
                stored = self.get_preference(owner_id)
                if stored is None:
                    raise PreferenceUnavailableError(owner_id)
                return stored
        except PreferenceUnavailableError:
            raise
        except SQLAlchemyError as e:
            raise PreferenceUnavailableError(owner_id, str(e)) from e

    def _write_preference(
        self,
        preference: ChannelPreference,
        overwrite: bool,
    ) -> ChannelPreference:
        now = self.now()
        with self._session() as session:
            row = self._preference_row(session, preference.owner_id)
            if row is None:
                row = NotificationPreferenceRecord(
                    user_id=preference.owner_id,
                    in_app_enabled=preference.in_app_enabled,
                    email_enabled=preference.email_enabled,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                session.flush()
            elif overwrite:
                row.in_app_enabled = preference.in_app_enabled
                row.email_enabled = preference.email_enabled
                row.updated_at = now
                session.flush()
            return _to_preference(row)

    @staticmethod
    def _preference_row(session: Session, owner_id: int) -> Optional[NotificationPreferenceRecord]:
        return (
            session.query(NotificationPreferenceRecord)
            .filter(NotificationPreferenceRecord.user_id == owner_id)
            .first()
        )

    # --- Notifications ---

    def find_recent_notification(
        self,
        owner_id: int,
        entity_id: int,
        event_type: EventType,
        window_seconds: int,
    ) -> bool:
        cutoff = self.now() - timedelta(seconds=window_seconds)
        try:
            with self._session() as session:
                row = (
                    session.query(NotificationRecordRow.id)
                    .filter(
                        NotificationRecordRow.user_id == owner_id,
                        NotificationRecordRow.animal_id == entity_id,
                        NotificationRecordRow.event_type == event_type.value,
                        NotificationRecordRow.is_dismissed.is_(False),
                        NotificationRecordRow.created_at > cutoff,
                    )
                    .first()
                )
                return row is not None
        except SQLAlchemyError as e:
            raise DuplicateCheckUnavailableError(str(e), entity_id) from e

    def insert_notification(self, record: NotificationRecord) -> NotificationRecord:
        created_at = self.now()
        with self._session() as session:
            row = NotificationRecordRow(
                user_id=record.owner_id,
                animal_id=record.entity_id,
                event_type=record.event_type.value,
                title=record.title,
                message=record.message,
                severity=record.severity.value,
                category=record.category.value,
                metadata_json=json.dumps(record.metadata, default=str),
                is_read=record.is_read,
                is_dismissed=record.is_dismissed,
                created_at=created_at,
            )
            session.add(row)
            session.flush()
            return replace(record, id=row.id, created_at=created_at)

    def insert_notification_if_absent(
        self,
        record: NotificationRecord,
        window_seconds: int,
    ) -> Optional[NotificationRecord]:
        try:
            return self._insert_if_absent(record, window_seconds)
        except SQLAlchemyError:
            logger.warning(
                "Conditional insert failed for user %s animal %s (%s); inserting unchecked",
                record.owner_id, record.entity_id, record.event_type.value,
                exc_info=True,
            )
            return self.insert_notification(record)

    def _insert_if_absent(
        self,
        record: NotificationRecord,
        window_seconds: int,
    ) -> Optional[NotificationRecord]:
        created_at = self.now()
        cutoff = created_at - timedelta(seconds=window_seconds)
        table = NotificationRecordRow.__table__
        key = (
            table.c.user_id == record.owner_id,
            table.c.animal_id == record.entity_id,
            table.c.event_type == record.event_type.value,
        )
        values = {
            "user_id": record.owner_id,
            "animal_id": record.entity_id,
            "event_type": record.event_type.value,
            "title": record.title,
            "message": record.message,
            "severity": record.severity.value,
            "category": record.category.value,
            "metadata": json.dumps(record.metadata, default=str),
            "is_read": record.is_read,
            "is_dismissed": record.is_dismissed,
            "created_at": created_at,
        }
        recent = select(table.c.id).where(
            *key,
            table.c.is_dismissed.is_(False),
            table.c.created_at > cutoff,
        ).correlate(None)
        source = select(
            *(literal(value, type_=table.c[name].type) for name, value in values.items())
        ).where(~recent.exists())

        with self._session() as session:
            if session.get_bind().dialect.name == "postgresql":
                # Serializes writers of the same key until commit.
                session.execute(select(func.pg_advisory_xact_lock(_dedup_lock_key(record))))
            result = session.execute(insert(table).from_select(list(values), source))
            if result.rowcount != 1:
                logger.debug(
                    "Notification %s for animal %s already recorded in window",
                    record.event_type.value, record.entity_id,
                )
                return None
            row_id = session.execute(
                select(table.c.id)
                .where(*key, table.c.created_at == created_at)
                .order_by(table.c.id.desc())
                .limit(1)
            ).scalar_one()
            return replace(record, id=row_id, created_at=created_at)

    def get_notification(self, owner_id: int, notification_id: int) -> Optional[NotificationRecord]:
        with self._session() as session:
            row = (
                session.query(NotificationRecordRow)
                .filter(
                    NotificationRecordRow.id == notification_id,
                    NotificationRecordRow.user_id == owner_id,
                )
                .first()
            )
            return _to_record(row) if row is not None else None

    @staticmethod
    def _filtered(
        session: Session,
        owner_id: int,
        unread_only: bool,
        category: Optional[NotificationCategory],
    ) -> Query:
        query = session.query(NotificationRecordRow).filter(
            NotificationRecordRow.user_id == owner_id,
            NotificationRecordRow.is_dismissed.is_(False),
        )
        if unread_only:
            query = query.filter(NotificationRecordRow.is_read.is_(False))
        if category is not None:
            query = query.filter(NotificationRecordRow.category == category.value)
        return query

    def query_notifications(
        self,
        owner_id: int,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        with self._session() as session:
            query = (
                self._filtered(session, owner_id, unread_only, category)
                .order_by(
                    NotificationRecordRow.created_at.desc(),
                    NotificationRecordRow.id.desc(),
                )
                .offset(offset)
            )
            if limit is not None:
                query = query.limit(limit)
            return [_to_record(row) for row in query.all()]

    def count_notifications(
        self,
        owner_id: int,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
    ) -> int:
        with self._session() as session:
            return self._filtered(session, owner_id, unread_only, category).count()

    def mark_read(
        self,
        owner_id: int,
        notification_ids: Optional[list[int]] = None,
        category: Optional[NotificationCategory] = None,
    ) -> list[int]:
        now = self.now()
        with self._session() as session:
            query = self._filtered(session, owner_id, unread_only=True, category=category)
            if notification_ids is not None:
                if not notification_ids:
                    return []
                query = query.filter(NotificationRecordRow.id.in_(notification_ids))
            changed = []
            for row in query.all():
                row.is_read = True
                row.read_at = now
                changed.append(row.id)
            return changed

    def dismiss(self, owner_id: int, notification_ids: list[int]) -> list[int]:
        if not notification_ids:
            return []
        now = self.now()
        with self._session() as session:
            rows = (
                self._filtered(session, owner_id, unread_only=False, category=None)
                .filter(NotificationRecordRow.id.in_(notification_ids))
                .all()
            )
            changed = []
            for row in rows:
                row.is_dismissed = True
                row.dismissed_at = now
                changed.append(row.id)
            return changed

    def notification_stats(self, owner_id: int, since: datetime) -> NotificationStats:
        with self._session() as session:
            base = self._filtered(session, owner_id, unread_only=False, category=None)
            return NotificationStats(
                total=base.count(),
                unread=base.filter(NotificationRecordRow.is_read.is_(False)).count(),
                today=base.filter(NotificationRecordRow.created_at >= since).count(),
                critical=base.filter(
                    NotificationRecordRow.severity == Severity.CRITICAL.value
                ).count(),
            )

    def purge_notifications_before(self, cutoff: datetime) -> int:
        with self._session() as session:
            return (
                session.query(NotificationRecordRow)
                .filter(NotificationRecordRow.created_at < cutoff)
                .delete(synchronize_session=False)
            )
