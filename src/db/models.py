"""SQLAlchemy ORM models for Farmheart.

Tables:
- users: Account owners and their email addresses
- animals: Animals with their latest reported stats and lifecycle state
- animal_stat_history: Append-only stat snapshots used for edge detection
- notifications: Stored notifications shown in the in-app inbox
- user_notification_preferences: Per-user delivery channel switches
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from src.db.base import Base


class UserRecord(Base):
    """Farm owner."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False)
    email = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AnimalRecord(Base):
    """Animal and its most recent reported stats."""

    __tablename__ = "animals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100))
    animal_status = Column(String(20), nullable=False, default="active", index=True)

    hunger_percent = Column(Integer, default=0)
    happiness_percent = Column(Integer, default=100)
    heat_percent = Column(Integer, default=0)
    is_operable = Column(Boolean, default=True)
    is_breedable = Column(Boolean, default=False)
    age_days = Column(Integer, default=0)

    region = Column(String(100))
    position_x = Column(Float)
    position_y = Column(Float)
    position_z = Column(Float)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AnimalStatHistoryRecord(Base):
    """One recorded stat reading. Rows are never updated."""

    __tablename__ = "animal_stat_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    animal_id = Column(Integer, ForeignKey("animals.id"), nullable=False)
    hunger_percent = Column(Integer, nullable=False)
    happiness_percent = Column(Integer, nullable=False)
    heat_percent = Column(Integer, nullable=False)
    is_operable = Column(Boolean, nullable=False)
    is_breedable = Column(Boolean, nullable=False)
    animal_status = Column(String(20))  # null on rows written before lifecycle tracking
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_stat_history_animal_recorded", "animal_id", "recorded_at"),
    )


class NotificationRecordRow(Base):
    """Notification stored for a user."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    animal_id = Column(Integer, ForeignKey("animals.id"), nullable=False)
    event_type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False)
    category = Column(String(40), nullable=False)
    metadata_json = Column("metadata", Text)  # JSON object
    is_read = Column(Boolean, nullable=False, default=False)
    is_dismissed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    read_at = Column(DateTime(timezone=True))
    dismissed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "ix_notifications_dedup",
            "user_id", "animal_id", "event_type", "created_at",
        ),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )


class NotificationPreferenceRecord(Base):
    """Delivery channel switches; one row per user."""

    __tablename__ = "user_notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    in_app_enabled = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_notification_preferences_user"),
    )
