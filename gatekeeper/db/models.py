from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON, Index, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def ensure_utc(value: datetime) -> datetime:
    """SQLite hands timestamps back naive; treat them as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

class TimestampMixin:
    """Mixin for adding timestamp columns"""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

class Application(Base, TimestampMixin):
    """One applicant's join request in one guild"""
    __tablename__ = 'applications'

    id = Column(String(36), primary_key=True)
    short_code = Column(String(6), nullable=False, index=True)  # display code, not unique
    guild_id = Column(String(32), nullable=False)
    user_id = Column(String(32), nullable=False)
    status = Column(String(20), nullable=False, default='draft')
    submitted_at = Column(DateTime(timezone=True))

    # Set by the decision that ended the application
    decided_at = Column(DateTime(timezone=True))
    decided_by = Column(String(32))
    decision_reason = Column(Text)

    permanently_rejected = Column(Boolean, nullable=False, default=False)
    permanent_reject_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('ix_applications_guild_user', 'guild_id', 'user_id'),
        Index('ix_applications_guild_status', 'guild_id', 'status'),
        # At most one draft per applicant and guild
        Index(
            'uq_applications_one_draft', 'guild_id', 'user_id',
            unique=True,
            postgresql_where=text("status = 'draft'"),
            sqlite_where=text("status = 'draft'")
        ),
    )

class ReviewClaim(Base):
    """Advisory ownership of an application by one reviewer"""
    __tablename__ = 'review_claims'

    # Primary key doubles as the one-claim-per-application constraint
    application_id = Column(String(36), ForeignKey('applications.id', ondelete='CASCADE'), primary_key=True)
    reviewer_id = Column(String(32), nullable=False)
    claimed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

class ReviewAction(Base):
    """Append-only audit row for every action taken on an application"""
    __tablename__ = 'review_actions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(String(36), ForeignKey('applications.id', ondelete='CASCADE'), nullable=False)
    actor_id = Column(String(32), nullable=False)
    action = Column(String(32), nullable=False)
    reason = Column(Text)
    meta = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_review_actions_app_time', 'application_id', 'created_at'),
        Index('ix_review_actions_actor_time', 'actor_id', 'created_at'),
    )
