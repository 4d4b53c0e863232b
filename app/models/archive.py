"""
Archive Mixin.

Adds an `archived_at` timestamp column and query helpers. Boards, columns,
tasks and sprints are retired by archiving; nothing in the platform is
hard-deleted.

Usage:
    class MyModel(ArchiveMixin, db.Model):
        ...

    obj.archive()
    MyModel.query_active().all()
"""

from datetime import datetime, timezone

from app.models import db


class ArchiveMixin:
    """Mixin that adds archive support to any SQLAlchemy model."""

    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def archive(self):
        """Mark this record as archived."""
        self.archived_at = datetime.now(timezone.utc)

    @property
    def is_archived(self):
        return self.archived_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes archived records."""
        return cls.query.filter(cls.archived_at.is_(None))
