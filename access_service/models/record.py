"""
Record Model - Access Service
One JSON document per hierarchical path, e.g. accessTokens/est-001.
`version` is bumped on every write and backs optimistic transactions.
"""

from datetime import datetime, timezone
from sqlalchemy.dialects.postgresql import JSONB
from access_service.extensions import db


class Record(db.Model):
    __tablename__ = "records"

    path = db.Column(db.String(512), primary_key=True)
    parent = db.Column(db.String(512), nullable=False, index=True)
    key = db.Column(db.String(255), nullable=False)
    value = db.Column(db.JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
