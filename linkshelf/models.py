from datetime import datetime, timezone

from linkshelf.extensions import db
from linkshelf.services.common import to_iso
from linkshelf.services.passwords import BCRYPT_VERSION


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(30), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    hash_version = db.Column(db.Integer, nullable=False, default=BCRYPT_VERSION)
    user_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    links = db.relationship("Link", backref="user", lazy=True)

    def as_record(self):
        return {
            "username": self.username,
            "passwordHash": self.password_hash,
            "hashVersion": self.hash_version,
            "userHash": self.user_hash,
            "createdAt": to_iso(self.created_at),
            "lastLogin": to_iso(self.last_login) if self.last_login else None,
        }


class Link(db.Model):
    __tablename__ = "links"

    id = db.Column(db.Integer, primary_key=True)
    user_hash = db.Column(
        db.String(64), db.ForeignKey("users.user_hash"), nullable=False, index=True
    )
    url = db.Column(db.Text, nullable=False)
    normalized_url = db.Column(db.Text, nullable=False, index=True)
    title = db.Column(db.String(512), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="general")
    domain = db.Column(db.String(255), nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    is_favorite = db.Column(db.Boolean, nullable=False, default=False)
    date_added = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index("ix_link_user_timestamp", "user_hash", "timestamp"),
        db.Index("ix_link_user_is_read", "user_hash", "is_read"),
    )

    def as_dict(self):
        payload = {
            "id": str(self.id),
            "url": self.url,
            "title": self.title,
            "category": self.category,
            "domain": self.domain,
            "dateAdded": to_iso(self.date_added),
            "timestamp": to_iso(self.timestamp),
            "isRead": 1 if self.is_read else 0,
            "isFavorite": 1 if self.is_favorite else 0,
        }
        if self.updated_at:
            payload["updatedAt"] = to_iso(self.updated_at)
        return payload
