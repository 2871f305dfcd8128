"""
Auth Models — users and their organisational role ("cargo").

Identity and role administration live in an external system; this table is
the read model the task engine needs to answer "who is acting, and with
which role".
"""

import enum
from datetime import datetime, timezone

from fieldops.models import db


class Role(str, enum.Enum):
    """Organisational roles known to the task engine."""

    DIRETOR = "DIRETOR"
    GM = "GM"
    SUPERVISOR = "SUPERVISOR"
    COMPRADOR = "COMPRADOR"
    EXECUTOR = "EXECUTOR"
    COLABORADOR = "COLABORADOR"

    @classmethod
    def parse(cls, value):
        """Return the Role for ``value`` or None when it is not a known role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return None


# ═══════════════════════════════════════════════════════════════
# USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, unique=True)
    role = db.Column(
        db.String(30), nullable=False, default=Role.COLABORADOR.value,
        comment="DIRETOR | GM | SUPERVISOR | COMPRADOR | EXECUTOR | COLABORADOR",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_role", "role"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.name} ({self.role})>"
