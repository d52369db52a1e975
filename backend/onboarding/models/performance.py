from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AgentPerformance(db.Model):
    """
    Per-user workflow counters.

    Counters are advanced with column-level UPDATE col = col + 1 so concurrent
    increments never lose updates. They are statistics, not the source of truth.
    """
    __tablename__ = "agent_performance"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_agent_performance_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    enrollments = db.Column(db.Integer, nullable=False, default=0)
    validations = db.Column(db.Integer, nullable=False, default=0)
    rejections = db.Column(db.Integer, nullable=False, default=0)
    data_entry_created = db.Column(db.Integer, nullable=False, default=0)
    data_entry_failed = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("performance", uselist=False))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "matricule": self.user.matricule if self.user else None,
            "enrollments": self.enrollments,
            "validations": self.validations,
            "rejections": self.rejections,
            "data_entry_created": self.data_entry_created,
            "data_entry_failed": self.data_entry_failed,
            "updated_at": to_utc_z(self.updated_at),
        }
