from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import MerchantStatus


class Merchant(db.Model):
    """
    A prospective merchant and its workflow state.

    Merchant + operators are one aggregate: every transition writes both in
    the same unit of work. version_id makes each UPDATE a compare-and-swap,
    so a concurrent writer on the same row fails with StaleDataError.

    INVARIANTS:
    - short_code is set iff status == FINALLY_VALIDATED and never changes after
    - rejection_reason is non-empty only while a rejection is open
    """
    __tablename__ = "merchants"
    __table_args__ = (
        db.UniqueConstraint("short_code", name="uq_merchants_short_code"),
        db.Index("ix_merchants_status", "status"),
        db.Index("ix_merchants_submitted_by_status", "submitted_by_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Zero-padded decimal, unique when present (NULLs never collide)
    short_code = db.Column(db.String(16), nullable=True)

    # Business
    name = db.Column(db.String(255), nullable=False)
    sector = db.Column(db.String(128), nullable=False)
    commerce_type = db.Column(db.String(128), nullable=False)
    region = db.Column(db.String(128), nullable=False)
    city = db.Column(db.String(128), nullable=False)
    commune = db.Column(db.String(128), nullable=False)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    manager_last_name = db.Column(db.String(128), nullable=False)
    manager_first_name = db.Column(db.String(128), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(32), nullable=False)
    tax_id = db.Column(db.String(64), nullable=True)  # NIF
    trade_register = db.Column(db.String(64), nullable=True)  # RC

    # Identity evidence (URLs into the evidence store)
    id_document_type = db.Column(db.String(32), nullable=False)
    id_front_url = db.Column(db.String(512), nullable=True)
    id_back_url = db.Column(db.String(512), nullable=True)
    passport_url = db.Column(db.String(512), nullable=True)
    shop_photo_url = db.Column(db.String(512), nullable=False)

    # Workflow
    status = db.Column(db.String(32), nullable=False, default=MerchantStatus.PENDING.value)
    rejection_reason = db.Column(db.Text, nullable=True)
    rejection_source = db.Column(db.String(16), nullable=True)

    submitted_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    supervisor_validated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    supervisor_validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    final_validated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    final_validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_modified_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    last_modified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Provisioning hand-off (never touches status or short_code)
    data_entry_agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    provisioning_status = db.Column(db.String(16), nullable=True)
    provisioning_note = db.Column(db.Text, nullable=True)
    provisioned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    operators = db.relationship(
        "Operator",
        back_populates="merchant",
        cascade="all, delete-orphan",
        order_by="Operator.position",
    )

    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id])
    data_entry_agent = db.relationship("User", foreign_keys=[data_entry_agent_id])

    def to_dict(self, include_operators: bool = True) -> dict:
        data = {
            "id": self.id,
            "short_code": self.short_code,
            "name": self.name,
            "sector": self.sector,
            "commerce_type": self.commerce_type,
            "region": self.region,
            "city": self.city,
            "commune": self.commune,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "manager_last_name": self.manager_last_name,
            "manager_first_name": self.manager_first_name,
            "address": self.address,
            "contact": self.contact,
            "tax_id": self.tax_id,
            "trade_register": self.trade_register,
            "id_document_type": self.id_document_type,
            "id_front_url": self.id_front_url,
            "id_back_url": self.id_back_url,
            "passport_url": self.passport_url,
            "shop_photo_url": self.shop_photo_url,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "rejection_source": self.rejection_source,
            "submitted_by_id": self.submitted_by_id,
            "submitted_by_matricule": self.submitted_by.matricule if self.submitted_by else None,
            "supervisor_validated_by_id": self.supervisor_validated_by_id,
            "supervisor_validated_at": to_utc_z(self.supervisor_validated_at),
            "final_validated_by_id": self.final_validated_by_id,
            "final_validated_at": to_utc_z(self.final_validated_at),
            "last_modified_by_id": self.last_modified_by_id,
            "last_modified_at": to_utc_z(self.last_modified_at),
            "data_entry_agent_id": self.data_entry_agent_id,
            "dispatched_at": to_utc_z(self.dispatched_at),
            "provisioning_status": self.provisioning_status,
            "provisioning_note": self.provisioning_note,
            "provisioned_at": to_utc_z(self.provisioned_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_operators:
            data["operators"] = [op.to_dict() for op in self.operators]
        return data


class Operator(db.Model):
    """Person who will operate the merchant account. national_id and phone are unique store-wide."""
    __tablename__ = "merchant_operators"
    __table_args__ = (
        db.UniqueConstraint("national_id", name="uq_merchant_operators_national_id"),
        db.UniqueConstraint("phone", name="uq_merchant_operators_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    last_name = db.Column(db.String(128), nullable=False)
    first_name = db.Column(db.String(128), nullable=False)
    national_id = db.Column(db.String(64), nullable=False)
    phone = db.Column(db.String(32), nullable=False)

    # Mirror of the parent merchant's code once finally validated
    short_code = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    merchant = db.relationship("Merchant", back_populates="operators")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "position": self.position,
            "last_name": self.last_name,
            "first_name": self.first_name,
            "national_id": self.national_id,
            "phone": self.phone,
            "short_code": self.short_code,
            "created_at": to_utc_z(self.created_at),
        }


class MerchantHistory(db.Model):
    """
    Append-only audit trail of merchant transitions.

    Written in the same transaction as the transition it records.
    """
    __tablename__ = "merchant_history"
    __table_args__ = (
        db.Index("ix_merchant_history_merchant_occurred", "merchant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    event = db.Column(db.String(32), nullable=False)
    from_status = db.Column(db.String(32), nullable=True)
    to_status = db.Column(db.String(32), nullable=True)
    reason = db.Column(db.Text, nullable=True)
    short_code = db.Column(db.String(16), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    actor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "actor_id": self.actor_id,
            "actor_matricule": self.actor.matricule if self.actor else None,
            "event": self.event,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "short_code": self.short_code,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class ShortCodeSequence(db.Model):
    """
    Atomic counter behind short-code allocation.

    next_value is the next code to hand out; it is advanced with a single
    UPDATE ... SET next_value = next_value + 1 inside the allocating transaction.
    """
    __tablename__ = "short_code_sequences"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_short_code_sequences_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    next_value = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
