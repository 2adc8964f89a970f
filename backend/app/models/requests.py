from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


REQUEST_STATUS_DRAFT = "DRAFT"
REQUEST_STATUS_SUBMITTED = "SUBMITTED"
REQUEST_STATUS_APPROVED = "APPROVED"
REQUEST_STATUS_REJECTED = "REJECTED"
REQUEST_STATUS_FULFILLED = "FULFILLED"

REQUEST_STATUSES = (
    REQUEST_STATUS_DRAFT,
    REQUEST_STATUS_SUBMITTED,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_FULFILLED,
)

TERMINAL_REQUEST_STATUSES = (REQUEST_STATUS_REJECTED, REQUEST_STATUS_FULFILLED)


class Request(db.Model):
    """
    Procurement request.

    MULTI-TENANT: (tenant_id, year, sequence) is unique and is the only thing
    that serializes concurrent creators. A collision surfaces at flush time
    and the whole creation is re-run with a fresh sequence.

    SIGNATURES: two embedded slots, approval (signed_*) and pickup
    (pickup_*). Each slot is unset, signed or voided. Voiding clears the
    signed_* columns and stamps the *_voided_* columns; signing again clears
    the void columns (history is kept in request_events).

    LOCK: while either slot is signed, items and descriptive fields cannot
    change. The only legal mutation is voiding the signature.

    STOCK: stock_allocated is True while the lines hold allocated stock
    (OUT movements not yet reversed).
    """
    __tablename__ = "requests"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "year", "sequence", name="uq_requests_tenant_year_sequence"),
        db.UniqueConstraint("tenant_id", "display_number", name="uq_requests_tenant_display_number"),
        db.Index("ix_requests_tenant_status", "tenant_id", "status"),
        db.Index("ix_requests_tenant_requester", "tenant_id", "requester_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    year = db.Column(db.Integer, nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    display_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_DRAFT)
    stock_allocated = db.Column(db.Boolean, nullable=False, default=False)

    requester_user_id = db.Column(db.Integer, nullable=True)
    requester_name = db.Column(db.String(120), nullable=True)
    requester_employee_no = db.Column(db.String(32), nullable=True)
    requesting_service_id = db.Column(db.Integer, nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=False)

    title = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    delivery_location = db.Column(db.String(255), nullable=True)
    expected_delivery_from = db.Column(db.DateTime(timezone=True), nullable=True)
    expected_delivery_to = db.Column(db.DateTime(timezone=True), nullable=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Approval signature slot
    signed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    signed_by_name = db.Column(db.String(120), nullable=True)
    signed_by_title = db.Column(db.String(120), nullable=True)
    signed_by_user_id = db.Column(db.Integer, nullable=True)
    signed_ip = db.Column(db.String(64), nullable=True)
    signed_user_agent = db.Column(db.String(255), nullable=True)
    signed_voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    signed_voided_reason = db.Column(db.String(500), nullable=True)
    signed_voided_by_user_id = db.Column(db.Integer, nullable=True)

    # Pickup signature slot
    pickup_signed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pickup_signed_by_name = db.Column(db.String(120), nullable=True)
    pickup_signed_by_title = db.Column(db.String(120), nullable=True)
    pickup_recorded_by_user_id = db.Column(db.Integer, nullable=True)
    pickup_signed_ip = db.Column(db.String(64), nullable=True)
    pickup_signed_user_agent = db.Column(db.String(255), nullable=True)
    pickup_signature_data_url = db.Column(db.Text, nullable=True)
    pickup_voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pickup_voided_reason = db.Column(db.String(500), nullable=True)
    pickup_voided_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "RequestItem",
        back_populates="request",
        order_by="RequestItem.position",
        cascade="all, delete-orphan",
    )

    @property
    def is_signed(self) -> bool:
        return self.signed_at is not None

    @property
    def is_pickup_signed(self) -> bool:
        return self.pickup_signed_at is not None

    @property
    def is_locked(self) -> bool:
        return self.is_signed or self.is_pickup_signed

    def __repr__(self) -> str:
        return f"<Request id={self.id} number={self.display_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "year": self.year,
            "sequence": self.sequence,
            "display_number": self.display_number,
            "status": self.status,
            "stock_allocated": self.stock_allocated,
            "requester_user_id": self.requester_user_id,
            "requester_name": self.requester_name,
            "requester_employee_no": self.requester_employee_no,
            "requesting_service_id": self.requesting_service_id,
            "created_by_user_id": self.created_by_user_id,
            "title": self.title,
            "notes": self.notes,
            "delivery_location": self.delivery_location,
            "expected_delivery_from": to_utc_z(self.expected_delivery_from),
            "expected_delivery_to": to_utc_z(self.expected_delivery_to),
            "requested_at": to_utc_z(self.requested_at),
            "approval_signature": {
                "signed_at": to_utc_z(self.signed_at),
                "signed_by_name": self.signed_by_name,
                "signed_by_title": self.signed_by_title,
                "signed_by_user_id": self.signed_by_user_id,
                "voided_at": to_utc_z(self.signed_voided_at),
                "voided_reason": self.signed_voided_reason,
                "voided_by_user_id": self.signed_voided_by_user_id,
            },
            "pickup_signature": {
                "signed_at": to_utc_z(self.pickup_signed_at),
                "signed_by_name": self.pickup_signed_by_name,
                "signed_by_title": self.pickup_signed_by_title,
                "recorded_by_user_id": self.pickup_recorded_by_user_id,
                "has_image": self.pickup_signature_data_url is not None,
                "voided_at": to_utc_z(self.pickup_voided_at),
                "voided_reason": self.pickup_voided_reason,
                "voided_by_user_id": self.pickup_voided_by_user_id,
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class RequestItem(db.Model):
    """
    One requested line.

    For unit-tracked products quantity is exactly 1 and `destination` holds
    the code of the unit actually allocated. `position` preserves the order
    the caller supplied, which is also the allocation and restore order.
    """
    __tablename__ = "request_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_request_items_quantity_positive"),
        db.Index("ix_request_items_request_position", "request_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    position = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    destination = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    request = db.relationship("Request", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "product_id": self.product_id,
            "position": self.position,
            "quantity": self.quantity,
            "destination": self.destination,
            "notes": self.notes,
            "unit": self.unit,
            "reference": self.reference,
        }
