# Overview: Typed command objects for core operations, validated on construction.

"""
Each command is built either directly (services, CLI, tests) or from a JSON
payload via `from_payload`. Construction raises ValidationError, so a
malformed command never reaches a transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ValidationError
from .models import Request
from .models.inventory import MOVEMENT_LOST, MOVEMENT_SCRAP
from .validation import (
    ModelValidationPolicy,
    SIGNER_NAME_MAX_LENGTH,
    SIGNER_TITLE_MAX_LENGTH,
    coerce_datetime,
    coerce_int,
    enforce_rules_request_details,
    optional_text,
    require_png_data_url,
    require_text,
    validate_payload,
)


VOID_REASON_MIN_LENGTH = 3
VOID_REASON_MAX_LENGTH = 500

REQUEST_DETAILS_POLICY = ModelValidationPolicy(
    writable_fields={
        "title",
        "notes",
        "delivery_location",
        "expected_delivery_from",
        "expected_delivery_to",
        "requester_name",
        "requester_employee_no",
    },
)


def _payload_dict(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@dataclass(frozen=True)
class ItemSpec:
    """One requested line. `destination` names a unit code for unit-tracked products."""
    product_id: int
    quantity: int = 1
    destination: Optional[str] = None
    notes: Optional[str] = None
    unit: Optional[str] = None
    reference: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.product_id, bool) or not isinstance(self.product_id, int) or self.product_id <= 0:
            raise ValidationError("product_id must be a positive integer")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValidationError("quantity must be an integer >= 1")

    @classmethod
    def from_payload(cls, payload: Any) -> "ItemSpec":
        data = _payload_dict(payload)
        if "product_id" not in data:
            raise ValidationError("product_id is required")
        return cls(
            product_id=coerce_int(data["product_id"], "product_id"),
            quantity=coerce_int(data.get("quantity", 1), "quantity"),
            destination=optional_text(data.get("destination"), "destination", max_length=255),
            notes=optional_text(data.get("notes"), "notes"),
            unit=optional_text(data.get("unit"), "unit", max_length=32),
            reference=optional_text(data.get("reference"), "reference", max_length=128),
        )


def _items_from_payload(raw: Any, *, allow_empty: bool) -> tuple:
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    if not raw and not allow_empty:
        raise ValidationError("at least one item is required")
    return tuple(ItemSpec.from_payload(entry) for entry in raw)


@dataclass(frozen=True)
class CreateRequestCommand:
    items: tuple
    details: dict = field(default_factory=dict)
    submit: bool = False
    requester_user_id: Optional[int] = None

    def __post_init__(self):
        if not self.items:
            raise ValidationError("at least one item is required")
        object.__setattr__(self, "details", enforce_rules_request_details(self.details))

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateRequestCommand":
        data = dict(_payload_dict(payload))
        items = _items_from_payload(data.pop("items", None), allow_empty=False)
        submit = data.pop("submit", False)
        if not isinstance(submit, bool):
            raise ValidationError("submit must be a boolean")
        requester_user_id = data.pop("requester_user_id", None)
        if requester_user_id is not None:
            requester_user_id = coerce_int(requester_user_id, "requester_user_id")
        details = validate_payload(model=Request, payload=data, policy=REQUEST_DETAILS_POLICY, partial=True)
        return cls(items=items, details=details, submit=submit, requester_user_id=requester_user_id)


@dataclass(frozen=True)
class ReplaceItemsCommand:
    items: tuple

    def __post_init__(self):
        if not self.items:
            raise ValidationError("at least one item is required")

    @classmethod
    def from_payload(cls, payload: Any) -> "ReplaceItemsCommand":
        data = _payload_dict(payload)
        return cls(items=_items_from_payload(data.get("items"), allow_empty=False))


@dataclass(frozen=True)
class UpdateDetailsCommand:
    changes: dict

    def __post_init__(self):
        if not self.changes:
            raise ValidationError("no fields to update")
        object.__setattr__(self, "changes", enforce_rules_request_details(self.changes))

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateDetailsCommand":
        changes = validate_payload(
            model=Request, payload=_payload_dict(payload), policy=REQUEST_DETAILS_POLICY, partial=True
        )
        return cls(changes=changes)


@dataclass(frozen=True)
class TransitionCommand:
    note: Optional[str] = None

    def __post_init__(self):
        if self.note is not None and len(self.note) > 500:
            raise ValidationError("note exceeds max length 500")

    @classmethod
    def from_payload(cls, payload: Any) -> "TransitionCommand":
        data = _payload_dict(payload)
        return cls(note=optional_text(data.get("note"), "note", max_length=500))


@dataclass(frozen=True)
class SignCommand:
    name: str
    title: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "name", require_text(self.name, "name", max_length=SIGNER_NAME_MAX_LENGTH))
        object.__setattr__(self, "title", optional_text(self.title, "title", max_length=SIGNER_TITLE_MAX_LENGTH))

    @classmethod
    def from_payload(cls, payload: Any) -> "SignCommand":
        data = _payload_dict(payload)
        return cls(name=data.get("name"), title=data.get("title"))


@dataclass(frozen=True)
class PickupSignCommand:
    name: str
    signature_data_url: str
    title: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "name", require_text(self.name, "name", max_length=SIGNER_NAME_MAX_LENGTH))
        object.__setattr__(self, "title", optional_text(self.title, "title", max_length=SIGNER_TITLE_MAX_LENGTH))
        require_png_data_url(self.signature_data_url)

    @classmethod
    def from_payload(cls, payload: Any) -> "PickupSignCommand":
        data = _payload_dict(payload)
        return cls(
            name=data.get("name"),
            title=data.get("title"),
            signature_data_url=data.get("signature_data_url"),
        )


@dataclass(frozen=True)
class VoidSignatureCommand:
    reason: str

    def __post_init__(self):
        object.__setattr__(
            self,
            "reason",
            require_text(
                self.reason,
                "reason",
                min_length=VOID_REASON_MIN_LENGTH,
                max_length=VOID_REASON_MAX_LENGTH,
            ),
        )

    @classmethod
    def from_payload(cls, payload: Any) -> "VoidSignatureCommand":
        return cls(reason=_payload_dict(payload).get("reason"))


@dataclass(frozen=True)
class ReceiveStockCommand:
    """
    Intake of new stock. unit_tracked=True creates one ProductUnit per item;
    the optional identifiers apply only when a single unit is received.
    """
    product_id: int
    quantity: int
    invoice_number: str
    unit_tracked: bool = False
    issued_at: Optional[Any] = None
    serial_number: Optional[str] = None
    part_number: Optional[str] = None
    asset_tag: Optional[str] = None
    notes: Optional[str] = None
    request_id: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValidationError("quantity must be an integer >= 1")
        object.__setattr__(
            self, "invoice_number", require_text(self.invoice_number, "invoice_number", max_length=64)
        )
        has_identifiers = any((self.serial_number, self.part_number, self.asset_tag))
        if has_identifiers and not self.unit_tracked:
            raise ValidationError("serial_number, part_number and asset_tag require unit_tracked intake")
        if has_identifiers and self.quantity != 1:
            raise ValidationError("unit identifiers can only be set when receiving a single unit")

    @classmethod
    def from_payload(cls, payload: Any) -> "ReceiveStockCommand":
        data = _payload_dict(payload)
        for required in ("product_id", "quantity", "invoice_number"):
            if required not in data:
                raise ValidationError(f"{required} is required")
        unit_tracked = data.get("unit_tracked", False)
        if not isinstance(unit_tracked, bool):
            raise ValidationError("unit_tracked must be a boolean")
        request_id = data.get("request_id")
        return cls(
            product_id=coerce_int(data["product_id"], "product_id"),
            quantity=coerce_int(data["quantity"], "quantity"),
            invoice_number=data["invoice_number"],
            unit_tracked=unit_tracked,
            issued_at=coerce_datetime(data.get("issued_at"), "issued_at"),
            serial_number=optional_text(data.get("serial_number"), "serial_number", max_length=128),
            part_number=optional_text(data.get("part_number"), "part_number", max_length=128),
            asset_tag=optional_text(data.get("asset_tag"), "asset_tag", max_length=128),
            notes=optional_text(data.get("notes"), "notes"),
            request_id=coerce_int(request_id, "request_id") if request_id is not None else None,
        )


WRITE_OFF_TYPES = (MOVEMENT_LOST, MOVEMENT_SCRAP)


@dataclass(frozen=True)
class WriteOffCommand:
    product_id: int
    quantity: int
    movement_type: str
    reason: str

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValidationError("quantity must be an integer >= 1")
        if self.movement_type not in WRITE_OFF_TYPES:
            raise ValidationError(f"type must be one of {', '.join(WRITE_OFF_TYPES)}")
        object.__setattr__(self, "reason", require_text(self.reason, "reason", min_length=3, max_length=255))

    @classmethod
    def from_payload(cls, payload: Any) -> "WriteOffCommand":
        data = _payload_dict(payload)
        for required in ("product_id", "quantity", "type", "reason"):
            if required not in data:
                raise ValidationError(f"{required} is required")
        return cls(
            product_id=coerce_int(data["product_id"], "product_id"),
            quantity=coerce_int(data["quantity"], "quantity"),
            movement_type=str(data["type"]).strip().upper(),
            reason=data["reason"],
        )


@dataclass(frozen=True)
class UnitScanCommand:
    """A scanned unit code plus optional custody details."""
    code: str
    reason: Optional[str] = None
    assigned_to_user_id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "code", require_text(self.code, "code", max_length=64))
        object.__setattr__(self, "reason", optional_text(self.reason, "reason", max_length=200))

    @classmethod
    def from_payload(cls, code: str, payload: Any) -> "UnitScanCommand":
        data = _payload_dict(payload)
        assigned = data.get("assigned_to_user_id")
        if assigned is not None:
            assigned = coerce_int(assigned, "assigned_to_user_id")
        return cls(code=code, reason=data.get("reason"), assigned_to_user_id=assigned)
