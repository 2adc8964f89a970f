# Overview: Pytest coverage for approval/pickup signature slots and pickup-driven fulfilment.

import pytest
from app.errors import AlreadySignedError, ConflictError, ForbiddenError, ValidationError
from app.extensions import COLLABORATORS_KEY
from app.models import Product, Request, RequestEvent
from app.models.requests import (
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_FULFILLED,
    REQUEST_STATUS_SUBMITTED,
)
from app.schemas import PickupSignCommand, SignCommand, VoidSignatureCommand
from app.services import document_service, signature_service, workflow_service
from app.services.ledger_service import (
    REQUEST_EVENT_APPROVAL_SIGNED,
    REQUEST_EVENT_APPROVAL_VOIDED,
    REQUEST_EVENT_PICKUP_SIGNED,
)

from conftest import PNG_SIGNATURE


@pytest.fixture
def approved_request(db_session, stock_product, make_request, admin_ctx):
    product = stock_product(5)
    req = make_request([(product, 2)], submit=True)
    return workflow_service.approve(admin_ctx, req.id)


def _pickup(name="Sam Receiver"):
    return PickupSignCommand(name=name, title="Technician", signature_data_url=PNG_SIGNATURE)


class TestCommands:

    def test_signer_name_required(self):
        with pytest.raises(ValidationError):
            SignCommand(name="   ")

    def test_signer_name_max_length(self):
        with pytest.raises(ValidationError):
            SignCommand(name="x" * 121)

    def test_pickup_needs_png_data_url(self):
        with pytest.raises(ValidationError):
            PickupSignCommand(name="Sam", signature_data_url="data:image/jpeg;base64,AAAA")
        with pytest.raises(ValidationError):
            PickupSignCommand(name="Sam", signature_data_url="data:image/png;base64,AA")

    @pytest.mark.parametrize("reason", [None, "", "no", "x" * 501])
    def test_void_reason_bounds(self, reason):
        with pytest.raises(ValidationError):
            VoidSignatureCommand(reason=reason)


class TestApprovalSignature:

    def test_sign_records_signer(self, db_session, approved_request, admin_ctx):
        outcome = signature_service.sign_approval(
            admin_ctx, approved_request.id, SignCommand(name="  Dana Head ", title="Director")
        )

        req = db_session.get(Request, approved_request.id)
        assert req.signed_by_name == "Dana Head"
        assert req.signed_by_title == "Director"
        assert req.signed_by_user_id == admin_ctx.actor_id
        assert req.signed_ip == admin_ctx.ip_address
        assert req.signed_at is not None
        assert outcome.to_dict()["pdf_generated_approval"] is True

    def test_second_signature_is_conflict(self, db_session, approved_request, admin_ctx):
        signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Dana"))

        with pytest.raises(AlreadySignedError) as exc_info:
            signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Eve"))

        assert str(exc_info.value) == "Request already signed"
        assert db_session.get(Request, approved_request.id).signed_by_name == "Dana"

    def test_void_then_resign(self, db_session, approved_request, admin_ctx):
        signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Dana"))

        signature_service.void_approval(admin_ctx, approved_request.id, VoidSignatureCommand(reason="wrong signer"))
        req = db_session.get(Request, approved_request.id)
        assert req.signed_at is None
        assert req.signed_voided_reason == "wrong signer"
        assert req.signed_voided_by_user_id == admin_ctx.actor_id

        signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Eve"))
        req = db_session.get(Request, approved_request.id)
        assert req.signed_by_name == "Eve"
        assert req.signed_voided_at is None

        types = [
            e.event_type for e in db_session.query(RequestEvent)
            .filter_by(request_id=req.id).order_by(RequestEvent.id)
        ]
        assert types[-3:] == [
            REQUEST_EVENT_APPROVAL_SIGNED,
            REQUEST_EVENT_APPROVAL_VOIDED,
            REQUEST_EVENT_APPROVAL_SIGNED,
        ]

    def test_void_unsigned_is_conflict(self, db_session, approved_request, admin_ctx):
        with pytest.raises(ConflictError):
            signature_service.void_approval(admin_ctx, approved_request.id, VoidSignatureCommand(reason="nothing"))

    def test_user_cannot_sign_or_void(self, db_session, approved_request, user_ctx, admin_ctx):
        with pytest.raises(ForbiddenError):
            signature_service.sign_approval(user_ctx, approved_request.id, SignCommand(name="Me"))

        signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Dana"))
        with pytest.raises(ForbiddenError):
            signature_service.void_approval(user_ctx, approved_request.id, VoidSignatureCommand(reason="mine"))

    def test_rejected_request_cannot_be_signed(self, db_session, stock_product, make_request, admin_ctx):
        product = stock_product(5)
        req = make_request([(product, 1)], submit=True)
        workflow_service.reject(admin_ctx, req.id)

        with pytest.raises(ConflictError):
            signature_service.sign_approval(admin_ctx, req.id, SignCommand(name="Dana"))


class TestPickupSignature:

    def test_pickup_fulfils_approved_request(self, db_session, approved_request, admin_ctx, recording_emitter):
        product_id = approved_request.items[0].product_id

        outcome = signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup())

        req = db_session.get(Request, approved_request.id)
        assert req.status == REQUEST_STATUS_FULFILLED
        assert req.pickup_signed_by_name == "Sam Receiver"
        assert req.pickup_recorded_by_user_id == admin_ctx.actor_id
        assert req.pickup_signature_data_url == PNG_SIGNATURE
        # Fulfilment keeps the allocation; nothing comes back to stock
        assert db_session.get(Product, product_id).quantity == 3
        assert (req.id, REQUEST_STATUS_APPROVED, REQUEST_STATUS_FULFILLED) in recording_emitter.audits
        assert outcome.to_dict()["pdf_generated_pickup"] is True

    def test_pickup_on_submitted_keeps_status(self, db_session, stock_product, make_request, admin_ctx):
        product = stock_product(5)
        req = make_request([(product, 1)], submit=True)

        signature_service.sign_pickup(admin_ctx, req.id, _pickup())

        req = db_session.get(Request, req.id)
        assert req.status == REQUEST_STATUS_SUBMITTED
        assert req.is_pickup_signed

    def test_second_pickup_is_conflict(self, db_session, approved_request, admin_ctx):
        signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup())

        with pytest.raises(AlreadySignedError) as exc_info:
            signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup("Someone Else"))
        assert str(exc_info.value) == "Pickup already signed"

    def test_void_pickup_keeps_fulfilled(self, db_session, approved_request, admin_ctx):
        signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup())

        signature_service.void_pickup(admin_ctx, approved_request.id, VoidSignatureCommand(reason="smudged"))

        req = db_session.get(Request, approved_request.id)
        assert req.status == REQUEST_STATUS_FULFILLED
        assert req.pickup_signed_at is None
        assert req.pickup_signature_data_url is None
        assert req.pickup_voided_reason == "smudged"

        signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup("Sam Again"))
        req = db_session.get(Request, approved_request.id)
        assert req.pickup_signed_by_name == "Sam Again"
        assert req.pickup_voided_at is None

    def test_pickup_event_recorded(self, db_session, approved_request, admin_ctx):
        signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup())
        assert db_session.query(RequestEvent).filter_by(
            request_id=approved_request.id, event_type=REQUEST_EVENT_PICKUP_SIGNED
        ).count() == 1

    def test_slots_are_independent(self, db_session, approved_request, admin_ctx):
        signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Dana"))
        signature_service.sign_pickup(admin_ctx, approved_request.id, _pickup())
        signature_service.void_approval(admin_ctx, approved_request.id, VoidSignatureCommand(reason="redo"))

        req = db_session.get(Request, approved_request.id)
        assert not req.is_signed
        assert req.is_pickup_signed
        assert req.is_locked


class FailingDocumentGenerator(document_service.DocumentGenerator):

    def regenerate(self, request, kind):
        raise RuntimeError("renderer offline")

    def remove(self, request, kind):
        raise RuntimeError("renderer offline")


class TestDocuments:

    def test_document_failure_is_advisory(self, app, db_session, approved_request, admin_ctx, monkeypatch):
        monkeypatch.setitem(app.extensions[COLLABORATORS_KEY], "documents", FailingDocumentGenerator())

        outcome = signature_service.sign_approval(admin_ctx, approved_request.id, SignCommand(name="Dana"))

        body = outcome.to_dict()
        assert body["pdf_generated_approval"] is False
        assert body["pdf_error_approval"] == "renderer offline"
        assert db_session.get(Request, approved_request.id).is_signed

    def test_document_file_names(self, db_session, approved_request):
        name = document_service.document_file_name(approved_request, document_service.DOCUMENT_KIND_PICKUP)
        assert name == f"[SYSTEM] Request {approved_request.display_number} - Signed.pdf"
