# Overview: Request document (PDF) generation interface and advisory outcome reporting.

"""
Rendering and storage of request PDFs live outside this system. After a
signature change commits, the signature service asks the configured
DocumentGenerator to regenerate or remove the matching document and reports
the outcome as advisory fields; a generator failure never fails or rolls back
the signature itself.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import get_collaborator
from ..models import Request


DOCUMENT_KIND_APPROVAL = "approval"
DOCUMENT_KIND_PICKUP = "pickup"

_FILE_SUFFIXES = {
    DOCUMENT_KIND_APPROVAL: "Approved",
    DOCUMENT_KIND_PICKUP: "Signed",
}


def document_file_name(request: Request, kind: str) -> str:
    return f"[SYSTEM] Request {request.display_number} - {_FILE_SUFFIXES[kind]}.pdf"


class DocumentGenerator:
    """Interface for the document collaborator."""

    def regenerate(self, request: Request, kind: str) -> None:
        raise NotImplementedError

    def remove(self, request: Request, kind: str) -> None:
        raise NotImplementedError


class NullDocumentGenerator(DocumentGenerator):
    """Default: records intent in the log and produces nothing."""

    def regenerate(self, request, kind):
        current_app.logger.info("Document %s would be regenerated", document_file_name(request, kind))

    def remove(self, request, kind):
        current_app.logger.info("Document %s would be removed", document_file_name(request, kind))


def sync_document(request: Request, kind: str, *, remove: bool = False) -> dict:
    """
    Best-effort regenerate/remove. Call only after the signature commit.

    Returns {"pdf_generated_<kind>": bool, "pdf_error_<kind>": str | None}.
    """
    generator: DocumentGenerator = get_collaborator("documents")
    try:
        if remove:
            generator.remove(request, kind)
        else:
            generator.regenerate(request, kind)
    except Exception as exc:
        current_app.logger.exception(
            "Failed to %s %s document for request %s",
            "remove" if remove else "regenerate", kind, request.display_number,
        )
        return {f"pdf_generated_{kind}": False, f"pdf_error_{kind}": str(exc) or exc.__class__.__name__}
    return {f"pdf_generated_{kind}": not remove, f"pdf_error_{kind}": None}
