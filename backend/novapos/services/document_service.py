# Overview: Service-layer operations for identifier allocation; SALE-000001, PROD-0001, EMP-0001, BR-0001.

from __future__ import annotations

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when an identifier cannot be allocated."""
    pass


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Take the next number for document_type and format it as PREFIX-000N.

    The counter row is created on first use. Flushes only, so a rolled
    back sale or import hands its number back.
    """
    if not document_type or not prefix:
        raise DocumentSequenceError("document_type and prefix are required")

    seq = (
        db.session.query(DocumentSequence)
        .filter_by(document_type=document_type)
        .with_for_update()
        .first()
    )
    if seq is None:
        seq = DocumentSequence(document_type=document_type, next_number=1)
        db.session.add(seq)

    number = seq.next_number
    seq.next_number = number + 1
    db.session.flush()
    return f"{prefix}-{number:0{pad}d}"
