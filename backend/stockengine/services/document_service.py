# Overview: Atomic per-tenant document numbering for adjustments, transfers and counts.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


def next_document_number(
    *,
    tenant_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a tenant/type.

    Runs inside the caller's unit of work, so a rolled-back document also
    gives its number back. The counter row is bumped with a single UPDATE;
    the first number for a type inserts the row instead.
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Another transaction created the sequence first; retry the unit of work.
            raise StaleDataError(f"document sequence {document_type} created concurrently") from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
