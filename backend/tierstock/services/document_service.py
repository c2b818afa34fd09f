# Overview: Allocation of human-readable document numbers for requests and orders.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Atomically allocate the next document number for a type, e.g. PO-000042.

    Increments with a single UPDATE so concurrent callers serialize on the
    sequence row. Runs inside the caller's transaction; the first allocation
    inserts the row in a savepoint and falls back to the UPDATE if another
    caller inserted it first.
    """
    if not document_type:
        raise ValueError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            return f"{prefix}-{1:0{pad}d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{current - 1:0{pad}d}"
