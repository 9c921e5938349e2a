# Overview: Sequential document numbers (bills, payments) backed by document_sequences.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


BILL_SEQUENCE_KEY = "BILL"
BILL_SEQUENCE_START = 1001

PAYMENT_PREFIX = "PAY"
PAYMENT_SEQUENCE_START = 1
PAYMENT_SEQUENCE_PAD = 4


def allocate_number(connection: Connection, key: str, *, start: int = 1) -> int:
    """
    Atomically take the next number of sequence `key`.

    Runs on the caller's connection so the increment commits or rolls back
    with the document that consumes it. A missing counter row is created at
    `start`; if a concurrent transaction creates it first, the unique index
    rejects our insert and we fall back to the increment.
    """
    table = DocumentSequence.__table__
    bump = (
        update(table)
        .where(table.c.key == key)
        .values(next_number=table.c.next_number + 1)
    )
    current = select(table.c.next_number).where(table.c.key == key)

    result = connection.execute(bump)
    if result.rowcount:
        return connection.execute(current).scalar_one() - 1

    try:
        with connection.begin_nested():
            connection.execute(insert(table).values(key=key, next_number=start + 1))
        return start
    except IntegrityError:
        result = connection.execute(bump)
        if not result.rowcount:
            raise
        return connection.execute(current).scalar_one() - 1


def next_bill_number() -> str:
    """BILL-1001, BILL-1002, ... allocated inside the current session transaction."""
    number = allocate_number(
        db.session.connection(), BILL_SEQUENCE_KEY, start=BILL_SEQUENCE_START
    )
    return f"BILL-{number}"


def payment_sequence_key(day: datetime) -> str:
    return f"{PAYMENT_PREFIX}{day.strftime('%y%m%d')}"


def next_payment_number(connection: Connection, created_at: datetime) -> str:
    """PAYyymmdd0001, PAYyymmdd0002, ...; the counter restarts every calendar day."""
    key = payment_sequence_key(created_at)
    number = allocate_number(connection, key, start=PAYMENT_SEQUENCE_START)
    return f"{key}{number:0{PAYMENT_SEQUENCE_PAD}d}"
