# Overview: Append-only audit trail for bill, payment and customer events.

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow

"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back unit of work leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""

EVENT_BILL_CREATED = "bill.created"
EVENT_BILL_UPDATED = "bill.updated"
EVENT_BILL_PAYMENT_APPLIED = "bill.payment_applied"
EVENT_BILL_DELETED = "bill.deleted"
EVENT_PAYMENT_RECORDED = "payment.recorded"
EVENT_PAYMENT_ALLOCATED = "payment.allocated"
EVENT_CUSTOMER_DELETED = "customer.deleted"
EVENT_LEDGER_RECONCILED = "ledger.reconciled"


def record_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    customer_id: int | None = None,
    bill_id: int | None = None,
    payment_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        customer_id=customer_id,
        bill_id=bill_id,
        payment_id=payment_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(
    *,
    event_type: str | None = None,
    customer_id: int | None = None,
    bill_id: int | None = None,
    payment_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditEvent], int]:
    query = db.session.query(AuditEvent)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    if customer_id:
        query = query.filter(AuditEvent.customer_id == customer_id)
    if bill_id:
        query = query.filter(AuditEvent.bill_id == bill_id)
    if payment_id:
        query = query.filter(AuditEvent.payment_id == payment_id)

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    events = (
        query.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return events, total
