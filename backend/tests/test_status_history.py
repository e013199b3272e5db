from datetime import datetime, timedelta, timezone

import pytest

from conftest import ADDRESS
from medishop.config import settings
from medishop.database import SessionLocal
from medishop.errors import Conflict, InvalidStatus
from medishop.models import Order, OrderItem, Prescription, ReturnRequest
from medishop.schemas.base import dump
from medishop.schemas.order import OrderResponse, StatusHistoryEntry
from medishop.services.status_history import apply_transition, record_transition

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def order(db, make_user):
    user = make_user()
    order = Order(
        user_id=user.id,
        items=[OrderItem(product_id=None, quantity=1, price=120, name="Paracetamol 500mg")],
        shipping_address=ADDRESS,
        subtotal=120, delivery_fee=50, taxes=22, total=192,
        created_by=user
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def test_new_entity_is_fully_populated(order, make_user):
    assert order.status == "pending"
    assert len(order.status_history) == 1
    entry = order.status_history[0]
    assert entry["status"] == "pending"
    assert entry["changed_by_type"] == "user"
    assert entry["changed_by"] == order.user_id
    assert list(order.timeline) == ["pending"]
    assert order.version == 1


def test_initial_status_can_be_chosen(db, make_user):
    order = Order(user_id=make_user().id, status="Placed", shipping_address=ADDRESS)
    assert order.status == "confirmed"
    assert order.timeline.keys() == {"confirmed"}
    assert order.status_history[0]["changed_by_type"] == "system"


def test_transition_appends_history(db, order, make_admin):
    admin = make_admin()
    record_transition(db, order, "confirmed", actor=admin, note="Payment verified")

    assert order.status == "confirmed"
    assert [e["status"] for e in order.status_history] == ["pending", "confirmed"]
    last = order.status_history[-1]
    assert last["note"] == "Payment verified"
    assert last["changed_by"] == admin.id
    assert last["changed_by_type"] == "admin"
    assert order.version == 2


def test_timeline_keeps_first_time_a_status_was_reached(db, order):
    apply_transition(order, "confirmed", now=T0)
    apply_transition(order, "pending", now=T0 + timedelta(hours=1))
    apply_transition(order, "confirmed", now=T0 + timedelta(hours=2))
    db.commit()
    db.refresh(order)

    assert order.timeline["confirmed"] == T0.isoformat()
    assert len(order.status_history) == 4
    assert order.status_history[-1]["changed_at"] == (T0 + timedelta(hours=2)).isoformat()


def test_timeline_column_is_set_once(db, order):
    apply_transition(order, "delivered", now=T0)
    apply_transition(order, "delivered", now=T0 + timedelta(days=1))
    db.commit()
    db.refresh(order)

    assert order.delivered_at.replace(tzinfo=timezone.utc) == T0
    assert order.cancelled_at is None


def test_aliases_and_case_are_normalized(db, order):
    record_transition(db, order, "Out for Delivery")
    assert order.status == "out_for_delivery"


def test_invalid_status_leaves_entity_untouched(db, order):
    with pytest.raises(InvalidStatus) as exc:
        record_transition(db, order, "teleported")

    assert exc.value.status_code == 400
    assert "pending" in exc.value.errors[0]["allowed"]
    db.refresh(order)
    assert order.status == "pending"
    assert len(order.status_history) == 1


def test_any_status_may_follow_any_other_by_default(db, order):
    record_transition(db, order, "delivered")
    record_transition(db, order, "pending")
    assert order.status == "pending"


def test_strict_mode_enforces_adjacency(db, order, monkeypatch):
    monkeypatch.setattr(settings, "STRICT_STATUS_TRANSITIONS", True)

    with pytest.raises(InvalidStatus):
        apply_transition(order, "delivered")

    # re-entering the current status is always allowed
    apply_transition(order, "pending")
    apply_transition(order, "confirmed")
    assert order.status == "confirmed"


def test_prescription_processed_at_follows_first_review_decision(db, make_user):
    user = make_user()
    prescription = Prescription(
        user_id=user.id, file_name="rx.pdf", original_name="rx.pdf",
        file_url="/media/prescriptions/rx.pdf", file_type="application/pdf", file_size=10,
        status="pending"
    )
    db.add(prescription)
    db.commit()
    assert prescription.status == "submitted"

    apply_transition(prescription, "verified", now=T0)
    apply_transition(prescription, "rejected", now=T0 + timedelta(hours=1))
    db.commit()
    db.refresh(prescription)

    assert prescription.status == "rejected"
    assert prescription.processed_at.replace(tzinfo=timezone.utc) == T0


def test_return_refunded_at_is_only_set_by_refund_states(db, make_user, order):
    ret = ReturnRequest(
        order_id=order.id, user_id=order.user_id, reason="damaged",
        reason_description="Box arrived crushed", refund_amount=120
    )
    db.add(ret)
    db.commit()

    apply_transition(ret, "rejected")
    assert ret.refunded_at is None
    apply_transition(ret, "completed", now=T0)
    assert ret.refunded_at == T0


def test_concurrent_writer_gets_conflict(db, order):
    other = SessionLocal()
    try:
        stale = other.query(Order).filter(Order.id == order.id).one()
        assert stale.version == 1

        record_transition(db, order, "confirmed")

        with pytest.raises(Conflict) as exc:
            record_transition(other, stale, "cancelled")
        assert exc.value.status_code == 409
    finally:
        other.close()

    db.refresh(order)
    assert order.status == "confirmed"
    assert [e["status"] for e in order.status_history] == ["pending", "confirmed"]
    assert order.cancelled_at is None


def test_history_round_trips_through_the_response_schema(db, order, make_admin):
    admin = make_admin()
    record_transition(db, order, "confirmed", actor=admin, note="ok")
    record_transition(db, order, "shipped", actor=admin)

    payload = dump(OrderResponse, order)
    entries = [StatusHistoryEntry.model_validate(e) for e in payload["statusHistory"]]

    assert [e.status for e in entries] == ["pending", "confirmed", "shipped"]
    assert entries[1].note == "ok"
    assert entries[1].changed_by == admin.id
    assert entries[1].changed_by_type == "admin"
    assert entries[0].changed_by == order.user_id
    assert [e.changed_at.isoformat() for e in entries] == [
        e["changed_at"] for e in order.status_history
    ]
