"""Invariant audit over memberships and orders."""

from groupbuy.cart import Cart
from groupbuy.models import BatchProduct, Order
from groupbuy.services import checkout_service, integrity_service
from conftest import make_product, make_batch, cart_line, CUSTOMER_FIELDS


def place(batch, product, qty):
    return checkout_service.place_batch_order(
        order_type=batch.batch_type,
        batch_id=batch.id,
        cart=Cart.from_payload([cart_line(batch, product, qty)]),
        customer=checkout_service.parse_customer(CUSTOMER_FIELDS),
    ).order


def checks(report):
    return sorted({v["check"] for v in report["violations"]})


def test_clean_database_passes(db_session, admin_user):
    p = make_product()
    batch = make_batch(admin_user, [(p, 20)])
    place(batch, p, 5)

    report = integrity_service.run_integrity_checks()

    assert report["ok"] is True
    assert report["checked"] == {"memberships": 1, "orders": 1}


def test_detects_drifted_reservation(db_session, admin_user):
    p = make_product()
    batch = make_batch(admin_user, [(p, 20)])
    place(batch, p, 5)

    db_session.query(BatchProduct).update({"current_vials": 7})
    db_session.commit()

    assert checks(integrity_service.run_integrity_checks()) == ["membership_reservations"]


def test_cancelled_orders_hold_nothing(client, db_session, admin_user, admin_headers):
    p = make_product()
    batch = make_batch(admin_user, [(p, 20)])
    order = place(batch, p, 5)

    client.post(f"/api/orders/{order.id}/status", json={"status": "cancelled"}, headers=admin_headers)

    assert integrity_service.run_integrity_checks()["ok"] is True


def test_detects_total_mismatch(db_session, admin_user):
    p = make_product()
    batch = make_batch(admin_user, [(p, 20)])
    order = place(batch, p, 5)

    # keep the table constraint satisfied while breaking subtotal = sum(items)
    db_session.query(Order).filter_by(id=order.id).update({"subtotal_cents": 1, "total_cents": 1})
    db_session.commit()

    assert checks(integrity_service.run_integrity_checks()) == ["order_totals"]


def test_integrity_endpoint(client, admin_headers):
    resp = client.get("/api/admin/integrity", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json["ok"] is True
