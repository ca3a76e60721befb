"""
Order API: checkout endpoints, tracking, dashboards and status updates.
"""

import pytest

from groupbuy.models import BatchProduct, Order
from conftest import (
    make_product,
    make_batch,
    make_region,
    cart_line,
    auth_headers,
    token_for,
    CUSTOMER_FIELDS,
    SHIPPING_FIELDS,
)


def checkout(client, batch, lines, headers=None, **extra):
    path = "group-buy" if batch.batch_type == "group_buy" else "sub-group"
    return client.post(
        f"/api/checkout/{path}/{batch.id}",
        json={"cart": lines, **CUSTOMER_FIELDS, **extra},
        headers=headers or {},
    )


@pytest.fixture
def sub_group(db_session, admin_user, host_user):
    region = make_region(host_user)
    p = make_product()
    batch = make_batch(admin_user, [(p, 50, 90_000)], batch_type="sub_group", region=region, name="Cebu May")
    return batch, p, region


class TestCheckoutEndpoints:

    def test_group_buy_checkout_201(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])

        resp = checkout(client, batch, [cart_line(batch, p, 5)])

        assert resp.status_code == 201
        assert resp.json["order"]["order_code"].startswith("GB-")
        assert resp.json["handoff"]["whatsapp_url"].startswith("https://wa.me/")

    def test_sub_group_handoff_goes_to_region_contact(self, client, db_session, sub_group):
        batch, p, _ = sub_group
        resp = checkout(client, batch, [cart_line(batch, p, 2)])

        assert resp.status_code == 201
        assert resp.json["order"]["order_code"].startswith("SG-")
        assert resp.json["handoff"]["contact_number"] == "639175550101"
        assert "Sub-Group: Cebu Peptide Circle" in resp.json["handoff"]["message"]

    def test_capacity_conflict_is_409(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 5)])

        resp = checkout(client, batch, [{**cart_line(batch, p, 6), "max_quantity": 999}])

        assert resp.status_code == 409
        assert resp.json["details"]["products"][0]["remaining"] == 5

    def test_replay_returns_200(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])

        first = checkout(client, batch, [cart_line(batch, p, 5)], idempotency_key="k-1")
        again = client.post(
            f"/api/checkout/group-buy/{batch.id}",
            json={"cart": [cart_line(batch, p, 5)], **CUSTOMER_FIELDS},
            headers={"Idempotency-Key": "k-1"},
        )

        assert first.status_code == 201
        assert again.status_code == 200
        assert again.json["replayed"] is True
        assert db_session.query(BatchProduct).one().current_vials == 5

    def test_missing_customer_details_400(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])
        resp = client.post(f"/api/checkout/group-buy/{batch.id}", json={"cart": [cart_line(batch, p, 1)]})
        assert resp.status_code == 400
        assert resp.json["details"]["missing"] == ["customer_name", "contact_handle"]

    def test_invalid_token_checks_out_as_guest(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])
        resp = checkout(client, batch, [cart_line(batch, p, 1)], headers=auth_headers("stale-token"))
        assert resp.status_code == 201
        assert resp.json["order"]["user_id"] is None

    def test_signed_in_checkout_links_user(self, client, db_session, admin_user, customer_user, customer_headers):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])
        checkout(client, batch, [cart_line(batch, p, 1)], headers=customer_headers)
        resp = checkout(client, batch, [cart_line(batch, p, 2)], headers=customer_headers)

        assert resp.status_code == 201
        assert resp.json["merged"] is True
        assert resp.json["order"]["user_id"] == customer_user.id
        assert resp.json["order"]["items"][0]["quantity"] == 3

    def test_individual_checkout(self, client, db_session):
        p = make_product(box_cents=900_000)
        resp = client.post(
            "/api/checkout/individual",
            json={
                "cart": [{"mode": "individual", "product_id": p.id, "quantity": 2}],
                **CUSTOMER_FIELDS,
                **SHIPPING_FIELDS,
            },
        )
        assert resp.status_code == 201
        assert resp.json["order"]["total_cents"] == 2 * 900_000 + 260_000

    def test_individual_disabled_is_403(self, client, db_session, admin_headers):
        client.put("/api/settings", json={"individual_purchase_enabled": False}, headers=admin_headers)
        p = make_product()
        resp = client.post(
            "/api/checkout/individual",
            json={
                "cart": [{"mode": "individual", "product_id": p.id, "quantity": 1}],
                **CUSTOMER_FIELDS,
                **SHIPPING_FIELDS,
            },
        )
        assert resp.status_code == 403

    def test_quote_endpoint(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 5)])
        resp = client.post("/api/checkout/quote", json={"cart": [{**cart_line(batch, p, 9), "max_quantity": 999}]})
        assert resp.status_code == 200
        assert resp.json["lines"][0]["quantity"] == 5

    def test_malformed_cart_400(self, client, db_session):
        resp = client.post("/api/checkout/quote", json={"cart": {"mode": "individual"}})
        assert resp.status_code == 400


class TestTracking:

    def test_track_hides_private_fields(self, client, db_session):
        p = make_product()
        created = client.post(
            "/api/checkout/individual",
            json={
                "cart": [{"mode": "individual", "product_id": p.id, "quantity": 1}],
                **CUSTOMER_FIELDS,
                **SHIPPING_FIELDS,
            },
        ).json["order"]

        resp = client.get(f"/api/orders/track/{created['order_code'].lower()}")

        assert resp.status_code == 200
        assert "customer_email" not in resp.json
        assert "shipping_address" not in resp.json
        assert resp.json["inquiry"]["message"].startswith(f"Hi! I'm checking on order {created['order_code']}")

    def test_unknown_code_404(self, client, db_session):
        assert client.get("/api/orders/track/GB-20990101-001").status_code == 404


class TestOrderDashboards:

    def test_admin_sees_all_host_sees_hosted(self, client, db_session, admin_user, admin_headers, host_headers, sub_group):
        batch, p, _ = sub_group
        group = make_batch(admin_user, [(p, 50)], name="Group")
        checkout(client, batch, [cart_line(batch, p, 1)])
        checkout(client, group, [cart_line(group, p, 1)])

        all_orders = client.get("/api/orders", headers=admin_headers)
        hosted = client.get("/api/orders", headers=host_headers)

        assert all_orders.json["count"] == 2
        assert hosted.json["count"] == 1
        assert hosted.json["items"][0]["batch_id"] == batch.id

    def test_host_cannot_request_all_scope(self, client, db_session, host_headers):
        assert client.get("/api/orders?scope=all", headers=host_headers).status_code == 403

    def test_customer_cannot_list_dashboard(self, client, db_session, customer_headers):
        assert client.get("/api/orders", headers=customer_headers).status_code == 403

    def test_my_orders(self, client, db_session, admin_user, customer_headers):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])
        checkout(client, batch, [cart_line(batch, p, 1)], headers=customer_headers)
        checkout(client, batch, [cart_line(batch, p, 1)])

        resp = client.get("/api/orders/mine", headers=customer_headers)
        assert resp.json["count"] == 1

    def test_filters_sort_and_pagination(self, client, db_session, admin_user, admin_headers):
        p = make_product()
        batch = make_batch(admin_user, [(p, 100)])
        for qty in (1, 3, 2):
            checkout(client, batch, [cart_line(batch, p, qty)])

        resp = client.get("/api/orders?sort=total&direction=asc&page=1&per_page=2", headers=admin_headers)

        assert resp.status_code == 200
        assert [o["items"][0]["quantity"] for o in resp.json["items"]] == [1, 2]
        assert resp.json["pagination"]["total"] == 3
        assert resp.json["pagination"]["has_next"] is True

        assert client.get("/api/orders?sort=bogus", headers=admin_headers).status_code == 400

    def test_order_detail_access(self, client, db_session, admin_user, customer_user, other_host):
        p = make_product()
        batch = make_batch(admin_user, [(p, 100)])
        order_id = checkout(
            client, batch, [cart_line(batch, p, 1)], headers=auth_headers(token_for(customer_user))
        ).json["order"]["id"]

        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(token_for(customer_user))).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(token_for(other_host))).status_code == 403
        assert client.get("/api/orders/9999", headers=auth_headers(token_for(admin_user))).status_code == 404


class TestOrderStatus:

    def test_host_moves_order_forward(self, client, db_session, host_headers, sub_group):
        batch, p, _ = sub_group
        order_id = checkout(client, batch, [cart_line(batch, p, 1)]).json["order"]["id"]

        resp = client.post(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=host_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "confirmed"

        back = client.post(f"/api/orders/{order_id}/status", json={"status": "pending"}, headers=host_headers)
        assert back.status_code == 400

    def test_cancel_releases_vials(self, client, db_session, admin_headers, sub_group):
        batch, p, _ = sub_group
        order_id = checkout(client, batch, [cart_line(batch, p, 7)]).json["order"]["id"]

        resp = client.post(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=admin_headers)

        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.query(BatchProduct).one().current_vials == 0

        again = client.post(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=admin_headers)
        assert again.status_code == 400

    def test_foreign_host_cannot_update(self, client, db_session, other_host, sub_group):
        batch, p, _ = sub_group
        order_id = checkout(client, batch, [cart_line(batch, p, 1)]).json["order"]["id"]
        resp = client.post(
            f"/api/orders/{order_id}/status",
            json={"status": "confirmed"},
            headers=auth_headers(token_for(other_host)),
        )
        assert resp.status_code == 403

    def test_replaced_host_loses_order_access(
        self, client, db_session, admin_headers, host_headers, other_host, sub_group
    ):
        batch, p, region = sub_group
        order_id = checkout(client, batch, [cart_line(batch, p, 5)]).json["order"]["id"]

        moved = client.put(
            f"/api/regions/{region.id}/host", json={"host_user_id": other_host.id}, headers=admin_headers
        )
        assert moved.status_code == 200
        assert batch.owner_user_id == other_host.id

        cancel = client.post(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=host_headers)
        pay = client.post(f"/api/orders/{order_id}/payment", json={"payment_status": "paid"}, headers=host_headers)
        listed = client.get("/api/orders?scope=hosted", headers=host_headers)

        assert cancel.status_code == 403
        assert pay.status_code == 403
        assert listed.json["items"] == []
        db_session.expire_all()
        assert db_session.query(BatchProduct).one().current_vials == 5

        new_host = auth_headers(token_for(other_host))
        resp = client.post(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=new_host)
        assert resp.status_code == 200

    def test_payment_flow(self, client, db_session, admin_headers, sub_group):
        batch, p, _ = sub_group
        order_id = checkout(client, batch, [cart_line(batch, p, 1)]).json["order"]["id"]

        refund_unpaid = client.post(
            f"/api/orders/{order_id}/payment", json={"payment_status": "refunded"}, headers=admin_headers
        )
        paid = client.post(f"/api/orders/{order_id}/payment", json={"payment_status": "paid"}, headers=admin_headers)

        assert refund_unpaid.status_code == 400
        assert paid.status_code == 200
        assert paid.json["payment_status"] == "paid"

    def test_bulk_update_reports_per_order(self, client, db_session, admin_headers, sub_group):
        batch, p, _ = sub_group
        ids = [checkout(client, batch, [cart_line(batch, p, 1)]).json["order"]["id"] for _ in range(2)]

        resp = client.post(
            "/api/orders/bulk",
            json={"order_ids": ids + [9999, "x"], "status": "confirmed", "payment_status": "paid"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        assert resp.json["updated"] == ids
        assert [e["order_id"] for e in resp.json["errors"]] == [9999, "x"]
        db_session.expire_all()
        assert {o.payment_status for o in db_session.query(Order).all()} == {"paid"}

    def test_customer_cannot_update_status(self, client, db_session, customer_headers, sub_group):
        batch, p, _ = sub_group
        order_id = checkout(client, batch, [cart_line(batch, p, 1)]).json["order"]["id"]
        resp = client.post(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=customer_headers)
        assert resp.status_code == 403
