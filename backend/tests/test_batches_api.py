"""
Batch API: public listing/progress, admin and host management, lifecycle.
"""

import pytest

from groupbuy.models import Batch
from conftest import make_product, make_batch, make_region, cart_line, CUSTOMER_FIELDS


class TestPublicBatches:

    def test_lists_orderable_batches_with_progress(self, client, db_session, admin_user):
        p = make_product()
        make_batch(admin_user, [(p, 100)], name="Live")
        make_batch(admin_user, [(p, 100)], name="Draft", status="draft")

        resp = client.get("/api/batches?type=group_buy")

        assert resp.status_code == 200
        assert [b["name"] for b in resp.json["items"]] == ["Live"]
        progress = resp.json["items"][0]["progress"]
        assert progress["target_vials"] == 100
        assert progress["products"][0]["product_name"] == "BPC-157"

    def test_unknown_type_is_400(self, client, db_session):
        assert client.get("/api/batches?type=wholesale").status_code == 400

    def test_draft_is_hidden(self, client, db_session, admin_user):
        batch = make_batch(admin_user, [(make_product(), 10)], status="draft")
        assert client.get(f"/api/batches/{batch.id}").status_code == 404
        assert client.get(f"/api/batches/{batch.id}/progress").status_code == 404

    def test_progress_reflects_checkouts(self, client, db_session, admin_user):
        p = make_product()
        batch = make_batch(admin_user, [(p, 40)])
        client.post(
            f"/api/checkout/group-buy/{batch.id}",
            json={"cart": [cart_line(batch, p, 10)], **CUSTOMER_FIELDS},
        )

        resp = client.get(f"/api/batches/{batch.id}/progress")

        assert resp.json["current_vials"] == 10
        assert resp.json["progress_percent"] == 25

    def test_disabled_regions_hide_sub_groups(self, client, db_session, admin_user, admin_headers):
        client.put("/api/settings", json={"regions_enabled": False}, headers=admin_headers)
        resp = client.get("/api/batches?type=sub_group")
        assert resp.status_code == 403
        assert resp.json["feature"] == "regions_enabled"

    def test_detail_and_progress_respect_flags(self, client, db_session, admin_user, admin_headers):
        batch = make_batch(admin_user, [(make_product(), 10)])
        assert client.get(f"/api/batches/{batch.id}").status_code == 200

        client.put("/api/settings", json={"group_buy_enabled": False}, headers=admin_headers)

        detail = client.get(f"/api/batches/{batch.id}")
        progress = client.get(f"/api/batches/{batch.id}/progress")
        assert detail.status_code == 403
        assert progress.status_code == 403
        assert progress.json["feature"] == "group_buy_enabled"


class TestAdminBatchManagement:

    def test_create_with_default_discounted_prices(self, client, db_session, admin_headers):
        p = make_product(vial_cents=100_000)

        resp = client.post(
            "/api/batches",
            json={
                "batch_type": "group_buy",
                "name": "April",
                "discount_bps": 2500,
                "products": [{"product_id": p.id, "target_vials": 200}],
            },
            headers=admin_headers,
        )

        assert resp.status_code == 201, resp.json
        assert resp.json["status"] == "draft"
        assert resp.json["progress"]["products"][0]["price_per_vial_cents"] == 75_000

    def test_group_buy_cannot_have_region(self, client, db_session, admin_user, admin_headers):
        region = make_region(admin_user)
        resp = client.post(
            "/api/batches",
            json={"batch_type": "group_buy", "name": "X", "region_id": region.id},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_activate_without_products_rejected(self, client, db_session, admin_headers):
        resp = client.post(
            "/api/batches",
            json={"batch_type": "group_buy", "name": "Empty", "status": "active"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_rejects_bad_discount(self, client, db_session, admin_headers):
        resp = client.post(
            "/api/batches",
            json={"batch_type": "group_buy", "name": "X", "discount_bps": 12000},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_activation_demotes_other_active_batch(self, client, db_session, admin_user, admin_headers):
        p = make_product()
        live = make_batch(admin_user, [(p, 10)], name="Live")
        nxt = make_batch(admin_user, [(p, 10)], name="Next", status="draft")

        resp = client.post(f"/api/batches/{nxt.id}/status", json={"status": "active"}, headers=admin_headers)

        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.get(Batch, live.id).status == "draft"
        assert db_session.get(Batch, nxt.id).status == "active"

    def test_illegal_transition_lists_allowed(self, client, db_session, admin_user, admin_headers):
        batch = make_batch(admin_user, [(make_product(), 10)], status="draft")

        resp = client.post(f"/api/batches/{batch.id}/status", json={"status": "shipped"}, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["details"]["allowed"] == ["active", "cancelled"]

    def test_cannot_lower_target_below_reserved(self, client, db_session, admin_user, admin_headers):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])
        client.post(
            f"/api/checkout/group-buy/{batch.id}",
            json={"cart": [cart_line(batch, p, 20)], **CUSTOMER_FIELDS},
        )

        resp = client.put(
            f"/api/batches/{batch.id}/products",
            json={"products": [{"product_id": p.id, "target_vials": 10}]},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        resp = client.put(
            f"/api/batches/{batch.id}/products",
            json={"products": []},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_update_fields(self, client, db_session, admin_user, admin_headers):
        batch = make_batch(admin_user, [(make_product(), 10)])
        resp = client.put(
            f"/api/batches/{batch.id}",
            json={"name": "Renamed", "shipping_fee_cents": 5000},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["name"] == "Renamed"
        assert resp.json["shipping_fee_cents"] == 5000

    def test_delete_batch_with_orders_conflicts(self, client, db_session, admin_user, admin_headers):
        p = make_product()
        batch = make_batch(admin_user, [(p, 50)])
        client.post(
            f"/api/checkout/group-buy/{batch.id}",
            json={"cart": [cart_line(batch, p, 1)], **CUSTOMER_FIELDS},
        )
        assert client.delete(f"/api/batches/{batch.id}", headers=admin_headers).status_code == 409

    def test_delete_unused_batch(self, client, db_session, admin_user, admin_headers):
        batch = make_batch(admin_user, [(make_product(), 10)], status="draft")
        assert client.delete(f"/api/batches/{batch.id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/batches/{batch.id}", headers=admin_headers).status_code == 404


class TestHostBatchManagement:

    def test_host_creates_sub_group_in_own_region(self, client, db_session, host_user, host_headers):
        region = make_region(host_user)
        p = make_product()

        resp = client.post(
            "/api/batches",
            json={
                "batch_type": "sub_group",
                "region_id": region.id,
                "name": "Cebu May",
                "status": "active",
                "products": [{"product_id": p.id, "target_vials": 30}],
            },
            headers=host_headers,
        )

        assert resp.status_code == 201, resp.json
        assert resp.json["region"]["id"] == region.id
        assert resp.json["owner_user_id"] == host_user.id

    def test_host_cannot_use_foreign_region(self, client, db_session, other_host, host_headers):
        region = make_region(other_host)
        resp = client.post(
            "/api/batches",
            json={"batch_type": "sub_group", "region_id": region.id, "name": "X"},
            headers=host_headers,
        )
        assert resp.status_code == 403

    def test_host_cannot_create_group_buy(self, client, db_session, host_headers):
        resp = client.post(
            "/api/batches",
            json={"batch_type": "group_buy", "name": "X"},
            headers=host_headers,
        )
        assert resp.status_code == 403

    def test_host_manage_list_is_scoped(self, client, db_session, admin_user, host_user, other_host, host_headers):
        p = make_product()
        mine = make_batch(admin_user, [(p, 10)], batch_type="sub_group", region=make_region(host_user), name="Mine")
        make_batch(
            admin_user, [(p, 10)], batch_type="sub_group",
            region=make_region(other_host, name="Davao Circle", city="Davao"), name="Theirs",
        )
        make_batch(admin_user, [(p, 10)], name="Group")

        resp = client.get("/api/batches/manage", headers=host_headers)

        assert resp.status_code == 200
        assert [b["id"] for b in resp.json["items"]] == [mine.id]

    def test_host_cannot_transition_foreign_batch(self, client, db_session, admin_user, other_host, host_headers):
        region = make_region(other_host)
        batch = make_batch(admin_user, [(make_product(), 10)], batch_type="sub_group", region=region)

        resp = client.post(f"/api/batches/{batch.id}/status", json={"status": "completed"}, headers=host_headers)
        assert resp.status_code == 403

    def test_customer_cannot_manage(self, client, db_session, customer_headers):
        assert client.get("/api/batches/manage", headers=customer_headers).status_code == 403
