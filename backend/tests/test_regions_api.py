"""Region API: public listing, admin CRUD, host edits and host assignment."""

from groupbuy.models import Region
from conftest import make_product, make_batch, make_region


class TestPublicRegions:

    def test_lists_active_regions_with_current_batch(self, client, db_session, admin_user, host_user):
        region = make_region(host_user)
        make_region(name="Closed", city="Iloilo").is_active = False
        db_session.commit()
        make_batch(admin_user, [(make_product(), 20)], batch_type="sub_group", region=region, name="Cebu May")

        resp = client.get("/api/regions")

        assert resp.status_code == 200
        assert [r["name"] for r in resp.json["items"]] == ["Cebu Peptide Circle"]
        assert resp.json["items"][0]["active_batch"]["name"] == "Cebu May"

    def test_region_without_batch(self, client, db_session):
        region = make_region()
        resp = client.get(f"/api/regions/{region.id}")
        assert resp.status_code == 200
        assert resp.json["active_batch"] is None

    def test_regions_disabled(self, client, admin_headers):
        client.put("/api/settings", json={"regions_enabled": False}, headers=admin_headers)
        assert client.get("/api/regions").status_code == 403


class TestRegionManagement:

    def test_admin_creates_region(self, client, admin_headers, host_user):
        resp = client.post(
            "/api/regions",
            json={
                "name": "Davao Circle",
                "region": "Davao Region",
                "city": "Davao City",
                "host_user_id": host_user.id,
                "contact_handle": "+63 917 000 1111",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.json
        assert resp.json["host_user_id"] == host_user.id

    def test_host_must_have_host_role(self, client, admin_headers, customer_user):
        resp = client.post(
            "/api/regions",
            json={"name": "X", "region": "Y", "city": "Z", "host_user_id": customer_user.id},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_missing_required_fields(self, client, admin_headers):
        resp = client.post("/api/regions", json={"name": "X"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_host_edits_contact_of_own_region(self, client, db_session, host_user, host_headers):
        region = make_region(host_user)

        ok = client.put(f"/api/regions/{region.id}", json={"contact_handle": "0917 222 3333"}, headers=host_headers)
        denied = client.put(f"/api/regions/{region.id}", json={"join_fee_cents": 500}, headers=host_headers)

        assert ok.status_code == 200
        assert ok.json["contact_handle"] == "0917 222 3333"
        assert denied.status_code == 400

    def test_host_cannot_edit_foreign_region(self, client, db_session, other_host, host_headers):
        region = make_region(other_host)
        resp = client.put(f"/api/regions/{region.id}", json={"description": "mine now"}, headers=host_headers)
        assert resp.status_code == 403

    def test_manage_list_scoped_to_host(self, client, db_session, host_user, other_host, host_headers):
        mine = make_region(host_user)
        make_region(other_host, name="Davao Circle", city="Davao")
        resp = client.get("/api/regions/manage", headers=host_headers)
        assert [r["id"] for r in resp.json["items"]] == [mine.id]

    def test_assign_and_unassign_host(self, client, db_session, admin_headers, host_user):
        region = make_region()

        resp = client.put(f"/api/regions/{region.id}/host", json={"host_user_id": host_user.id}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["host_user_id"] == host_user.id

        resp = client.put(f"/api/regions/{region.id}/host", json={"host_user_id": None}, headers=admin_headers)
        assert resp.json["host_user_id"] is None

    def test_delete_region_with_batches_conflicts(self, client, db_session, admin_user, admin_headers):
        region = make_region(admin_user)
        make_batch(admin_user, [(make_product(), 10)], batch_type="sub_group", region=region)
        assert client.delete(f"/api/regions/{region.id}", headers=admin_headers).status_code == 409

    def test_delete_unused_region(self, client, db_session, admin_headers):
        region = make_region()
        assert client.delete(f"/api/regions/{region.id}", headers=admin_headers).status_code == 200
        assert db_session.get(Region, region.id) is None
