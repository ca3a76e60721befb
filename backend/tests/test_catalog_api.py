"""Catalog API and seeding."""

import base64

import pytest

from groupbuy.models import Product
from groupbuy.services import catalog_service
from conftest import make_product, make_batch


PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nfake").decode()


def product_payload(**overrides):
    data = {
        "name": "Semaglutide",
        "category": "Weight Management",
        "description": "5mg",
        "price_per_vial_cents": 150_000,
        "price_per_box_cents": 1_350_000,
    }
    data.update(overrides)
    return data


class TestPublicCatalog:

    def test_lists_only_active(self, client, db_session):
        make_product("BPC-157")
        make_product("Hidden", is_active=False)

        resp = client.get("/api/products")

        assert resp.status_code == 200
        assert [p["name"] for p in resp.json["items"]] == ["BPC-157"]

    def test_filter_and_search(self, client, db_session):
        make_product("BPC-157", category="Healing & Recovery")
        make_product("Semaglutide", category="Weight Management")

        by_category = client.get("/api/products?category=Weight Management").json
        by_search = client.get("/api/products?search=bpc").json

        assert [p["name"] for p in by_category["items"]] == ["Semaglutide"]
        assert [p["name"] for p in by_search["items"]] == ["BPC-157"]

    def test_categories(self, client, db_session):
        make_product("A", category="Healing & Recovery")
        make_product("B", category="Anti-Aging")
        assert client.get("/api/products/categories").json["items"] == ["Anti-Aging", "Healing & Recovery"]

    def test_inactive_product_is_404(self, client, db_session):
        p = make_product(is_active=False)
        assert client.get(f"/api/products/{p.id}").status_code == 404


class TestCatalogManagement:

    def test_create_product(self, client, admin_headers):
        resp = client.post("/api/products", json=product_payload(image_url=PNG_DATA_URI), headers=admin_headers)

        assert resp.status_code == 201, resp.json
        assert resp.json["vials_per_box"] == 10
        assert resp.json["image_url"] == PNG_DATA_URI

    @pytest.mark.parametrize(
        "overrides",
        [
            {"price_per_vial_cents": -1},
            {"price_per_vial_cents": 10.5},
            {"vials_per_box": 0},
            {"image_url": "ftp://example.com/x.png"},
            {"image_url": "data:image/svg+xml;base64,PHN2Zz4="},
            {"image_url": "data:image/png;base64,@@@"},
            {"specifications": ["not", "a", "map"]},
        ],
    )
    def test_create_rejects_invalid(self, client, admin_headers, overrides):
        resp = client.post("/api/products", json=product_payload(**overrides), headers=admin_headers)
        assert resp.status_code == 400

    def test_missing_required(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "X"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_update_and_deactivate(self, client, db_session, admin_headers):
        p = make_product()
        resp = client.put(f"/api/products/{p.id}", json={"is_active": False, "price_per_box_cents": 1}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["is_active"] is False
        assert client.get("/api/products/all", headers=admin_headers).json["count"] == 1
        assert client.get("/api/products").json["count"] == 0

    def test_update_missing_is_404(self, client, admin_headers):
        assert client.put("/api/products/999", json={"name": "X"}, headers=admin_headers).status_code == 404

    def test_delete_referenced_product_conflicts(self, client, db_session, admin_user, admin_headers):
        p = make_product()
        make_batch(admin_user, [(p, 10)], status="draft")
        assert client.delete(f"/api/products/{p.id}", headers=admin_headers).status_code == 409

    def test_delete_unreferenced(self, client, db_session, admin_headers):
        p = make_product()
        assert client.delete(f"/api/products/{p.id}", headers=admin_headers).status_code == 200
        assert db_session.get(Product, p.id) is None


class TestSeedCatalog:

    def test_seed_is_idempotent(self, db_session):
        first = catalog_service.seed_catalog()
        second = catalog_service.seed_catalog()

        assert first["created"] == len(catalog_service.SEED_PRODUCTS)
        assert second["created"] == 0
        assert second["skipped"] == first["created"]
        assert db_session.query(Product).count() == first["created"]

    def test_seeded_prices_are_consistent(self, db_session):
        catalog_service.seed_catalog()
        for p in db_session.query(Product).all():
            assert p.price_per_vial_cents > 0
            assert p.price_per_box_cents >= p.price_per_vial_cents
