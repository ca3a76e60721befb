"""
Authorization tests.

Verifies:
- Unauthenticated requests to protected endpoints return 401
- Customers are denied host and admin operations (403)
- Hosts are denied admin-only operations (403)
- Role permission tables match the three storefront roles
"""

import pytest

from groupbuy.models import SecurityEvent
from groupbuy.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    get_all_permission_codes,
    get_role_permissions,
    validate_permission_code,
)
from groupbuy.services import permission_service, auth_service


# =============================================================================
# UNAUTHENTICATED ACCESS — 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/users"),
            ("GET", "/api/admin/dashboard"),
            ("GET", "/api/admin/integrity"),
            ("GET", "/api/products/all"),
            ("POST", "/api/products"),
            ("GET", "/api/batches/manage"),
            ("POST", "/api/batches"),
            ("GET", "/api/regions/manage"),
            ("POST", "/api/regions"),
            ("GET", "/api/orders"),
            ("GET", "/api/orders/mine"),
            ("POST", "/api/orders/bulk"),
            ("PUT", "/api/settings"),
            ("GET", "/api/host/analytics"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_is_401(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"


# =============================================================================
# CUSTOMER DENIED — 403
# =============================================================================


class TestCustomerDenied:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("GET", "/api/admin/dashboard"),
            ("GET", "/api/products/all"),
            ("POST", "/api/regions"),
            ("PUT", "/api/settings"),
            ("GET", "/api/host/analytics"),
            ("POST", "/api/orders/bulk"),
        ],
    )
    def test_customer_forbidden(self, client, customer_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=customer_headers)
        assert resp.status_code == 403

    def test_denial_is_audited(self, client, db_session, customer_user, customer_headers):
        client.get("/api/admin/users", headers=customer_headers)
        event = db_session.query(SecurityEvent).filter_by(user_id=customer_user.id, event_type="PERMISSION_DENIED").first()
        assert event is not None
        assert event.resource == "/api/admin/users"


class TestHostDenied:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("GET", "/api/admin/integrity"),
            ("POST", "/api/products"),
            ("POST", "/api/regions"),
            ("PUT", "/api/settings"),
        ],
    )
    def test_host_forbidden(self, client, host_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=host_headers)
        assert resp.status_code == 403

    def test_host_can_view_analytics(self, client, host_headers):
        assert client.get("/api/host/analytics", headers=host_headers).status_code == 200


# =============================================================================
# ROLE TABLES
# =============================================================================


class TestRolePermissions:

    def test_admin_holds_every_permission(self):
        assert get_role_permissions("admin") == set(get_all_permission_codes())

    def test_customer_only_sees_own_orders(self):
        assert get_role_permissions("customer") == {"VIEW_OWN_ORDERS"}

    def test_host_cannot_manage_group_buys(self):
        host = get_role_permissions("host")
        assert "MANAGE_SUB_GROUP_BATCHES" in host
        assert "MANAGE_GROUP_BUY_BATCHES" not in host

    def test_role_tables_only_reference_known_codes(self):
        for codes in DEFAULT_ROLE_PERMISSIONS.values():
            assert all(validate_permission_code(c) for c in codes)

    def test_unknown_role_has_nothing(self):
        assert get_role_permissions("cashier") == set()

    def test_deactivated_user_has_no_permissions(self, db_session, admin_user, host_user):
        auth_service.set_active(host_user.id, False, actor_user_id=admin_user.id)
        assert permission_service.get_user_permissions(host_user.id) == set()

    def test_role_change_revokes_sessions(self, client, db_session, admin_user, host_user, host_headers):
        auth_service.set_role(host_user.id, "customer", actor_user_id=admin_user.id)
        assert client.get("/api/auth/me", headers=host_headers).status_code == 401
