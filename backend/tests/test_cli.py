"""Flask CLI commands."""

from groupbuy.models import Product, User, BatchProduct, SiteSetting
from groupbuy.services import catalog_service
from conftest import make_product, make_batch, TEST_PASSWORD


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--email", "owner@example.com", "--password", TEST_PASSWORD])
    second = runner.invoke(args=["system", "init", "--email", "owner@example.com", "--password", TEST_PASSWORD])

    assert first.exit_code == 0, first.output
    assert "PASS Created admin: owner@example.com" in first.output
    assert "already exists" in second.output
    assert db_session.query(User).filter_by(role="admin").count() == 1
    assert db_session.query(SiteSetting).count() == 3


def test_catalog_seed_and_list(app, db_session):
    runner = app.test_cli_runner()

    seeded = runner.invoke(args=["catalog", "seed"])
    listed = runner.invoke(args=["catalog", "list"])

    assert f"{len(catalog_service.SEED_PRODUCTS)} created" in seeded.output
    assert db_session.query(Product).count() == len(catalog_service.SEED_PRODUCTS)
    assert "BPC-157" in listed.output


def test_users_create_and_set_role(app, db_session):
    runner = app.test_cli_runner()

    created = runner.invoke(args=[
        "users", "create", "--email", "h@example.com", "--password", TEST_PASSWORD, "--role", "customer",
    ])
    promoted = runner.invoke(args=["users", "set-role", "h@example.com", "host"])
    listed = runner.invoke(args=["users", "list", "--role", "host"])

    assert "PASS Created user" in created.output
    assert "PASS" in promoted.output
    assert "h@example.com" in listed.output


def test_users_create_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create", "--email", "w@example.com", "--password", "weak",
    ])
    assert "FAIL" in result.output
    assert db_session.query(User).count() == 0


def test_integrity_check_exit_codes(app, db_session, admin_user):
    runner = app.test_cli_runner()
    batch = make_batch(admin_user, [(make_product(), 10)])

    ok = runner.invoke(args=["integrity", "check"])
    assert ok.exit_code == 0
    assert ok.output.startswith("PASS")

    db_session.query(BatchProduct).filter_by(batch_id=batch.id).update({"current_vials": 3})
    db_session.commit()

    bad = runner.invoke(args=["integrity", "check"])
    assert bad.exit_code == 1
    assert "membership_reservations" in bad.output


def test_cleanup_security_events(app, db_session):
    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-security-events", "--retention-days", "30"])
    assert result.exit_code == 0
    assert "Deleted 0" in result.output
