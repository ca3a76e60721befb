"""Order summaries and WhatsApp deep links."""

from urllib.parse import unquote

import pytest

from groupbuy.services import messaging_service
from groupbuy.services.messaging_service import format_peso, normalize_contact_number, whatsapp_link
from conftest import make_product, make_batch, make_region, cart_line, CUSTOMER_FIELDS


@pytest.mark.parametrize(
    "cents,expected",
    [(0, "₱0.00"), (150, "₱1.50"), (123_456_789, "₱1,234,567.89")],
)
def test_format_peso(cents, expected):
    assert format_peso(cents) == expected


def test_normalize_contact_number():
    assert normalize_contact_number("+63 (917) 555-0101") == "639175550101"
    assert normalize_contact_number("n/a") is None
    assert normalize_contact_number(None) is None


def test_whatsapp_link_encodes_message():
    url = whatsapp_link("+63 917 555 0101", "Hi! Total: ₱1,000.00\nThanks")
    assert url.startswith("https://wa.me/639175550101?text=")
    assert "\n" not in url
    assert unquote(url.split("text=", 1)[1]) == "Hi! Total: ₱1,000.00\nThanks"


def test_whatsapp_link_without_number():
    assert whatsapp_link("", "hi") is None


def test_group_buy_summary(client, db_session, admin_user):
    p = make_product("BPC-157")
    batch = make_batch(admin_user, [(p, 50, 80_000)], name="March Group Buy", shipping_fee_cents=10_000)
    order = client.post(
        f"/api/checkout/group-buy/{batch.id}",
        json={"cart": [cart_line(batch, p, 2)], **CUSTOMER_FIELDS},
    ).json

    message = order["handoff"]["message"]

    assert message.startswith('Hi! I\'d like to place an order for the group buy batch "March Group Buy".')
    assert f"Order Code: {order['order']['order_code']}" in message
    assert "• BPC-157: 2 vial(s) × ₱800.00 = ₱1,600.00" in message
    assert "Shipping: ₱100.00" in message
    assert "Total Amount: ₱1,700.00" in message
    assert message.endswith(messaging_service.CLOSING_LINE)


def test_sub_group_without_contact_falls_back_to_admin(client, db_session, admin_user, host_user):
    p = make_product()
    region = make_region(host_user, contact=None)
    batch = make_batch(admin_user, [(p, 10)], batch_type="sub_group", region=region)

    resp = client.post(
        f"/api/checkout/sub-group/{batch.id}",
        json={"cart": [cart_line(batch, p, 1)], **CUSTOMER_FIELDS},
    )

    assert resp.json["handoff"]["contact_number"] == "639170000000"
