"""Integration tests for order lookup, reorder and admin order management."""

import pytest
from services.commerce_service.services.order_ops import create_order
from tests.factories import add_cart, admin_headers, auth_headers

CHECKOUT_FORM = {
    "email": "omar@example.com",
    "phone_number": "81 123 456",
    "first_name": "Omar",
    "last_name": "Fares",
    "city": "Beirut",
    "delivery_method": "pickup",
}


async def _checkout(client, variant, quantity=1, headers=None):
    await client.post(
        "/commerce/cart/items",
        json={"variant_id": str(variant.id), "quantity": quantity},
        headers=headers,
    )
    response = await client.post(
        "/commerce/checkout", json=CHECKOUT_FORM, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _user_order(db, variant, user_id="user-3"):
    cart = await add_cart(db, lines=[(variant, 1)], user_id=user_id)
    result = await create_order(
        db, cart, {"email": "u@example.com", "phone_number": "+96171000000"}
    )
    assert result.success, result.errors
    return result.resource


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_sees_order_placed_in_session(client, serum):
    order = await _checkout(client, serum)

    response = await client.get(f"/commerce/orders/{order['number']}")

    assert response.status_code == 200
    assert response.json()["id"] == order["id"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_other_sessions_cannot_see_guest_order(client, serum):
    order = await _checkout(client, serum)
    client.cookies.clear()

    response = await client.get(f"/commerce/orders/{order['number']}")

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_owner_and_admin_see_user_order(client, db_session, serum):
    order = await _user_order(db_session, serum)

    owner = await client.get(
        f"/commerce/orders/{order.number}", headers=auth_headers("user-3")
    )
    stranger = await client.get(
        f"/commerce/orders/{order.number}", headers=auth_headers("user-4")
    )
    admin = await client.get(
        f"/commerce/orders/{order.number}", headers=admin_headers()
    )

    assert owner.status_code == 200
    assert stranger.status_code == 404
    assert admin.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_order_is_404(client):
    response = await client.get("/commerce/orders/ORD-00000000")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Reorder
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reorder_fills_new_cart(client, serum):
    order = await _checkout(client, serum, quantity=2)

    response = await client.post(f"/commerce/orders/{order['number']}/reorder")

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "1 item(s) added to your cart"
    assert data["cart"]["total_quantity"] == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reorder_with_nothing_available_is_422(client, db_session, serum):
    order = await _checkout(client, serum, quantity=2)
    serum.stock_quantity = 0
    await db_session.commit()

    response = await client.post(f"/commerce/orders/{order['number']}/reorder")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["failed_items"][0]["reason"] == "Out of stock"


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_advances_order_and_fulfillment(client, serum):
    order = await _checkout(client, serum)
    number = order["number"]

    response = await client.post(
        f"/admin/commerce/orders/{number}/status",
        json={"status": "processing"},
        headers=admin_headers(),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "processing"

    response = await client.post(
        f"/admin/commerce/orders/{number}/fulfillment",
        json={"fulfillment_status": "packed"},
        headers=admin_headers(),
    )
    assert response.json()["fulfillment_status"] == "packed"
    assert response.json()["fulfillment_progress"] == "packed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_invalid_transition_is_422(client, serum):
    order = await _checkout(client, serum)

    response = await client.post(
        f"/admin/commerce/orders/{order['number']}/status",
        json={"status": "delivered"},
        headers=admin_headers(),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_cancel_restocks(client, db_session, serum):
    order = await _checkout(client, serum, quantity=3)

    response = await client.post(
        f"/admin/commerce/orders/{order['number']}/status",
        json={"status": "cancelled"},
        headers=admin_headers(),
    )

    assert response.json()["fulfillment_status"] == "cancelled"
    await db_session.refresh(serum)
    assert serum.stock_quantity == 10


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_routes_require_admin(client, serum):
    order = await _checkout(client, serum)
    url = f"/admin/commerce/orders/{order['number']}/status"

    anonymous = await client.post(url, json={"status": "processing"})
    shopper = await client.post(
        url, json={"status": "processing"}, headers=auth_headers("user-1")
    )

    assert anonymous.status_code in (401, 403)
    assert shopper.status_code == 403
