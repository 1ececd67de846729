"""Integration tests for the cart and catalog endpoints."""

import uuid

import pytest
from tests.factories import add_product, auth_headers


async def _add(client, variant, quantity=1, **headers):
    return await client.post(
        "/commerce/cart/items",
        json={"variant_id": str(variant.id), "quantity": quantity},
        headers=headers or None,
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "commerce"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_is_propagated(client):
    response = await client.get("/commerce/cart", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
    assert "X-Response-Time-Ms" in response.headers


@pytest.mark.asyncio
@pytest.mark.integration
async def test_error_body_carries_request_id(client):
    response = await client.get(
        f"/commerce/products/{uuid.uuid4()}/default-variant",
        headers={"X-Request-ID": "req-404"},
    )

    assert response.status_code == 404
    assert response.json()["request_id"] == "req-404"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_cart_is_created_once_per_session(client):
    first = await client.get("/commerce/cart")
    second = await client.get("/commerce/cart")

    assert first.status_code == 200
    assert first.json()["lines"] == []
    assert first.json()["id"] == second.json()["id"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_and_view_cart(client, serum, cream):
    await _add(client, serum, 2)
    response = await _add(client, cream, 3)

    assert response.status_code == 201
    data = response.json()
    assert [line["quantity"] for line in data["lines"]] == [2, 3]
    assert data["total_quantity"] == 5
    assert data["subtotal_minor"] == 3500
    assert data["subtotal_display"] == "$35.00"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_adding_same_variant_merges_lines(client, serum):
    await _add(client, serum, 1)
    response = await _add(client, serum, 2)

    (line,) = response.json()["lines"]
    assert line["quantity"] == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_by_product_uses_default_variant(client, db_session):
    product, variants = await add_product(
        db_session,
        variants=[{"price_minor": 3000}, {"price_minor": 1000}, {"price_minor": 2000}],
    )

    response = await client.post(
        "/commerce/cart/items", json={"product_id": str(product.id)}
    )

    assert response.status_code == 201
    (line,) = response.json()["lines"]
    assert line["variant_id"] == str(variants[2].id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_unknown_variant_is_404(client):
    response = await client.post(
        "/commerce/cart/items", json={"variant_id": str(uuid.uuid4())}
    )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_without_target_is_422(client):
    response = await client.post("/commerce/cart/items", json={"quantity": 1})

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_beyond_stock_is_409(client, serum):
    await _add(client, serum, 8)
    response = await _add(client, serum, 5)

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["kind"] == "insufficient_stock"
    assert detail["available"] == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_beyond_cap_is_422(client, serum):
    response = await _add(client, serum, 100)

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "exceeds_system_cap"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_line_quantity_and_step(client, serum):
    line_id = (await _add(client, serum, 1)).json()["lines"][0]["id"]

    response = await client.patch(
        f"/commerce/cart/items/{line_id}", json={"quantity": 4}
    )
    assert response.json()["lines"][0]["quantity"] == 4

    response = await client.patch(
        f"/commerce/cart/items/{line_id}", json={"action": "increment"}
    )
    assert response.json()["lines"][0]["quantity"] == 5

    response = await client.patch(
        f"/commerce/cart/items/{line_id}", json={"quantity": 0}
    )
    assert response.json()["lines"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_rejects_unknown_action(client, serum):
    line_id = (await _add(client, serum, 1)).json()["lines"][0]["id"]

    response = await client.patch(
        f"/commerce/cart/items/{line_id}", json={"action": "double"}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lines_of_other_carts_are_not_reachable(client, serum):
    response = await client.patch(
        f"/commerce/cart/items/{uuid.uuid4()}", json={"quantity": 2}
    )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_remove_line_and_clear_cart(client, serum, cream):
    await _add(client, serum, 1)
    line_id = (await _add(client, cream, 1)).json()["lines"][1]["id"]

    response = await client.delete(f"/commerce/cart/items/{line_id}")
    assert len(response.json()["lines"]) == 1

    response = await client.delete("/commerce/cart")
    assert response.status_code == 200
    assert response.json()["lines"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_cart_merges_into_user_cart_on_login(client, serum):
    guest = (await _add(client, serum, 2)).json()

    # same cookie session, now signed in
    response = await client.get("/commerce/cart", headers=auth_headers("user-7"))

    data = response.json()
    assert data["user_id"] == "user-7"
    assert data["id"] != guest["id"]
    assert [line["quantity"] for line in data["lines"]] == [2]

    again = await client.get("/commerce/cart", headers=auth_headers("user-7"))
    assert again.json()["id"] == data["id"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_merge_reports_dropped_quantity(client, serum):
    user = auth_headers("user-8")
    await _add(client, serum, 8, **user)
    client.cookies.clear()

    await _add(client, serum, 5)
    response = await client.get("/commerce/cart", headers=user)

    data = response.json()
    assert data["lines"][0]["quantity"] == 10
    assert data["messages"]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_default_variant_endpoint(client, db_session):
    product, variants = await add_product(
        db_session,
        variants=[
            {"price_minor": 1500, "color_name": "Red", "color_hex": "#ff0000"},
            {"price_minor": 1000, "color_name": "Blue", "color_hex": "#0000ff"},
        ],
    )

    response = await client.get(f"/commerce/products/{product.id}/default-variant")
    assert response.status_code == 200
    assert response.json()["variant"]["id"] == str(variants[1].id)
    assert response.json()["variant"]["price_display"] == "$10.00"
    assert response.json()["variant"]["available"] is True

    response = await client.get(
        f"/commerce/products/{product.id}/default-variant", params={"color": "red"}
    )
    assert response.json()["variant"]["id"] == str(variants[0].id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_default_variant_unknown_product(client):
    response = await client.get(f"/commerce/products/{uuid.uuid4()}/default-variant")

    assert response.status_code == 404
