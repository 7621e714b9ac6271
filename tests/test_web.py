from __future__ import annotations

import dataclasses
import re

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, FakeBackend, make_product
from craftshop.config import settings
from craftshop.web.main import ADMIN_COOKIE, create_app

CHECKOUT_FORM = {
    "email": "jane@example.com",
    "name": "Jane Doe",
    "address": "12 Loom Lane",
    "phone": "+880 1000 000000",
    "city": "Dhaka",
    "notes": "",
}


@pytest.fixture
def app(tmp_path, storage, fake_backend: FakeBackend, backend):
    fake_backend.tables["products"] = [
        make_product("1", name="Daisy Tote", price=89.99),
        make_product("2", name="Moon Crossbody", price=64.99, category="Crossbody"),
        make_product("3", name="Gone Clutch", is_sold_out=True),
    ]
    cfg = dataclasses.replace(settings, db_path=str(tmp_path / "shop.db"), export_dir=str(tmp_path / "exports"))
    return create_app(cfg, storage=storage, backend=backend)


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin(client: TestClient) -> TestClient:
    r = client.post("/login", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}, follow_redirects=False)
    assert r.status_code == 303
    return client


def _cart(client: TestClient) -> dict:
    return client.get("/cart").json()


def _place_order(client: TestClient) -> str:
    client.post("/cart/add", data={"product_id": "1", "quantity": "2"})
    r = client.post("/checkout", data=CHECKOUT_FORM)
    assert r.status_code == 200
    return re.search(r'class="order-number">([^<]+)<', r.text).group(1)


def test_storefront_pages_render(client: TestClient) -> None:
    assert "Daisy Tote" in client.get("/").text
    assert "Moon Crossbody" in client.get("/shop?category=Crossbody").text
    assert "Daisy Tote" not in client.get("/shop?category=Crossbody").text
    assert "Gone Clutch" in client.get("/shop?availability=soldout").text
    assert "Daisy Tote" in client.get("/product/1").text
    assert client.get("/product/999").status_code == 404


def test_add_to_cart_opens_panel(client: TestClient) -> None:
    r = client.post("/cart/add", data={"product_id": "1", "quantity": "2"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/shop"

    cart = _cart(client)
    assert [(it["id"], it["quantity"]) for it in cart["items"]] == [("1", 2)]
    assert cart["count"] == 2
    assert cart["total"] == 179.98
    assert cart["isOpen"] is True


def test_add_respects_next_and_closed_panel(client: TestClient) -> None:
    r = client.post(
        "/cart/add",
        data={"product_id": "2", "open_cart": "false", "next": "/product/2"},
        follow_redirects=False,
    )
    assert r.headers["location"] == "/product/2"
    assert _cart(client)["isOpen"] is False


def test_offsite_next_is_ignored(client: TestClient) -> None:
    r = client.post("/cart/add", data={"product_id": "2", "next": "//evil.test/x"}, follow_redirects=False)
    assert r.headers["location"] == "/shop"


def test_sold_out_and_unknown_products(client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "3"})
    assert _cart(client)["items"] == []
    assert client.post("/cart/add", data={"product_id": "999"}).status_code == 404


def test_cart_mutations(client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    client.post("/cart/add", data={"product_id": "2"})

    client.post("/cart/update", data={"product_id": "1", "quantity": "3"})
    assert _cart(client)["count"] == 4

    client.post("/cart/update", data={"product_id": "1", "quantity": "0"})
    assert _cart(client)["count"] == 4

    client.post("/cart/remove", data={"product_id": "2"})
    assert [it["id"] for it in _cart(client)["items"]] == ["1"]

    client.post("/cart/close")
    assert _cart(client)["isOpen"] is False
    client.post("/cart/open")
    assert _cart(client)["isOpen"] is True

    client.post("/cart/clear")
    assert _cart(client)["items"] == []


def test_cart_is_per_session(app, client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    with TestClient(app) as other:
        assert other.get("/cart").json()["items"] == []
    assert _cart(client)["count"] == 1


def test_cart_survives_restart(app, client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    app.state.carts.reset()

    cart = _cart(client)
    assert cart["count"] == 1
    assert cart["isOpen"] is False


def test_panel_renders_totals_with_shipping(client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    page = client.get("/shop").text
    assert "Your Cart (1 items)" in page
    assert "৳89.99" in page
    assert "৳50.00" in page
    assert "৳139.99" in page


def test_checkout_validation_keeps_cart(client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    r = client.post("/checkout", data={**CHECKOUT_FORM, "email": "", "phone": ""})

    assert r.status_code == 200
    assert "Email is required" in r.text
    assert "Phone is required" in r.text
    assert _cart(client)["count"] == 1


def test_checkout_and_tracking(client: TestClient, fake_backend: FakeBackend) -> None:
    number = _place_order(client)

    assert number.startswith("ORD-")
    assert _cart(client)["items"] == []
    [row] = fake_backend.rows("orders")
    assert row["order_number"] == number
    assert row["total"] == 229.98

    page = client.get(f"/order-tracking?order_id={number}").text
    assert "Processing" in page
    assert "Daisy Tote" in page

    assert f'value="{number}"' in client.get("/order-tracking").text


def test_checkout_offline_is_stored_locally(client: TestClient, fake_backend: FakeBackend, storage) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    fake_backend.down = True
    r = client.post("/checkout", data=CHECKOUT_FORM)

    assert "Order Confirmed" in r.text
    [saved] = storage.get_list("orders")
    assert saved["synced"] is False


def test_tracking_errors(client: TestClient) -> None:
    assert "Please enter an order ID" in client.get("/order-tracking?order_id=").text
    assert "Order not found" in client.get("/order-tracking?order_id=ORD-NOPE").text


def test_contact_form(client: TestClient) -> None:
    assert "Message is required" in client.post("/contact", data={"name": "A", "email": "a@b.co"}).text
    r = client.post("/contact", data={"name": "A", "email": "a@b.co", "message": "Hello"})
    assert r.status_code == 200
    assert "Message is required" not in r.text


def test_admin_requires_login(client: TestClient) -> None:
    r = client.get("/admin", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login"

    client.cookies.set(ADMIN_COOKIE, "forged")
    assert client.get("/admin/orders", follow_redirects=False).headers["location"] == "/login"


def test_login_rejects_bad_password(client: TestClient) -> None:
    r = client.post("/login", data={"email": ADMIN_EMAIL, "password": "nope"})
    assert "Invalid email or password" in r.text
    assert ADMIN_COOKIE not in client.cookies


def test_admin_dashboard(admin: TestClient) -> None:
    page = admin.get("/admin").text
    assert "Dashboard" in page
    assert "Total Products" in page


def test_admin_product_crud(admin: TestClient, fake_backend: FakeBackend) -> None:
    r = admin.post(
        "/admin/products/add",
        data={"name": "Sun Bucket", "price": "42.5", "category": "Bucket", "tags": "summer, beach"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    created = [p for p in fake_backend.rows("products") if p["name"] == "Sun Bucket"]
    assert len(created) == 1
    assert created[0]["tags"] == ["summer", "beach"]
    product_id = created[0]["id"]

    admin.post(f"/admin/products/{product_id}/sold-out", data={"sold_out": "true"})
    assert admin.get(f"/product/{product_id}").text.count("Sold Out") >= 1

    r = admin.post("/admin/products/add", data={"name": "Bad", "price": "-1", "category": "Tote"}, follow_redirects=False)
    assert "Invalid%20price" in r.headers["location"]

    admin.post(f"/admin/products/{product_id}/delete")
    assert all(p["id"] != product_id for p in fake_backend.rows("products"))


def test_admin_categories(admin: TestClient, fake_backend: FakeBackend) -> None:
    admin.post("/admin/categories/add", data={"name": "Beach Bags"})
    [row] = fake_backend.rows("categories")
    assert row["slug"] == "beach-bags"
    assert "Beach Bags" in admin.get("/admin/categories").text


def test_admin_order_workflow(admin: TestClient, fake_backend: FakeBackend) -> None:
    number = _place_order(admin)

    assert number in admin.get("/admin/orders").text
    detail = admin.get(f"/admin/orders/{number}").text
    assert f"Your Order {number} is Being Processed" in detail

    admin.post(f"/admin/orders/{number}/status", data={"status": "Shipped"})
    assert fake_backend.rows("orders")[0]["status"] == "Shipped"

    pdf = admin.get(f"/admin/orders/{number}/invoice")
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")

    assert admin.get("/admin/orders/ORD-NOPE").status_code == 404


def test_admin_sync_pending_orders(admin: TestClient, fake_backend: FakeBackend, storage) -> None:
    admin.post("/cart/add", data={"product_id": "1"})
    fake_backend.down = True
    admin.post("/checkout", data=CHECKOUT_FORM)
    fake_backend.down = False

    r = admin.post("/admin/orders/sync", follow_redirects=False)
    assert "Synced%201%20orders" in r.headers["location"]
    assert storage.get_list("orders") == []


def test_admin_settings_save(admin: TestClient, fake_backend: FakeBackend) -> None:
    admin.post("/admin/settings", data={"heroTitle": "Spring Drop", "socialLinks.instagram": "https://ig.test/x"})

    [row] = fake_backend.rows("settings")
    assert row["value"]["heroTitle"] == "Spring Drop"
    assert row["value"]["socialLinks"]["instagram"] == "https://ig.test/x"
    assert "Spring Drop" in admin.get("/").text


def test_foreign_session_cookie_is_replaced(app) -> None:
    with TestClient(app, cookies={settings.session_cookie: "../../etc/passwd"}) as c:
        r = c.get("/cart")
    sid = r.cookies.get(settings.session_cookie)
    assert sid and re.fullmatch(r"[0-9a-f]{32}", sid)
    assert "../../etc/passwd" not in app.state.carts._carts


def test_checkout_json_clients_get_400(client: TestClient) -> None:
    client.post("/cart/add", data={"product_id": "1"})
    headers = {"accept": "application/json"}

    r = client.post("/checkout", data={**CHECKOUT_FORM, "email": ""}, headers=headers)
    assert r.status_code == 400
    assert r.json() == {"errors": {"email": "Email is required"}}
    assert _cart(client)["count"] == 1

    r = client.post("/checkout", data=CHECKOUT_FORM, headers=headers)
    assert r.status_code == 200
    assert r.json()["order"]["order_number"].startswith("ORD-")
    assert _cart(client)["items"] == []


def test_dashboard_counts_saved_carts(admin: TestClient) -> None:
    admin.post("/cart/add", data={"product_id": "1"})
    assert re.search(r"Saved Carts</span><strong>1<", admin.get("/admin").text)
