from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import intent
from voiceshop.app import create_app
from voiceshop.dispatcher import IntentDispatcher
from voiceshop.document_store import PersistenceError
from voiceshop.repositories import CartRepository

TEE = {"productId": "p-mens-casual-tshirt", "name": "Men's Casual T-Shirt", "price": 19.99, "selectedVariants": {"size": "L"}}


def _chat(client, message, session_id="session:u1", **extra):
    return client.post("/api/chat", json={"message": message, "sessionId": session_id, **extra})


def test_chat_rejects_missing_fields(client):
    response = client.post("/api/chat", json={"message": "", "sessionId": "s1"})
    assert response.status_code == 400
    assert response.json() == {"intent": "error", "response": "Missing fields", "sessionCart": []}


def test_chat_without_api_key_is_a_server_error(settings, store):
    from dataclasses import replace

    app = create_app(replace(settings, gemini_api_key=""), store=store)
    with TestClient(app) as client:
        response = _chat(client, "hi")
    assert response.status_code == 500
    assert response.json()["response"] == "API key missing"


def test_chat_multi_turn_add_persists_cart(client, fake_llm, store):
    fake_llm.script(
        intent("add_to_cart", "ask_variant", "What size would you like for the hoodie?", missing=["size"], product="hoodie"),
        intent("add_to_cart", "add_to_cart", size="L"),
    )
    first = _chat(client, "add a hoodie")
    assert first.status_code == 200
    body = first.json()
    assert body["action"]["type"] == "variant_required"
    assert body["response"] == "What size would you like for the hoodie?"
    assert body["sessionCart"] == []

    second = _chat(client, "large").json()
    assert second["intent"] == "add_to_cart"
    assert second["entities"] == {"product": "hoodie", "size": "L"}
    assert second["followUpQuestions"] == ["Do you want to view your cart?"]
    assert [line["productId"] for line in second["sessionCart"]] == ["p-mens-hoodie"]
    assert CartRepository(store).get_cart("u1")[0].price == 49.99

    prompt, _ = fake_llm.calls[1]
    assert 'user: "add a hoodie" | assistant: "What size would you like for the hoodie?"' in prompt


def test_chat_falls_back_on_garbage_model_output(client, fake_llm):
    fake_llm.script("I am not JSON")
    body = _chat(client, "blorp", language="es-ES").json()
    assert body["intent"] == "ask_question"
    assert body["response"].startswith("Lo siento")


def test_chat_ignores_infinite_quantity_from_model(client, fake_llm):
    fake_llm.script('{"intent": "show_cart", "entities": {"quantity": 1e999}}')
    response = _chat(client, "show my cart")
    assert response.status_code == 200
    body = response.json()
    assert body["intent"] == "show_cart"
    assert "quantity" not in body["entities"]


def test_chat_current_cart_replaces_session_cart(client, fake_llm):
    fake_llm.script(intent("show_cart"))
    current = [dict(TEE, quantity=2), {"productId": "x", "name": "Mug", "price": 5.0}]
    body = _chat(client, "what's in my cart", currentCart=current).json()
    assert body["response"] == "You have 3 items totaling $44.98."


def test_chat_loads_durable_cart_for_known_user(client, fake_llm, store):
    client.post("/api/cart/add", json=dict(TEE, userId="u9"))
    fake_llm.script(intent("show_cart"))
    body = _chat(client, "show my cart", session_id="session:u9").json()
    assert body["response"] == "You have 1 items totaling $19.99."


def test_chat_survives_cart_save_failure(client, fake_llm, store, monkeypatch, caplog):
    def broken(*args, **kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(CartRepository, "save_cart", broken)
    fake_llm.script(intent("add_to_cart", "add_to_cart", product="bananas"))
    with caplog.at_level("INFO", logger="voiceshop.assistant"):
        response = _chat(client, "add bananas")
    assert response.status_code == 200
    assert len(response.json()["sessionCart"]) == 1
    assert "cart_lines=1 cart_persisted=False" in caplog.text


def test_chat_unexpected_error_is_server_error(client, fake_llm, monkeypatch):
    def boom(self, *args, **kwargs):
        raise KeyError("unexpected")

    monkeypatch.setattr(IntentDispatcher, "dispatch", boom)
    fake_llm.script(intent("show_cart"))
    response = _chat(client, "cart?")
    assert response.status_code == 500
    assert response.json()["response"] == "Server error"


def test_products_endpoints(client):
    listing = client.get("/api/products", params={"category": "Footwear", "shoeSize": "6"}).json()
    assert [product["id"] for product in listing] == ["p-womens-slip-ons"]
    assert len(client.get("/api/products").json()) == 14
    assert len(client.get("/api/products", params={"limit": 3}).json()) == 3
    product = client.get("/api/products/p-vortex-air-fryer").json()
    assert product["onSale"] is True and product["originalPrice"] == 99.99
    assert client.get("/api/products/nope").status_code == 404
    assert len(client.get("/api/products/sale/items").json()) == 5


def test_cart_routes(client):
    assert client.post("/api/cart/add", json=TEE).status_code == 400
    client.post("/api/cart/add", json=dict(TEE, userId="u1"))
    client.post("/api/cart/add", json=dict(TEE, userId="u1", quantity=2))
    cart = client.get("/api/cart/u1").json()
    assert len(cart) == 1 and cart[0]["quantity"] == 3

    summary = client.get("/api/cart/summary/u1").json()
    assert summary["itemCount"] == 3
    assert summary["total"] == 59.97
    assert summary["cartId"]

    updated = client.put(
        "/api/cart/update",
        json={"userId": "u1", "productId": TEE["productId"], "quantity": 1, "selectedVariants": {"size": "L"}},
    )
    assert updated.json()["cart"][0]["quantity"] == 1
    missing = client.put("/api/cart/update", json={"userId": "u1", "productId": "nope", "quantity": 1})
    assert missing.status_code == 404

    client.request(
        "DELETE",
        "/api/cart/remove",
        json={"userId": "u1", "productId": TEE["productId"], "selectedVariants": {"size": "L"}},
    )
    assert client.get("/api/cart/u1").json() == []

    client.post("/api/cart/u1", json={"items": [dict(TEE, quantity=4)]})
    assert client.get("/api/cart/u1").json()[0]["quantity"] == 4
    assert client.delete("/api/cart/clear/u1").json()["success"] is True
    assert client.get("/api/cart/summary/u1").json() == {"itemCount": 0, "total": 0.0, "cartId": None}


def test_cart_route_writes_refresh_live_chat_session(client, fake_llm):
    fake_llm.script(intent("show_cart"), intent("show_cart"))
    _chat(client, "show cart")
    client.post("/api/cart/add", json=dict(TEE, userId="u1"))
    body = _chat(client, "show cart").json()
    assert body["response"] == "You have 1 items totaling $19.99."


def test_checkout_from_stored_cart_and_order_history(client):
    assert client.post("/api/orders/u1", json={}).status_code == 400
    client.post("/api/cart/add", json=dict(TEE, userId="u1", quantity=2))
    order = client.post("/api/orders/u1", json={"customer": {"name": "Ana", "address": "1 Main St"}}).json()
    assert order["total"] == 39.98
    assert order["status"] == "Completed"
    assert client.get("/api/cart/u1").json() == []

    client.post("/api/orders/u1", json={"items": [dict(TEE, quantity=1)]})
    history = client.get("/api/orders/u1").json()
    assert [entry["total"] for entry in history] == [19.99, 39.98]


def test_show_orders_over_chat(client, fake_llm):
    client.post("/api/orders/u1", json={"items": [TEE]})
    fake_llm.script(intent("show_orders"), intent("show_orders"))
    assert _chat(client, "my orders").json()["response"] == "You have 1 saved order."
    anonymous = _chat(client, "my orders", session_id="anon-1").json()
    assert anonymous["action"]["type"] == "none"


def test_auth_routes(client):
    created = client.post("/api/auth/signup", json={"name": "Ana", "email": "ana@example.com", "password": "secret1"})
    assert created.status_code == 200
    assert created.json()["sessionId"] == f"session:{created.json()['userId']}"
    duplicate = client.post("/api/auth/signup", json={"name": "Ana", "email": "ana@example.com", "password": "secret1"})
    assert duplicate.status_code == 409
    assert client.post("/api/auth/login", json={"email": "ana@example.com", "password": "bad"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "ana@example.com", "password": "secret1"}).status_code == 200


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["llm"] is True
    assert body["products"] == 14


def test_shutdown_closes_llm_workers(settings, store, fake_llm):
    app = create_app(settings, llm=fake_llm, store=store)
    fake_llm.script(intent("show_cart"), intent("show_cart"))
    with TestClient(app) as client:
        assert _chat(client, "show my cart").json()["intent"] == "show_cart"

    # Lifespan has exited; turns still answer, without reaching the model.
    body = _chat(TestClient(app), "show my cart again").json()
    assert body["intent"] == "ask_question"
    assert len(fake_llm.calls) == 1
