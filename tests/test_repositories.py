from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from voiceshop.document_store import JsonDocumentStore, PersistenceError
from voiceshop.models import CartLine, CustomerInfo
from voiceshop.repositories import CartRepository, OrderRepository


def _line(quantity=1, price=19.99, **selection) -> CartLine:
    return CartLine(product_id="p1", name="Tee", price=price, quantity=quantity, selected_variants=selection)


def test_cart_round_trips_through_a_fresh_store(tmp_path):
    path = tmp_path / "documents.json"
    CartRepository(JsonDocumentStore(path)).save_cart("u1", [_line(2, size="M")])
    reloaded = CartRepository(JsonDocumentStore(path)).get_cart("u1")
    assert reloaded == [_line(2, size="M")]


def test_missing_cart_is_empty_and_clear_empties(store):
    carts = CartRepository(store)
    assert carts.get_cart("nobody") == []
    carts.save_cart("u1", [_line()])
    carts.clear("u1")
    assert carts.get_cart("u1") == []
    assert store.count("carts") == 1


def test_order_is_a_snapshot_with_computed_total(store):
    orders = OrderRepository(store)
    cart = [_line(2), _line(1, price=5.0, size="L")]
    order = orders.create_order("u1", cart, CustomerInfo(name="Ana", address="1 Main St"))
    cart.clear()
    assert order.total == 44.98
    assert order.status == "Completed"
    assert order.date.endswith("+00:00")
    stored = orders.list_orders("u1")[0]
    assert len(stored.items) == 2
    assert stored.customer.name == "Ana"


def test_empty_order_is_rejected(store):
    with pytest.raises(ValueError):
        OrderRepository(store).create_order("u1", [])


def test_orders_listed_most_recent_first_with_limit(store):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = iter(start + timedelta(minutes=minute) for minute in range(5))
    orders = OrderRepository(store, clock=lambda: next(ticks))
    created = [orders.create_order("u1", [_line(quantity)]) for quantity in range(1, 6)]

    newest = orders.list_orders("u1", limit=3)
    assert [order.id for order in newest] == [created[4].id, created[3].id, created[2].id]
    oldest = orders.list_orders("u1", most_recent_first=False)
    assert oldest[0].id == created[0].id
    assert orders.list_orders("u2") == []


def test_write_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    carts = CartRepository(JsonDocumentStore(blocker / "documents.json"))
    with pytest.raises(PersistenceError):
        carts.save_cart("u1", [_line()])
