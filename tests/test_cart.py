from __future__ import annotations

from voiceshop.cart import add_line, format_total, remove_by_name, remove_line, summarize, update_quantity
from voiceshop.models import CartLine


def _line(product_id="p1", name="Men's Hoodie", price=19.99, quantity=1, **selection) -> CartLine:
    return CartLine(product_id=product_id, name=name, price=price, quantity=quantity, selected_variants=selection)


def test_summary_counts_quantities_and_rounds_total():
    cart = [_line(price=19.99, quantity=2), _line(product_id="p2", name="Mug", price=5.00)]
    summary = summarize(cart)
    assert summary.item_count == 3
    assert summary.total == 44.98
    assert format_total(summary.total) == "44.98"


def test_empty_cart_summary():
    summary = summarize([])
    assert (summary.item_count, summary.total, summary.cart_id) == (0, 0.0, None)


def test_adding_same_product_and_selection_merges_quantity():
    cart = []
    add_line(cart, _line(size="L"))
    merged = add_line(cart, _line(quantity=2, size="l"))
    assert len(cart) == 1
    assert merged.quantity == 3


def test_different_selection_creates_new_line():
    cart = []
    add_line(cart, _line(size="M"))
    add_line(cart, _line(size="L"))
    assert [line.selected_variants["size"] for line in cart] == ["M", "L"]


def test_remove_by_name_decrements_when_quantity_is_smaller():
    cart = [_line(quantity=3)]
    removed = remove_by_name(cart, "hoodie", 1)
    assert removed.quantity == 3
    assert cart[0].quantity == 2


def test_remove_by_name_drops_line_without_quantity_or_when_quantity_covers_it():
    cart = [_line(quantity=2), _line(product_id="p2", name="Mug")]
    remove_by_name(cart, "HOODIE")
    assert [line.product_id for line in cart] == ["p2"]
    remove_by_name(cart, "mug", 5)
    assert cart == []


def test_remove_by_name_matches_apostrophe_free_transcripts():
    cart = [_line()]
    assert remove_by_name(cart, "mens hoodie") is not None
    assert cart == []


def test_remove_by_name_not_found():
    cart = [_line()]
    assert remove_by_name(cart, "toaster") is None
    assert remove_by_name(cart, "") is None
    assert len(cart) == 1


def test_update_quantity_sets_removes_and_reports_missing():
    cart = [_line(size="M")]
    assert update_quantity(cart, "p1", {"size": "M"}, 4) is cart
    assert cart[0].quantity == 4
    update_quantity(cart, "p1", {"size": "m"}, 0)
    assert cart == []
    assert update_quantity(cart, "p1", {"size": "M"}, 1) is None


def test_remove_line_only_removes_matching_selection():
    cart = [_line(size="M"), _line(size="L")]
    remove_line(cart, "p1", {"size": "M"})
    assert [line.selected_variants for line in cart] == [{"size": "L"}]
