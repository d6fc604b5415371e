"""Cart line operations shared by the chat dispatcher and the cart REST routes."""

from __future__ import annotations

from typing import Dict, List, Optional

from .models import CartLine, CartSummary
from .utils import normalize_name, normalize_selection


def same_line(line: CartLine, product_id: str, selection: Optional[Dict[str, str]]) -> bool:
    """Two lines are the same when product and normalized selection agree."""
    return line.product_id == product_id and normalize_selection(line.selected_variants) == normalize_selection(
        selection
    )


def add_line(cart: List[CartLine], line: CartLine) -> CartLine:
    """Purpose: Add a line, merging into an existing (product, selection) line.
    Inputs/Outputs: Inputs are the cart list and the new line; returns the line
        now holding the quantity.
    Side Effects / State: Mutates the cart list in place.
    Dependencies: Uses same_line.
    Failure Modes: None.
    If Removed: Re-adding an item duplicates cart lines.
    Testing Notes: add(P,S,1); add(P,S,2) -> one line with quantity 3.
    """
    for index, existing in enumerate(cart):
        if same_line(existing, line.product_id, line.selected_variants):
            merged = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
            cart[index] = merged
            return merged
    cart.append(line)
    return line


def remove_by_name(cart: List[CartLine], name: str, quantity: Optional[int] = None) -> Optional[CartLine]:
    """Purpose: Remove or decrement the first line whose name contains `name`.
    Inputs/Outputs: Inputs are the cart, a spoken name, and an optional quantity;
        returns the affected line (as it was before the change) or None.
    Side Effects / State: Mutates the cart list in place.
    Dependencies: normalize_name for apostrophe-insensitive containment.
    Failure Modes: Empty names never match.
    If Removed: "remove the hoodie" stops working.
    Testing Notes: quantity smaller than the line decrements; otherwise the line goes.
    """
    needle = (name or "").strip().lower()
    if not needle:
        return None
    needle_forms = {needle, normalize_name(needle), normalize_name(needle, keep_possessive=True)}
    needle_forms.discard("")
    for index, line in enumerate(cart):
        haystacks = {line.name.lower(), normalize_name(line.name), normalize_name(line.name, keep_possessive=True)}
        if not any(form in hay for form in needle_forms for hay in haystacks):
            continue
        if quantity is not None and quantity < line.quantity:
            cart[index] = line.model_copy(update={"quantity": line.quantity - quantity})
        else:
            cart.pop(index)
        return line
    return None


def update_quantity(
    cart: List[CartLine], product_id: str, selection: Optional[Dict[str, str]], quantity: int
) -> Optional[List[CartLine]]:
    """Set a line's quantity; zero or less removes it. None when the line is absent."""
    for index, line in enumerate(cart):
        if same_line(line, product_id, selection):
            if quantity <= 0:
                cart.pop(index)
            else:
                cart[index] = line.model_copy(update={"quantity": quantity})
            return cart
    return None


def remove_line(cart: List[CartLine], product_id: str, selection: Optional[Dict[str, str]]) -> List[CartLine]:
    cart[:] = [line for line in cart if not same_line(line, product_id, selection)]
    return cart


def cart_total(cart: List[CartLine]) -> float:
    return round(sum(line.price * line.quantity for line in cart), 2)


def summarize(cart: List[CartLine], cart_id: Optional[str] = None) -> CartSummary:
    """Purpose: Count items and total a cart.
    Inputs/Outputs: Input is a list of CartLine; output is CartSummary.
    Side Effects / State: None.
    Dependencies: cart_total.
    Failure Modes: None; an empty cart is 0 items and 0.0 total.
    If Removed: show_cart and the summary route lose their numbers.
    Testing Notes: [(19.99, 2), (5.00, 1)] -> 3 items, 44.98.
    """
    return CartSummary(
        item_count=sum(line.quantity for line in cart),
        total=cart_total(cart),
        cart_id=cart_id,
    )


def format_total(total: float) -> str:
    return f"{total:.2f}"
