"""Durable carts and orders on top of the document store."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError

from .cart import cart_total
from .document_store import JsonDocumentStore, PersistenceError
from .models import CartLine, CustomerInfo, Order

logger = logging.getLogger("voiceshop.repositories")

CARTS_COLLECTION = "carts"
ORDERS_COLLECTION = "orders"
ORDER_STATUS_COMPLETED = "Completed"

__all__ = ["CartRepository", "OrderRepository", "PersistenceError"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartRepository:
    """One cart document per user id."""

    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def get_cart(self, user_id: str) -> List[CartLine]:
        """Purpose: Load the durable cart of a user.
        Inputs/Outputs: Input is user_id; output is the list of CartLine (empty if none).
        Side Effects / State: Logs and skips stored lines that no longer validate.
        Dependencies: JsonDocumentStore.find_one, CartLine.
        Failure Modes: None for missing carts; store errors propagate.
        If Removed: Carts do not follow the user across sessions or devices.
        Testing Notes: save_cart then get_cart on a fresh store instance returns the same lines.
        """
        document = self._store.find_one(CARTS_COLLECTION, {"userId": user_id})
        if not document:
            return []
        lines: List[CartLine] = []
        for item in document.get("items") or []:
            try:
                lines.append(CartLine.model_validate(item))
            except ValidationError:
                logger.warning("user=%s cart_line=invalid action=skip", user_id)
        return lines

    def save_cart(self, user_id: str, lines: List[CartLine]) -> None:
        """Replace the stored cart. PersistenceError propagates to the caller."""
        self._store.update_one(
            CARTS_COLLECTION,
            {"userId": user_id},
            {
                "items": [line.model_dump(by_alias=True) for line in lines],
                "updatedAt": _utcnow().isoformat(),
            },
            upsert=True,
        )
        logger.debug("user=%s cart=saved lines=%d", user_id, len(lines))

    def clear(self, user_id: str) -> None:
        self.save_cart(user_id, [])

    def cart_id(self, user_id: str) -> Optional[str]:
        document = self._store.find_one(CARTS_COLLECTION, {"userId": user_id})
        return document.get("id") if document else None


class OrderRepository:
    """Append-only order history."""

    def __init__(self, store: JsonDocumentStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    def create_order(
        self,
        user_id: str,
        lines: List[CartLine],
        customer: Optional[CustomerInfo] = None,
    ) -> Order:
        """Purpose: Snapshot a cart into an immutable order record.
        Inputs/Outputs: Inputs are user_id, the cart lines, and shipping details;
            output is the stored Order.
        Side Effects / State: Inserts into the orders collection.
        Dependencies: cart_total, JsonDocumentStore.insert.
        Failure Modes: ValueError for an empty cart; PersistenceError on write failure.
        If Removed: Checkout cannot produce order history.
        Testing Notes: Mutating the source cart afterwards leaves the order unchanged.
        """
        if not lines:
            raise ValueError("cannot create an order from an empty cart")
        order = Order(
            id=uuid.uuid4().hex,
            user_id=user_id,
            items=[line.model_copy(deep=True) for line in lines],
            total=cart_total(lines),
            customer=customer or CustomerInfo(),
            status=ORDER_STATUS_COMPLETED,
            date=self._clock().isoformat(),
        )
        self._store.insert(ORDERS_COLLECTION, order.model_dump(by_alias=True))
        logger.info("user=%s order=%s total=%.2f lines=%d", user_id, order.id, order.total, len(lines))
        return order

    def list_orders(
        self,
        user_id: str,
        limit: Optional[int] = None,
        most_recent_first: bool = True,
    ) -> List[Order]:
        documents = self._store.find(ORDERS_COLLECTION, {"userId": user_id})
        if most_recent_first:
            # Reverse first so orders sharing a timestamp keep newest-first order.
            documents.reverse()
        documents.sort(key=lambda doc: doc.get("date") or "", reverse=most_recent_first)
        if limit is not None:
            documents = documents[: max(limit, 0)]
        return [Order.model_validate(doc) for doc in documents]
