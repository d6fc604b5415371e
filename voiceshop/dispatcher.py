"""Intent dispatcher: turns one parsed intent into a reply plus session mutations.

The model only classifies and extracts. Every product and variant it names is
re-checked against the catalog before the cart changes, and the multi-turn
add-to-cart protocol is tracked explicitly with AddRequestState.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .cart import add_line, format_total, remove_by_name, summarize
from .catalog import DEFAULT_SEARCH_LIMIT, ProductCatalog
from .document_store import PersistenceError
from .messages import join_attributes, resolve_language, text
from .models import CATEGORIES, CartLine, IntentAction, IntentEntities, IntentRecord, Product
from .repositories import OrderRepository
from .session_store import AddRequestState, PendingProduct, SessionState
from .utils import normalize_name
from .variants import ResolutionStatus, canonical_selection, missing_attributes, resolve_variant

logger = logging.getLogger("voiceshop.dispatcher")

ALL_PRODUCTS_LIMIT = 50
RECENT_ORDERS_LIMIT = 10
ASK_VARIANT_ACTIONS = frozenset({"ask_variant", "variant_required"})
ADD_ACTION = "add_to_cart"

Handler = Callable[[IntentRecord, SessionState, str], IntentRecord]


def next_add_state(current: AddRequestState, action_type: str, has_pending: bool) -> AddRequestState:
    """Purpose: Transition function of the add-to-cart protocol.
    Inputs/Outputs: Inputs are the current state, the model's action type, and
        whether a pending request exists; output is the state to handle the turn in.
    Side Effects / State: None.
    Dependencies: AddRequestState.
    Failure Modes: None; unknown action types never advance the protocol.
    If Removed: The dispatcher has no single place deciding how a turn is handled.
    Testing Notes: ("idle", "ask_variant") -> AWAITING_ATTRIBUTES;
        ("awaiting_attributes", "add_to_cart") -> RESOLVING;
        ("awaiting_attributes", "bogus") stays AWAITING_ATTRIBUTES.
    """
    if action_type in ASK_VARIANT_ACTIONS:
        return AddRequestState.AWAITING_ATTRIBUTES
    if action_type == ADD_ACTION:
        return AddRequestState.RESOLVING
    # Unrecognized actions leave a pending request untouched.
    if has_pending and current == AddRequestState.AWAITING_ATTRIBUTES:
        return current
    return AddRequestState.IDLE


def cart_payload(cart: List[CartLine]) -> List[Dict[str, Any]]:
    return [line.model_dump(by_alias=True) for line in cart]


def product_payload(products: List[Product]) -> List[Dict[str, Any]]:
    return [product.model_dump(by_alias=True) for product in products]


class IntentDispatcher:
    def __init__(self, catalog: ProductCatalog, orders: OrderRepository) -> None:
        """Purpose: Wire the dispatcher to the catalog and order history.
        Inputs/Outputs: Inputs are ProductCatalog and OrderRepository; no return value.
        Side Effects / State: Builds the intent -> handler table.
        Dependencies: ProductCatalog, OrderRepository.
        Failure Modes: None at init.
        If Removed: Parsed intents never touch the cart or catalog.
        Testing Notes: Construct over a seeded in-memory catalog.
        """
        self._catalog = catalog
        self._orders = orders
        self._handlers: Dict[str, Handler] = {
            "search": self._search,
            "add_to_cart": self._add_to_cart,
            "show_cart": self._show_cart,
            "remove_from_cart": self._remove_from_cart,
            "show_all_products": self._show_all_products,
            "show_category": self._show_category,
            "show_sale_items": self._show_sale_items,
            "show_orders": self._show_orders,
        }

    def dispatch(self, record: IntentRecord, session: SessionState, language: str) -> IntentRecord:
        """Purpose: Apply one intent record to the session and build the reply.
        Inputs/Outputs: Inputs are the parsed record, the session, and a language
            tag; output is the enriched record (a copy; the input is not mutated).
        Side Effects / State: May mutate session.cart, session.pending, session.add_state.
        Dependencies: Handler table, catalog, variant resolver, cart helpers.
        Failure Modes: Conversational failures are replies, not exceptions.
        If Removed: Chat turns would return raw model output with no cart effect.
        Testing Notes: Unknown intents come back unchanged.
        """
        handler = self._handlers.get(record.intent)
        if handler is None:
            logger.info(
                "session=%s intent=%s known=%s status=passthrough",
                session.session_id,
                record.intent,
                record.is_known,
            )
            return record
        return handler(record.model_copy(deep=True), session, resolve_language(language))

    # --- Catalog intents ---

    def _search(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        term = record.entities.product or record.entities.category or ""
        items = self._catalog.find_products(term, limit=DEFAULT_SEARCH_LIMIT)
        record.action = IntentAction(type="search", data={"query": term, "results": product_payload(items)})
        if items:
            record.response = text(lang, "search_found", count=len(items), term=term)
        else:
            record.response = text(lang, "search_none", term=term)
        record.follow_up_questions = [text(lang, "search_followup")]
        return record

    def _show_all_products(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        items = self._catalog.find_products(limit=ALL_PRODUCTS_LIMIT)
        record.action = IntentAction(type="show_all_products", data={"products": product_payload(items)})
        record.response = text(lang, "all_products", count=len(items))
        record.follow_up_questions = [text(lang, "filter_followup")]
        return record

    def _show_category(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        category = _match_category(record.entities.category)
        if category is None:
            # Closed set: nothing outside it is ever looked up.
            logger.info("session=%s category=%r status=rejected", session.session_id, record.entities.category)
            record.action = IntentAction(type="none", data={})
            record.response = text(lang, "category_unknown")
            record.follow_up_questions = []
            return record
        items = self._catalog.find_products(category=category, limit=ALL_PRODUCTS_LIMIT)
        record.action = IntentAction(
            type="show_category",
            data={"category": category, "products": product_payload(items)},
        )
        record.response = text(lang, "category", category=category)
        record.follow_up_questions = [text(lang, "category_followup")]
        return record

    def _show_sale_items(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        items = self._catalog.sale_items()
        record.action = IntentAction(type="show_sale_items", data={"products": product_payload(items)})
        record.response = text(lang, "sale_items", count=len(items))
        record.follow_up_questions = [text(lang, "sale_followup")]
        return record

    # --- Cart intents ---

    def _show_cart(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        summary = summarize(session.cart)
        record.action = IntentAction(type="show_cart", data={"cart": cart_payload(session.cart)})
        if summary.item_count:
            record.response = text(
                lang, "cart_summary", count=summary.item_count, total=format_total(summary.total)
            )
        else:
            record.response = text(lang, "cart_empty")
        record.follow_up_questions = [text(lang, "checkout_followup")]
        return record

    def _remove_from_cart(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        name = record.entities.product or ""
        removed = remove_by_name(session.cart, name, record.entities.quantity)
        if removed is None:
            record.action = IntentAction(type="none", data={})
            record.response = text(lang, "remove_not_found", product=name)
            return record
        logger.info("session=%s cart=removed product=%s", session.session_id, removed.product_id)
        record.action = IntentAction(type="remove_from_cart", data={"cart": cart_payload(session.cart)})
        record.response = text(lang, "removed")
        record.follow_up_questions = [text(lang, "remove_followup")]
        return record

    def _add_to_cart(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        """Purpose: Run one turn of the add-to-cart protocol.
        Inputs/Outputs: Inputs are the record, session, and language; output is the reply.
        Side Effects / State: Drives session.add_state through next_add_state and
            updates the pending slot and cart.
        Dependencies: next_add_state, _await_attributes, _resolve_and_add.
        Failure Modes: Product or variant misses become FAILED replies.
        If Removed: Nothing can be added to the cart by voice.
        Testing Notes: "add t-shirt" (ask_variant), then "large" (add_to_cart) adds size L.
        """
        action_type = record.action.type
        state = next_add_state(session.add_state, action_type, session.pending is not None)
        logger.debug(
            "session=%s add_state=%s->%s action=%s",
            session.session_id,
            session.add_state.value,
            state.value,
            action_type,
        )
        if state == AddRequestState.AWAITING_ATTRIBUTES and action_type in ASK_VARIANT_ACTIONS:
            reply = self._await_attributes(record, session, lang)
        elif state == AddRequestState.RESOLVING:
            session.add_state = state
            reply = self._resolve_and_add(record, session, lang)
        else:
            session.add_state = state
            record.action = IntentAction(type="none", data={})
            record.response = text(lang, "not_understood")
            return record
        if session.add_state in (AddRequestState.COMMITTED, AddRequestState.FAILED):
            logger.info("session=%s add_request=%s", session.session_id, session.add_state.value)
            session.add_state = AddRequestState.IDLE
        return reply

    def _await_attributes(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        entities = self._merge_pending(session, record.entities)
        missing = record.action.missing
        if not missing:
            product = self._catalog.find_product_by_name(entities.product)
            if product is not None:
                missing = missing_attributes(product, entities.selection())
        session.pending = PendingProduct(entities=entities, missing=list(missing))
        session.add_state = AddRequestState.AWAITING_ATTRIBUTES
        record.entities = entities
        record.action = IntentAction(type="variant_required", missing=list(missing), data=list(missing))
        record.response = record.response or text(lang, "ask_variant_generic")
        record.follow_up_questions = []
        return record

    def _resolve_and_add(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        """Purpose: Validate merged entities against the catalog and commit a cart line.
        Inputs/Outputs: Inputs are the record, session, and language; output is the reply.
        Side Effects / State: Sets add_state to COMMITTED, FAILED, or AWAITING_ATTRIBUTES;
            clears or refreshes the pending slot; may append to session.cart.
        Dependencies: find_product_by_name, resolve_variant, add_line.
        Failure Modes: Unknown product or unavailable combination fail the request.
        If Removed: Model output would be written to the cart unchecked.
        Testing Notes: A model that says add_to_cart without a size still gets asked.
        """
        entities = self._merge_pending(session, record.entities)
        record.entities = entities
        product = self._catalog.find_product_by_name(entities.product) if entities.product else None
        if product is None:
            return self._fail(record, session, text(lang, "not_found", product=entities.product or ""))

        selection = entities.selection()
        resolution = resolve_variant(product, selection)
        if resolution.status == ResolutionStatus.MISSING:
            # The model skipped a required option: ask instead of guessing.
            session.pending = PendingProduct(entities=entities, missing=resolution.missing)
            session.add_state = AddRequestState.AWAITING_ATTRIBUTES
            record.action = IntentAction(
                type="variant_required", missing=resolution.missing, data=resolution.missing
            )
            record.response = text(
                lang,
                "ask_missing",
                attributes=join_attributes(lang, resolution.missing),
                product=product.name,
            )
            record.follow_up_questions = []
            return record
        if resolution.status == ResolutionStatus.UNAVAILABLE or resolution.price is None:
            return self._fail(record, session, text(lang, "unavailable", product=product.name))

        chosen = canonical_selection(resolution.variant, selection)
        line = add_line(
            session.cart,
            CartLine(
                product_id=product.id,
                name=product.name,
                image=product.image,
                category=product.category,
                price=resolution.price,
                quantity=entities.quantity or 1,
                selected_variants=chosen,
            ),
        )
        session.clear_pending()
        session.add_state = AddRequestState.COMMITTED
        logger.info(
            "session=%s cart=added product=%s selection=%s quantity=%d",
            session.session_id,
            product.id,
            chosen,
            line.quantity,
        )
        details = f" ({', '.join(chosen.values())})" if chosen else ""
        record.action = IntentAction(type="add_to_cart", data={"cart": cart_payload(session.cart)})
        record.response = text(
            lang, "added", quantity=entities.quantity or 1, product=product.name, details=details
        )
        record.follow_up_questions = [text(lang, "view_cart")]
        return record

    def _fail(self, record: IntentRecord, session: SessionState, message: str) -> IntentRecord:
        session.clear_pending()
        session.add_state = AddRequestState.FAILED
        record.action = IntentAction(type="none", data={})
        record.response = message
        return record

    def _merge_pending(self, session: SessionState, entities: IntentEntities) -> IntentEntities:
        # New values win; a pending request for another product is dropped.
        pending = session.pending
        if pending is None:
            return entities
        if self._same_product(pending.entities.product, entities.product):
            return pending.entities.merged(entities)
        logger.info(
            "session=%s pending=%r status=discarded new=%r",
            session.session_id,
            pending.entities.product,
            entities.product,
        )
        session.clear_pending()
        return entities

    def _same_product(self, pending_name: Optional[str], new_name: Optional[str]) -> bool:
        if not new_name or not pending_name:
            return True
        if normalize_name(pending_name) == normalize_name(new_name):
            return True
        first = self._catalog.find_product_by_name(pending_name)
        second = self._catalog.find_product_by_name(new_name)
        return first is not None and second is not None and first.id == second.id

    # --- Orders ---

    def _show_orders(self, record: IntentRecord, session: SessionState, lang: str) -> IntentRecord:
        if not session.user_id:
            record.action = IntentAction(type="none", data={})
            record.response = text(lang, "orders_need_login")
            record.follow_up_questions = [text(lang, "login_followup")]
            return record
        try:
            orders = self._orders.list_orders(session.user_id, limit=RECENT_ORDERS_LIMIT, most_recent_first=True)
        except PersistenceError as exc:
            logger.error("session=%s orders=failed error=%s", session.session_id, exc)
            record.action = IntentAction(type="error", data={"error": str(exc)})
            record.response = text(lang, "orders_error")
            record.follow_up_questions = [text(lang, "retry_followup")]
            return record
        record.action = IntentAction(
            type="show_orders",
            data={"orders": [order.model_dump(by_alias=True) for order in orders], "navigate": "/orders"},
        )
        if not orders:
            record.response = text(lang, "orders_none")
            record.follow_up_questions = [text(lang, "orders_none_followup")]
        else:
            record.response = text(
                lang, "orders_some", count=len(orders), plural="s" if len(orders) > 1 else ""
            )
            record.follow_up_questions = [text(lang, "orders_followup")]
        return record


def _match_category(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    wanted = value.strip().lower()
    for category in CATEGORIES:
        if category.lower() == wanted:
            return category
    return None
