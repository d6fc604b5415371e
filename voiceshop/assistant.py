from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .dispatcher import IntentDispatcher
from .document_store import PersistenceError
from .intent_bridge import IntentBridge
from .models import CartLine, ChatRequest, ChatResponse, IntentRecord
from .pipeline import TurnPipeline, TurnStep
from .repositories import CartRepository
from .session_store import SessionState, SessionStore, session_id_for_user

logger = logging.getLogger("voiceshop.assistant")

DEFAULT_HISTORY_WINDOW = 10


@dataclass
class TurnContext:
    """Mutable context passed through each turn step."""
    session_id: str
    message: str
    language: str
    current_cart: Optional[List[CartLine]] = None
    session: Optional[SessionState] = None
    record: Optional[IntentRecord] = None
    reply: Optional[IntentRecord] = None
    cart_persisted: bool = False


class ShoppingAssistant:
    """Runs one chat turn: session load, classification, dispatch, history, cart sync."""

    def __init__(
        self,
        bridge: IntentBridge,
        dispatcher: IntentDispatcher,
        sessions: SessionStore,
        carts: CartRepository,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> None:
        """Purpose: Wire the turn pipeline to its collaborators.
        Inputs/Outputs: Inputs are the intent bridge, dispatcher, session store,
            cart repository, and history window; no return value.
        Side Effects / State: Builds a TurnPipeline with ordered steps.
        Dependencies: TurnPipeline/TurnStep and the step methods on this class.
        Failure Modes: None at init.
        If Removed: The chat endpoint has nothing to run.
        Testing Notes: Instantiate with a fake LLM and an in-memory store.
        """
        self._bridge = bridge
        self._dispatcher = dispatcher
        self._sessions = sessions
        self._carts = carts
        self._history_window = history_window
        self._pipeline: TurnPipeline[TurnContext] = TurnPipeline(
            steps=[
                TurnStep("load_session", self._step_load_session),
                TurnStep("classify", self._step_classify),
                TurnStep("dispatch", self._step_dispatch),
                TurnStep("record_history", self._step_record_history),
                TurnStep("persist_cart", self._step_persist_cart, skip_if=lambda ctx: not ctx.session.user_id),
            ]
        )

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    def handle_turn(self, request: ChatRequest) -> ChatResponse:
        """Purpose: Run the full pipeline for one user message.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse with the reply
            and the session cart.
        Side Effects / State: Mutates the session; may write the durable cart.
        Dependencies: SessionStore.lock, TurnPipeline.run.
        Failure Modes: Conversational failures are replies; unexpected exceptions
            propagate to the HTTP layer.
        If Removed: Chat requests cannot be served.
        Testing Notes: Two turns on one session id share history and cart.
        """
        context = TurnContext(
            session_id=request.session_id,
            message=request.message,
            language=request.language,
            current_cart=request.current_cart,
        )
        logger.info("session=%s message=%r", context.session_id, context.message)
        # Turns for one session run one at a time.
        with self._sessions.lock(context.session_id):
            self._pipeline.run(context)
        reply = context.reply
        logger.info(
            "session=%s turn=done intent=%s cart_lines=%d cart_persisted=%s",
            context.session_id,
            reply.intent,
            len(context.session.cart),
            context.cart_persisted,
        )
        return ChatResponse(
            intent=reply.intent,
            entities=reply.entities.model_dump(by_alias=True, exclude_none=True),
            action=reply.action.model_dump(),
            response=reply.response,
            follow_up_questions=reply.follow_up_questions,
            session_cart=list(context.session.cart),
        )

    def refresh_session_cart(self, user_id: str, cart: List[CartLine]) -> None:
        """Mirror a cart written through the REST routes into the live chat session."""
        session_id = session_id_for_user(user_id)
        with self._sessions.lock(session_id):
            state = self._sessions.get(session_id)
            if state is None:
                return
            state.cart = list(cart)
            state.cart_loaded = True

    def _step_load_session(self, context: TurnContext) -> None:
        state = self._sessions.get_or_create(context.session_id)
        if state.user_id and not state.cart_loaded:
            try:
                state.cart = self._carts.get_cart(state.user_id)
                state.cart_loaded = True
            except PersistenceError as exc:
                logger.warning("session=%s cart_load=failed error=%s", context.session_id, exc)
        if context.current_cart is not None:
            # The client's view of the cart is authoritative for this turn.
            state.cart = list(context.current_cart)
        context.session = state

    def _step_classify(self, context: TurnContext) -> None:
        context.record = self._bridge.classify(context.message, context.session, context.language)

    def _step_dispatch(self, context: TurnContext) -> None:
        context.reply = self._dispatcher.dispatch(context.record, context.session, context.language)

    def _step_record_history(self, context: TurnContext) -> None:
        session = context.session
        session.remember("user", context.message, self._history_window)
        session.remember("assistant", context.reply.response, self._history_window)
        self._sessions.put(session)

    def _step_persist_cart(self, context: TurnContext) -> None:
        """Purpose: Write the session cart through to durable storage.
        Inputs/Outputs: Input is TurnContext; no return value.
        Side Effects / State: Upserts the user's cart document.
        Dependencies: CartRepository.save_cart.
        Failure Modes: PersistenceError is logged; the turn still succeeds on session memory.
        If Removed: Carts are lost when the session expires or the process restarts.
        Testing Notes: A store that raises PersistenceError must not fail the turn.
        """
        try:
            self._carts.save_cart(context.session.user_id, context.session.cart)
            context.cart_persisted = True
        except PersistenceError as exc:
            logger.error("session=%s cart_save=failed error=%s", context.session_id, exc)
