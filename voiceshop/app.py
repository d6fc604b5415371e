from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .assistant import ShoppingAssistant
from .cart import add_line, remove_line, summarize, update_quantity
from .catalog import ProductCatalog
from .config import Settings, load_settings
from .dispatcher import IntentDispatcher
from .document_store import JsonDocumentStore, PersistenceError
from .gemini_client import GeminiClient, LLMClient
from .intent_bridge import IntentBridge
from .models import (
    AuthResponse,
    CartAddRequest,
    CartLine,
    CartRemoveRequest,
    CartReplaceRequest,
    CartSummary,
    CartUpdateRequest,
    ChatRequest,
    ChatResponse,
    LoginRequest,
    Order,
    OrderCreateRequest,
    Product,
    SignupRequest,
)
from .repositories import CartRepository, OrderRepository
from .session_store import SessionStore
from .users import DuplicateEmailError, InvalidCredentialsError, UserDirectory

BASE_DIR = Path(__file__).resolve().parent
DOCUMENTS_FILE = "documents.json"

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("voiceshop").setLevel(log_level)
logger = logging.getLogger("voiceshop.app")

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)


def _error(status_code: int, response: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"intent": "error", "response": response, "sessionCart": []},
    )


def create_app(
    settings: Optional[Settings] = None,
    llm: Optional[LLMClient] = None,
    store: Optional[JsonDocumentStore] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI application and wire every collaborator.
    Inputs/Outputs: Inputs are optional Settings, an LLM client, and a document
        store (each built from the environment when omitted); output is the app.
    Side Effects / State: Creates the data directory, seeds the catalog on an
        empty store, and configures the Gemini SDK when a key is present.
    Dependencies: FastAPI, ProductCatalog, ShoppingAssistant, repositories, users.
    Failure Modes: Invalid numeric settings raise ValueError; without an API key
        the chat route answers 500 "API key missing".
    If Removed: The service cannot be started.
    Testing Notes: Pass a temp-dir Settings and a fake LLM to get an isolated app.
    """
    # Resolve configuration, storage, and the LLM, then build the turn pipeline.
    settings = settings or load_settings()
    if store is None:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        store = JsonDocumentStore(settings.data_dir / DOCUMENTS_FILE)
    if llm is None and settings.gemini_api_key:
        llm = GeminiClient(settings)
    if llm is None:
        logger.warning("llm=disabled reason=missing_api_key")

    catalog = ProductCatalog(store, settings.products_seed_path)
    catalog.load()
    carts = CartRepository(store)
    orders = OrderRepository(store)
    users = UserDirectory(store)
    sessions = SessionStore(max_sessions=settings.max_sessions, ttl_seconds=settings.session_ttl_sec)
    bridge: Optional[IntentBridge] = None
    assistant: Optional[ShoppingAssistant] = None
    if llm is not None:
        bridge = IntentBridge(
            llm,
            catalog,
            settings.prompts_dir,
            timeout_sec=settings.llm_timeout_sec,
            history_turns=settings.prompt_history_turns,
        )
        assistant = ShoppingAssistant(
            bridge=bridge,
            dispatcher=IntentDispatcher(catalog, orders),
            sessions=sessions,
            carts=carts,
            history_window=settings.history_window,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Release the LLM worker threads on shutdown.
        if bridge is not None:
            bridge.close()
            logger.info("llm_workers=closed")

    app = FastAPI(title="Walmart VoiceShop", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.store = store
    app.state.catalog = catalog
    app.state.sessions = sessions
    app.state.assistant = assistant
    app.state.bridge = bridge

    def sync_session(user_id: str, cart: List[CartLine]) -> None:
        # Keep a live chat session for this user in step with REST cart writes.
        if assistant is not None:
            assistant.refresh_session_cart(user_id, cart)

    def save_cart(user_id: str, cart: List[CartLine]) -> None:
        try:
            carts.save_cart(user_id, cart)
        except PersistenceError as exc:
            logger.error("user=%s cart_save=failed error=%s", user_id, exc)
            raise HTTPException(status_code=500, detail="Failed to save cart") from exc
        sync_session(user_id, cart)

    # --- Chat ---

    @app.post("/api/chat", response_model=ChatResponse, response_model_by_alias=True)
    def chat(request: ChatRequest) -> Any:
        """Purpose: Handle one voice/text chat turn.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse (camelCase).
        Side Effects / State: Mutates the session; may persist the user's cart.
        Dependencies: ShoppingAssistant.handle_turn.
        Failure Modes: 400 on blank message/sessionId; 500 when no LLM is configured
            or on unexpected errors.
        If Removed: The voice assistant has no backend.
        Testing Notes: Script the fake LLM and assert on intent, action, and sessionCart.
        """
        if not request.message.strip() or not request.session_id.strip():
            return _error(400, "Missing fields")
        if assistant is None:
            return _error(500, "API key missing")
        try:
            return assistant.handle_turn(request)
        except Exception:
            logger.exception("session=%s chat=failed", request.session_id)
            return _error(500, "Server error")

    # --- Products ---

    @app.get("/api/products", response_model=List[Product], response_model_by_alias=True)
    def list_products(
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        size: Optional[str] = None,
        shoeSize: Optional[str] = None,
        ram: Optional[str] = None,
        storage: Optional[str] = None,
    ) -> List[Product]:
        return catalog.filter_by_variant(
            search,
            category,
            limit=limit,
            size=size,
            shoeSize=shoeSize,
            ram=ram,
            storage=storage,
        )

    @app.get("/api/products/sale/items", response_model=List[Product], response_model_by_alias=True)
    def list_sale_items() -> List[Product]:
        return catalog.sale_items()

    @app.get("/api/products/{product_id}", response_model=Product, response_model_by_alias=True)
    def get_product(product_id: str) -> Product:
        product = catalog.find_by_id(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Not found")
        return product

    # --- Carts ---

    @app.get("/api/cart/summary/{user_id}", response_model=CartSummary, response_model_by_alias=True)
    def cart_summary(user_id: str) -> CartSummary:
        cart = carts.get_cart(user_id)
        return summarize(cart, cart_id=carts.cart_id(user_id) if cart else None)

    @app.post("/api/cart/add")
    def cart_add(request: CartAddRequest) -> Dict[str, Any]:
        """Purpose: Merge one product/selection into a user's durable cart.
        Inputs/Outputs: Input is CartAddRequest; output is {success, cart}.
        Side Effects / State: Writes the cart and refreshes the live chat session.
        Dependencies: add_line, CartRepository.
        Failure Modes: 400 when userId is missing; 500 if the store cannot write.
        If Removed: Product pages cannot add to cart.
        Testing Notes: Adding the same product and selection twice sums quantities.
        """
        if not request.user_id:
            raise HTTPException(status_code=400, detail="userId is required")
        cart = carts.get_cart(request.user_id)
        product = catalog.find_by_id(request.product_id)
        add_line(
            cart,
            CartLine(
                product_id=request.product_id,
                name=request.name or (product.name if product else ""),
                image=request.image or (product.image if product else ""),
                category=request.category or (product.category if product else ""),
                price=request.price,
                quantity=request.quantity,
                selected_variants=request.selected_variants,
            ),
        )
        save_cart(request.user_id, cart)
        return {"success": True, "cart": [line.model_dump(by_alias=True) for line in cart]}

    @app.put("/api/cart/update")
    def cart_update(request: CartUpdateRequest) -> Dict[str, Any]:
        if not request.user_id:
            raise HTTPException(status_code=400, detail="userId is required")
        cart = carts.get_cart(request.user_id)
        if update_quantity(cart, request.product_id, request.selected_variants, request.quantity) is None:
            raise HTTPException(status_code=404, detail="Item not found in cart")
        save_cart(request.user_id, cart)
        return {"success": True, "cart": [line.model_dump(by_alias=True) for line in cart]}

    @app.delete("/api/cart/remove")
    def cart_remove(request: CartRemoveRequest) -> Dict[str, Any]:
        if not request.user_id:
            raise HTTPException(status_code=400, detail="userId is required")
        cart = remove_line(carts.get_cart(request.user_id), request.product_id, request.selected_variants)
        save_cart(request.user_id, cart)
        return {"success": True, "cart": [line.model_dump(by_alias=True) for line in cart]}

    @app.delete("/api/cart/clear/{user_id}")
    def cart_clear(user_id: str) -> Dict[str, Any]:
        save_cart(user_id, [])
        return {"success": True, "message": "Cart cleared"}

    @app.get("/api/cart/{user_id}", response_model=List[CartLine], response_model_by_alias=True)
    def get_cart(user_id: str) -> List[CartLine]:
        return carts.get_cart(user_id)

    @app.post("/api/cart/{user_id}")
    def replace_cart(user_id: str, request: CartReplaceRequest) -> Dict[str, Any]:
        save_cart(user_id, list(request.items))
        return {"success": True}

    # --- Orders ---

    @app.get("/api/orders/{user_id}", response_model=List[Order], response_model_by_alias=True)
    def list_orders(user_id: str) -> List[Order]:
        return orders.list_orders(user_id, most_recent_first=True)

    @app.post("/api/orders/{user_id}", response_model=Order, response_model_by_alias=True)
    def create_order(user_id: str, request: OrderCreateRequest) -> Order:
        """Purpose: Check out a cart into an order and empty the cart.
        Inputs/Outputs: Input is OrderCreateRequest (items optional); output is the Order.
        Side Effects / State: Inserts the order, clears the durable and session cart.
        Dependencies: OrderRepository.create_order, CartRepository.
        Failure Modes: 400 for an empty cart; 500 if the store cannot write.
        If Removed: Checkout is impossible.
        Testing Notes: Posting no items checks out the stored cart.
        """
        lines = list(request.items) if request.items else carts.get_cart(user_id)
        if not lines:
            raise HTTPException(status_code=400, detail="Cart is empty")
        try:
            order = orders.create_order(user_id, lines, request.customer)
        except PersistenceError as exc:
            logger.error("user=%s order=failed error=%s", user_id, exc)
            raise HTTPException(status_code=500, detail="Failed to create order") from exc
        save_cart(user_id, [])
        return order

    # --- Auth ---

    @app.post("/api/auth/signup", response_model=AuthResponse, response_model_by_alias=True)
    def signup(request: SignupRequest) -> AuthResponse:
        try:
            return users.signup(request.name, request.email, request.password)
        except DuplicateEmailError as exc:
            raise HTTPException(status_code=409, detail="Email already registered") from exc

    @app.post("/api/auth/login", response_model=AuthResponse, response_model_by_alias=True)
    def login(request: LoginRequest) -> AuthResponse:
        try:
            return users.login(request.email, request.password)
        except InvalidCredentialsError as exc:
            raise HTTPException(status_code=401, detail="Invalid email or password") from exc

    # --- Health ---

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "store": store.ping(),
            "llm": llm is not None,
            "products": len(catalog.products),
            "sessions": len(sessions),
        }

    return app


app = create_app()
