from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CATEGORIES = ("Electronics", "Clothing", "Footwear", "Home", "Groceries")
ALL_CATEGORIES = "All Categories"

KNOWN_INTENTS = frozenset(
    {
        "search",
        "add_to_cart",
        "show_cart",
        "remove_from_cart",
        "show_orders",
        "show_category",
        "show_sale_items",
        "show_all_products",
        "help",
        "ask_question",
    }
)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Catalog ---

class Variant(CamelModel):
    """One purchasable attribute combination of a product."""
    size: Optional[str] = None
    shoe_size: Optional[float] = None
    width: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None
    price: Optional[float] = None
    stock: int = 0

    @field_validator("size", "width", "ram", "storage", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("shoe_size", mode="before")
    @classmethod
    def _blank_shoe_size(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Product(CamelModel):
    """Catalog record with its ordered variants."""
    id: str
    name: str
    category: str
    description: str = ""
    price: Optional[float] = None
    rating: float = 0.0
    image: str = ""
    on_sale: bool = False
    original_price: Optional[float] = None
    size_chart: Optional[str] = None
    variants: List[Variant] = Field(default_factory=list)


# --- Cart and orders ---

class CartLine(CamelModel):
    """A product in a cart with its locked-in price and attribute selection."""
    product_id: str
    name: str
    image: str = ""
    category: str = ""
    price: float
    quantity: int = Field(default=1, ge=1)
    selected_variants: Dict[str, str] = Field(default_factory=dict)

    @field_validator("selected_variants", mode="before")
    @classmethod
    def _sparse_selection(cls, value: Any) -> Dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {
            str(key): str(val).strip()
            for key, val in value.items()
            if val is not None and str(val).strip()
        }


class CustomerInfo(BaseModel):
    """Shipping details captured at checkout."""
    name: str = ""
    address: str = ""


class Order(CamelModel):
    """Immutable snapshot of a cart at checkout."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    user_id: str
    items: List[CartLine]
    total: float
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    status: str = "Completed"
    date: str


class CartSummary(CamelModel):
    """Aggregate counts for a cart."""
    item_count: int
    total: float
    cart_id: Optional[str] = None


# --- LLM intent records ---

class IntentEntities(CamelModel):
    """Structured fields the model extracted from one utterance."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    product: Optional[str] = None
    quantity: Optional[int] = None
    category: Optional[str] = None
    size: Optional[str] = None
    shoe_size: Optional[str] = None
    width: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None

    @field_validator("product", "category", "size", "width", "ram", "storage", "shoe_size", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list, bool)):
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        if not text or text.lower() in {"null", "none", "undefined"}:
            return None
        return text

    @field_validator("quantity", mode="before")
    @classmethod
    def _positive_quantity(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(str(value).strip())
        except (TypeError, ValueError):
            return None
        # "Infinity", 1e400 and "nan" parse as floats but have no integer value.
        if not math.isfinite(number):
            return None
        quantity = int(number)
        return quantity if quantity > 0 else None

    def selection(self) -> Dict[str, str]:
        """Return the attribute values present, keyed by their wire names."""
        values = {
            "size": self.size,
            "shoeSize": self.shoe_size,
            "width": self.width,
            "ram": self.ram,
            "storage": self.storage,
        }
        return {key: value for key, value in values.items() if value}

    def merged(self, newer: "IntentEntities") -> "IntentEntities":
        """Overlay the values present in `newer` on top of this record."""
        return self.model_copy(update=newer.model_dump(exclude_none=True))


class IntentAction(BaseModel):
    """Action block of an intent record."""
    model_config = ConfigDict(extra="ignore")

    type: str = "none"
    missing: List[str] = Field(default_factory=list)
    data: Any = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        return text or "none"

    @field_validator("missing", mode="before")
    @classmethod
    def _missing_list(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if str(item).strip()]


class IntentRecord(CamelModel):
    """Validated intent classification for one user turn."""
    intent: str
    entities: IntentEntities = Field(default_factory=IntentEntities)
    action: IntentAction = Field(default_factory=IntentAction)
    response: str = ""
    follow_up_questions: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not isinstance(data.get("entities"), dict):
            data["entities"] = {}
        action = data.get("action")
        if isinstance(action, str):
            data["action"] = {"type": action}
        elif not isinstance(action, dict):
            data["action"] = {}
        for key in ("followUpQuestions", "follow_up_questions"):
            if key in data and not isinstance(data[key], list):
                data[key] = []
        if data.get("response") is None:
            data["response"] = ""
        elif not isinstance(data.get("response"), str):
            data["response"] = str(data["response"])
        return data

    @field_validator("intent", mode="before")
    @classmethod
    def _normalize_intent(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("intent must be a string")
        text = value.strip().lower()
        if not text:
            raise ValueError("intent must not be empty")
        return text

    @field_validator("follow_up_questions", mode="before")
    @classmethod
    def _question_list(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if str(item).strip()]

    @property
    def is_known(self) -> bool:
        return self.intent in KNOWN_INTENTS


# --- Chat API ---

class ChatRequest(CamelModel):
    """Inbound chat turn."""
    message: str = ""
    session_id: str = ""
    language: str = "en-US"
    current_cart: Optional[List[CartLine]] = None


class ChatResponse(CamelModel):
    """Dispatcher output plus the session cart."""
    intent: str
    entities: Dict[str, Any] = Field(default_factory=dict)
    action: Dict[str, Any] = Field(default_factory=dict)
    response: str = ""
    follow_up_questions: List[str] = Field(default_factory=list)
    session_cart: List[CartLine] = Field(default_factory=list)


# --- Cart and order API ---

class CartAddRequest(CamelModel):
    product_id: str
    name: str = ""
    price: float
    image: str = ""
    category: str = ""
    quantity: int = Field(default=1, ge=1)
    selected_variants: Dict[str, str] = Field(default_factory=dict)
    user_id: Optional[str] = None


class CartUpdateRequest(CamelModel):
    user_id: Optional[str] = None
    product_id: str
    quantity: int
    selected_variants: Dict[str, str] = Field(default_factory=dict)


class CartRemoveRequest(CamelModel):
    user_id: Optional[str] = None
    product_id: str
    selected_variants: Dict[str, str] = Field(default_factory=dict)


class CartReplaceRequest(CamelModel):
    items: List[CartLine] = Field(default_factory=list)


class OrderCreateRequest(CamelModel):
    items: Optional[List[CartLine]] = None
    customer: CustomerInfo = Field(default_factory=CustomerInfo)


# --- Auth API ---

class SignupRequest(BaseModel):
    name: str
    email: str
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(CamelModel):
    user_id: str
    name: str
    email: str
    session_id: str
