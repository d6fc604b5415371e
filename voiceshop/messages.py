"""Localized assistant replies. Language only changes wording, never behavior."""

from __future__ import annotations

from typing import Dict, List

SUPPORTED_LANGUAGES = ("en", "es")

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "fallback": "Sorry, I did not understand. Could you rephrase it?",
        "fallback_followup": "Would you like to see popular products?",
        "search_found": 'I found {count} results for "{term}".',
        "search_none": 'No results found for "{term}".',
        "search_followup": "Would you like to add any to your cart?",
        "not_found": 'Could not find "{product}".',
        "unavailable": "That combination is not available for {product}.",
        "added": "Added {quantity} {product}{details} to cart.",
        "view_cart": "Do you want to view your cart?",
        "ask_variant_generic": "Please specify the required option.",
        "ask_missing": "Which {attributes} would you like for {product}?",
        "not_understood": "I did not understand your request. Could you rephrase?",
        "cart_summary": "You have {count} items totaling ${total}.",
        "cart_empty": "Your cart is empty.",
        "checkout_followup": "Ready to checkout?",
        "remove_not_found": 'Could not find "{product}" in your cart.',
        "removed": "Done, I updated your cart.",
        "remove_followup": "Would you like to remove anything else?",
        "all_products": "Showing all products ({count}).",
        "filter_followup": "Would you like to filter by category?",
        "category": "Showing {category} category.",
        "category_unknown": "I did not understand your request. Try Electronics, Clothing, Footwear, Home or Groceries.",
        "category_followup": "Do you want to add anything to the cart?",
        "sale_items": "Here are the sale items ({count}).",
        "sale_followup": "Would you like to add any?",
        "orders_need_login": "I need to know who you are to show orders - please sign in first.",
        "login_followup": "Would you like to log in?",
        "orders_none": "You do not have any orders yet.",
        "orders_none_followup": "Would you like to start shopping?",
        "orders_some": "You have {count} saved order{plural}.",
        "orders_followup": "Would you like to view details or reorder anything?",
        "orders_error": "There was a problem fetching your orders.",
        "retry_followup": "Would you like to try again?",
        "and": "and",
    },
    "es": {
        "fallback": "Lo siento, no entendí. ¿Puedes reformular?",
        "fallback_followup": "¿Te muestro productos populares?",
        "search_found": 'Encontré {count} resultados para "{term}".',
        "search_none": 'No encontré resultados para "{term}".',
        "search_followup": "¿Quieres añadir algo al carrito?",
        "not_found": 'No encontré "{product}".',
        "unavailable": "Esa combinación no está disponible para {product}.",
        "added": "Añadí {quantity} {product}{details} al carrito.",
        "view_cart": "¿Deseas ver tu carrito?",
        "ask_variant_generic": "Por favor, especifica la opción requerida.",
        "ask_missing": "¿Qué {attributes} quieres para {product}?",
        "not_understood": "No entendí tu solicitud. ¿Puedes reformular?",
        "cart_summary": "Tienes {count} artículos por ${total}.",
        "cart_empty": "Tu carrito está vacío.",
        "checkout_followup": "¿Listo para pagar?",
        "remove_not_found": 'No encontré "{product}" en tu carrito.',
        "removed": "Hecho, actualicé tu carrito.",
        "remove_followup": "¿Quieres eliminar algo más?",
        "all_products": "Mostrando todos los productos ({count}).",
        "filter_followup": "¿Quieres filtrar por categoría?",
        "category": "Mostrando categoría {category}.",
        "category_unknown": "No entiendo tu solicitud. Prueba con Electronics, Clothing, Footwear, Home o Groceries.",
        "category_followup": "¿Quieres añadir algo al carrito?",
        "sale_items": "Aquí están los artículos en oferta ({count}).",
        "sale_followup": "¿Quieres añadir alguno?",
        "orders_need_login": "Para ver tus pedidos necesito saber quién eres. Por favor inicia sesión primero.",
        "login_followup": "¿Te gustaría iniciar sesión?",
        "orders_none": "Aún no tienes pedidos registrados.",
        "orders_none_followup": "¿Quieres empezar a comprar?",
        "orders_some": "Tienes {count} pedido{plural} guardado{plural}.",
        "orders_followup": "¿Deseas ver los detalles o volver a pedir algo?",
        "orders_error": "Hubo un problema al recuperar tus pedidos.",
        "retry_followup": "¿Intentar de nuevo?",
        "and": "y",
    },
}

ATTRIBUTE_LABELS: Dict[str, Dict[str, str]] = {
    "en": {"size": "size", "shoeSize": "shoe size", "width": "width", "ram": "RAM", "storage": "storage"},
    "es": {"size": "talla", "shoeSize": "talla de zapato", "width": "ancho", "ram": "RAM", "storage": "almacenamiento"},
}


def resolve_language(language: str) -> str:
    """Map a BCP-47 tag such as "es-MX" or "en-US" onto a supported language."""
    primary = (language or "").split("-", 1)[0].strip().lower()
    return primary if primary in SUPPORTED_LANGUAGES else "en"


def text(lang: str, key: str, **values: object) -> str:
    template = MESSAGES.get(lang, MESSAGES["en"]).get(key) or MESSAGES["en"][key]
    return template.format(**values)


def join_attributes(lang: str, attributes: List[str]) -> str:
    """Render ["ram", "storage"] as "RAM and storage"."""
    labels = ATTRIBUTE_LABELS.get(lang, ATTRIBUTE_LABELS["en"])
    names = [labels.get(attr, attr) for attr in attributes]
    if len(names) <= 1:
        return "".join(names)
    return f"{', '.join(names[:-1])} {text(lang, 'and')} {names[-1]}"
