"""Variant resolution for products with size, shoe size, RAM, or storage options."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import Product, Variant

logger = logging.getLogger("voiceshop.variants")

# Wire name -> Variant field. Order drives the wording of follow-up questions.
REQUIRED_ATTRIBUTES = {
    "size": "size",
    "shoeSize": "shoe_size",
    "ram": "ram",
    "storage": "storage",
}
OPTIONAL_ATTRIBUTES = {
    "width": "width",
}
ALL_ATTRIBUTES = {**REQUIRED_ATTRIBUTES, **OPTIONAL_ATTRIBUTES}
NUMERIC_ATTRIBUTES = {"shoeSize"}


class ResolutionStatus(str, Enum):
    MATCHED = "matched"
    MISSING = "missing"
    UNAVAILABLE = "unavailable"


@dataclass
class VariantResolution:
    """Outcome of matching an attribute selection against a product's variants."""
    status: ResolutionStatus
    variant: Optional[Variant] = None
    missing: List[str] = field(default_factory=list)

    @property
    def price(self) -> Optional[float]:
        return self.variant.price if self.variant else None

    @property
    def stock(self) -> int:
        return self.variant.stock if self.variant else 0


def effective_variants(product: Product) -> List[Variant]:
    """Purpose: Return the purchasable variants, synthesizing one when none are declared.
    Inputs/Outputs: Input is a Product; output is a non-empty list when the product is priced.
    Side Effects / State: None.
    Dependencies: Variant model.
    Failure Modes: A product with neither variants nor a base price yields [].
    If Removed: Single-SKU products (groceries, appliances) cannot be added to a cart.
    Testing Notes: A product with only a base price yields one attribute-less variant.
    """
    if product.variants:
        return list(product.variants)
    if product.price is None:
        return []
    return [Variant(price=product.price, stock=0)]


def defined_attributes(product: Product) -> List[str]:
    """Wire names of every attribute at least one variant carries a value for."""
    variants = effective_variants(product)
    return [
        wire
        for wire, attr in ALL_ATTRIBUTES.items()
        if any(getattr(variant, attr) is not None for variant in variants)
    ]


def required_attributes(product: Product) -> List[str]:
    defined = set(defined_attributes(product))
    return [wire for wire in REQUIRED_ATTRIBUTES if wire in defined]


def missing_attributes(product: Product, selection: Dict[str, Any]) -> List[str]:
    return [wire for wire in required_attributes(product) if not _has_value(selection.get(wire))]


def resolve_variant(product: Product, selection: Dict[str, Any]) -> VariantResolution:
    """Purpose: Find the variant matching a sparse attribute selection.
    Inputs/Outputs: Inputs are the Product and a wire-keyed selection dict;
        output is a VariantResolution (MATCHED, MISSING, or UNAVAILABLE).
    Side Effects / State: Logs a warning when more than one variant matches.
    Dependencies: Uses effective_variants, missing_attributes, _variant_matches.
    Failure Modes: Ambiguous data picks the first match in declared order.
    If Removed: Cart lines cannot be priced from the authoritative catalog.
    Testing Notes: {"size": "M"} -> MATCHED price 12; {"size": "XL"} -> UNAVAILABLE;
        {} against a sized product -> MISSING ["size"].
    """
    # Completeness first: never default an attribute the product varies on.
    missing = missing_attributes(product, selection)
    if missing:
        return VariantResolution(status=ResolutionStatus.MISSING, missing=missing)

    matches = [variant for variant in effective_variants(product) if _variant_matches(variant, selection)]
    if not matches:
        return VariantResolution(status=ResolutionStatus.UNAVAILABLE)
    if len(matches) > 1:
        logger.warning(
            "product=%s selection=%s matches=%d action=pick_first",
            product.id,
            selection,
            len(matches),
        )
    return VariantResolution(status=ResolutionStatus.MATCHED, variant=matches[0])


def _variant_matches(variant: Variant, selection: Dict[str, Any]) -> bool:
    # A variant that omits an attribute accepts any value for it.
    for wire, attr in ALL_ATTRIBUTES.items():
        expected = getattr(variant, attr)
        wanted = selection.get(wire)
        if expected is None or not _has_value(wanted):
            continue
        if wire in NUMERIC_ATTRIBUTES:
            if _as_number(wanted) != float(expected):
                return False
        elif str(expected).strip().lower() != str(wanted).strip().lower():
            return False
    return True


def variant_signature(variant: Variant, attributes: List[str]) -> tuple:
    """Key used to detect indistinguishable variants at ingestion."""
    values = []
    for wire in attributes:
        value = getattr(variant, ALL_ATTRIBUTES[wire])
        values.append(str(value).lower() if value is not None else None)
    return tuple(values)


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def canonical_selection(variant: Variant, selection: Dict[str, Any]) -> Dict[str, str]:
    """Purpose: Build the attribute record stored on a cart line.
    Inputs/Outputs: Inputs are the matched variant and the user's selection;
        output is a sparse wire-keyed dict of strings.
    Side Effects / State: None.
    Dependencies: ALL_ATTRIBUTES.
    Failure Modes: None.
    If Removed: "l" and "L" would produce separate cart lines.
    Testing Notes: {"size": "l"} against variant size "L" stores {"size": "L"}.
    """
    # Catalog spelling wins; wildcard attributes keep what the user said.
    canonical: Dict[str, str] = {}
    for wire, attr in ALL_ATTRIBUTES.items():
        value = getattr(variant, attr)
        if value is None:
            value = selection.get(wire)
        if not _has_value(value):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        canonical[wire] = str(value).strip()
    return canonical
