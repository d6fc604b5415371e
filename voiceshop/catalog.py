"""Product catalog loading and lookup.

The catalog is read from the `products` collection of the document store and
seeded from the packaged products.json when that collection is empty. Records are
validated on the way in so the lookups below only ever see well-formed products.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .document_store import JsonDocumentStore
from .models import ALL_CATEGORIES, CATEGORIES, Product
from .utils import normalize_name
from .variants import (
    ALL_ATTRIBUTES,
    NUMERIC_ATTRIBUTES,
    defined_attributes,
    effective_variants,
    variant_signature,
)

logger = logging.getLogger("voiceshop.catalog")

PRODUCTS_COLLECTION = "products"
DEFAULT_SEARCH_LIMIT = 8


class ProductCatalog:
    def __init__(self, store: JsonDocumentStore, seed_path: Optional[Path] = None) -> None:
        """Purpose: Configure the catalog with its store and optional seed file.
        Inputs/Outputs: Inputs are a JsonDocumentStore and a seed JSON path; no return value.
        Side Effects / State: None until load() is called.
        Dependencies: JsonDocumentStore.
        Failure Modes: None at init; load() handles read/parse errors.
        If Removed: No component can resolve products.
        Testing Notes: Instantiate over an in-memory store and call load().
        """
        self._store = store
        self._seed_path = seed_path
        self._products: List[Product] = []

    def load(self) -> List[Product]:
        """Purpose: Seed if needed, then validate and cache all products.
        Inputs/Outputs: No inputs; returns the validated product list.
        Side Effects / State: May insert seed documents; replaces the cache.
        Dependencies: Uses seed(), validate_product_record.
        Failure Modes: Invalid records are logged and skipped.
        If Removed: Lookups run against an empty catalog.
        Testing Notes: Load an empty store with a seed file and count products.
        """
        if self._store.count(PRODUCTS_COLLECTION) == 0 and self._seed_path:
            self.seed(self._seed_path)
        products: List[Product] = []
        for record in self._store.find(PRODUCTS_COLLECTION):
            product = validate_product_record(record)
            if product is not None:
                products.append(product)
        self._products = products
        logger.info("catalog=loaded products=%d", len(products))
        return products

    def seed(self, seed_path: Path) -> int:
        """Purpose: Replace the products collection with the records of a seed file.
        Inputs/Outputs: Input is a JSON file holding a list (or {"products": [...]});
            returns the number of inserted records.
        Side Effects / State: Deletes and re-inserts the products collection.
        Dependencies: json, JsonDocumentStore.
        Failure Modes: JSON errors propagate; PersistenceError on write failure.
        If Removed: A fresh deployment starts with an empty catalog.
        Testing Notes: Seed twice and verify the count does not double.
        """
        data = json.loads(seed_path.read_text(encoding="utf-8-sig"))
        records: List[Dict[str, Any]]
        if isinstance(data, dict):
            records = data.get("products", [])
        elif isinstance(data, list):
            records = data
        else:
            records = []
        records = [record for record in records if isinstance(record, dict)]
        self._store.delete_many(PRODUCTS_COLLECTION)
        inserted = self._store.insert_many(PRODUCTS_COLLECTION, records)
        logger.info("catalog=seeded source=%s products=%d", seed_path.name, inserted)
        return inserted

    @property
    def products(self) -> List[Product]:
        return list(self._products)

    def product_names(self) -> List[str]:
        return [product.name for product in self._products]

    def find_by_id(self, product_id: str) -> Optional[Product]:
        for product in self._products:
            if product.id == product_id:
                return product
        return None

    def find_products(
        self,
        search_term: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> List[Product]:
        """Purpose: List products matching a free-text term and/or a category.
        Inputs/Outputs: Inputs are an optional term, optional category, and limit;
            output is at most `limit` products in catalog order.
        Side Effects / State: None.
        Dependencies: Uses the cached product list.
        Failure Modes: None; no match returns [].
        If Removed: Search and category listings break.
        Testing Notes: "hoodie" finds "Men's Hoodie"; category "All Categories" is ignored.
        """
        if limit <= 0:
            return []
        # The term is matched literally against name, description, and category.
        term = (search_term or "").strip().lower()
        wanted_category = category if category and category != ALL_CATEGORIES else None
        results: List[Product] = []
        for product in self._products:
            if wanted_category and product.category != wanted_category:
                continue
            if term and not any(
                term in (value or "").lower() for value in (product.name, product.description, product.category)
            ):
                continue
            results.append(product)
            if len(results) >= limit:
                break
        return results

    def sale_items(self) -> List[Product]:
        return [product for product in self._products if product.on_sale]

    def filter_by_variant(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 20,
        **attributes: Optional[str],
    ) -> List[Product]:
        """Purpose: Listing filter that also requires a variant with the given attributes.
        Inputs/Outputs: Inputs are search/category/limit plus wire-named attributes
            (size, shoeSize, ram, storage, width); output is a product list.
        Side Effects / State: None.
        Dependencies: Uses find_products and _variant_has.
        Failure Modes: Unknown attribute names are ignored.
        If Removed: The product listing cannot be narrowed to in-size items.
        Testing Notes: shoeSize="9" keeps only footwear offering size 9.
        """
        wanted = {wire: value for wire, value in attributes.items() if wire in ALL_ATTRIBUTES and value}
        candidates = self.find_products(search, category, limit=len(self._products))
        if wanted:
            candidates = [
                product
                for product in candidates
                if any(_variant_has(variant, wanted) for variant in effective_variants(product))
            ]
        return candidates[: max(limit, 0)]

    def find_product_by_name(self, name: Any) -> Optional[Product]:
        """Purpose: Resolve a spoken product reference to one catalog product.
        Inputs/Outputs: Input is raw text from the intent entities; output is a
            Product or None.
        Side Effects / State: Logs which strategy matched.
        Dependencies: Uses normalize_name and _name_forms.
        Failure Modes: Non-text or empty input returns None.
        If Removed: add_to_cart cannot map model output onto the catalog.
        Testing Notes: Strategy order is exact, substring, all words, first word;
            "mens hoodie" resolves "Men's Hoodie" at the exact stage.
        """
        # Cascade from precise to loose; each stage runs only if the previous failed.
        query = normalize_name(name)
        if not query:
            return None
        query_forms = {query, normalize_name(name, keep_possessive=True)}
        words = query.split(" ")
        strategies: List[tuple[str, Callable[[set], bool]]] = [
            ("exact", lambda forms: bool(forms & query_forms)),
            ("substring", lambda forms: any(q in form for q in query_forms for form in forms)),
        ]
        if len(words) > 1:
            strategies.append(
                ("all_words", lambda forms: any(all(word in form for word in words) for form in forms))
            )
        strategies.append(("first_word", lambda forms: any(words[0] in form for form in forms)))

        indexed = [(product, _name_forms(product.name)) for product in self._products]
        for label, matches in strategies:
            for product, forms in indexed:
                if matches(forms):
                    logger.debug("lookup=%r strategy=%s product=%s", name, label, product.name)
                    return product
        logger.info("lookup=%r status=not_found", name)
        return None


def validate_product_record(record: Dict[str, Any]) -> Optional[Product]:
    """Purpose: Turn a raw document into a Product, enforcing catalog invariants.
    Inputs/Outputs: Input is a raw dict; output is a Product or None if rejected.
    Side Effects / State: Logs rejections and data-integrity warnings.
    Dependencies: Product model, variants helpers.
    Failure Modes: Never raises; bad records return None.
    If Removed: Malformed seed data reaches the dispatcher.
    Testing Notes: Unknown category and unpriced products are rejected.
    """
    try:
        product = Product.model_validate(record)
    except ValidationError as exc:
        logger.warning("product=%s status=rejected reason=%s", record.get("id"), exc.errors()[:1])
        return None
    if product.category not in CATEGORIES:
        logger.warning("product=%s status=rejected reason=category:%s", product.id, product.category)
        return None
    if not product.name.strip():
        logger.warning("product=%s status=rejected reason=empty_name", product.id)
        return None
    if product.price is None and not any(variant.price is not None for variant in product.variants):
        logger.warning("product=%s status=rejected reason=no_price", product.id)
        return None
    if product.price is not None:
        # Variants without their own price inherit the base price.
        variants = [
            variant if variant.price is not None else variant.model_copy(update={"price": product.price})
            for variant in product.variants
        ]
        product = product.model_copy(update={"variants": variants})
    _warn_on_integrity_issues(product)
    return product


def _warn_on_integrity_issues(product: Product) -> None:
    variants = effective_variants(product)
    attributes = defined_attributes(product)
    for wire in attributes:
        attr = ALL_ATTRIBUTES[wire]
        carrying = sum(1 for variant in variants if getattr(variant, attr) is not None)
        if 0 < carrying < len(variants):
            logger.warning(
                "product=%s integrity=partial_attribute attribute=%s variants=%d/%d",
                product.id,
                wire,
                carrying,
                len(variants),
            )
    seen = set()
    for variant in variants:
        signature = variant_signature(variant, attributes)
        if signature in seen:
            logger.warning("product=%s integrity=duplicate_variant signature=%s", product.id, signature)
        seen.add(signature)


def _name_forms(name: str) -> set:
    # "Men's Hoodie" is reachable both as "men hoodie" and "mens hoodie".
    return {normalize_name(name), normalize_name(name, keep_possessive=True)}


def _variant_has(variant: Any, wanted: Dict[str, str]) -> bool:
    for wire, value in wanted.items():
        actual = getattr(variant, ALL_ATTRIBUTES[wire])
        if actual is None:
            return False
        if wire in NUMERIC_ATTRIBUTES:
            try:
                if float(actual) != float(value):
                    return False
            except (TypeError, ValueError):
                return False
        elif str(actual).lower() != str(value).strip().lower():
            return False
    return True
