from __future__ import annotations

from voiceshop.models import Product
from voiceshop.variants import (
    ResolutionStatus,
    canonical_selection,
    effective_variants,
    missing_attributes,
    required_attributes,
    resolve_variant,
)


def _tee() -> Product:
    return Product.model_validate(
        {
            "id": "tee",
            "name": "Tee",
            "category": "Clothing",
            "variants": [{"size": "S", "price": 10, "stock": 3}, {"size": "M", "price": 12, "stock": 5}],
        }
    )


def test_match_returns_price_and_stock():
    resolution = resolve_variant(_tee(), {"size": "M"})
    assert resolution.status == ResolutionStatus.MATCHED
    assert (resolution.price, resolution.stock) == (12, 5)


def test_match_is_case_insensitive():
    assert resolve_variant(_tee(), {"size": "s"}).price == 10


def test_unknown_combination_is_unavailable():
    resolution = resolve_variant(_tee(), {"size": "XL"})
    assert resolution.status == ResolutionStatus.UNAVAILABLE
    assert resolution.variant is None


def test_missing_required_attribute_is_never_defaulted():
    resolution = resolve_variant(_tee(), {})
    assert resolution.status == ResolutionStatus.MISSING
    assert resolution.missing == ["size"]


def test_electronics_require_ram_and_storage(catalog):
    phone = catalog.find_by_id("p-iphone-15-pro")
    assert required_attributes(phone) == ["ram", "storage"]
    assert missing_attributes(phone, {"ram": "8GB"}) == ["storage"]
    assert resolve_variant(phone, {"ram": "8gb", "storage": "256GB"}).price == 1099.99
    assert resolve_variant(phone, {"ram": "16GB", "storage": "128GB"}).status == ResolutionStatus.UNAVAILABLE


def test_shoe_size_compares_numerically_and_width_is_optional(catalog):
    sneakers = catalog.find_by_id("p-mens-sport-sneakers")
    assert required_attributes(sneakers) == ["shoeSize"]
    resolution = resolve_variant(sneakers, {"shoeSize": "9.0"})
    assert resolution.status == ResolutionStatus.MATCHED
    assert resolution.variant.width == "M"
    assert resolve_variant(sneakers, {"shoeSize": "10", "width": "M"}).status == ResolutionStatus.UNAVAILABLE


def test_product_without_attributes_has_implicit_variant(catalog):
    bananas = catalog.find_by_id("p-organic-bananas")
    assert required_attributes(bananas) == []
    assert resolve_variant(bananas, {}).price == 2.99
    # Attributes the product does not vary on are ignored.
    assert resolve_variant(bananas, {"size": "L"}).status == ResolutionStatus.MATCHED


def test_blank_variant_fields_do_not_become_requirements(catalog):
    headphones = catalog.find_by_id("p-sony-wh1000xm5")
    assert required_attributes(headphones) == []
    assert resolve_variant(headphones, {}).price == 349.99


def test_base_price_only_product_synthesizes_one_variant():
    product = Product(id="mug", name="Mug", category="Home", price=7.5)
    variants = effective_variants(product)
    assert len(variants) == 1 and variants[0].price == 7.5


def test_ambiguous_data_picks_first_declared_variant(caplog):
    product = Product.model_validate(
        {
            "id": "dup",
            "name": "Dup",
            "category": "Clothing",
            "variants": [{"size": "M", "price": 10}, {"size": "M", "price": 11}],
        }
    )
    with caplog.at_level("WARNING", logger="voiceshop.variants"):
        assert resolve_variant(product, {"size": "M"}).price == 10
    assert "pick_first" in caplog.text


def test_canonical_selection_uses_catalog_spelling(catalog):
    sneakers = catalog.find_by_id("p-mens-sport-sneakers")
    resolution = resolve_variant(sneakers, {"shoeSize": "8"})
    assert canonical_selection(resolution.variant, {"shoeSize": "8"}) == {"shoeSize": "8", "width": "M"}
    tee = _tee()
    assert canonical_selection(resolve_variant(tee, {"size": "m"}).variant, {"size": "m"}) == {"size": "M"}
