from __future__ import annotations

import json

import pytest

from voiceshop.catalog import ProductCatalog, validate_product_record
from voiceshop.document_store import JsonDocumentStore


def _catalog_from(records, tmp_path):
    seed = tmp_path / "seed.json"
    seed.write_text(json.dumps(records), encoding="utf-8")
    catalog = ProductCatalog(JsonDocumentStore(), seed)
    catalog.load()
    return catalog


def test_seed_loads_every_product(catalog):
    assert len(catalog.products) == 14
    assert catalog.find_by_id("p-mens-hoodie").name == "Men's Hoodie"
    assert catalog.find_by_id("missing") is None


def test_seed_is_not_repeated_on_reload(store, catalog):
    catalog.load()
    assert store.count("products") == 14


def test_find_products_by_term_matches_name_description_and_category(catalog):
    assert [p.id for p in catalog.find_products("hoodie")] == ["p-mens-hoodie"]
    assert [p.id for p in catalog.find_products("POCKET")] == ["p-mens-hoodie"]
    assert len(catalog.find_products("groceries")) == 2


def test_find_products_category_filter_and_sentinel(catalog):
    footwear = catalog.find_products(category="Footwear")
    assert {p.category for p in footwear} == {"Footwear"}
    assert len(catalog.find_products(category="All Categories", limit=50)) == 14


def test_find_products_respects_limit_and_empty_result(catalog):
    assert len(catalog.find_products(limit=3)) == 3
    assert catalog.find_products(limit=0) == []
    assert catalog.find_products("hoodie", limit=-1) == []
    assert catalog.find_products("spaceship") == []


@pytest.mark.parametrize(
    "spoken, expected",
    [
        ("iPhone 15 Pro", "p-iphone-15-pro"),
        ("mens hoodie", "p-mens-hoodie"),
        ("men's  hoodie", "p-mens-hoodie"),
        ("t-shirt", "p-mens-casual-tshirt"),
        ("sneakers men's", "p-mens-sport-sneakers"),
        ("coffee thing", "p-cuisinart-coffee-maker"),
    ],
)
def test_find_product_by_name_cascade(catalog, spoken, expected):
    assert catalog.find_product_by_name(spoken).id == expected


@pytest.mark.parametrize("spoken", ["", "   ", None, 42, "spaceship"])
def test_find_product_by_name_not_found(catalog, spoken):
    assert catalog.find_product_by_name(spoken) is None


def test_exact_match_wins_over_earlier_substring_match(tmp_path):
    catalog = _catalog_from(
        [
            {"id": "clip", "name": "Men's Hoodie Clip", "category": "Clothing", "price": 5},
            {"id": "hoodie", "name": "Men's Hoodie", "category": "Clothing", "price": 49.99},
        ],
        tmp_path,
    )
    assert catalog.find_product_by_name("mens hoodie").id == "hoodie"
    assert catalog.find_product_by_name("hoodie").id == "clip"


def test_sale_items_only_lists_on_sale_products(catalog):
    sale = catalog.sale_items()
    assert sale and all(p.on_sale for p in sale)
    assert "p-vortex-air-fryer" in {p.id for p in sale}


def test_filter_by_variant_keeps_products_offering_the_size(catalog):
    nines = catalog.filter_by_variant(category="Footwear", shoeSize="9")
    assert [p.id for p in nines] == ["p-mens-sport-sneakers"]
    larges = catalog.filter_by_variant(size="l")
    assert {p.id for p in larges} == {"p-mens-casual-tshirt", "p-womens-running-leggings", "p-mens-hoodie", "p-womens-blouse"}
    assert catalog.filter_by_variant(ram="16GB", storage="512GB")[0].id == "p-macbook-air-m3"


def test_validate_rejects_unknown_category_and_unpriced_products():
    assert validate_product_record({"id": "x", "name": "Toy Car", "category": "Toys", "price": 3}) is None
    assert validate_product_record({"id": "y", "name": "Mystery", "category": "Home"}) is None
    assert validate_product_record({"id": "z", "name": "  ", "category": "Home", "price": 1}) is None


def test_validate_variants_inherit_base_price():
    product = validate_product_record(
        {"id": "tee", "name": "Tee", "category": "Clothing", "price": 12, "variants": [{"size": "M"}]}
    )
    assert product.variants[0].price == 12


def test_validate_warns_about_indistinguishable_variants(caplog):
    record = {
        "id": "dup",
        "name": "Dup Tee",
        "category": "Clothing",
        "variants": [{"size": "M", "price": 10}, {"size": "m", "price": 11}],
    }
    with caplog.at_level("WARNING", logger="voiceshop.catalog"):
        assert validate_product_record(record) is not None
    assert "duplicate_variant" in caplog.text
