from __future__ import annotations

from retail_resolver.domain.normalize import parse_price
from retail_resolver.receipts.layouts import DmReceiptLayout, RossmannReceiptLayout
from retail_resolver.receipts.sanitize import TokenCorrector, normalise_text, sanitize_product_name

DM_RECEIPT = "\n".join(
    [
        "dm-drogerie markt",
        "Hamburger Str. 1",
        "Tel. 040 123456",
        "Balea Duschgel 0,95 1",
        "2x Balea Shampoo 2,99 5,98 1",
        "Pfand 0,25 2",
        "SUMME EUR 7,18",
        "Bar 10,00",
    ]
)

RULE = "-" * 32
ROSSMANN_RECEIPT = "\n".join(
    [
        "ROSSMANN",
        RULE,
        "4305615123456 ISANA SHAMPOO €1,95",
        "2X♥4305615654321♥BABYDREAM TUECHER♥€1,25♥€2,50",
        "Rabatt 10%",
        RULE,
        "SUMME €4,45",
    ]
)


def test_parse_price_variants() -> None:
    assert parse_price("14,70") == 14.7
    assert parse_price("1.470,00") == 1470.0
    assert parse_price("2,99 €") == 2.99
    assert parse_price(3) == 3.0
    assert parse_price("") is None
    assert parse_price(None) is None


def test_dm_layout_parses_product_region() -> None:
    items = DmReceiptLayout().parse(DM_RECEIPT)
    assert [i.product_name for i in items] == ["Balea Duschgel", "Balea Shampoo", "Pfand"]

    single, multi, _ = items
    assert single.price == 0.95
    assert single.quantity == 1
    assert single.code == "1"

    assert multi.quantity == 2
    assert multi.price == 2.99


def test_dm_layout_rejects_non_product_lines() -> None:
    layout = DmReceiptLayout()
    assert layout.parse_line("Zwischensumme") is None
    assert layout.parse_line("Artikel ohne Preis 1") is None


def test_rossmann_layout_parses_between_rules() -> None:
    items = RossmannReceiptLayout().parse(ROSSMANN_RECEIPT)
    assert len(items) == 2

    first, second = items
    assert first.ean == "4305615123456"
    assert first.product_name == "ISANA SHAMPOO"
    assert first.price == 1.95
    assert first.quantity == 1

    assert second.ean == "4305615654321"
    assert second.product_name == "BABYDREAM TUECHER"
    assert second.quantity == 2
    assert second.price == 2.5


def test_rossmann_layout_without_rules_yields_nothing() -> None:
    assert RossmannReceiptLayout().parse("4305615123456 ISANA SHAMPOO €1,95") == []


def test_normalise_text_splits_and_drops_units() -> None:
    assert normalise_text("BalShampoo 300ml") == "bal shampoo"
    assert normalise_text("Duschgel-Sensitive 250 ml") == "duschgel sensitive"


def test_sanitize_keeps_short_dictionary_tokens() -> None:
    corrector = TokenCorrector(["shampoo", "duschgel", "oh"])
    assert sanitize_product_name("Oh Shampoo XY", corrector) == "oh shampoo"
    assert sanitize_product_name("Oh Shampoo XY") == "shampoo"


def test_token_corrector_fixes_close_typos_only() -> None:
    corrector = TokenCorrector(["shampoo", "duschgel", "zahnpasta"])
    assert corrector.correct("shampo") == "shampoo"
    assert corrector.correct("duschgle") == "duschgel"
    assert corrector.correct("xyz") == "xyz"
    assert "shampoo" in corrector


def test_bundled_dictionary_loads() -> None:
    corrector = TokenCorrector.bundled()
    assert "shampoo" in corrector
    assert corrector.correct("shampo") == "shampoo"


def test_multiplier_line_is_divided_back_to_unit_price() -> None:
    item = DmReceiptLayout().parse_line("2x Shampoo 5,98 1")
    assert item is not None
    assert (item.product_name, item.price, item.quantity, item.code) == ("Shampoo", 2.99, 2, "1")
