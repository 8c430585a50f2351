import pytest

from listing_intake.services.field_rules import (
    REQUIRED_FIELDS,
    control_id,
    extract_fields,
    find_embellishments,
    format_price,
    match_option,
    normalize_input,
    parse_control_id,
    parse_price_cents,
    validate_control,
    validate_field,
)


class TestNormalizeInput:
    def test_expands_abbreviations(self):
        assert normalize_input("NWT") == "New with tags"
        assert normalize_input("nwot") == "New without tags"
        assert normalize_input("EUC, worn twice") == "Excellent, worn twice"

    def test_strips_currency_symbol(self):
        assert normalize_input("$ 85") == "85"
        assert normalize_input("Rs. 9000") == "9000"

    def test_empty(self):
        assert normalize_input(None) == ""


class TestMatchOption:
    def test_exact_match_is_case_insensitive(self):
        assert match_option("like NEW", "condition") == "Like new"

    def test_keyword_match(self):
        assert match_option("it's a 3pc suit", "pieces_included") == "3-piece"
        assert match_option("medium", "size") == "M"

    def test_longest_keyword_wins(self):
        assert match_option("extra large", "size") == "XL"
        assert match_option("gently used", "condition") == "Good"

    def test_single_letter_needs_word_boundary(self):
        assert match_option("maria's", "size") is None

    def test_no_match(self):
        assert match_option("purple", "size") is None


class TestPrice:
    @pytest.mark.parametrize("raw,cents", [("85", 8500), ("$85", 8500), ("85.50", 8550), ("1,200", 120000)])
    def test_parses_numeric_prices(self, raw, cents):
        assert parse_price_cents(raw) == cents

    @pytest.mark.parametrize("raw", ["0", "-5", "eighty", "85 dollars please", ""])
    def test_rejects_non_numeric_or_non_positive(self, raw):
        assert parse_price_cents(raw) is None

    def test_format_price(self):
        assert format_price(8500) == "$85"
        assert format_price(8550) == "$85.50"


class TestValidateField:
    def test_enumerated_rejection_lists_options(self):
        result = validate_field("size", "purple")
        assert result.ok is False
        assert result.hint.startswith("Please choose from: XS, S, M")

    def test_price_rejection_is_guidance(self):
        result = validate_field("price", "a lot")
        assert result.ok is False
        assert "number" in result.hint

    def test_designer_accepts_free_text(self):
        assert validate_field("designer", "Sana Safinaz").value == "Sana Safinaz"

    def test_designer_rejects_bare_number(self):
        assert validate_field("designer", "85").ok is False

    def test_condition_abbreviation(self):
        assert validate_field("condition", "NWT").value == "New with tags"


class TestControlIds:
    def test_round_trip(self):
        assert parse_control_id(control_id("size", "XL")) == ("size", "XL")

    def test_unknown_field_is_not_a_control(self):
        assert parse_control_id("method:voice") == (None, None)

    def test_validate_control_maps_to_canonical_value(self):
        result = validate_control("pieces_included:3-piece")
        assert result.ok is True
        assert result.value == ("pieces_included", "3-piece")

    def test_validate_control_checks_expected_field(self):
        result = validate_control("size:M", expected_field="condition")
        assert result.ok is False
        assert result.error_code == "not_control"


class TestExtractFields:
    def test_single_message_captures_several_fields(self):
        captured = extract_fields("NWT, size M, $85", REQUIRED_FIELDS)
        assert captured == {"size": "M", "condition": "New with tags", "price": 8500}

    def test_never_guesses_designer(self):
        assert "designer" not in extract_fields("Maria B lawn 3pc, M, like new, $80", REQUIRED_FIELDS)

    def test_full_description(self):
        captured = extract_fields("Maria B lawn 3pc, M, like new, $80", REQUIRED_FIELDS)
        assert captured == {"pieces_included": "3-piece", "size": "M", "condition": "Like new", "price": 8000}

    def test_only_requested_fields(self):
        assert extract_fields("NWT, size M, $85", ["price"]) == {"price": 8500}

    def test_nothing_matched(self):
        assert extract_fields("hello there", REQUIRED_FIELDS) == {}


class TestEmbellishments:
    def test_finds_keywords(self):
        assert find_embellishments("Heavy embroidery with sequins and beadwork") == [
            "beadwork",
            "embroidery",
            "sequins",
        ]
