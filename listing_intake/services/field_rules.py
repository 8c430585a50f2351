"""Required listing fields and the rules that turn user input into field values.

The same rules apply to button/list selections, free text, form submissions
and values suggested by the extraction collaborator.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from listing_intake.services.result import Result

REQUIRED_FIELDS = ("designer", "pieces_included", "size", "condition", "price")
EDITABLE_FIELDS = ("designer", "pieces_included", "size", "condition", "price", "notes")

FIELD_LABELS = {
    "designer": "Designer",
    "pieces_included": "Pieces",
    "size": "Size",
    "condition": "Condition",
    "price": "Price",
    "notes": "Notes",
}

CONTROL_SEPARATOR = ":"
MEASUREMENTS = "Measurements"
MAX_DESIGNER_LENGTH = 80
MAX_PRICE_CENTS = 10_000_000


@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str
    keywords: tuple[str, ...]


FIELD_OPTIONS: dict[str, tuple[FieldOption, ...]] = {
    "pieces_included": (
        FieldOption("Kurta", "Kurta only", ("kurta", "kameez", "single", "1 piece", "1-piece", "one piece", "1pc")),
        FieldOption(
            "2-piece",
            "2-piece",
            ("2 piece", "2-piece", "two piece", "2pc", "shirt pants", "shirt trouser", "dupatta"),
        ),
        FieldOption(
            "3-piece",
            "3-piece",
            ("3 piece", "3-piece", "three piece", "3pc", "suit", "complete", "full set"),
        ),
    ),
    "size": (
        FieldOption("XS", "XS", ("xs", "extra small", "xsmall")),
        FieldOption("S", "S", ("s", "small", "sm")),
        FieldOption("M", "M", ("m", "medium", "med")),
        FieldOption("L", "L", ("l", "large", "lg")),
        FieldOption("XL", "XL", ("xl", "extra large", "xlarge")),
        FieldOption("XXL", "XXL", ("xxl", "2xl", "double xl")),
        FieldOption("One Size", "One Size", ("one size", "free size", "fits all")),
        FieldOption("Unstitched", "Unstitched", ("unstitched", "not stitched", "fabric only")),
        FieldOption(MEASUREMENTS, MEASUREMENTS, ("measurements", "custom", "specific size")),
    ),
    "condition": (
        FieldOption(
            "New with tags",
            "New with tags",
            ("new with tags", "nwt", "brand new", "never worn", "tags attached"),
        ),
        FieldOption("Like new", "Like new", ("like new", "new without tags", "worn once", "perfect condition", "mint")),
        FieldOption("Excellent", "Excellent", ("excellent", "great condition", "barely worn")),
        FieldOption("Good", "Good", ("good", "good condition", "worn few times", "gently used")),
        FieldOption("Fair", "Fair", ("fair", "used", "some wear", "visible wear")),
    ),
}

EMBELLISHMENT_KEYWORDS = (
    "beadwork",
    "beaded",
    "embroidery",
    "embroidered",
    "sequin",
    "sequins",
    "stone",
    "stones",
    "mirror",
    "mirrors",
    "lace",
    "pearl",
    "pearls",
    "threadwork",
    "handwork",
    "zari",
    "gota",
    "tilla",
)

_ABBREVIATIONS = (
    (re.compile(r"\bNWT\b", re.IGNORECASE), "New with tags"),
    (re.compile(r"\bNWOT\b", re.IGNORECASE), "New without tags"),
    (re.compile(r"\bEUC\b", re.IGNORECASE), "Excellent"),
)
_CURRENCY_PREFIX = re.compile(r"(?:\$|\b(?:usd|us\$|rs\.?|pkr))\s*(?=\d)", re.IGNORECASE)
_CURRENCY_AMOUNT = re.compile(
    r"(?:(?:\$|usd|us\$)\s*(\d+(?:\.\d{1,2})?))|(?:(\d+(?:\.\d{1,2})?)\s*(?:\$|usd|dollars?)\b)",
    re.IGNORECASE,
)
_NUMBER_ONLY = re.compile(r"^\d+(?:\.\d{1,2})?$")
_SEGMENT_SPLIT = re.compile(r"[,;\n]+")


def normalize_input(text: Optional[str]) -> str:
    """Expand known abbreviations and drop a leading currency symbol."""
    if not text:
        return ""
    normalized = text.strip()
    for pattern, replacement in _ABBREVIATIONS:
        normalized = pattern.sub(replacement, normalized)
    normalized = _CURRENCY_PREFIX.sub("", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<![a-z0-9']){re.escape(keyword)}(?![a-z0-9])")


def options_for(field: str) -> tuple[FieldOption, ...]:
    return FIELD_OPTIONS.get(field, ())


def is_enumerated(field: str) -> bool:
    return field in FIELD_OPTIONS


def match_option(text: Optional[str], field: str) -> Optional[str]:
    """Exact value/label match first, then keyword containment; case-insensitive."""
    if not text:
        return None
    lowered = text.lower().strip()
    options = options_for(field)
    for option in options:
        if lowered in (option.value.lower(), option.label.lower()):
            return option.value
    found = _keyword_match(lowered, field)
    return found[0] if found else None


def _keyword_match(text: str, field: str) -> Optional[tuple[str, tuple[int, int]]]:
    """Longest keyword found in ``text`` wins, so "extra large" is XL and not L."""
    best = None
    for option in options_for(field):
        for keyword in option.keywords:
            found = _keyword_pattern(keyword).search(text)
            if found and (best is None or len(keyword) > best[0]):
                best = (len(keyword), option.value, found.span())
    if best is None:
        return None
    return best[1], best[2]


def parse_price_cents(text: Optional[str]) -> Optional[int]:
    """Numeric-only price (after currency stripping) as positive integer cents."""
    candidate = normalize_input(text).replace(",", "").replace(" ", "")
    if not _NUMBER_ONLY.match(candidate):
        return None
    try:
        cents = int((Decimal(candidate) * 100).to_integral_value())
    except InvalidOperation:
        return None
    if cents <= 0 or cents > MAX_PRICE_CENTS:
        return None
    return cents


def format_price(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    dollars, remainder = divmod(int(cents), 100)
    if remainder:
        return f"${dollars}.{remainder:02d}"
    return f"${dollars}"


def option_hint(field: str) -> str:
    choices = ", ".join(option.label for option in options_for(field))
    return f"Please choose from: {choices}"


def field_hint(field: str) -> str:
    if is_enumerated(field):
        return option_hint(field)
    if field == "price":
        return "Please enter a number for the price (in USD), e.g. 80"
    if field == "designer":
        return "Please type the designer or brand name, e.g. Maria B, Sana Safinaz, Khaadi"
    if field == "notes":
        return "Please type any flaws or special details."
    return f"Please tell me the {FIELD_LABELS.get(field, field)}."


def control_id(field: str, value: str) -> str:
    return f"{field}{CONTROL_SEPARATOR}{value}"


def parse_control_id(raw: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split a button/list selection id of the form ``<field>:<value>``."""
    if not raw or CONTROL_SEPARATOR not in raw:
        return None, None
    field, _, value = raw.partition(CONTROL_SEPARATOR)
    if field not in EDITABLE_FIELDS:
        return None, None
    return field, value


def validate_field(field: str, raw: Optional[str]) -> Result[object]:
    """Validate one value for one field with the per-field rules."""
    if raw is None or not str(raw).strip():
        return Result.rejected(field_hint(field))
    text = str(raw).strip()

    if is_enumerated(field):
        matched = match_option(normalize_input(text), field)
        if matched is None:
            return Result.rejected(option_hint(field))
        return Result.success(matched)

    if field == "price":
        cents = parse_price_cents(text)
        if cents is None:
            return Result.rejected(field_hint("price"))
        return Result.success(cents)

    if field == "designer":
        if _NUMBER_ONLY.match(text) or len(text) > MAX_DESIGNER_LENGTH:
            return Result.rejected(field_hint("designer"))
        return Result.success(text)

    if field == "notes":
        return Result.success(text)

    return Result.rejected(field_hint(field))


def validate_control(raw: Optional[str], expected_field: Optional[str] = None) -> Result[tuple[str, object]]:
    """Map a structured control id back to a canonical ``(field, value)``."""
    field, value = parse_control_id(raw)
    if field is None or (expected_field and field != expected_field):
        return Result.failure("Not a control response", "not_control")
    return validate_field(field, value).map(lambda canonical: (field, canonical))


def is_compound_answer(text: Optional[str]) -> bool:
    """Several comma/line separated values, or a price marked with a currency."""
    if not text:
        return False
    if _CURRENCY_AMOUNT.search(text):
        return True
    return len([segment for segment in _SEGMENT_SPLIT.split(text) if segment.strip()]) > 1


def extract_fields(text: Optional[str], fields: Iterable[str]) -> dict[str, object]:
    """Capture every enumerated field and the price mentioned in one free-text message.

    Fields are tried in the fixed order given; text matched for one field is
    blanked out so it cannot satisfy a later one. Designer is never guessed here.
    """
    wanted = [field for field in fields if is_enumerated(field) or field == "price"]
    if not text or not wanted:
        return {}

    captured: dict[str, object] = {}
    raw = text.strip()

    price_from_marker = None
    if "price" in wanted:
        amount = _CURRENCY_AMOUNT.search(raw)
        if amount:
            price_from_marker = parse_price_cents(amount.group(1) or amount.group(2))
            raw = raw[: amount.start()] + " " + raw[amount.end() :]

    remaining = normalize_input(raw).lower()
    segments = [segment.strip() for segment in _SEGMENT_SPLIT.split(remaining) if segment.strip()]

    for field in wanted:
        if field == "price":
            if price_from_marker is not None:
                captured["price"] = price_from_marker
                continue
            for segment in segments:
                cents = parse_price_cents(segment)
                if cents is not None:
                    captured["price"] = cents
                    break
            continue

        exact = None
        for segment in segments:
            for option in options_for(field):
                if segment in (option.value.lower(), option.label.lower()):
                    exact = (option.value, segment)
                    break
            if exact:
                break
        if exact:
            captured[field] = exact[0]
            segments = [segment for segment in segments if segment != exact[1]]
            remaining = ", ".join(segments)
            continue

        found = _keyword_match(remaining, field)
        if found:
            value, (start, end) = found
            captured[field] = value
            remaining = remaining[:start] + " " + remaining[end:]
            segments = [segment.strip() for segment in _SEGMENT_SPLIT.split(remaining) if segment.strip()]

    return captured


def find_embellishments(text: Optional[str]) -> list[str]:
    lowered = (text or "").lower()
    return [keyword for keyword in EMBELLISHMENT_KEYWORDS if _keyword_pattern(keyword).search(lowered)]
