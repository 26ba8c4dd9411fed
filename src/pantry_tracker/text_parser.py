"""Natural-language product parsing.

Turns free text such as ``"2 liters of milk"`` into a ``ParsedProduct``. The
completion service is tried first; any failure falls back to a local keyword
parser so parsing always produces a result for non-empty text.
"""

import logging
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .completion import TextCompletionClient, extract_json_object
from .config import CompletionConfig
from .errors import ExternalServiceError
from .models import UNNAMED_PRODUCT, Category, ParsedProduct, Unit

logger = logging.getLogger(__name__)

UNIT_ALIASES = {
    "count": Unit.COUNT,
    "units": Unit.COUNT,
    "unit": Unit.COUNT,
    "unidades": Unit.COUNT,
    "pcs": Unit.COUNT,
    "weight": Unit.WEIGHT,
    "g": Unit.WEIGHT,
    "grams": Unit.WEIGHT,
    "kg": Unit.WEIGHT,
    "volume": Unit.VOLUME,
    "ml": Unit.VOLUME,
    "l": Unit.VOLUME,
    "liters": Unit.VOLUME,
}

CATEGORY_ALIASES = {
    "alimentos": Category.FOOD,
    "bebidas": Category.BEVERAGES,
    "limpieza": Category.CLEANING,
    "aseo personal": Category.PERSONAL_CARE,
    "farmacia": Category.MEDICINE,
    "otros": Category.OTHER,
}

VOLUME_WORDS = {"l", "lt", "liter", "liters", "litre", "litres", "ml", "litro", "litros"}
WEIGHT_WORDS = {"g", "gr", "gram", "grams", "kg", "kilo", "kilos", "lb", "lbs"}
COUNT_WORDS = {"unit", "units", "pcs", "pack", "packs", "unidades"}
FILLER_WORDS = {"of", "de", "a", "an"}

CATEGORY_KEYWORDS = {
    Category.PERSONAL_CARE: {"soap", "shampoo", "toothpaste", "deodorant", "jabón", "jabon"},
    Category.CLEANING: {"bleach", "detergent", "cloro", "detergente", "sponge"},
    Category.BEVERAGES: {"water", "juice", "soda", "coffee", "tea", "beer", "wine"},
    Category.MEDICINE: {"aspirin", "ibuprofen", "paracetamol", "vitamins", "pills"},
    Category.FOOD: {
        "milk", "rice", "chicken", "bread", "eggs", "flour", "pasta", "cheese",
        "leche", "arroz", "pollo",
    },
}

PARSE_PROMPT = """Extract the product information from this text: "{text}".

IMPORTANT: Answer ONLY with a valid JSON object, no extra text, no explanations.

The object must have exactly these fields:
{{
  "name": "string",
  "quantity": number,
  "unit": "count" | "weight" | "volume",
  "category": "food" | "beverages" | "cleaning" | "personal_care" | "medicine" | "other",
  "expirationDate": null | "YYYY-MM-DD"
}}

UNIT RULES:
- "volume" for liquids (milk, water...)
- "weight" for solids sold by weight (rice, flour...)
- "count" for countable items (soap, eggs...)

If a value is not present, use null."""

_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")


def _normalize_choice(value: Any, aliases: dict[str, Any]) -> Any:
    if not isinstance(value, str):
        return value
    key = value.strip().lower()
    if key in aliases:
        return aliases[key]
    return key


class ProductTextParser:
    """Parses free text into a product guess."""

    def __init__(
        self,
        client: TextCompletionClient | None = None,
        config: CompletionConfig | None = None,
    ):
        self.client = client
        self.config = config or CompletionConfig()

    def parse(self, text: str) -> ParsedProduct | None:
        """Parse a product description.

        Args:
            text: Free-text description

        Returns:
            ParsedProduct, or None for blank input
        """
        if not text or not text.strip():
            return None

        if self.client is not None:
            parsed = self._parse_with_service(text)
            if parsed is not None:
                return parsed

        return self.fallback_parse(text)

    def _parse_with_service(self, text: str) -> ParsedProduct | None:
        try:
            reply = self.client.complete(  # type: ignore[union-attr]
                PARSE_PROMPT.format(text=text.strip()),
                model=self.config.parse_model,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except ExternalServiceError as e:
            logger.warning("Product parsing service failed, using local parser: %s", e)
            return None
        except Exception:
            logger.warning("Product parsing client raised, using local parser", exc_info=True)
            return None

        data = extract_json_object(reply)
        if data is None:
            logger.info("Product parsing reply had no JSON object")
            return None

        data["unit"] = _normalize_choice(data.get("unit") or "count", UNIT_ALIASES)
        data["category"] = _normalize_choice(
            data.get("category") or "other", CATEGORY_ALIASES
        )
        if data.get("quantity") is None:
            data["quantity"] = 1
        data.pop("from_fallback", None)

        try:
            return ParsedProduct.model_validate(data)
        except PydanticValidationError as e:
            logger.info("Product parsing reply failed validation: %s", e.error_count())
            return None

    def fallback_parse(self, text: str) -> ParsedProduct:
        """Keyword-based parser used when the service is unavailable."""
        lowered = text.lower()
        tokens = re.findall(r"[\w.,]+", lowered)

        quantity = 1.0
        number = _NUMBER.search(lowered)
        if number:
            quantity = float(number.group(0).replace(",", "."))
            if quantity <= 0:
                quantity = 1.0

        words = {t.strip(".,") for t in tokens}
        unit = Unit.COUNT
        if words & VOLUME_WORDS:
            unit = Unit.VOLUME
        elif words & WEIGHT_WORDS:
            unit = Unit.WEIGHT

        category = Category.OTHER
        for candidate, keywords in CATEGORY_KEYWORDS.items():
            if words & keywords:
                category = candidate
                break

        skip = VOLUME_WORDS | WEIGHT_WORDS | COUNT_WORDS | FILLER_WORDS
        name_words = [
            word
            for word in text.split()
            if not _NUMBER.fullmatch(word.strip(".,"))
            and word.lower().strip(".,") not in skip
        ]
        name = " ".join(name_words).strip()
        name = name[:1].upper() + name[1:] if name else UNNAMED_PRODUCT

        return ParsedProduct(
            name=name,
            quantity=quantity,
            unit=unit,
            category=category,
            from_fallback=True,
        )
