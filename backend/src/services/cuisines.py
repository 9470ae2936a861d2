from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Set

from models import Candidate


# Category data upstream is noisy free text, so exclusion is keyword based.
# "type" is the structured Places type for servers that understand it.
CUISINE_PATTERNS: Dict[str, Dict[str, object]] = {
    "mexican": {
        "label": "Mexican",
        "keywords": ["mexican", "taco", "taqueria", "burrito", "qdoba", "chipotle"],
        "type": "mexican_restaurant",
    },
    "chinese": {
        "label": "Chinese",
        "keywords": ["chinese", "peking", "szechuan", "sichuan", "dim sum", "wok"],
        "type": "chinese_restaurant",
    },
    "italian": {
        "label": "Italian",
        "keywords": ["italian", "pizza", "pasta", "trattoria", "pizzeria"],
        "type": "italian_restaurant",
    },
    "japanese": {
        "label": "Japanese",
        "keywords": ["japanese", "sushi", "ramen", "tempura", "tonkatsu"],
        "type": "japanese_restaurant",
    },
    "indian": {
        "label": "Indian",
        "keywords": ["indian", "curry", "tandoor", "naan", "pakora"],
        "type": "indian_restaurant",
    },
    "thai": {
        "label": "Thai",
        "keywords": ["thai", "pad thai"],
        "type": "thai_restaurant",
    },
    "korean": {
        "label": "Korean",
        "keywords": ["korean", "bbq", "kimchi"],
        "type": "korean_restaurant",
    },
    "vietnamese": {
        "label": "Vietnamese",
        "keywords": ["vietnamese", "pho", "banh mi"],
        "type": "vietnamese_restaurant",
    },
    "spanish": {
        "label": "Spanish",
        "keywords": ["spanish", "tapas", "paella"],
        "type": "spanish_restaurant",
    },
    "french": {
        "label": "French",
        "keywords": ["french", "bistro", "brasserie"],
        "type": "french_restaurant",
    },
    "american": {
        "label": "American",
        "keywords": ["american", "burger", "steakhouse", "bbq", "grille"],
        "type": "american_restaurant",
    },
    "middle_eastern": {
        "label": "Middle Eastern",
        "keywords": ["middle eastern", "mediterranean", "kebab", "hummus", "falafel"],
        "type": "middle_eastern_restaurant",
    },
}


class CategoryMatcher(Protocol):
    def matches(self, candidate: Candidate, category: str) -> bool:
        ...


def _normalize(category: str) -> str:
    return category.strip().lower().replace(" ", "_")


class KeywordCategoryMatcher:
    """Case-insensitive substring match of a keyword table against name and tags.

    A candidate tag equal to the category's structured type also counts.
    """

    def __init__(self, table: Optional[Mapping[str, Mapping[str, object]]] = None) -> None:
        self.table = table if table is not None else CUISINE_PATTERNS

    def keywords(self, category: str) -> List[str]:
        spec = self.table.get(_normalize(category)) or {}
        return [str(k).lower() for k in (spec.get("keywords") or [])]  # type: ignore[union-attr]

    def matches(self, candidate: Candidate, category: str) -> bool:
        key = _normalize(category)
        spec = self.table.get(key)
        if not spec:
            # unknown category: treat the key itself as the only keyword
            keywords = [key.replace("_", " ")]
            place_type = key
        else:
            keywords = self.keywords(key)
            place_type = str(spec.get("type") or "")

        tags = {t.lower() for t in candidate.category_tags}
        if place_type and place_type in tags:
            return True

        haystack = " ".join([candidate.name, " ".join(t.replace("_", " ") for t in tags)]).lower()
        return any(kw in haystack for kw in keywords)


DEFAULT_MATCHER = KeywordCategoryMatcher()


def place_types_for(categories: Iterable[str]) -> Set[str]:
    """Map cuisine keys to Places types for server-side exclusion."""
    types: set[str] = set()
    for raw in categories:
        key = _normalize(raw)
        spec = CUISINE_PATTERNS.get(key)
        if spec and spec.get("type"):
            types.add(str(spec["type"]))
        elif key.endswith("_restaurant"):
            types.add(key)
    return types


def cuisine_catalog() -> List[Dict[str, str]]:
    return [{"value": key, "label": str(spec["label"])} for key, spec in CUISINE_PATTERNS.items()]
