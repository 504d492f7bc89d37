"""Ingredient name normalization and search-variant generation."""

import re

_WHITESPACE = re.compile(r"\s+")
_BRACKETS = re.compile(r"[（）()]")
_INTERPUNCTS = re.compile(r"[・･]")
_BRACKETED_CONTENT = re.compile(r"（[^）]*）|\([^)]*\)")
_PAREN_CONTENT = re.compile(r"（([^）]*)）|\(([^)]*)\)")
_SEPARATORS = re.compile(r"[・･、,]")
_COOKING_WORDS = re.compile(
    r"みじん切り|小口切り|輪切り|薄切り|角切り|乱切り|千切り|短冊切り|さいの目切り"
    r"|すりおろし|おろし|刻み|みじん|仕上げ|炒め用|煮汁|溶き用|とろみ用"
    r"|減塩推奨|減塩|推奨|植物油"
)
_INSTRUCTION_HINT = re.compile(r"切り|すり|おろし|用|仕上げ|炒め|煮汁|溶き")
_HIRAGANA_ONLY = re.compile(r"^[ぁ-んー]+$")
_KATAKANA_ONLY = re.compile(r"^[ァ-ヶー]+$")

MAX_SYNONYM_LENGTH = 10

# Applied in order; longer spellings come before the single characters they contain.
NAME_ALIASES: tuple[tuple[str, str], ...] = (
    ("茄子", "なす"),
    ("長ねぎ", "ねぎ"),
    ("長ネギ", "ねぎ"),
    ("葱", "ねぎ"),
    ("胡麻油", "ごま油"),
    ("醤油", "しょうゆ"),
    ("豚", "ぶた"),
    ("鶏", "とり"),
    ("牛", "うし"),
)

PROTEIN_TERMS: tuple[str, ...] = ("ぶた", "うし", "とり")

WATER_NAMES: frozenset[str] = frozenset({"水", "お湯", "湯", "熱湯", "water", "hotwater"})
WATER_PREFIXES: tuple[str, ...] = ("水", "water")


def normalize_name(name: str) -> str:
    """Return the lookup key for a food name."""
    text = _WHITESPACE.sub("", name)
    text = _BRACKETS.sub("", text)
    text = _INTERPUNCTS.sub("", text)
    return text.lower()


def apply_aliases(text: str) -> str:
    """Collapse known kanji/kana spellings onto one canonical form."""
    for source, target in NAME_ALIASES:
        text = text.replace(source, target)
    return text


def canonical_name(name: str) -> str:
    """Return the normalized key with aliases applied."""
    return normalize_name(apply_aliases(name))


def is_waterish(name: str) -> bool:
    """Return True for water-like ingredients excluded from nutrient math."""
    key = normalize_name(name)
    if not key:
        return False
    return key in WATER_NAMES or key.startswith(WATER_PREFIXES)


def simplify_query(name: str) -> str:
    """Strip bracketed text and cooking-action words from an ingredient name."""
    text = _BRACKETED_CONTENT.sub("", name)
    text = _COOKING_WORDS.sub("", text)
    text = _SEPARATORS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def strip_parentheses(name: str) -> str:
    """Remove parenthesized segments, keeping the surrounding text."""
    return _WHITESPACE.sub(" ", _BRACKETED_CONTENT.sub("", name)).strip()


def extract_paren_contents(name: str) -> list[str]:
    """Return the inner text of every parenthesized segment."""
    contents: list[str] = []
    for match in _PAREN_CONTENT.finditer(name):
        inner = (match.group(1) or match.group(2) or "").strip()
        if inner:
            contents.append(inner)
    return contents


def build_search_variants(raw_name: str) -> list[str]:
    """Return search variants ordered from most to least specific."""
    original = raw_name.strip()
    base: list[str] = [original, simplify_query(original), strip_parentheses(original)]
    for inner in extract_paren_contents(original):
        if len(inner) <= MAX_SYNONYM_LENGTH and not _INSTRUCTION_HINT.search(inner):
            base.append(inner)
    candidates = base + [apply_aliases(item) for item in base]

    variants: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        cleaned = candidate.replace("　", " ").strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        variants.append(cleaned)
    return variants or [raw_name]


def pick_primary_variant(variants: list[str]) -> str:
    """Pick the variant most likely to match a short canonical reference name."""
    if not variants:
        raise ValueError("variants must not be empty")
    for variant in variants:
        if _HIRAGANA_ONLY.match(variant) or _KATAKANA_ONLY.match(variant):
            return variant
    for term in PROTEIN_TERMS:
        with_term = [variant for variant in variants if term in variant]
        if with_term:
            return min(with_term, key=len)
    return min(variants, key=len)


def katakana_to_hiragana(text: str) -> str:
    """Fold katakana characters onto hiragana."""
    return "".join(
        chr(ord(char) - 0x60) if "ァ" <= char <= "ヶ" else char for char in text
    )
