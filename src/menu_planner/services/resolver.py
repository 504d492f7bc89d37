"""Ingredient resolution against the nutrition reference store."""

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from menu_planner.domain.ingredients import (
    IngredientMatch,
    IngredientQuery,
    KeywordRule,
    MatchMethod,
    ReferenceIngredient,
)
from menu_planner.services.cache import Cache, embedding_cache_key
from menu_planner.services.text_normalizer import (
    build_search_variants,
    is_waterish,
    normalize_name,
    pick_primary_variant,
)

_logger = logging.getLogger(__name__)

DEFAULT_FUZZY_THRESHOLD = 0.15
DEFAULT_FUZZY_LIMIT = 12
DEFAULT_SEMANTIC_THRESHOLD = 0.72
DEFAULT_SEMANTIC_LIMIT = 15
DEFAULT_EMBEDDING_DIMENSIONS = 384

DEFAULT_KEYWORD_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("pork", ("豚", "ぶた"), ("豚", "ぶた")),
    KeywordRule("beef", ("牛", "うし"), ("牛", "うし")),
    KeywordRule("chicken", ("鶏", "とり"), ("鶏", "とり")),
    KeywordRule("oil", ("油",), ("油",)),
    KeywordRule("eggplant", ("なす", "茄子"), ("なす", "茄子")),
    KeywordRule("leek", ("ねぎ", "葱", "ネギ"), ("ねぎ", "葱", "ネギ")),
    KeywordRule("soy_sauce", ("しょうゆ", "醤油"), ("しょうゆ", "醤油")),
    KeywordRule(
        "sesame_oil", ("ごま油", "胡麻油"), ("ごま油", "胡麻油", "ゴマ油")
    ),
)


class ReferenceStore(Protocol):
    """Read access to canonical ingredients with per-100 g nutrients."""

    def find_exact(self, name_norms: list[str]) -> list[ReferenceIngredient]:
        """Return records whose normalized name is in ``name_norms``."""

    def search_similar(
        self, query: str, threshold: float, limit: int
    ) -> list[ReferenceIngredient]:
        """Return trigram-similar records ranked by similarity."""

    def search_by_embedding(
        self, embedding: list[float], limit: int
    ) -> list[ReferenceIngredient]:
        """Return nearest records by embedding similarity."""


class EmbeddingClient(Protocol):
    """Interface for text embeddings."""

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        """Return one vector per text, preserving order."""


@dataclass(frozen=True)
class PendingQuery:
    """Query still waiting for a match inside the cascade."""

    index: int
    query: IngredientQuery
    variants: tuple[str, ...]
    primary: str


class ResolutionTier(Protocol):
    """One stage of the resolution cascade."""

    method: MatchMethod

    async def resolve(self, pending: list[PendingQuery]) -> dict[int, IngredientMatch]:
        """Return matches keyed by query index for the queries this tier resolves."""


def passes_keyword_constraints(
    query: str,
    candidate_name: str,
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES,
) -> bool:
    """Reject candidates lacking the keyword family the query mentions."""
    query_key = normalize_name(query)
    candidate = candidate_name.lower()
    for rule in rules:
        if not any(trigger.lower() in query_key for trigger in rule.triggers):
            continue
        if not any(required.lower() in candidate for required in rule.required):
            return False
    return True


def keyword_rules_from_json(raw: str) -> tuple[KeywordRule, ...]:
    """Parse a gating table from JSON ``[{"name", "triggers", "required"}]``."""
    payload = json.loads(raw)
    if not isinstance(payload, list):
        raise ValueError("keyword rules must be a JSON list")
    rules: list[KeywordRule] = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise ValueError("keyword rule entries must be objects")
        triggers = tuple(str(item) for item in entry.get("triggers", []))
        required = tuple(str(item) for item in entry.get("required", []))
        if not triggers or not required:
            raise ValueError("keyword rules need triggers and required terms")
        rules.append(
            KeywordRule(
                name=str(entry.get("name", triggers[0])),
                triggers=triggers,
                required=required,
            )
        )
    return tuple(rules)


def _best_candidate(
    query: IngredientQuery,
    candidates: list[ReferenceIngredient],
    rules: Sequence[KeywordRule],
    threshold: float,
) -> ReferenceIngredient | None:
    best: ReferenceIngredient | None = None
    for candidate in candidates:
        if candidate.similarity < threshold:
            continue
        if not passes_keyword_constraints(query.name, candidate.name_norm, rules):
            continue
        if best is None or candidate.similarity > best.similarity:
            best = candidate
    return best


@dataclass
class ExactTier(ResolutionTier):
    """Normalized-name lookup with one store round trip for all queries."""

    store: ReferenceStore
    method: MatchMethod = "exact"

    async def resolve(self, pending: list[PendingQuery]) -> dict[int, IngredientMatch]:
        """Match every query whose variant has an exact reference entry."""
        keys: list[str] = []
        for item in pending:
            for variant in item.variants:
                key = normalize_name(variant)
                if key and key not in keys:
                    keys.append(key)
        if not keys:
            return {}
        by_key: dict[str, ReferenceIngredient] = {}
        for record in self.store.find_exact(keys):
            by_key.setdefault(record.name_norm, record)

        matches: dict[int, IngredientMatch] = {}
        for item in pending:
            for variant in item.variants:
                record = by_key.get(normalize_name(variant))
                if record is not None:
                    matches[item.index] = IngredientMatch(
                        query=item.query,
                        reference=record,
                        similarity=1.0,
                        method=self.method,
                    )
                    break
        return matches


@dataclass
class FuzzyTier(ResolutionTier):
    """Trigram similarity search on the primary variant."""

    store: ReferenceStore
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES
    threshold: float = DEFAULT_FUZZY_THRESHOLD
    limit: int = DEFAULT_FUZZY_LIMIT
    method: MatchMethod = "fuzzy"

    async def resolve(self, pending: list[PendingQuery]) -> dict[int, IngredientMatch]:
        """Match queries through trigram candidates that pass gating."""
        results = await asyncio.gather(*(self._resolve_one(item) for item in pending))
        return {index: match for index, match in results if match is not None}

    async def _resolve_one(
        self, item: PendingQuery
    ) -> tuple[int, IngredientMatch | None]:
        candidates = await asyncio.to_thread(
            self.store.search_similar, item.primary, self.threshold, self.limit
        )
        best = _best_candidate(item.query, candidates, self.rules, self.threshold)
        if best is None:
            return item.index, None
        return item.index, IngredientMatch(
            query=item.query,
            reference=best,
            similarity=best.similarity,
            method=self.method,
        )


@dataclass
class SemanticTier(ResolutionTier):
    """Embedding nearest-neighbour search with a strict similarity bar."""

    store: ReferenceStore
    embedder: EmbeddingClient
    cache: Cache | None = None
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES
    threshold: float = DEFAULT_SEMANTIC_THRESHOLD
    limit: int = DEFAULT_SEMANTIC_LIMIT
    dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS
    model_name: str = "default"
    cache_ttl_seconds: int = 86400
    method: MatchMethod = "semantic"

    async def resolve(self, pending: list[PendingQuery]) -> dict[int, IngredientMatch]:
        """Embed primary variants in one batch and match by nearest neighbour."""
        if not pending:
            return {}
        embeddings = await self._embed([item.primary for item in pending])
        results = await asyncio.gather(
            *(
                self._resolve_one(item, embedding)
                for item, embedding in zip(pending, embeddings, strict=True)
            )
        )
        return {index: match for index, match in results if match is not None}

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        vectors: dict[str, list[float]] = {}
        missing: list[str] = []
        for text in texts:
            cached = self._cached(text)
            if cached is not None:
                vectors[text] = cached
            elif text not in missing:
                missing.append(text)
        if missing:
            fresh = await self.embedder.embed(missing, self.dimensions)
            if len(fresh) != len(missing):
                raise RuntimeError("Embedding count does not match input count")
            for text, vector in zip(missing, fresh, strict=True):
                vectors[text] = vector
                if self.cache is not None:
                    key = embedding_cache_key(self.model_name, self.dimensions, text)
                    self.cache.set(key, vector, ttl_seconds=self.cache_ttl_seconds)
        return [vectors[text] for text in texts]

    def _cached(self, text: str) -> list[float] | None:
        if self.cache is None:
            return None
        cached = self.cache.get(
            embedding_cache_key(self.model_name, self.dimensions, text)
        )
        return cached if isinstance(cached, list) else None

    async def _resolve_one(
        self, item: PendingQuery, embedding: list[float]
    ) -> tuple[int, IngredientMatch | None]:
        candidates = await asyncio.to_thread(
            self.store.search_by_embedding, embedding, self.limit
        )
        best = _best_candidate(item.query, candidates, self.rules, self.threshold)
        if best is None:
            return item.index, None
        return item.index, IngredientMatch(
            query=item.query,
            reference=best,
            similarity=best.similarity,
            method=self.method,
        )


@dataclass
class IngredientResolver:
    """Short-circuiting cascade over an ordered list of resolution tiers."""

    tiers: list[ResolutionTier] = field(default_factory=list)

    async def resolve(self, query: IngredientQuery) -> IngredientMatch:
        """Resolve a single ingredient."""
        return (await self.resolve_many([query]))[0]

    async def resolve_many(
        self, queries: Sequence[IngredientQuery]
    ) -> list[IngredientMatch]:
        """Resolve ingredients, returning one match per query in input order."""
        results: dict[int, IngredientMatch] = {}
        pending: list[PendingQuery] = []
        for index, query in enumerate(queries):
            if is_waterish(query.name):
                results[index] = IngredientMatch(query=query, skip=True)
                continue
            variants = build_search_variants(query.name)
            pending.append(
                PendingQuery(
                    index=index,
                    query=query,
                    variants=tuple(variants),
                    primary=pick_primary_variant(variants),
                )
            )

        for tier in self.tiers:
            if not pending:
                break
            resolved = await tier.resolve(pending)
            results.update(resolved)
            pending = [item for item in pending if item.index not in resolved]
            _logger.debug(
                "Resolver tier %s matched %s, %s remaining",
                tier.method,
                len(resolved),
                len(pending),
            )

        for item in pending:
            results[item.index] = IngredientMatch(query=item.query)
        return [results[index] for index in range(len(queries))]
