"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from menu_planner.adapters.openai_generation_client import OpenAIGenerationClient
from menu_planner.adapters.supabase_job_repository import SupabaseJobRepository
from menu_planner.adapters.supabase_meal_repository import SupabaseMealRepository
from menu_planner.adapters.supabase_profile_repository import (
    SupabaseProfileRepository,
)
from menu_planner.adapters.supabase_reference_store import SupabaseReferenceStore
from menu_planner.adapters.supabase_shopping_repository import (
    SupabaseShoppingListRepository,
    SupabaseShoppingRequestRepository,
)
from menu_planner.config import Settings, parse_keyword_rules
from menu_planner.services.cache import InMemoryCache
from menu_planner.services.generation import GenerationService
from menu_planner.services.nutrition import DishNutritionService
from menu_planner.services.orchestrator import MenuOrchestrator, OrchestratorConfig
from menu_planner.services.resolver import (
    ExactTier,
    FuzzyTier,
    IngredientResolver,
    ReferenceStore,
    SemanticTier,
)
from menu_planner.services.retry import RetryPolicy
from menu_planner.services.shopping import ShoppingListNormalizer, ShoppingListService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    nutrition_service: DishNutritionService
    orchestrator: MenuOrchestrator
    shopping_service: ShoppingListService
    close_resources: Callable[[], Awaitable[None]]


def build_resolver(
    settings: Settings,
    store: ReferenceStore,
    generation: GenerationService,
    cache: InMemoryCache,
) -> IngredientResolver:
    """Create the exact, fuzzy and semantic cascade from settings."""
    rules = parse_keyword_rules(settings.keyword_rules_json)
    return IngredientResolver(
        tiers=[
            ExactTier(store),
            FuzzyTier(
                store,
                rules=rules,
                threshold=settings.fuzzy_threshold,
                limit=settings.fuzzy_limit,
            ),
            SemanticTier(
                store,
                embedder=generation,
                cache=cache,
                rules=rules,
                threshold=settings.semantic_threshold,
                limit=settings.semantic_limit,
                dimensions=settings.embedding_dimensions,
                model_name=settings.embedding_model,
            ),
        ]
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    openai_client = OpenAIGenerationClient.create(
        api_key=resolved_settings.openai_api_key,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
        embedding_model=resolved_settings.embedding_model,
    )
    generation_service = GenerationService(
        client=openai_client,
        retry_policy=RetryPolicy(
            max_retries=resolved_settings.generation_max_retries,
            base_delay_seconds=resolved_settings.retry_base_delay_seconds,
        ),
    )
    resolver = build_resolver(
        resolved_settings,
        SupabaseReferenceStore(supabase_client),
        generation_service,
        InMemoryCache(),
    )
    nutrition_service = DishNutritionService(
        resolver=resolver,
        low_mapping_rate=resolved_settings.low_mapping_rate,
    )
    orchestrator = MenuOrchestrator(
        jobs=SupabaseJobRepository(supabase_client),
        meals=SupabaseMealRepository(supabase_client),
        profiles=SupabaseProfileRepository(supabase_client),
        generation=generation_service,
        nutrition=nutrition_service,
        config=OrchestratorConfig(
            day_batch_size=resolved_settings.day_batch_size,
            fixes_per_run=resolved_settings.fixes_per_run,
            fixes_per_week=resolved_settings.fixes_per_week,
            max_fixes_cap=resolved_settings.max_fixes_cap,
            save_batch_size=resolved_settings.save_batch_size,
            feedback_batch_size=resolved_settings.feedback_batch_size,
            improve_batch_size=resolved_settings.improve_batch_size,
        ),
    )
    shopping_service = ShoppingListService(
        requests=SupabaseShoppingRequestRepository(supabase_client),
        lists=SupabaseShoppingListRepository(supabase_client),
        normalizer=ShoppingListNormalizer(),
    )

    async def close_resources() -> None:
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        nutrition_service=nutrition_service,
        orchestrator=orchestrator,
        shopping_service=shopping_service,
        close_resources=close_resources,
    )
