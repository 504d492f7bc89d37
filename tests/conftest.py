"""Shared test fixtures."""

import asyncio
import copy
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import uuid4

import pytest

from menu_planner.config import Settings
from menu_planner.containers import AppContainer, build_resolver
from menu_planner.domain.ingredients import ReferenceIngredient
from menu_planner.domain.menus import GenerationJob, UserProfile
from menu_planner.domain.nutrients import NutrientVector
from menu_planner.domain.shopping import (
    ServingsConfig,
    ShoppingItem,
    ShoppingListRequest,
)
from menu_planner.services.cache import InMemoryCache
from menu_planner.services.generation import GenerationClient, GenerationService
from menu_planner.services.nutrition import DishNutritionService
from menu_planner.services.orchestrator import (
    JobRepository,
    MealRepository,
    MenuOrchestrator,
    OrchestratorConfig,
    ProfileRepository,
)
from menu_planner.services.resolver import ReferenceStore
from menu_planner.services.retry import RetryPolicy
from menu_planner.services.shopping import (
    ShoppingListNormalizer,
    ShoppingListRepository,
    ShoppingListService,
    ShoppingRequestRepository,
)

_MEALS_LINE = re.compile(r"^Meals to plan: (.+)$", re.MULTILINE)
_MEAL_LINE = re.compile(r"^Meal: (\w+) ", re.MULTILINE)
_DATE_LINE = re.compile(r"^Date: (\S+)$", re.MULTILINE)

NO_RETRY_DELAY = RetryPolicy(base_delay_seconds=0.0, max_jitter_seconds=0.0)


def reference(
    name: str,
    calories: float,
    *,
    similarity: float = 1.0,
    protein: float = 0.0,
    name_norm: str | None = None,
) -> ReferenceIngredient:
    """Build a reference record with a few nutrient values."""
    return ReferenceIngredient(
        id=f"ref-{name}",
        name=name,
        name_norm=name_norm if name_norm is not None else name,
        nutrients=NutrientVector(calories_kcal=calories, protein_g=protein),
        similarity=similarity,
    )


def meal_payload(
    meal_type: str,
    dish_name: str = "豚ひき肉の炒め物",
    ingredients: list[dict[str, object]] | None = None,
    role: str = "main",
) -> dict[str, object]:
    """Build a schema-conforming meal payload."""
    return {
        "meal_type": meal_type,
        "dishes": [
            {
                "name": dish_name,
                "role": role,
                "ingredients": ingredients
                if ingredients is not None
                else [
                    {"name": "豚ひき肉", "amount_g": 150, "note": None},
                    {"name": "水", "amount_g": 100, "note": None},
                ],
                "instructions": ["炒める"],
            }
        ],
        "advice": None,
    }


@dataclass
class FakeReferenceStore(ReferenceStore):
    """Reference store backed by in-memory records."""

    records: list[ReferenceIngredient] = field(default_factory=list)
    similar: dict[str, list[ReferenceIngredient]] = field(default_factory=dict)
    nearest: list[ReferenceIngredient] = field(default_factory=list)
    exact_calls: list[list[str]] = field(default_factory=list)
    similar_calls: list[str] = field(default_factory=list)
    embedding_calls: int = 0

    def find_exact(self, name_norms: list[str]) -> list[ReferenceIngredient]:
        self.exact_calls.append(list(name_norms))
        return [record for record in self.records if record.name_norm in name_norms]

    def search_similar(
        self, query: str, threshold: float, limit: int
    ) -> list[ReferenceIngredient]:
        self.similar_calls.append(query)
        return self.similar.get(query, [])[:limit]

    def search_by_embedding(
        self, embedding: list[float], limit: int
    ) -> list[ReferenceIngredient]:
        self.embedding_calls += 1
        return self.nearest[:limit]


@dataclass
class FakeGenerationClient(GenerationClient):
    """Generation client that answers from scripted payloads or valid defaults."""

    scripted: dict[str, list[object]] = field(default_factory=dict)
    review: dict[str, object] = field(
        default_factory=lambda: {"has_issues": False, "issues": [], "swaps": []}
    )
    feedback: dict[str, object] = field(
        default_factory=lambda: {
            "praise_comment": "彩りが豊かです",
            "advice": "",
            "nutrition_tip": "",
            "replacements": [],
        }
    )
    prompts: list[tuple[str, str]] = field(default_factory=list)
    embed_calls: list[list[str]] = field(default_factory=list)
    on_call: Callable[[str], None] | None = None
    in_flight: int = 0
    max_in_flight: int = 0

    def script(self, schema_name: str, *payloads: object) -> None:
        self.scripted.setdefault(schema_name, []).extend(payloads)

    async def complete_json(
        self, *, prompt: str, schema: dict[str, object], schema_name: str
    ) -> dict[str, object]:
        self.prompts.append((schema_name, prompt))
        if self.on_call is not None:
            self.on_call(schema_name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            return self._answer(prompt, schema_name)
        finally:
            self.in_flight -= 1

    def _answer(self, prompt: str, schema_name: str) -> dict[str, object]:
        queue = self.scripted.get(schema_name)
        if queue:
            payload = queue.pop(0)
            if isinstance(payload, Exception):
                raise payload
            return copy.deepcopy(payload)
        if schema_name == "daily_meals":
            date = _DATE_LINE.search(prompt).group(1)
            meal_types = [
                label.split(" ")[0]
                for label in _MEALS_LINE.search(prompt).group(1).split(", ")
            ]
            return {
                "date": date,
                "meals": [
                    meal_payload(meal_type, f"豚ひき肉の炒め物 {date} {meal_type}")
                    for meal_type in meal_types
                ],
            }
        if schema_name == "meal":
            meal_type = _MEAL_LINE.search(prompt).group(1)
            return meal_payload(meal_type, f"豚ひき肉のそぼろ {meal_type}")
        if schema_name == "nutrition_feedback":
            return copy.deepcopy(self.feedback)
        return copy.deepcopy(self.review)

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        return [[1.0, 0.0] for _ in texts]


@dataclass
class InMemoryJobRepository(JobRepository):
    """In-memory job repository that stores copies like a database would."""

    jobs: dict[str, GenerationJob] = field(default_factory=dict)
    saves: int = 0

    def create_job(self, job: GenerationJob) -> None:
        self.jobs[job.id] = copy.deepcopy(job)

    def get_job(self, job_id: str) -> GenerationJob | None:
        job = self.jobs.get(job_id)
        return copy.deepcopy(job) if job is not None else None

    def save_job(self, job: GenerationJob) -> None:
        self.saves += 1
        self.jobs[job.id] = copy.deepcopy(job)


@dataclass
class InMemoryMealRepository(MealRepository):
    """In-memory planned meal repository for tests."""

    meals: dict[str, dict[str, object]] = field(default_factory=dict)
    slots: dict[tuple[str, str, str], str] = field(default_factory=dict)
    updated: list[str] = field(default_factory=list)

    def find_meal_id(self, user_id: str, date: str, meal_type: str) -> str | None:
        return self.slots.get((user_id, date, meal_type))

    def insert_meal(self, user_id: str, meal: dict[str, object]) -> str:
        meal_id = str(uuid4())
        self.meals[meal_id] = copy.deepcopy(meal)
        self.slots[(user_id, str(meal["date"]), str(meal["meal_type"]))] = meal_id
        return meal_id

    def update_meal(self, meal_id: str, meal: dict[str, object]) -> None:
        self.updated.append(meal_id)
        self.meals[meal_id] = copy.deepcopy(meal)


@dataclass
class InMemoryProfileRepository(ProfileRepository):
    """In-memory profile repository for tests."""

    profiles: dict[str, UserProfile] = field(default_factory=dict)

    def get_profile(self, user_id: str) -> UserProfile:
        return self.profiles.get(user_id) or UserProfile(user_id=user_id)


@dataclass
class InMemoryShoppingRequestRepository(ShoppingRequestRepository):
    """In-memory regeneration request repository for tests."""

    requests: dict[str, ShoppingListRequest] = field(default_factory=dict)
    phases: list[str] = field(default_factory=list)

    def create_request(self, request: ShoppingListRequest) -> None:
        self.requests[request.id] = copy.deepcopy(request)

    def get_request(self, request_id: str) -> ShoppingListRequest | None:
        request = self.requests.get(request_id)
        return copy.deepcopy(request) if request is not None else None

    def save_request(self, request: ShoppingListRequest) -> None:
        self.phases.append(str(request.progress.get("phase")))
        self.requests[request.id] = copy.deepcopy(request)


@dataclass
class InMemoryShoppingListRepository(ShoppingListRepository):
    """In-memory shopping list repository for tests."""

    planned_meals: list[dict[str, object]] = field(default_factory=list)
    servings: ServingsConfig | None = None
    active_items: list[ShoppingItem] = field(default_factory=list)
    lists: dict[str, list[ShoppingItem]] = field(default_factory=dict)
    archived: int = 0

    def list_planned_meals(
        self, user_id: str, start_date: str, end_date: str
    ) -> list[dict[str, object]]:
        return [
            meal
            for meal in self.planned_meals
            if start_date <= str(meal["date"]) <= end_date
        ]

    def get_servings_config(self, user_id: str) -> ServingsConfig | None:
        return self.servings

    def list_active_items(self, user_id: str) -> list[ShoppingItem]:
        return list(self.active_items)

    def archive_active_lists(self, user_id: str) -> None:
        self.archived += 1
        self.active_items = []

    def create_list(
        self,
        user_id: str,
        start_date: str,
        end_date: str,
        servings: ServingsConfig | None,
    ) -> str:
        list_id = str(uuid4())
        self.lists[list_id] = []
        return list_id

    def insert_items(self, shopping_list_id: str, items: list[ShoppingItem]) -> None:
        self.lists[shopping_list_id].extend(items)
        self.active_items = list(items)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        openai_api_key="openai-key",
    )


@pytest.fixture
def reference_store() -> FakeReferenceStore:
    return FakeReferenceStore(
        records=[
            reference("豚ひき肉", 250, protein=17.7),
            reference("たまねぎ", 33),
            reference("ごはん", 156),
        ]
    )


@pytest.fixture
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def generation_service(generation_client: FakeGenerationClient) -> GenerationService:
    return GenerationService(client=generation_client, retry_policy=NO_RETRY_DELAY)


@pytest.fixture
def nutrition_service(
    settings: Settings,
    reference_store: FakeReferenceStore,
    generation_service: GenerationService,
) -> DishNutritionService:
    resolver = build_resolver(
        settings, reference_store, generation_service, InMemoryCache()
    )
    return DishNutritionService(resolver=resolver)


@pytest.fixture
def job_repository() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def meal_repository() -> InMemoryMealRepository:
    return InMemoryMealRepository()


@pytest.fixture
def profile_repository() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def orchestrator(
    job_repository: InMemoryJobRepository,
    meal_repository: InMemoryMealRepository,
    profile_repository: InMemoryProfileRepository,
    generation_service: GenerationService,
    nutrition_service: DishNutritionService,
) -> MenuOrchestrator:
    return MenuOrchestrator(
        jobs=job_repository,
        meals=meal_repository,
        profiles=profile_repository,
        generation=generation_service,
        nutrition=nutrition_service,
        config=OrchestratorConfig(),
    )


@pytest.fixture
def shopping_service() -> ShoppingListService:
    return ShoppingListService(
        requests=InMemoryShoppingRequestRepository(),
        lists=InMemoryShoppingListRepository(),
        normalizer=ShoppingListNormalizer(),
    )


@pytest.fixture
def container(
    settings: Settings,
    nutrition_service: DishNutritionService,
    orchestrator: MenuOrchestrator,
    shopping_service: ShoppingListService,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        nutrition_service=nutrition_service,
        orchestrator=orchestrator,
        shopping_service=shopping_service,
        close_resources=close_resources,
    )
