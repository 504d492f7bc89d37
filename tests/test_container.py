"""Tests for container wiring."""

import asyncio

from menu_planner.containers import build_container
from menu_planner.services.resolver import ExactTier, FuzzyTier, SemanticTier


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    tiers = container.nutrition_service.resolver.tiers
    assert [type(tier) for tier in tiers] == [ExactTier, FuzzyTier, SemanticTier]
    assert container.orchestrator.config.day_batch_size == 6
    assert container.orchestrator.config.feedback_batch_size == 5
    assert container.orchestrator.config.improve_batch_size == 3
    assert container.shopping_service is not None
    asyncio.run(container.close_resources())
