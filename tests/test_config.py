"""Tests for settings helpers."""

import json

import pytest

from menu_planner.config import parse_keyword_rules
from menu_planner.services.resolver import DEFAULT_KEYWORD_RULES


def test_parse_keyword_rules_defaults() -> None:
    assert parse_keyword_rules(None) == DEFAULT_KEYWORD_RULES
    assert parse_keyword_rules("  ") == DEFAULT_KEYWORD_RULES


def test_parse_keyword_rules_from_json() -> None:
    rules = parse_keyword_rules(
        json.dumps([{"name": "salmon", "triggers": ["鮭"], "required": ["さけ", "鮭"]}])
    )

    assert len(rules) == 1
    assert rules[0].name == "salmon"
    assert rules[0].required == ("さけ", "鮭")


@pytest.mark.parametrize(
    "raw",
    ['{"name": "x"}', '["x"]', '[{"name": "x", "triggers": [], "required": ["y"]}]'],
)
def test_parse_keyword_rules_rejects_invalid(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_keyword_rules(raw)
