"""Unit tests for locator definitions and the registry."""

import json

import pytest
from pydantic import ValidationError

from unitlink.resolver.locators import (
    ContextRule,
    LocatorPattern,
    LocatorRegistry,
    TargetDefinition,
    Tier,
)


def _target(kind: str, expand_via: str | None = None) -> TargetDefinition:
    return TargetDefinition(
        kind=kind,
        expand_via=expand_via,
        tiers={Tier.SPECIFIC: (LocatorPattern(strategy_id=f"{kind}-id", selector=f"#{kind}"),)},
    )


class TestContextRule:
    """Tests for phrase-based context rules."""

    def test_require_any(self):
        rule = ContextRule(require_any=("adicionar",))

        assert rule.accepts_phrases("adicionar orgao julgador") is True
        assert rule.accepts_phrases("cancelar") is False

    def test_reject_any_wins(self):
        rule = ContextRule(require_any=("salvar",), reject_any=("cancelar",))

        assert rule.accepts_phrases("salvar ou cancelar") is False

    def test_phrases_are_normalized(self):
        rule = ContextRule(require_any=("Órgão Julgador",))

        assert rule.accepts_phrases("selecione o orgao julgador") is True

    def test_empty_rule_accepts(self):
        assert ContextRule().accepts_phrases("anything") is True


class TestTargetDefinition:
    """Tests for TargetDefinition validation."""

    def test_ladder_order(self):
        target = TargetDefinition(
            kind="saveButton",
            tiers={
                Tier.GENERIC: (
                    LocatorPattern(strategy_id="g", selector="button", rule=ContextRule(require_any=("salvar",))),
                ),
                Tier.SPECIFIC: (LocatorPattern(strategy_id="s", selector="#save"),),
            },
        )

        assert [p.strategy_id for _, p in target.ladder()] == ["s", "g"]

    def test_generic_pattern_requires_rule(self):
        with pytest.raises(ValidationError):
            TargetDefinition(
                kind="saveButton",
                tiers={Tier.GENERIC: (LocatorPattern(strategy_id="g", selector="button"),)},
            )

    def test_empty_ladder_rejected(self):
        with pytest.raises(ValidationError):
            TargetDefinition(kind="saveButton", tiers={})

    def test_frozen(self):
        target = _target("saveButton")

        with pytest.raises(ValidationError):
            target.kind = "other"

    def test_pattern_label(self):
        pattern = LocatorPattern(strategy_id="add-unit", selector="button.add")

        assert pattern.label == "add-unit:button.add"


class TestLocatorRegistry:
    """Tests for LocatorRegistry."""

    def test_default_targets(self):
        registry = LocatorRegistry.default()

        assert {"unitSelector", "addButton", "panelHeader", "roleSelector", "saveButton"} <= set(
            registry.kinds
        )
        assert registry.get("unitSelector").expand_via == "panelHeader"
        assert registry.get("addButton").expand_via == "panelHeader"
        assert registry.get("saveButton").expand_via is None

    def test_default_generic_patterns_have_rules(self):
        for target in LocatorRegistry.default():
            for tier, pattern in target.ladder():
                if tier == Tier.GENERIC:
                    assert pattern.rule is not None

    def test_unknown_kind(self):
        with pytest.raises(KeyError, match="Unknown target kind"):
            LocatorRegistry.default().get("missing")

    def test_duplicate_kind_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            LocatorRegistry([_target("a"), _target("a")])

    def test_unknown_expansion_target_rejected(self):
        with pytest.raises(ValueError, match="unknown kind"):
            LocatorRegistry([_target("a", expand_via="panel")])

    def test_from_file(self, tmp_path):
        path = tmp_path / "locators.json"
        path.write_text(
            json.dumps(
                {
                    "targets": [
                        {
                            "kind": "panel",
                            "tiers": {"specific": [{"strategy_id": "p", "selector": "#panel"}]},
                        },
                        {
                            "kind": "addButton",
                            "expand_via": "panel",
                            "tiers": {
                                "specific": [{"strategy_id": "add", "selector": "#add"}],
                                "generic": [
                                    {
                                        "strategy_id": "any",
                                        "selector": "button",
                                        "rule": {"require_any": ["adicionar"]},
                                    }
                                ],
                            },
                        },
                    ]
                }
            ),
            encoding="utf-8",
        )

        registry = LocatorRegistry.from_file(path)

        assert registry.kinds == ["panel", "addButton"]
        target = registry.get("addButton")
        assert [tier for tier, _ in target.ladder()] == [Tier.SPECIFIC, Tier.GENERIC]
        assert target.tiers[Tier.GENERIC][0].rule.require_any == ("adicionar",)

    def test_from_file_invalid(self, tmp_path):
        path = tmp_path / "locators.json"
        path.write_text(json.dumps({"targets": [{"kind": "x", "tiers": {"generic": [
            {"strategy_id": "g", "selector": "button"}
        ]}}]}), encoding="utf-8")

        with pytest.raises(ValidationError):
            LocatorRegistry.from_file(path)
