"""Locator patterns grouped by target kind and specificity tier.

Each target kind has an ordered ladder of tiers, most specific first. A
generic tier matches broadly, so every generic pattern carries a ContextRule
that rejects accidental hits.
"""

import json
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..matching.canonical import normalize_text


class Tier(str, Enum):
    """Locator specificity tiers."""

    SPECIFIC = "specific"
    CONTEXTUAL = "contextual"
    GENERIC = "generic"


TIER_ORDER = (Tier.SPECIFIC, Tier.CONTEXTUAL, Tier.GENERIC)


class ContextRule(BaseModel):
    """Checks that a located element belongs to the expected field.

    Phrases are compared after normalization, as whole-phrase substrings
    of the element's context text.
    """

    model_config = ConfigDict(frozen=True)

    require_any: tuple[str, ...] = ()
    reject_any: tuple[str, ...] = ()
    require_expected: bool = False

    def accepts_phrases(self, context_text: str) -> bool:
        """Evaluate require_any / reject_any on normalized context text."""
        if any(_contains(context_text, phrase) for phrase in self.reject_any):
            return False
        if self.require_any:
            return any(_contains(context_text, phrase) for phrase in self.require_any)
        return True


def _contains(context_text: str, phrase: str) -> bool:
    needle = normalize_text(phrase)
    return bool(needle) and needle in context_text


class LocatorPattern(BaseModel):
    """One way of locating a control."""

    model_config = ConfigDict(frozen=True)

    strategy_id: str = Field(min_length=1)
    selector: str = Field(min_length=1)
    rule: ContextRule | None = None

    @property
    def label(self) -> str:
        return f"{self.strategy_id}:{self.selector}"


class TargetDefinition(BaseModel):
    """Tiered locator ladder for one target kind.

    expand_via names another target kind whose control reveals this one
    (a collapsed panel header); it is acted on at most once per resolve.
    """

    model_config = ConfigDict(frozen=True)

    kind: str = Field(min_length=1)
    tiers: dict[Tier, tuple[LocatorPattern, ...]] = Field(default_factory=dict)
    expand_via: str | None = None
    expand_action: str = "click"

    @model_validator(mode="after")
    def _check_ladder(self) -> "TargetDefinition":
        if not any(self.tiers.values()):
            raise ValueError(f"Target '{self.kind}' has no locator patterns")
        for pattern in self.tiers.get(Tier.GENERIC, ()):
            if pattern.rule is None:
                raise ValueError(
                    f"Generic pattern '{pattern.strategy_id}' of '{self.kind}' needs a context rule"
                )
        if self.expand_via == self.kind:
            raise ValueError(f"Target '{self.kind}' cannot expand through itself")
        return self

    def ladder(self) -> Iterator[tuple[Tier, LocatorPattern]]:
        """Patterns in evaluation order."""
        for tier in TIER_ORDER:
            for pattern in self.tiers.get(tier, ()):
                yield tier, pattern


class RegistryFile(BaseModel):
    """JSON layout accepted by LocatorRegistry.from_file."""

    targets: list[TargetDefinition]


class LocatorRegistry:
    """Immutable mapping of target kind -> TargetDefinition."""

    def __init__(self, targets: Iterable[TargetDefinition]):
        by_kind: dict[str, TargetDefinition] = {}
        for target in targets:
            if target.kind in by_kind:
                raise ValueError(f"Duplicate target kind: {target.kind}")
            by_kind[target.kind] = target

        for target in by_kind.values():
            if target.expand_via and target.expand_via not in by_kind:
                raise ValueError(
                    f"Target '{target.kind}' expands via unknown kind '{target.expand_via}'"
                )

        self._targets = MappingProxyType(by_kind)

    @classmethod
    def default(cls) -> "LocatorRegistry":
        return cls(DEFAULT_TARGETS)

    @classmethod
    def from_file(cls, path: Path | str) -> "LocatorRegistry":
        """Load target definitions from a JSON file.

        Raises:
            FileNotFoundError: The file does not exist
            pydantic.ValidationError: The file does not describe valid targets
        """
        with Path(path).open(encoding="utf-8") as fh:
            data = json.load(fh)
        return cls(RegistryFile.model_validate(data).targets)

    def get(self, kind: str) -> TargetDefinition:
        try:
            return self._targets[kind]
        except KeyError:
            raise KeyError(f"Unknown target kind: {kind}") from None

    @property
    def kinds(self) -> list[str]:
        return list(self._targets)

    def __contains__(self, kind: object) -> bool:
        return kind in self._targets

    def __iter__(self) -> Iterator[TargetDefinition]:
        return iter(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)


# =========================
# Default targets
# =========================

UNIT_RULE = ContextRule(require_any=("orgao", "julgador"))
ADD_RULE = ContextRule(require_any=("adicionar",), require_expected=True)
PANEL_RULE = ContextRule(require_any=("orgaos julgadores", "orgao julgador"))
ROLE_RULE = ContextRule(require_any=("papel", "perfil", "cargo", "funcao"))
SAVE_RULE = ContextRule(
    require_any=("gravar", "salvar", "vincular"),
    reject_any=("cancelar", "fechar"),
)


def _p(strategy_id: str, selector: str, rule: ContextRule | None = None) -> LocatorPattern:
    return LocatorPattern(strategy_id=strategy_id, selector=selector, rule=rule)


DEFAULT_TARGETS: tuple[TargetDefinition, ...] = (
    TargetDefinition(
        kind="panelHeader",
        tiers={
            Tier.SPECIFIC: (
                _p("panel-linked-units", 'mat-expansion-panel-header:has-text("Órgãos Julgadores vinculados ao Perito")'),
                _p("panel-units", 'mat-expansion-panel-header:has-text("Órgãos Julgadores")'),
                _p("panel-units-class", '.mat-expansion-panel-header:has-text("Órgãos Julgadores")'),
            ),
            Tier.CONTEXTUAL: (
                _p("panel-role-button", 'button[name="Órgãos Julgadores vinculados ao Perito"]'),
                _p("panel-aria-label", 'button[aria-label="Órgãos Julgadores vinculados ao Perito"]'),
                _p("panel-text", "text=Órgãos Julgadores"),
                _p("panel-collapse-toggle", '[data-toggle="collapse"]', PANEL_RULE),
                _p("panel-heading", ".panel-heading", PANEL_RULE),
            ),
            Tier.GENERIC: (
                _p("panel-h4", 'h4:has-text("Órgão")', PANEL_RULE),
                _p("panel-h3", 'h3:has-text("Órgão")', PANEL_RULE),
                _p("panel-collapsed-role", '[role="button"][aria-expanded="false"]', PANEL_RULE),
                _p("panel-collapsed-button", 'button[aria-expanded="false"]', PANEL_RULE),
            ),
        },
    ),
    TargetDefinition(
        kind="unitSelector",
        expand_via="panelHeader",
        tiers={
            Tier.SPECIFIC: (
                _p("unit-mat-placeholder", 'mat-select[placeholder="Órgão Julgador"]'),
                _p("unit-select-name", 'select[name="idOrgaoJulgadorSelecionado"]'),
                _p("unit-modal-placeholder", 'pje-modal-localizacao-visibilidade mat-select[placeholder="Órgão Julgador"]'),
                _p("unit-mat-name", 'mat-select[name="idOrgaoJulgadorSelecionado"]'),
            ),
            Tier.CONTEXTUAL: (
                _p("unit-field-class", ".campo-orgao-julgador mat-select"),
                _p("unit-panel-select", 'mat-expansion-panel:has-text("Órgão") mat-select', UNIT_RULE),
                _p("unit-panel-content", ".mat-expansion-panel-content mat-select", UNIT_RULE),
                _p("unit-label-sibling", 'label:has-text("Órgão Julgador") ~ * mat-select'),
            ),
            Tier.GENERIC: (
                _p("unit-placeholder-partial", 'mat-select[placeholder*="Órgão"]', UNIT_RULE),
                _p("unit-id-partial", '[id*="orgao"] mat-select', UNIT_RULE),
                _p("unit-any-mat-select", "mat-select", UNIT_RULE),
                _p("unit-combobox", '[role="combobox"]', UNIT_RULE),
                _p("unit-any-select", "select", UNIT_RULE),
            ),
        },
    ),
    TargetDefinition(
        kind="addButton",
        expand_via="panelHeader",
        tiers={
            Tier.SPECIFIC: (
                _p("add-unit-to-expert", 'button:has-text("Adicionar Órgão Julgador ao Perito")'),
                _p("add-unit", 'button:has-text("Adicionar Órgão Julgador")'),
                _p("add-title", 'button[title*="Adicionar"]'),
            ),
            Tier.CONTEXTUAL: (
                _p("add-panel-button", ".mat-expansion-panel-content button", ADD_RULE),
                _p("add-link", 'a:has-text("Adicionar")', ADD_RULE),
                _p("add-btn-class", '.btn:has-text("Adicionar")', ADD_RULE),
            ),
            Tier.GENERIC: (
                _p("add-any-button", "button", ADD_RULE),
                _p("add-any-anchor-btn", "a.btn", ADD_RULE),
                _p("add-any-btn", ".btn", ADD_RULE),
            ),
        },
    ),
    TargetDefinition(
        kind="roleSelector",
        expand_via="panelHeader",
        tiers={
            Tier.SPECIFIC: (
                _p("role-dialog-placeholder", 'mat-dialog-container mat-select[placeholder="Papel"]'),
                _p("role-mat-placeholder", 'mat-select[placeholder="Papel"]'),
            ),
            Tier.CONTEXTUAL: (
                _p("role-select-name", 'select[name="papel"]'),
                _p("role-select-partial", 'select[name*="papel"]'),
                _p("role-class", '[class*="papel"] mat-select', ROLE_RULE),
            ),
            Tier.GENERIC: (
                _p("role-dialog-any-select", "mat-dialog-container mat-select", ROLE_RULE),
                _p("role-any-select", "select", ROLE_RULE),
            ),
        },
    ),
    TargetDefinition(
        kind="saveButton",
        tiers={
            Tier.SPECIFIC: (
                _p("save-dialog-actions-gravar", 'mat-dialog-container .mat-dialog-actions button:has-text("Gravar")'),
                _p("save-dialog-actions-salvar", 'mat-dialog-container .mat-dialog-actions button:has-text("Salvar")'),
                _p("save-link-unit", 'button:has-text("Vincular Órgão Julgador ao Perito")'),
            ),
            Tier.CONTEXTUAL: (
                _p("save-dialog-gravar", 'mat-dialog-container button:has-text("Gravar")'),
                _p("save-vincular", 'button:has-text("Vincular")'),
                _p("save-input-vincular", 'input[type="submit"][value*="Vincular"]'),
            ),
            Tier.GENERIC: (
                _p("save-any-button", "button", SAVE_RULE),
                _p("save-any-btn", ".btn", SAVE_RULE),
            ),
        },
    ),
)
