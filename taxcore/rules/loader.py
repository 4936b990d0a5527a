"""Load and validate tax-year rule sets from YAML."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from taxcore.core.config import get_settings
from taxcore.core.exceptions import MalformedRuleSetError, UnsupportedTaxYearError
from taxcore.rules.schema import RuleSetManifest, TaxRuleSet

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise MalformedRuleSetError(path.name, "file not found")
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise MalformedRuleSetError(path.name, f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedRuleSetError(path.name, "top level must be a mapping")
    return data


def _rules_directory() -> Path:
    return Path(get_settings().RULES_DIRECTORY)


@lru_cache(maxsize=4)
def load_manifest(directory: Path | None = None) -> RuleSetManifest:
    """Load and cache the rule-set manifest."""
    directory = directory or _rules_directory()
    raw = _load_yaml(directory / MANIFEST_FILENAME)
    try:
        return RuleSetManifest.model_validate(raw)
    except ValidationError as exc:
        raise MalformedRuleSetError(MANIFEST_FILENAME, str(exc)) from exc


@lru_cache(maxsize=16)
def load_rule_set(filename: str, directory: Path | None = None) -> TaxRuleSet:
    directory = directory or _rules_directory()
    raw = _load_yaml(directory / filename)
    try:
        rule_set = TaxRuleSet.model_validate(raw)
    except ValidationError as exc:
        raise MalformedRuleSetError(filename, str(exc)) from exc
    logger.debug("Loaded tax rule set %s (effective %s)", rule_set.name, rule_set.effective_from)
    return rule_set


def validate_tax_year(tax_year: Any) -> int:
    """Return ``tax_year`` as an int, or raise UnsupportedTaxYearError."""
    settings = get_settings()
    minimum, maximum = settings.MIN_TAX_YEAR, settings.MAX_TAX_YEAR
    if isinstance(tax_year, bool) or not isinstance(tax_year, int):
        raise UnsupportedTaxYearError(tax_year, minimum, maximum)
    if tax_year < minimum or tax_year > maximum:
        raise UnsupportedTaxYearError(tax_year, minimum, maximum)
    return tax_year


def get_rules(tax_year: int, directory: Path | None = None) -> TaxRuleSet:
    """Rule set in force for ``tax_year``.

    Raises:
        UnsupportedTaxYearError: year outside the configured window, or no
            rule set in the manifest is yet in force for it.
        MalformedRuleSetError: manifest or rule file fails validation.
    """
    validate_tax_year(tax_year)
    manifest = load_manifest(directory)
    entry = manifest.entry_for(tax_year)
    if entry is None:
        settings = get_settings()
        raise UnsupportedTaxYearError(tax_year, settings.MIN_TAX_YEAR, settings.MAX_TAX_YEAR)
    rule_set = load_rule_set(entry.file, directory)
    if rule_set.effective_from != entry.effective_from:
        raise MalformedRuleSetError(
            entry.file,
            f"effective_from {rule_set.effective_from} does not match manifest ({entry.effective_from})",
        )
    return rule_set


def validate_all_rule_sets(directory: Path | None = None) -> list[TaxRuleSet]:
    """Load every rule set listed in the manifest. Called at start-up."""
    manifest = load_manifest(directory)
    loaded = []
    for entry in manifest.files:
        rule_set = load_rule_set(entry.file, directory)
        if rule_set.effective_from != entry.effective_from:
            raise MalformedRuleSetError(
                entry.file,
                f"effective_from {rule_set.effective_from} does not match manifest ({entry.effective_from})",
            )
        loaded.append(rule_set)
    logger.info("Validated %d tax rule set(s)", len(loaded))
    return loaded


def clear_rule_cache() -> None:
    load_manifest.cache_clear()
    load_rule_set.cache_clear()
