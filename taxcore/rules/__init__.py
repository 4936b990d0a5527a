"""Tax-year rule sets.

Statutory figures live in YAML under ``data/`` and are validated by the
pydantic models in ``schema`` when loaded.
"""

from taxcore.rules.loader import (
    clear_rule_cache,
    get_rules,
    load_manifest,
    load_rule_set,
    validate_all_rule_sets,
    validate_tax_year,
)
from taxcore.rules.schema import (
    Bracket,
    CITRules,
    CompanyClass,
    DevelopmentLevyRules,
    PITRules,
    TaxRuleSet,
    WHTRules,
    check_bracket_table,
)

__all__ = [
    "Bracket",
    "CITRules",
    "CompanyClass",
    "DevelopmentLevyRules",
    "PITRules",
    "TaxRuleSet",
    "WHTRules",
    "check_bracket_table",
    "clear_rule_cache",
    "get_rules",
    "load_manifest",
    "load_rule_set",
    "validate_all_rule_sets",
    "validate_tax_year",
]
