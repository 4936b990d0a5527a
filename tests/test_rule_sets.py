"""Tests for tax-year rule set loading and validation."""
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from taxcore.core.config import DEFAULT_RULES_DIRECTORY
from taxcore.core.exceptions import MalformedRuleSetError, UnsupportedTaxYearError
from taxcore.models.tax_models import PayeeType, TaxClassification, WHTCategory
from taxcore.rules.loader import get_rules, validate_all_rule_sets, validate_tax_year


def _write_rules(directory: Path, mutate) -> Path:
    """Copy the shipped rule set into ``directory`` after applying ``mutate``."""
    raw = yaml.safe_load((DEFAULT_RULES_DIRECTORY / "nta_2026.yaml").read_text(encoding="utf-8"))
    mutate(raw)
    (directory / "nta_2026.yaml").write_text(yaml.safe_dump(raw), encoding="utf-8")
    (directory / "manifest.yaml").write_text(
        yaml.safe_dump({"rule_sets": [{"effective_from": 2026, "file": "nta_2026.yaml"}]}),
        encoding="utf-8",
    )
    return directory


def test_shipped_rule_sets_validate():
    loaded = validate_all_rule_sets()
    assert [r.effective_from for r in loaded] == [2026]


def test_rules_for_later_years_fall_back_to_latest_effective_set():
    assert get_rules(2031).effective_from == 2026


def test_2026_figures():
    rules = get_rules(2026)
    assert rules.wht.exemption_threshold == Decimal("25000000")
    assert [c.classification for c in rules.cit.classes] == [TaxClassification.SMALL, TaxClassification.LARGE]
    assert rules.cit.find(TaxClassification.LARGE).rate_percent == Decimal("30")
    assert rules.deadlines.cit.for_year(2026).isoformat() == "2027-06-30"
    assert rules.deadlines.pit.for_year(2026).isoformat() == "2027-03-31"
    assert rules.deadlines.wht.for_period(2026, 12).isoformat() == "2027-01-21"


def test_every_category_has_complete_rates():
    rules = get_rules(2026)
    for category in WHTCategory:
        row = rules.wht.row(category)
        for payee_type in PayeeType:
            rates = row.for_payee(payee_type)
            assert rates.non_resident >= rates.resident


@pytest.mark.parametrize("tax_year", [2025, 2101, 1999])
def test_year_outside_window_is_rejected(tax_year):
    with pytest.raises(UnsupportedTaxYearError) as exc:
        validate_tax_year(tax_year)
    assert exc.value.code == "CFG001"
    assert exc.value.status_code == 400


def test_non_integer_year_is_rejected():
    with pytest.raises(UnsupportedTaxYearError):
        validate_tax_year("2026")


def test_missing_wht_category_fails_at_load(tmp_path):
    directory = _write_rules(tmp_path, lambda raw: raw["wht"]["rates"].pop("royalties"))
    with pytest.raises(MalformedRuleSetError) as exc:
        validate_all_rule_sets(directory)
    assert "royalties" in exc.value.message


def test_non_resident_rate_below_resident_fails(tmp_path):
    def mutate(raw):
        raw["wht"]["rates"]["rent"]["company"] = {"resident": 10, "non_resident": 5}

    directory = _write_rules(tmp_path, mutate)
    with pytest.raises(MalformedRuleSetError):
        get_rules(2026, directory)


def test_passive_category_cannot_be_service_category(tmp_path):
    directory = _write_rules(tmp_path, lambda raw: raw["wht"]["service_categories"].append("dividends"))
    with pytest.raises(MalformedRuleSetError):
        validate_all_rule_sets(directory)


def test_overlapping_brackets_fail(tmp_path):
    def mutate(raw):
        raw["pit"]["brackets"][1]["lower"] = 700000

    directory = _write_rules(tmp_path, mutate)
    with pytest.raises(MalformedRuleSetError):
        validate_all_rule_sets(directory)


def test_unknown_key_fails(tmp_path):
    directory = _write_rules(tmp_path, lambda raw: raw["pit"].update({"exemption_treshold": 1}))
    with pytest.raises(MalformedRuleSetError):
        validate_all_rule_sets(directory)


def test_manifest_year_mismatch_fails(tmp_path):
    directory = _write_rules(tmp_path, lambda raw: raw.update({"effective_from": 2027}))
    with pytest.raises(MalformedRuleSetError):
        validate_all_rule_sets(directory)


def test_missing_manifest_fails(tmp_path):
    with pytest.raises(MalformedRuleSetError):
        validate_all_rule_sets(tmp_path)


def test_2026_vat_figures():
    rules = get_rules(2026)
    assert rules.vat.rate_percent == Decimal("7.5")
    assert rules.vat.registration_threshold == Decimal("25000000")
    assert rules.deadlines.vat.for_period(2026, 3).isoformat() == "2026-04-21"


def test_vat_rate_above_hundred_fails(tmp_path):
    directory = _write_rules(tmp_path, lambda raw: raw["vat"].update({"rate": 150}))
    with pytest.raises(MalformedRuleSetError):
        validate_all_rule_sets(directory)
