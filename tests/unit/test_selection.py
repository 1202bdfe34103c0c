"""
Unit tests for selection templates and pricing.
"""
import uuid
from decimal import Decimal

import pytest

from agencyhub.core.exceptions import UnknownModuleError
from agencyhub.services.recommendation_engine import BusinessProfile, recommend
from agencyhub.services.selection import (
    SelectionTemplate,
    apply_template,
    compute_cost,
    get_plan_terms,
    quote,
)


@pytest.fixture
def recommendation(sample_snapshot, marketing_profile):
    return recommend(BusinessProfile(**marketing_profile), sample_snapshot)


def _ids(snapshot, *paths):
    by_path = {m.path: m.id for m in snapshot.modules}
    return [by_path[p] for p in paths]


def _paths(selected):
    return [m.path for m in selected.modules]


class TestApplyTemplate:
    """Test template resolution."""

    def test_minimal_is_required_only(self, recommendation):
        selected = apply_template(SelectionTemplate.MINIMAL, recommendation)
        assert _paths(selected) == ["/dashboard", "/settings"]

    def test_standard_adds_recommended(self, recommendation):
        selected = apply_template("standard", recommendation)
        assert _paths(selected) == ["/dashboard", "/settings", "/projects", "/clients"]

    def test_recommended_is_alias_of_standard(self, recommendation):
        assert _paths(apply_template("recommended", recommendation)) == \
            _paths(apply_template("standard", recommendation))

    def test_full_selects_everything(self, recommendation):
        selected = apply_template(SelectionTemplate.FULL, recommendation)
        assert len(selected) == 6

    def test_custom_always_keeps_required(self, recommendation, sample_snapshot):
        selected = apply_template(
            SelectionTemplate.CUSTOM,
            recommendation,
            _ids(sample_snapshot, "/inventory"),
        )
        assert _paths(selected) == ["/dashboard", "/settings", "/inventory"]

    def test_custom_rejects_unknown_module(self, recommendation):
        with pytest.raises(UnknownModuleError):
            apply_template(SelectionTemplate.CUSTOM, recommendation, [uuid.uuid4()])

    def test_unknown_template_rejected(self, recommendation):
        with pytest.raises(ValueError):
            apply_template("everything", recommendation)


class TestCategorySelection:
    """Test whole-category toggles."""

    def test_select_category(self, recommendation):
        selected = apply_template("minimal", recommendation).select_category("finance", recommendation)
        assert "/invoices" in _paths(selected)
        assert selected.template == SelectionTemplate.CUSTOM

    def test_deselect_category_keeps_required(self, recommendation):
        selected = apply_template("full", recommendation)
        selected = selected.deselect_category("projects").deselect_category("dashboard")

        assert "/projects" not in _paths(selected)
        assert "/clients" not in _paths(selected)
        assert "/dashboard" in _paths(selected)


class TestPricing:
    """Test cost computation and quotes."""

    def test_standard_professional_cost(self, recommendation):
        selected = apply_template("standard", recommendation)
        assert compute_cost(selected, Decimal("79.00")) == Decimal("104.00")

    def test_cost_override_replaces_base_cost(self, recommendation, sample_snapshot):
        selected = apply_template("standard", recommendation)
        clients_id = _ids(sample_snapshot, "/clients")[0]

        total = compute_cost(selected, Decimal("79.00"), {clients_id: Decimal("10.00")})

        assert total == Decimal("99.00")

    def test_quote_annual_discount(self, recommendation):
        result = quote(apply_template("standard", recommendation), "professional")

        assert result.plan == "professional"
        assert result.monthly_total == Decimal("104.00")
        assert result.modules_cost == Decimal("25.00")
        # 104 * 12 = 1248, minus 10%
        assert result.annual_total == Decimal("1123.20")
        assert result.annual_savings == Decimal("124.80")
        assert result.module_count == 4
        assert result.max_users == 25

    def test_plan_name_is_case_insensitive(self, recommendation):
        result = quote(apply_template("minimal", recommendation), "STARTER")
        assert result.plan == "starter"
        assert result.monthly_total == Decimal("29.00")

    def test_unknown_plan_falls_back_to_professional(self):
        assert get_plan_terms("platinum") == get_plan_terms("professional")
