from decimal import Decimal as D

import pytest

from rate_engine.engine.entities import CalculationMethod, Dimensions
from rate_engine.engine.errors import NoMatchingTierError
from rate_engine.engine.money import clamp
from rate_engine.engine.rule_matcher import RuleMatcher

from conftest import make_rule, make_table


@pytest.fixture
def matcher():
    return RuleMatcher()


def test_fixed_bracket(matcher):
    table = make_table(base_price=D("10.00"), rules=[make_rule(weight_from="0", weight_to="5", price="12.50")])
    result = matcher.price(table, D("3"))
    assert result.price == D("12.50")
    assert result.rule.id == 1


def test_per_kg_from_zero(matcher):
    table = make_table(rules=[make_rule(method=CalculationMethod.PER_KG, price="10.00", price_per_kg="2.00")])
    assert matcher.price(table, D("7")).price == D("24.00")


def test_per_kg_charges_only_above_bracket_start(matcher):
    table = make_table(rules=[make_rule(weight_from="5", method=CalculationMethod.PER_KG,
                                        price="10.00", price_per_kg="2.00")])
    assert matcher.price(table, D("7")).price == D("14.00")


def test_per_kg_is_monotonic(matcher):
    table = make_table(rules=[make_rule(method=CalculationMethod.PER_KG, price="8.00", price_per_kg="1.35")])
    weights = [D("0.1"), D("1"), D("2.5"), D("2.51"), D("10"), D("49.99"), D("50")]
    prices = [matcher.price(table, w).price for w in weights]
    assert prices == sorted(prices)


class TestPerKgStep:
    """Price is flat inside a step and jumps by one step's worth right after each boundary."""

    @pytest.fixture
    def table(self):
        return make_table(rules=[make_rule(weight_from="2", method=CalculationMethod.PER_KG_STEP,
                                           price="18.00", price_per_kg="2.00", weight_step="0.5")])

    def test_boundary_and_just_below_share_a_price(self, matcher, table):
        assert matcher.price(table, D("3.0")).price == D("20.00")
        assert matcher.price(table, D("2.999")).price == D("20.00")

    def test_just_above_boundary_adds_one_step(self, matcher, table):
        assert matcher.price(table, D("3.001")).price == D("20.00") + D("2.00") * D("0.5")

    def test_bracket_start_is_base_price(self, matcher, table):
        assert matcher.price(table, D("2")).price == D("18.00")

    def test_step_defaults_to_one_kg(self, matcher):
        table = make_table(rules=[make_rule(method=CalculationMethod.PER_KG_STEP, price="5.00",
                                            price_per_kg="3.00")])
        assert matcher.price(table, D("2.2")).price == D("14.00")


def test_percentage_method_scales_price_by_weight(matcher):
    table = make_table(rules=[make_rule(method=CalculationMethod.PERCENTAGE, price="50.00")])
    assert matcher.price(table, D("4")).price == D("2.00")


def test_clamping_to_min_and_max(matcher):
    table = make_table(rules=[make_rule(method=CalculationMethod.PER_KG, price="10.00", price_per_kg="5.00",
                                        min_price="15.00", max_price="40.00")])
    assert matcher.price(table, D("0.5")).price == D("15.00")
    assert matcher.price(table, D("20")).price == D("40.00")
    assert matcher.price(table, D("3")).price == D("25.00")


@pytest.mark.parametrize("value", [D("3"), D("15"), D("27.5"), D("99")])
def test_clamping_is_idempotent(value):
    once = clamp(value, D("10"), D("30"))
    assert clamp(once, D("10"), D("30")) == once


def test_result_is_quantized(matcher):
    table = make_table(rules=[make_rule(method=CalculationMethod.PER_KG, price="1.00", price_per_kg="0.33333")])
    assert matcher.price(table, D("1")).price == D("1.3333")


def test_lowest_sort_order_wins(matcher):
    table = make_table(rules=[
        make_rule(id=1, weight_to="10", price="30.00", sort_order=2),
        make_rule(id=2, weight_to="10", price="20.00", sort_order=1),
    ])
    assert matcher.price(table, D("3")).rule.id == 2


def test_tie_breaks_on_weight_from_then_id(matcher):
    table = make_table(rules=[
        make_rule(id=4, weight_from="1", weight_to="10", price="30.00"),
        make_rule(id=3, weight_from="0", weight_to="10", price="20.00"),
        make_rule(id=2, weight_from="0", weight_to="10", price="25.00"),
    ])
    assert matcher.price(table, D("3")).rule.id == 2


def test_bracket_bounds_are_inclusive(matcher):
    table = make_table(rules=[
        make_rule(id=1, weight_from="0", weight_to="5", price="10.00", sort_order=1),
        make_rule(id=2, weight_from="5", weight_to="10", price="20.00", sort_order=2),
    ])
    assert matcher.price(table, D("5")).rule.id == 1
    assert matcher.price(table, D("5.01")).rule.id == 2


def test_inactive_rules_are_skipped(matcher):
    table = make_table(rules=[
        make_rule(id=1, price="10.00", is_active=False),
        make_rule(id=2, price="11.00", sort_order=5),
    ])
    assert matcher.price(table, D("3")).rule.id == 2


def test_dimension_bounded_rule_needs_dimensions(matcher):
    big = make_rule(id=1, price="50.00", sort_order=1, dimensions_from=Dimensions(D("60"), D("40"), D("40")))
    table = make_table(rules=[big, make_rule(id=2, price="20.00", sort_order=2)])
    assert matcher.price(table, D("3")).rule.id == 2
    assert matcher.price(table, D("3"), Dimensions(D("70"), D("50"), D("45"))).rule.id == 1
    assert matcher.price(table, D("3"), Dimensions(D("30"), D("20"), D("10"))).rule.id == 2


def test_no_matching_rule(matcher):
    table = make_table(id=9, rules=[make_rule(weight_from="0", weight_to="5")])
    with pytest.raises(NoMatchingTierError) as exc:
        matcher.price(table, D("6"))
    assert exc.value.meta == {"table_id": 9, "weight_kg": "6"}


def test_weight_outside_table_range(matcher):
    table = make_table(min_weight_kg=D("1"), max_weight_kg=D("25"), rules=[make_rule(weight_to=None)])
    with pytest.raises(NoMatchingTierError):
        matcher.price(table, D("30"))
    with pytest.raises(NoMatchingTierError):
        matcher.price(table, D("0.5"))


def test_tax_override_travels_with_price(matcher):
    table = make_table(rules=[make_rule(tax_rate_override="8")])
    assert matcher.price(table, D("1")).tax_rate_override == D("8")


def test_traces_describe_clamp(matcher):
    table = make_table(rules=[make_rule(price="5.00", min_price="9.00")])
    result = matcher.price(table, D("1"))
    assert len(result.traces) == 2
    assert "Clamped" in result.traces[1]
