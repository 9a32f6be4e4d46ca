# backend/tests/test_allocation.py
from decimal import Decimal

import pytest

from pos_admin.domain.allocation import (
    AllocationError,
    coverage_tolerance_cents,
    distribute_across_all,
    final_total,
    get_strategy,
    ordered_sequential_shares,
    proportional_shares,
    redistribute_after_manual_edit,
    total_coverage,
    total_discount,
    validate,
)
from pos_admin.domain.models import AllocationEntry


def entry(discount="0", amount=0, method_id=None):
    return AllocationEntry(method_id=method_id, discount_percent=Decimal(discount), amount_cents=amount)


def amounts(entries):
    return [e.amount_cents for e in entries]


# ----------------------------------------------------------------------
# shares
# ----------------------------------------------------------------------

def test_ordered_shares_sum_to_target_and_favor_earliest_with_leftover_cents():
    shares = ordered_sequential_shares([Decimal(0)] * 3, 10_000)
    assert shares == [3334, 3333, 3333]
    assert sum(shares) == 10_000


def test_ordered_shares_empty_and_zero_target():
    assert ordered_sequential_shares([], 500) == []
    assert ordered_sequential_shares([Decimal(0), Decimal(0)], 0) == [0, 0]


def test_proportional_shares_weight_by_discount():
    # weights 1 and 2 -> 3333.33 / 6666.67, the spare cent goes to the bigger fraction
    assert proportional_shares([Decimal(0), Decimal(50)], 10_000) == [3333, 6667]


def test_proportional_shares_ties_resolved_by_order():
    assert proportional_shares([Decimal(0)] * 3, 10_000) == [3334, 3333, 3333]


def test_proportional_shares_all_fully_discounted_split_equally():
    assert proportional_shares([Decimal(100), Decimal(100)], 101) == [51, 50]


def test_unknown_strategy_raises():
    with pytest.raises(AllocationError):
        get_strategy("random")
    with pytest.raises(AllocationError):
        distribute_across_all([entry()], 100, strategy="random")


# ----------------------------------------------------------------------
# distribute_across_all
# ----------------------------------------------------------------------

def test_scenario_a_two_plain_methods_split_evenly():
    result = distribute_across_all([entry(), entry()], 10_000)
    assert amounts(result) == [5000, 5000]


def test_scenario_b_ordered_sequential_with_discount_on_last():
    result = distribute_across_all([entry("0"), entry("10")], 10_000)
    assert amounts(result) == [5000, 4500]
    assert total_coverage(result) == Decimal(10_000)
    assert final_total(result) == 9500
    assert total_discount(result) == 500


def test_scenario_d_three_way_split():
    result = distribute_across_all([entry(), entry(), entry()], 9000)
    assert amounts(result) == [3000, 3000, 3000]


def test_scenario_e_fully_discounted_single_method_is_zero():
    result = distribute_across_all([entry("100")], 5000)
    assert amounts(result) == [0]
    assert final_total(result) == 0


def test_single_entry_is_subtotal_minus_discount():
    assert amounts(distribute_across_all([entry("0")], 12_345)) == [12_345]
    assert amounts(distribute_across_all([entry("25")], 10_000)) == [7500]


def test_empty_entries_is_a_no_op():
    assert distribute_across_all([], 10_000) == ()


def test_order_matters_high_discount_first_is_charged_less():
    first = distribute_across_all([entry("20"), entry("0")], 10_000)
    last = distribute_across_all([entry("0"), entry("20")], 10_000)
    assert amounts(first) == [4000, 5000]
    assert amounts(last) == [5000, 4000]


@pytest.mark.parametrize(
    "discounts, subtotal",
    [
        (["0"], 1),
        (["0", "10"], 10_000),
        (["5", "12.5", "33"], 12_345),
        (["0", "10", "25", "50"], 99_999),
        (["50", "50", "50", "50", "50"], 7),
    ],
)
@pytest.mark.parametrize("strategy", ["ordered", "proportional"])
def test_coverage_is_conserved(discounts, subtotal, strategy):
    result = distribute_across_all([entry(d) for d in discounts], subtotal, strategy=strategy)
    drift = abs(total_coverage(result) - subtotal)
    assert drift <= coverage_tolerance_cents(result)
    assert all(e.amount_cents >= 0 for e in result)


def test_distribute_is_idempotent():
    entries = [entry("0"), entry("15"), entry("7.5")]
    once = distribute_across_all(entries, 45_678)
    twice = distribute_across_all(once, 45_678)
    assert once == twice


def test_distribute_does_not_mutate_input():
    entries = [entry("0", amount=1), entry("10", amount=2)]
    distribute_across_all(entries, 10_000)
    assert amounts(entries) == [1, 2]


def test_distribute_keeps_method_ids_and_order():
    result = distribute_across_all([entry(method_id=7), entry(method_id=3)], 200)
    assert [e.method_id for e in result] == [7, 3]


def test_out_of_range_discounts_are_clamped_before_math():
    result = distribute_across_all([entry("150"), entry("-5")], 10_000)
    assert [e.discount_percent for e in result] == [Decimal("100.00"), Decimal("0.00")]
    assert amounts(result) == [0, 5000]


def test_proportional_charges_each_method_about_the_same():
    result = distribute_across_all([entry("0"), entry("50")], 10_000, strategy="proportional")
    assert amounts(result) == [3333, 3334]


# ----------------------------------------------------------------------
# redistribute_after_manual_edit
# ----------------------------------------------------------------------

def test_scenario_c_edit_first_amount():
    start = distribute_across_all([entry("0"), entry("10")], 10_000)
    result = redistribute_after_manual_edit(start, 10_000, 0, 8000)
    assert amounts(result) == [8000, 1800]


def test_edited_amount_is_kept_exactly_and_others_cover_the_rest():
    start = [entry("10"), entry("0"), entry("25")]
    result = redistribute_after_manual_edit(start, 10_000, 0, 4500)
    assert result[0].amount_cents == 4500
    others = total_coverage(result[1:])
    assert abs(others - Decimal(5000)) <= coverage_tolerance_cents(result[1:])


def test_editing_a_middle_entry_keeps_relative_order_of_others():
    result = redistribute_after_manual_edit([entry(), entry(), entry()], 9000, 1, 5000)
    assert amounts(result) == [2000, 5000, 2000]


def test_edit_larger_than_subtotal_zeroes_the_others():
    result = redistribute_after_manual_edit([entry(), entry()], 10_000, 1, 15_000)
    assert amounts(result) == [0, 15_000]
    assert final_total(result) == 15_000


def test_negative_edit_is_clamped_to_zero():
    result = redistribute_after_manual_edit([entry(), entry()], 10_000, 0, -500)
    assert amounts(result) == [0, 10_000]


def test_positive_amount_on_fully_discounted_method_is_clamped():
    result = redistribute_after_manual_edit([entry("100"), entry("0")], 10_000, 0, 500)
    assert amounts(result) == [0, 10_000]


def test_remaining_coverage_is_rounded_to_cents():
    # 1000 at 30% covers 1428.57 -> 8571.43 left, rounded to 8571
    result = redistribute_after_manual_edit([entry("30"), entry("0")], 10_000, 0, 1000)
    assert amounts(result) == [1000, 8571]


def test_redistribute_single_entry_just_sets_it():
    result = redistribute_after_manual_edit([entry("10")], 10_000, 0, 1234)
    assert amounts(result) == [1234]


def test_redistribute_empty_is_a_no_op():
    assert redistribute_after_manual_edit([], 10_000, 0, 100) == ()


def test_redistribute_bad_index_raises():
    with pytest.raises(AllocationError):
        redistribute_after_manual_edit([entry()], 10_000, 1, 100)
    with pytest.raises(AllocationError):
        redistribute_after_manual_edit([entry()], 10_000, -1, 100)


def test_redistribute_with_proportional_strategy():
    result = redistribute_after_manual_edit(
        [entry("0"), entry("0"), entry("50")], 10_000, 0, 4000, strategy="proportional"
    )
    # 6000 left, weights 1 and 2 -> coverage 2000 / 4000
    assert amounts(result) == [4000, 2000, 2000]


# ----------------------------------------------------------------------
# validate / totals
# ----------------------------------------------------------------------

def test_validate_consistent_allocation_is_clean():
    result = distribute_across_all([entry("0", method_id=1), entry("10", method_id=2)], 10_000)
    report = validate(result, 10_000)
    assert report.ok
    assert report.errors == ()
    assert report.warnings == ()


def test_validate_requires_a_selected_method():
    report = validate([entry(amount=10_000)], 10_000)
    assert not report.ok
    assert "payment method" in report.errors[0]


def test_validate_flags_bad_discount_and_negative_amount():
    report = validate([entry("120", amount=0, method_id=1), entry("0", amount=-1, method_id=2)], 0)
    assert not report.ok
    assert any("entry 0: discount" in e for e in report.errors)
    assert any("entry 1: amount" in e for e in report.errors)


def test_validate_flags_charge_on_fully_discounted_method():
    report = validate([entry("100", amount=100, method_id=1)], 10_000)
    assert not report.ok
    assert "100% discount" in report.errors[0]


def test_validate_drift_is_only_a_warning():
    report = validate([entry("0", amount=1000, method_id=1)], 10_000)
    assert report.ok
    assert len(report.warnings) == 1
    assert "$10.00 of $100.00" in report.warnings[0]


def test_coverage_tolerance_grows_with_discount():
    assert coverage_tolerance_cents([entry("0")]) == 1
    assert coverage_tolerance_cents([entry("50")]) == 1
    assert coverage_tolerance_cents([entry("90")]) == 5
    assert coverage_tolerance_cents([entry("100")]) == 1
    assert coverage_tolerance_cents([entry("0"), entry("90")]) == 6


def test_final_total_sums_charged_amounts():
    assert final_total([entry(amount=5000), entry(amount=4500)]) == 9500
    assert final_total([]) == 0


def test_discount_just_under_100_stays_a_partial_discount():
    (result,) = distribute_across_all([entry("99.999")], 100_000)
    assert result.discount_percent == Decimal("99.99")
    assert result.amount_cents == 10
    assert total_coverage([result]) == Decimal(100_000)
