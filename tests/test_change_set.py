"""Tests for change-set building from matrix snapshots."""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from price_editor.engine.change_set import build_changes, summarize_changes
from price_editor.engine.models import NULL_TIER
from price_editor.engine.price_matrix import FlatPriceMatrix, TieredPriceMatrix


@pytest.fixture
def blank(today, settings):
    return FlatPriceMatrix.from_price_points((), False, ('USD',), today, settings)


@pytest.fixture
def flat(flat_group, today, settings):
    return FlatPriceMatrix.from_price_points(flat_group.price_points, True, (), today, settings)


@pytest.fixture
def tiered(field_group, today, settings):
    return TieredPriceMatrix.from_price_points(field_group.price_points, True, today, settings)


def test_new_price_group_single_record(blank, today):
    blank.set_cell(blank.key('USD'), '10.00')
    records = build_changes(blank.snapshot())
    assert len(records) == 1
    record = records[0]
    assert record.currency == 'USD'
    assert record.current_price is None
    assert record.new_price == Decimal('10.00')
    assert record.delta.amount == Decimal('10.00')
    assert record.delta.percentage == 100
    assert record.validity.start == today + timedelta(days=7)
    assert record.validity.end is None
    assert record.seat_range is None and record.tier is None


def test_unchanged_input_gives_no_records(flat):
    flat.set_cell(flat.key('USD'), '10.00')
    assert build_changes(flat.snapshot()) == []


def test_ten_percent_update(flat):
    flat.set_cell(flat.key('USD'), '11.00')
    records = build_changes(flat.snapshot())
    assert len(records) == 1
    assert records[0].current_price == Decimal('10.00')
    assert records[0].delta.percentage == pytest.approx(10.0)


def test_sub_epsilon_difference_is_ignored(flat):
    flat.set_cell(flat.key('USD'), '10.009')
    flat.set_cell(flat.key('EUR'), '8.995')
    assert build_changes(flat.snapshot()) == []


def test_unparseable_and_empty_inputs_are_skipped(flat):
    flat.set_cell(flat.key('USD'), 'ten')
    flat.set_cell(flat.key('EUR'), '')
    assert build_changes(flat.snapshot()) == []


def test_build_is_idempotent(tiered):
    tiered.set_cell(tiered.key('USD', '1-5'), '105')
    tiered.set_cell(tiered.key('CAD', '6-10'), '120')
    snapshot = tiered.snapshot()
    assert build_changes(snapshot) == build_changes(snapshot)


def test_snapshot_is_detached_from_later_edits(tiered):
    key = tiered.key('USD', '1-5')
    tiered.set_cell(key, '105')
    snapshot = tiered.snapshot()
    tiered.set_cell(key, '110')
    assert build_changes(snapshot)[0].new_price == Decimal('105')


def test_tiered_records_carry_seat_range_and_tier(tiered):
    tiered.set_cell(tiered.key('USD', '11+', 'GVT'), '45')
    record = build_changes(tiered.snapshot())[0]
    assert record.seat_range == '11+'
    assert record.tier == 'GVT'
    assert record.delta.amount == Decimal('-5.00')


def test_null_tier_label_is_base(tiered):
    tiered.set_cell(tiered.key('USD', '1-5'), '105')
    record = build_changes(tiered.snapshot())[0]
    assert record.tier == NULL_TIER
    assert record.tier_label == 'Base'


def test_override_applies_to_records(flat):
    flat.validity.set_override('EUR', date(2026, 12, 1), date(2027, 6, 30))
    flat.set_cell(flat.key('EUR'), '9.50')
    record = build_changes(flat.snapshot())[0]
    assert record.validity.start == date(2026, 12, 1)
    assert record.validity.end == date(2027, 6, 30)


def test_zero_decimal_currency_uses_fixed_epsilon(jpy_group, today, settings):
    """
    JPY has no minor units, yet the 0.01 threshold still applies: half a yen
    counts as a change. This mirrors current behaviour and is flagged here.
    """
    matrix = FlatPriceMatrix.from_price_points(jpy_group.price_points, True, (), today, settings)
    matrix.set_cell(matrix.key('JPY'), '1000.5')
    records = build_changes(matrix.snapshot())
    assert len(records) == 1
    assert records[0].delta.amount == Decimal('0.5')


def test_summary_groups_by_currency(tiered):
    tiered.set_cell(tiered.key('USD', '1-5'), '105')
    tiered.set_cell(tiered.key('USD', '6-10'), '85')
    tiered.set_cell(tiered.key('CAD', '6-10'), '120')
    groups = summarize_changes(build_changes(tiered.snapshot()))
    assert [g.currency for g in groups] == ['USD', 'CAD']
    usd, cad = groups
    assert (usd.increased_count, usd.decreased_count, usd.new_count) == (1, 1, 0)
    assert cad.new_count == 1
    assert cad.currency_name == 'Canadian Dollar'


def test_record_wire_format(blank):
    blank.set_cell(blank.key('USD'), '10.00')
    data = build_changes(blank.snapshot())[0].to_dict()
    assert data['new_price'] == '10.00'
    assert data['current_price'] is None
    assert data['delta'] == {'amount': '10.00', 'percentage': 100.0}
    assert data['validity']['end'] is None
