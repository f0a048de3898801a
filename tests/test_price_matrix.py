"""Tests for the price matrix: pivoting, change detection and undo."""
from datetime import date
from decimal import Decimal

import pytest

from conftest import point
from price_editor.engine.models import (
    CellKey, EditingContext, PriceGroupAction, SeatRangeKey, NULL_TIER,
)
from price_editor.engine.ordering import sort_seat_ranges
from price_editor.engine.price_matrix import (
    FlatPriceMatrix, PriceMatrix, TieredPriceMatrix, build_matrix, compute_delta, is_change, parse_price,
)


@pytest.fixture
def tiered(field_group, today, settings):
    return TieredPriceMatrix.from_price_points(
        field_group.price_points, include_prices=True, today=today, settings=settings
    )


@pytest.fixture
def flat(flat_group, today, settings):
    return FlatPriceMatrix.from_price_points(
        flat_group.price_points, include_prices=True, today=today, settings=settings
    )


class TestParsing:
    def test_strips_thousands_separators(self):
        assert parse_price('1,234.50') == Decimal('1234.50')

    @pytest.mark.parametrize("text", ['', '   ', 'abc', '-5', 'NaN', 'Infinity', None])
    def test_invalid_text_is_unset(self, text):
        assert parse_price(text) is None

    def test_zero_is_a_price(self):
        assert parse_price('0') == Decimal('0')


class TestDelta:
    def test_zero_to_zero_is_zero_percent(self):
        assert compute_delta(Decimal('0'), Decimal('0')).percentage == 0

    def test_zero_to_positive_is_hundred_percent(self):
        delta = compute_delta(Decimal('0'), Decimal('5'))
        assert delta.percentage == 100
        assert delta.amount == Decimal('5')

    def test_new_price_is_hundred_percent(self):
        delta = compute_delta(None, Decimal('10.00'))
        assert delta.amount == Decimal('10.00')
        assert delta.percentage == 100

    def test_ten_percent_increase(self):
        delta = compute_delta(Decimal('10.00'), Decimal('11.00'))
        assert delta.amount == Decimal('1.00')
        assert delta.percentage == pytest.approx(10.0)

    def test_epsilon_boundary(self):
        eps = Decimal('0.01')
        assert not is_change(Decimal('10.00'), Decimal('10.009'), eps)
        assert is_change(Decimal('10.00'), Decimal('10.01'), eps)
        assert is_change(None, Decimal('0'), eps)


class TestSeatRanges:
    def test_canonical_order(self):
        ranges = [SeatRangeKey.parse(s) for s in ['11+', '1-5', '6-10']]
        assert [str(r) for r in sort_seat_ranges(ranges)] == ['1-5', '6-10', '11+']

    def test_string_forms(self):
        assert str(SeatRangeKey(1, 5)) == '1-5'
        assert str(SeatRangeKey(11)) == '11+'
        assert str(SeatRangeKey(3, 3)) == '3'
        assert SeatRangeKey.parse('11+') == SeatRangeKey(11, None)

    def test_missing_minimum_defaults_to_one(self):
        assert SeatRangeKey.for_quantities(None, 5) == SeatRangeKey(1, 5)

    def test_zero_maximum_stays_bounded(self):
        assert SeatRangeKey.for_quantities(1, 0).maximum == 0
        assert SeatRangeKey.for_quantities(1, None).maximum is None

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            SeatRangeKey.parse('a-b')


class TestTieredMatrix:
    def test_axes(self, tiered):
        assert tiered.currencies == ['USD', 'CAD']
        assert [str(s) for s in tiered.seat_ranges()] == ['1-5', '6-10', '11+']
        assert tiered.tiers('USD') == [NULL_TIER, 'GVT']
        # Tiers only appear where the currency has prices
        assert tiered.tiers('CAD') == [NULL_TIER]

    def test_expired_points_are_ignored(self, tiered):
        assert tiered.current_price(tiered.key('USD', '1-5')) == Decimal('100.00')

    def test_baseline_not_loaded_when_creating(self, field_group, today, settings):
        matrix = TieredPriceMatrix.from_price_points(
            field_group.price_points, include_prices=False, today=today, settings=settings
        )
        assert matrix.all_prices_new
        assert matrix.current_price(matrix.key('USD', '1-5')) is None
        assert matrix.tiers('USD') == [NULL_TIER, 'GVT']

    def test_overlapping_points_latest_start_wins(self, today, settings):
        points = [
            point('USD', '10.00', valid_from=date(2026, 1, 1)),
            point('USD', '12.00', valid_from=date(2026, 6, 1)),
        ]
        matrix = TieredPriceMatrix.from_price_points(points, True, today, settings)
        assert matrix.current_price(matrix.key('USD', '1+')) == Decimal('12.00')

    def test_has_changes_tracks_keystrokes(self, tiered):
        key = tiered.key('USD', '6-10', 'GVT')
        assert not tiered.has_changes
        tiered.set_cell(key, '60.00')
        assert not tiered.has_changes
        tiered.set_cell(key, '65')
        assert tiered.has_changes
        assert tiered.change_count('USD') == 1
        assert tiered.change_count('CAD') == 0
        tiered.set_cell(key, '')
        assert not tiered.has_changes

    def test_sub_epsilon_edit_is_not_a_change(self, tiered):
        tiered.set_cell(tiered.key('USD', '1-5'), '100.005')
        assert not tiered.has_changes

    def test_delta_on_read(self, tiered):
        key = tiered.key('USD', '1-5')
        tiered.set_cell(key, '110')
        cell = tiered.cell(key)
        assert cell.current_price == Decimal('100.00')
        assert cell.delta.amount == Decimal('10.00')
        assert cell.delta.percentage == pytest.approx(10.0)

    def test_unknown_cell_rejected(self, tiered):
        with pytest.raises(ValueError):
            tiered.set_cell(CellKey('CAD', SeatRangeKey(1, 5), 'GVT'), '1')

    def test_rows_shape(self, tiered):
        rows = tiered.rows('USD')
        assert len(rows) == 3
        assert [c.key.tier for c in rows[0]] == [NULL_TIER, 'GVT']

    def test_undo_without_snapshot_is_noop(self, tiered):
        assert not tiered.undo()

    def test_base_matrix_is_abstract(self, settings):
        with pytest.raises(TypeError):
            PriceMatrix({}, None, settings)


class TestFlatMatrix:
    def test_usd_first_then_alphabetical(self, flat):
        flat.add_currency('aud')
        assert flat.currencies == ['USD', 'AUD', 'EUR']

    def test_add_existing_currency_refused(self, flat):
        assert not flat.add_currency('USD')

    def test_baseline_currency_cannot_be_removed(self, flat):
        assert not flat.remove_currency('USD')

    def test_remove_added_currency_drops_input(self, flat):
        flat.add_currency('GBP')
        flat.set_cell(flat.key('GBP'), '8')
        assert flat.has_changes
        assert flat.remove_currency('GBP')
        assert not flat.has_changes
        assert 'GBP' not in flat.currencies

    def test_all_prices_new_without_baseline(self, today, settings):
        matrix = FlatPriceMatrix.from_price_points((), False, ('USD',), today, settings)
        assert matrix.all_prices_new
        assert matrix.currencies == ['USD']


class TestBuildMatrix:
    def test_update_flat_group(self, product, flat_group, today, settings):
        context = EditingContext('Desktop', 'Monthly', PriceGroupAction.UPDATE, existing_price_group=flat_group)
        matrix = build_matrix(context, product, today, settings)
        assert not matrix.tiered
        assert matrix.current_price(CellKey('USD')) == Decimal('10.00')

    def test_clone_copies_structure_not_prices(self, product, field_group, today, settings):
        context = EditingContext('Field', 'Annual', PriceGroupAction.CREATE, clone_price_group=field_group)
        matrix = build_matrix(context, product, today, settings)
        assert matrix.tiered
        assert matrix.all_prices_new
        assert matrix.currencies == ['USD', 'CAD']

    def test_blank_field_uses_channel_structure(self, product, today, settings):
        context = EditingContext('Field', 'Monthly', PriceGroupAction.CREATE)
        matrix = build_matrix(context, product, today, settings)
        assert matrix.tiered
        assert matrix.all_prices_new
        assert matrix.tiers('USD') == [NULL_TIER, 'GVT']

    def test_blank_flat_gets_default_currencies(self, product, today, settings):
        context = EditingContext('GPB', 'Annual', PriceGroupAction.CREATE)
        matrix = build_matrix(context, product, today, settings)
        assert matrix.currencies == ['USD']
