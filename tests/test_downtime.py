import pytest

from slametrics.collectors.downtime import (
    REACHABILITY, DowntimeAccumulator, DowntimeTotals, aggregate_availability, availability,
    host_availability,
)

from factories import utc_ts


def test_availability_bounds():
    assert availability(0, 10) == 100.0
    assert availability(-5, 0) == 100.0
    assert availability(100, 250) == 0.0
    assert availability(100, -50) == 100.0
    assert availability(1100, 1000) == pytest.approx(100 * 100 / 1100)


def test_overlapping_incidents_on_same_host(resolver):
    acc = DowntimeAccumulator(resolver)
    acc.add('h1', 0, 100)
    acc.add('h1', 50, 150)
    assert acc.totals('h1').total == 150


def test_reachability_view_is_a_subset(resolver):
    base = utc_ts(2026, 10, 5, 10)
    acc = DowntimeAccumulator(resolver)
    acc.add('h1', base, base + 600, reachability=True)
    acc.add('h1', base + 3600, base + 4200)
    assert acc.totals('h1').total == 1200
    assert acc.totals('h1', REACHABILITY).total == 600
    assert acc.hosts(REACHABILITY) == ['h1']


def test_business_and_off_hours_split(resolver):
    acc = DowntimeAccumulator(resolver)
    acc.add('h1', utc_ts(2026, 10, 5, 6), utc_ts(2026, 10, 5, 8))
    totals = acc.totals('h1')
    assert totals.off == 3600
    assert totals.business == 3600
    assert totals.total == 7200


def test_cache_is_refreshed_after_new_interval(resolver):
    acc = DowntimeAccumulator(resolver)
    acc.add('h1', 0, 100)
    assert acc.totals('h1').total == 100
    acc.add('h1', 200, 300)
    assert acc.totals('h1').total == 200


def test_empty_and_invalid_intervals_are_ignored(resolver):
    acc = DowntimeAccumulator(resolver)
    acc.add('h1', 100, 100)
    acc.add('h1', 200, 100)
    acc.add('', 0, 100)
    assert acc.hosts() == []
    assert acc.totals('h1') == DowntimeTotals()


def test_sum_totals_over_hosts(resolver):
    acc = DowntimeAccumulator(resolver)
    acc.add('a', 0, 100)
    acc.add('b', 0, 40)
    assert acc.sum_totals(['a', 'b', 'c']).total == 140


def test_group_availability_in_host_seconds():
    result = aggregate_availability(DowntimeTotals(100, 100, 0), 2, 1000, 1000, 0)
    assert result['overall'] == pytest.approx(95.0)
    assert result['business'] == pytest.approx(95.0)
    assert result['off_hours'] == 100.0


def test_host_availability():
    result = host_availability(DowntimeTotals(1000, 0, 1000), 1100, 0, 1100)
    assert result['overall'] == pytest.approx(9.0909, abs=1e-3)
    assert result['business'] == 100.0
