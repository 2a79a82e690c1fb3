import pytest

from slametrics.collectors.alert_classifier import build_trigger_type_map
from slametrics.collectors.dashboard_collector import (
    DashboardCollector, classify_host, detect_false_classification, is_active_host,
)
from slametrics.collectors.time_window import Period
from slametrics.errors import GroupNotFound

from factories import make_host, make_problem, make_recovery, make_trigger, utc_ts

T0 = utc_ts(2026, 10, 5, 10)
GROUP = ('1', 'Lojas')


@pytest.fixture
def collector(engine_config, resolver):
    return DashboardCollector(engine_config, resolver=resolver)


def _summary(metrics, groupid):
    return next(s for s in metrics['group_summaries'] if s['groupid'] == groupid)


class TestEndToEnd:
    def test_open_incident_without_acks(self, collector):
        period = Period(T0 - 100, T0 + 1000, 'janela')
        hosts = [make_host('10', groups=[GROUP])]
        problems = [make_problem('e1', T0, ['10'], severity=5)]
        metrics = collector.collect(hosts, problems, [{'groupid': '1', 'name': 'Lojas'}], {}, {}, period)

        host = metrics['hosts'][0]
        assert host['availability_pct'] == pytest.approx(100 * 100 / 1100)
        assert host['resolution_minutes'] == pytest.approx(1000 / 60)
        assert metrics['kpis']['availability_pct'] == pytest.approx(100 * 100 / 1100)
        assert metrics['critical_alerts'][0]['detection_minutes'] is None
        assert metrics['critical_alerts'][0]['is_open'] is True

    def test_overlapping_incidents_merge(self, collector):
        period = Period(T0, T0 + 1000, 'janela')
        hosts = [make_host('10')]
        problems = [
            make_problem('e1', T0, ['10'], r_eventid='r1'),
            make_problem('e2', T0 + 50, ['10'], r_eventid='r2'),
        ]
        recovery = {'r1': make_recovery('r1', T0 + 100), 'r2': make_recovery('r2', T0 + 150)}
        metrics = collector.collect(hosts, problems, [], recovery, {}, period)
        assert metrics['hosts'][0]['downtime_minutes'] == pytest.approx(150 / 60)
        assert metrics['availability']['overall_pct'] == pytest.approx(85.0)

    def test_acks_and_recovery(self, collector):
        period = Period(T0, T0 + 10_000, 'janela')
        problems = [make_problem('e1', T0, ['10'], r_eventid='r1', acks=(T0 + 30, T0 + 90))]
        metrics = collector.collect([make_host('10')], problems, [], {'r1': make_recovery('r1', T0 + 600)},
                                    {}, period)
        assert metrics['kpis']['detection_minutes'] == pytest.approx(0.5)
        assert metrics['kpis']['response_minutes'] == pytest.approx(1.5)
        assert metrics['kpis']['resolution_minutes'] == pytest.approx(10.0)

    def test_group_availability_over_active_hosts(self, collector):
        period = Period(T0, T0 + 1000, 'janela')
        hosts = [
            make_host('A', groups=[GROUP]),
            make_host('B', groups=[GROUP]),
            make_host('C', groups=[GROUP], status='1'),
        ]
        problems = [
            make_problem('e1', T0, ['A'], r_eventid='r1'),
            make_problem('e2', T0, ['C']),
        ]
        metrics = collector.collect(hosts, problems, [{'groupid': '1', 'name': 'Lojas'}],
                                    {'r1': make_recovery('r1', T0 + 100)}, {}, period, include_groups=True)
        summary = _summary(metrics, '1')
        assert summary['hosts'] == 2
        assert summary['inactive_hosts'] == 1
        assert summary['availability_pct'] == pytest.approx(95.0)
        assert metrics['availability']['overall_pct'] == pytest.approx(95.0)
        assert metrics['group_totals']['host_count'] == 2
        assert metrics['group_totals']['inactive_hosts'] == 1

    def test_reachability_uses_classified_incidents_only(self, collector):
        period = Period(T0, T0 + 1000, 'janela')
        triggers = build_trigger_type_map([
            make_trigger('t1', ['icmpping']),
            make_trigger('t2', ['snmptrap']),
        ])
        problems = [
            make_problem('e1', T0, ['10'], r_eventid='r1', objectid='t1'),
            make_problem('e2', T0, ['20'], r_eventid='r2', objectid='t2'),
        ]
        recovery = {'r1': make_recovery('r1', T0 + 100), 'r2': make_recovery('r2', T0 + 300)}
        metrics = collector.collect([make_host('10'), make_host('20')], problems, [], recovery,
                                    triggers, period)
        assert metrics['reachability']['overall_pct'] == pytest.approx(100 * (2000 - 100) / 2000)
        assert metrics['availability']['overall_pct'] == pytest.approx(100 * (2000 - 400) / 2000)


class TestCounting:
    def test_incident_opened_before_period_counts_downtime_only(self, collector):
        period = Period(T0, T0 + 1000, 'janela')
        problems = [make_problem('e1', T0 - 500, ['10'], r_eventid='r1', severity=4)]
        metrics = collector.collect([make_host('10')], problems, [], {'r1': make_recovery('r1', T0 + 200)},
                                    {}, period)
        assert metrics['group_totals']['alerts'] == 0
        assert sum(s['count'] for s in metrics['severity_summary']) == 0
        assert metrics['hosts'][0]['availability_pct'] == pytest.approx(80.0)
        assert metrics['hosts'][0]['event_count'] == 0

    def test_group_alerts_deduplicated_by_event(self, collector, business_day):
        hosts = [make_host('10', groups=[GROUP]), make_host('20', groups=[GROUP])]
        problems = [make_problem('e1', T0, ['10', '20'], severity=4)]
        metrics = collector.collect(hosts, problems, [{'groupid': '1', 'name': 'Lojas'}], {}, {},
                                    business_day, include_groups=True)
        summary = _summary(metrics, '1')
        assert summary['alerts'] == 1
        assert summary['open_alerts'] == 1
        assert summary['event_ids'] == ['e1']
        high = next(s for s in summary['severity_summary'] if s['severity'] == 4)
        assert high['count'] == 1
        assert metrics['group_totals']['alerts'] == 1
        assert [h['event_count'] for h in metrics['hosts']] == [1, 1]

    def test_impact_requires_disaster_in_business_hours_above_threshold(self, collector, business_day):
        hosts = [make_host('10')]
        problems = [
            make_problem('long', T0, ['10'], severity=5, r_eventid='r1'),
            make_problem('short', T0 + 7200, ['10'], severity=5, r_eventid='r2'),
            make_problem('night', utc_ts(2026, 10, 5, 2), ['10'], severity=5, r_eventid='r3'),
            make_problem('high', T0, ['10'], severity=4, r_eventid='r4'),
        ]
        recovery = {
            'r1': make_recovery('r1', T0 + 90 * 60),
            'r2': make_recovery('r2', T0 + 7200 + 30 * 60),
            'r3': make_recovery('r3', utc_ts(2026, 10, 5, 4)),
            'r4': make_recovery('r4', T0 + 3 * 3600),
        }
        metrics = collector.collect(hosts, problems, [], recovery, {}, business_day)
        assert metrics['group_totals']['impact_incidents'] == 1
        assert {a['event_id'] for a in metrics['critical_alerts']} == {'long', 'short', 'night'}
        night = next(a for a in metrics['critical_alerts'] if a['event_id'] == 'night')
        assert night['business_minutes'] == 0

    def test_accuracy_markers(self, collector, business_day):
        problems = [
            make_problem('e1', T0, ['10'], name='Falso positivo no link'),
            make_problem('e2', T0, ['10'], tags=[{'tag': 'class', 'value': 'fn'}]),
            make_problem('e3', T0, ['10']),
            make_problem('e4', T0, ['10']),
        ]
        metrics = collector.collect([make_host('10')], problems, [], {}, {}, business_day)
        assert metrics['accuracy']['false_positive_pct'] == pytest.approx(25.0)
        assert metrics['accuracy']['false_negative_pct'] == pytest.approx(25.0)
        assert metrics['accuracy']['precision_pct'] == pytest.approx(50.0)

    def test_zero_duration_incident_counts_as_alert(self, collector, business_day):
        hosts = [make_host('10', groups=[GROUP])]
        problems = [make_problem('e1', T0, ['10'], severity=4, r_eventid='r1')]
        metrics = collector.collect(hosts, problems, [{'groupid': '1', 'name': 'Lojas'}],
                                    {'r1': make_recovery('r1', T0)}, {}, business_day, include_groups=True)
        assert metrics['group_totals']['alerts'] == 1
        assert metrics['group_totals']['open_alerts'] == 0
        high = next(s for s in metrics['severity_summary'] if s['severity'] == 4)
        assert high['count'] == 1
        host = metrics['hosts'][0]
        assert host['event_count'] == 1
        assert host['downtime_minutes'] == 0
        assert host['availability_pct'] == pytest.approx(100.0)
        assert metrics['availability']['overall_pct'] == pytest.approx(100.0)
        summary = _summary(metrics, '1')
        assert summary['alerts'] == 1
        assert summary['alert_details'][0]['closed_at'] == '2026-10-05T10:00:00Z'
        assert summary['availability_insights']['top_alerts'] == []

    def test_malformed_clock_or_severity_contributes_nothing(self, collector, business_day):
        bad_clock = make_problem('e1', T0, ['10'], severity=5)
        bad_clock['clock'] = 'nunca'
        bad_severity = make_problem('e2', T0, ['10'], severity='alta', r_eventid='r2')
        metrics = collector.collect([make_host('10', groups=[GROUP])], [bad_clock, bad_severity],
                                    [{'groupid': '1', 'name': 'Lojas'}],
                                    {'r2': make_recovery('r2', T0 + 600)}, {}, business_day,
                                    include_groups=True)
        assert metrics['group_totals']['alerts'] == 1
        assert sum(s['count'] for s in metrics['severity_summary']) == 0
        assert metrics['critical_alerts'] == []
        assert metrics['hosts'][0]['downtime_minutes'] == pytest.approx(10.0)
        summary = _summary(metrics, '1')
        assert summary['event_ids'] == ['e2']
        assert summary['event_severities'] == []
        assert summary['alert_details'][0]['severity'] is None

    def test_closed_at_is_the_real_recovery_time(self, collector, business_day):
        hosts = [make_host('10', groups=[GROUP])]
        problems = [
            make_problem('lost', T0, ['10'], severity=5, r_eventid='r-missing'),
            make_problem('late', T0 + 3600, ['10'], severity=5, r_eventid='r2'),
        ]
        recovery = {'r2': make_recovery('r2', utc_ts(2026, 10, 6, 3))}
        metrics = collector.collect(hosts, problems, [{'groupid': '1', 'name': 'Lojas'}], recovery, {},
                                    business_day, include_groups=True)
        critical = {a['event_id']: a for a in metrics['critical_alerts']}
        assert critical['lost']['is_open'] is False
        assert critical['lost']['closed_at'] is None
        assert critical['late']['closed_at'] == '2026-10-06T03:00:00Z'
        details = {d['event_id']: d for d in _summary(metrics, '1')['alert_details']}
        assert details['lost']['closed_at'] is None
        assert details['late']['closed_at'] == '2026-10-06T03:00:00Z'
        top = {a['event_id']: a for a in _summary(metrics, '1')['availability_insights']['top_alerts']}
        assert top['lost']['closed_at'] is None
        assert top['late']['closed_at'] == '2026-10-06T03:00:00Z'

    def test_unknown_group_raises(self, collector, business_day):
        with pytest.raises(GroupNotFound):
            collector.collect([], [], [{'groupid': '1', 'name': 'Lojas'}], {}, {}, business_day, group_id='99')

    def test_meta(self, collector, business_day):
        metrics = collector.collect([], [], [{'groupid': '1', 'name': 'Lojas'}], {}, {}, business_day,
                                    group_id='1')
        assert metrics['meta']['group_name'] == 'Lojas'
        assert metrics['meta']['business_window'] == '7h-23:59 (UTC)'
        assert metrics['meta']['period_start'] == '2026-10-05T00:00:00Z'
        assert metrics['availability']['overall_pct'] == 100.0


class TestGroupInsights:
    def test_top_hosts_and_alerts(self, collector, business_day):
        hosts = [make_host('10', groups=[GROUP]), make_host('20', groups=[GROUP])]
        triggers = build_trigger_type_map([make_trigger('t1', ['icmpping'])])
        problems = [
            make_problem('e1', T0, [('10', 'loja-a')], objectid='t1', r_eventid='r1'),
            make_problem('e2', T0, [('20', 'loja-b')], r_eventid='r2'),
        ]
        recovery = {'r1': make_recovery('r1', T0 + 3600), 'r2': make_recovery('r2', T0 + 1800)}
        metrics = collector.collect(hosts, problems, [{'groupid': '1', 'name': 'Lojas'}], recovery,
                                    triggers, business_day, include_groups=True)
        summary = _summary(metrics, '1')

        availability = summary['availability_insights']
        assert availability['window_type'] == 'business'
        assert availability['group_downtime_minutes'] == pytest.approx(90.0)
        assert [h['hostid'] for h in availability['top_hosts']] == ['10', '20']
        shares = [h['share_of_group_window_downtime_pct'] for h in availability['top_hosts']]
        assert shares == [pytest.approx(200 / 3), pytest.approx(100 / 3)]
        assert [a['event_id'] for a in availability['top_alerts']] == ['e1', 'e2']

        reach = summary['reachability_insights']
        assert [h['hostid'] for h in reach['top_hosts']] == ['10']
        assert reach['top_hosts'][0]['share_of_group_window_downtime_pct'] == pytest.approx(100.0)
        assert reach['top_alerts'][0]['alert_type'] == 'ICMP'
        assert reach['top_alerts'][0]['item_keys'] == ['icmpping']

        overall = summary['reachability_overall_insights']
        assert overall['window_type'] == 'overall'
        assert overall['window_label'] == 'Periodo completo'

    def test_summaries_restricted_to_selection(self, collector, business_day):
        hosts = [
            make_host('10', groups=[('1', 'Lojas')]),
            make_host('20', groups=[('2', 'Centro de Dados')]),
        ]
        groups = [{'groupid': '1', 'name': 'Lojas'}, {'groupid': '2', 'name': 'Centro de Dados'}]
        metrics = collector.collect(hosts, [], groups, {}, {}, business_day,
                                    group_ids=['2'], include_groups=True)
        assert [s['groupid'] for s in metrics['group_summaries']] == ['2']

        everything = collector.collect(hosts, [], groups, {}, {}, business_day, include_groups=True)
        assert [s['name'] for s in everything['group_summaries']] == ['Centro de Dados', 'Lojas']


class TestHostHelpers:
    def test_is_active_host(self):
        assert is_active_host({'status': '0'})
        assert is_active_host({})
        assert not is_active_host({'status': '1'})

    def test_classify_host(self):
        assert classify_host(make_host('1', name='SRV-DB-01')) == 'servers'
        assert classify_host(make_host('2', name='sw-core', groups=[('9', 'Switches')])) == 'network'
        assert classify_host(make_host('3', name='camera-portaria')) == 'others'

    def test_detect_false_classification(self):
        assert detect_false_classification({'name': 'Link down', 'acknowledges': [{'message': 'FP, ignorar'}]}) == 'fp'
        assert detect_false_classification({'name': 'falso negativo'}) == 'fn'
        assert detect_false_classification({'name': 'CPU alta'}) == 'tp'
