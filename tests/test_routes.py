import pytest

from slametrics import create_app
from slametrics.services import ReportService

from factories import FakeDataSource, make_host, make_problem, make_recovery, make_trigger, utc_ts

T0 = utc_ts(2026, 9, 8, 10)


@pytest.fixture
def data_source():
    return FakeDataSource(
        groups=[{'groupid': '2', 'name': 'Centro de Dados'}, {'groupid': '1', 'name': 'Lojas'}],
        hosts=[make_host('10', name='loja-a', groups=[('1', 'Lojas')])],
        problems=[make_problem('e1', T0, [('10', 'loja-a')], objectid='t1', r_eventid='r1', severity=5)],
        recovery=[make_recovery('r1', T0 + 3600)],
        triggers=[make_trigger('t1', ['icmpping'])],
    )


@pytest.fixture
def client(engine_config, data_source):
    app = create_app(report_service=ReportService(engine_config, data_source),
                     config_overrides={'TESTING': True})
    return app.test_client()


def test_host_groups(client):
    resp = client.get('/api/host-groups')
    assert resp.status_code == 200
    assert [g['name'] for g in resp.get_json()['groups']] == ['Centro de Dados', 'Lojas']


def test_metrics(client):
    resp = client.get('/api/metrics?month=2026-09&groupId=1')
    assert resp.status_code == 200
    metrics = resp.get_json()['metrics']
    assert metrics['meta']['period'] == 'setembro 2026'
    assert metrics['group_totals']['alerts'] == 1


def test_metrics_without_month_uses_current_month(client):
    resp = client.get('/api/metrics')
    assert resp.status_code == 200
    assert 'metrics' in resp.get_json()


def test_group_metrics(client):
    resp = client.get('/api/group-metrics?month=2026-09&groupIds=1')
    assert resp.status_code == 200
    assert [g['groupid'] for g in resp.get_json()['groups']] == ['1']


@pytest.mark.parametrize('url, status', [
    ('/api/metrics?month=setembro', 400),
    ('/api/metrics?month=2026-09&groupId=404', 404),
    ('/api/reports/reachability-alerts?month=2026-09', 400),
    ('/api/reports/reachability-alerts?month=2026-09&groupId=1&window=noite', 400),
    ('/api/reports/reachability-alerts?month=2026-09&groupId=1&page=abc', 400),
    ('/api/reports/group-alerts?group=Lojas', 400),
    ('/api/reports/group-alerts?group=Outro&start=2026-09-01&end=2026-09-30', 404),
])
def test_errors_are_json(client, url, status):
    resp = client.get(url)
    assert resp.status_code == status
    assert 'error' in resp.get_json()


def test_reachability_json(client):
    resp = client.get('/api/reports/reachability-alerts?month=2026-09&groupId=1&pageSize=10')
    assert resp.status_code == 200
    data = resp.get_json()
    assert data['total'] == 1
    assert data['page_size'] == 10
    assert data['alerts'][0]['event_id'] == 'e1'


def test_reachability_csv(client):
    resp = client.get('/api/reports/reachability-alerts?month=2026-09&groupId=all&format=csv')
    assert resp.status_code == 200
    assert resp.mimetype == 'text/csv'
    assert 'charset=utf-8' in resp.headers['Content-Type']
    disposition = resp.headers['Content-Disposition']
    assert disposition.startswith('attachment')
    assert 'reachability-alerts-all-2026-09-business.csv' in disposition
    body = resp.get_data(as_text=True)
    assert body.startswith('\ufeffhost_group,')
    assert 'Lojas,e1,' in body


def test_group_alerts(client):
    resp = client.get('/api/reports/group-alerts?group=lojas&start=2026-09-01&end=2026-09-30')
    assert resp.status_code == 200
    assert [a['event_id'] for a in resp.get_json()['alerts']] == ['e1']


def test_host_roster(client, data_source):
    resp = client.get('/api/host-roster?groupIds=1, ,2')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['total'] == 1
    assert body['hosts'][0] == {
        'hostid': '10', 'name': 'loja-a', 'status': '0', 'groups': ['Lojas'], 'interfaces': [], 'proxy': '',
    }
    assert data_source.called('fetch_host_roster') == [(['1', '2'],)]


def test_open_problems_and_daily_dashboard(client):
    assert client.get('/api/open-problems').status_code == 200
    assert client.get('/api/daily-dashboard').status_code == 200


def test_zabbix_failure_maps_to_502(engine_config):
    app = create_app(report_service=ReportService(engine_config, FakeDataSource(error='timeout')))
    resp = app.test_client().get('/api/host-groups')
    assert resp.status_code == 502
    assert resp.get_json() == {'error': 'timeout'}


def test_missing_configuration_maps_to_503(monkeypatch):
    for name in ('ZABBIX_API_URL', 'ZABBIX_API_ENDPOINT', 'ZABBIX_API_TOKEN'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr('slametrics.load_dotenv', lambda: False)
    app = create_app()
    resp = app.test_client().get('/api/host-groups')
    assert resp.status_code == 503
    assert 'ZABBIX_API_URL' in resp.get_json()['error']


def test_invalid_dashboard_settings_map_to_503(monkeypatch):
    monkeypatch.setenv('ZABBIX_API_URL', 'http://z/api_jsonrpc.php')
    monkeypatch.setenv('ZABBIX_API_TOKEN', 'tok')
    monkeypatch.setenv('DASHBOARD_SHIFT_STEP_MINUTES', '0')
    monkeypatch.setattr('slametrics.load_dotenv', lambda: False)
    app = create_app()
    resp = app.test_client().get('/api/host-roster')
    assert resp.status_code == 503
    assert 'shift_step_minutes' in resp.get_json()['error']
