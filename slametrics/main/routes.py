# slametrics/main/routes.py
import datetime as dt
import uuid

from flask import Response, current_app, g, jsonify, request

from . import main
from slametrics.errors import InvalidParameter, ServiceUnavailable, SlaMetricsError


def _service():
    service = current_app.extensions.get('report_service')
    if service is None:
        erro = current_app.config.get('ZABBIX_CONFIG_ERROR') or 'Zabbix nao configurado.'
        raise ServiceUnavailable(erro)
    return service


def _current_month(service):
    return dt.datetime.now(tz=service.resolver.tz).strftime('%Y-%m')


def _split_ids(raw):
    if not raw:
        return None
    ids = [part.strip() for part in raw.split(',') if part.strip()]
    return ids or None


def _int_arg(name, default):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidParameter(f"Parametro {name} invalido: '{raw}'.")


@main.before_app_request
def assign_request_id():
    g.request_id = uuid.uuid4().hex[:8]


@main.app_errorhandler(SlaMetricsError)
def handle_sla_error(exc):
    rid = getattr(g, 'request_id', '-')
    if exc.status_code >= 500:
        current_app.logger.error(f"[{rid}] {request.path}: {exc.message}")
    else:
        current_app.logger.info(f"[{rid}] {request.path}: {exc.message}")
    return jsonify({'error': exc.message}), exc.status_code


@main.route('/api/metrics')
def metrics():
    service = _service()
    month = request.args.get('month') or _current_month(service)
    data = service.dashboard_metrics(
        month,
        group_id=request.args.get('groupId') or None,
        group_ids=_split_ids(request.args.get('groupIds')),
    )
    return jsonify({'metrics': data})


@main.route('/api/group-metrics')
def group_metrics():
    service = _service()
    month = request.args.get('month') or _current_month(service)
    return jsonify(service.group_overview(month, group_ids=_split_ids(request.args.get('groupIds'))))


@main.route('/api/host-groups')
def host_groups():
    return jsonify({'groups': _service().host_groups()})


@main.route('/api/host-roster')
def host_roster():
    return jsonify(_service().host_roster(_split_ids(request.args.get('groupIds'))))


@main.route('/api/reports/reachability-alerts')
def reachability_alerts():
    service = _service()
    group_id = request.args.get('groupId') or None
    scope = request.args.get('scope') or ('all' if group_id == 'all' else 'group')
    if scope == 'all':
        group_id = None
    window = request.args.get('window') or 'business'
    month = request.args.get('month') or _current_month(service)
    group_ids = _split_ids(request.args.get('groupIds'))

    if (request.args.get('format') or 'json').lower() == 'csv':
        content, filename = service.reachability_csv(month, scope=scope, group_id=group_id,
                                                     group_ids=group_ids, window=window)
        return Response(content, mimetype='text/csv',
                        headers={'Content-Disposition': f'attachment; filename="{filename}"'})

    report = service.reachability_report(
        month, scope=scope, group_id=group_id, group_ids=group_ids, window=window,
        page=_int_arg('page', 1), page_size=_int_arg('pageSize', 25))
    return jsonify(report)


@main.route('/api/reports/group-alerts')
def group_alerts():
    service = _service()
    group = request.args.get('group')
    start = request.args.get('start')
    end = request.args.get('end')
    if not group or not start or not end:
        raise InvalidParameter('Parametros group, start e end sao obrigatorios.')
    return jsonify(service.group_alert_report(group, start, end))


@main.route('/api/open-problems')
def open_problems():
    return jsonify(_service().open_problems())


@main.route('/api/daily-dashboard')
def daily_dashboard():
    return jsonify(_service().daily_dashboard())
