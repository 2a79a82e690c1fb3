"""
Busca no Zabbix e montagem dos relatorios.

ZabbixDataSource concentra as chamadas a API (lotes de ids em paralelo,
paginacao reversa de eventos). ReportService resolve o periodo, dispara as
buscas em paralelo, junta os resultados e entrega aos coletores.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor

from .collectors.alert_classifier import build_trigger_type_map
from .collectors.daily_collector import DailyCollector
from .collectors.dashboard_collector import DashboardCollector
from .collectors.group_alert_collector import GroupAlertCollector, find_group_by_name
from .collectors.host_roster_collector import HostRosterCollector, proxy_id_of
from .collectors.open_problems_collector import OpenProblemsCollector
from .collectors.reachability_collector import DEFAULT_PAGE_SIZE, SCOPES, WINDOWS, ReachabilityCollector
from .collectors.shared import has_recovery, to_number, trigger_id_of
from .collectors.time_window import TimeWindowResolver
from .config import EngineConfig
from .errors import GroupNotFound, InvalidParameter
from .zabbix_api import ZabbixClient, obter_config_e_token_zabbix

logger = logging.getLogger(__name__)

# Registry of collectors
COLLECTOR_MAP = {
    'dashboard': DashboardCollector,
    'reachability': ReachabilityCollector,
    'group_alerts': GroupAlertCollector,
    'open_problems': OpenProblemsCollector,
    'daily': DailyCollector,
    'host_roster': HostRosterCollector,
}

PROBLEM_OUTPUT = ['eventid', 'r_eventid', 'objectid', 'clock', 'ns', 'name', 'severity', 'acknowledged']
HOST_OUTPUT = ['hostid', 'name', 'status']
HOST_INVENTORY = ['type', 'type_full', 'hardware', 'os', 'alias']


def _unique(values):
    seen = []
    marker = set()
    for v in values:
        if v and v not in marker:
            marker.add(v)
            seen.append(v)
    return seen


class ZabbixDataSource:
    def __init__(self, client, config):
        self.client = client
        self.config = config

    def _iter_chunks(self, seq, size):
        for i in range(0, len(seq), size):
            yield seq[i:i + size]

    def _fan_out(self, method, ids, build_params):
        """Uma chamada por lote de ids, no maximo `max_workers` simultaneas."""
        ids = _unique(str(i) for i in ids or [] if i)
        if not ids:
            return []
        batches = list(self._iter_chunks(ids, self.config.batch_size))
        if len(batches) == 1:
            return list(self.client.call(method, build_params(batches[0])) or [])
        with ThreadPoolExecutor(max_workers=min(self.config.max_workers, len(batches))) as pool:
            futures = [pool.submit(self.client.call, method, build_params(b)) for b in batches]
            results = []
            for fut in futures:
                results.extend(fut.result() or [])
        return results

    # -------------------- Host groups / hosts --------------------
    def fetch_host_groups(self):
        return self.client.call('hostgroup.get', {
            'output': ['groupid', 'name'],
            'real_hosts': 1,
            'sortfield': 'name',
        }) or []

    def fetch_hosts(self, group_ids=None):
        params = {
            'output': HOST_OUTPUT,
            'selectInventory': HOST_INVENTORY,
            'selectTags': ['tag', 'value'],
            'selectGroups': ['groupid', 'name'],
            'selectInterfaces': ['ip', 'dns', 'port'],
            'limit': self.config.host_limit,
        }
        if group_ids:
            params['groupids'] = list(group_ids)
        return self.client.call('host.get', params) or []

    def fetch_host_roster(self, group_ids=None):
        # extend: o campo do proxy mudou de nome (proxy_hostid -> proxyid) no Zabbix 7.0
        params = {
            'output': 'extend',
            'selectGroups': ['groupid', 'name'],
            'selectInterfaces': ['ip', 'dns', 'port'],
            'sortfield': 'name',
            'limit': self.config.host_limit,
        }
        if group_ids:
            params['groupids'] = list(group_ids)
        return self.client.call('host.get', params) or []

    def fetch_proxies_by_ids(self, proxy_ids):
        return self._fan_out('proxy.get', proxy_ids, lambda batch: {
            'output': 'extend',
            'proxyids': batch,
        })

    def fetch_hosts_by_ids(self, host_ids):
        return self._fan_out('host.get', host_ids, lambda batch: {
            'output': HOST_OUTPUT,
            'selectInventory': HOST_INVENTORY,
            'selectTags': ['tag', 'value'],
            'selectGroups': ['groupid', 'name'],
            'selectInterfaces': ['ip'],
            'hostids': batch,
        })

    # -------------------- Eventos --------------------
    def fetch_problems(self, group_ids, time_from, time_till):
        """Eventos PROBLEM em [time_from, time_till], paginando do mais recente para o mais antigo."""
        page_size = self.config.problem_limit
        cursor = int(time_till)
        collected = []
        seen = set()
        for _ in range(self.config.problem_max_pages):
            params = {
                'output': PROBLEM_OUTPUT,
                'selectHosts': ['hostid', 'name'],
                'selectTags': ['tag', 'value'],
                'select_acknowledges': 'extend',
                'time_from': int(time_from),
                'time_till': cursor,
                'source': 0,
                'object': 0,
                'value': 1,
                'limit': page_size,
                'sortfield': 'clock',
                'sortorder': 'DESC',
            }
            if group_ids:
                params['groupids'] = list(group_ids)
            batch = self.client.call('event.get', params) or []
            for ev in batch:
                eid = str(ev.get('eventid'))
                if eid not in seen:
                    seen.add(eid)
                    collected.append(ev)
            if len(batch) < page_size:
                break
            clocks = [c for c in (to_number(ev.get('clock')) for ev in batch) if not math.isnan(c)]
            if not clocks:
                break
            # reinicia no clock mais antigo da pagina; eventos repetidos caem no dedup por eventid
            next_cursor = int(min(clocks))
            if next_cursor >= cursor:
                next_cursor = cursor - 1
            if next_cursor < time_from:
                break
            cursor = next_cursor
        else:
            logger.warning('Limite de %d paginas atingido em event.get; incidentes mais antigos foram ignorados.',
                           self.config.problem_max_pages)
        logger.debug('event.get: %d incidentes entre %s e %s', len(collected), time_from, time_till)
        return collected

    def fetch_problems_by_ids(self, event_ids):
        return self._fan_out('event.get', event_ids, lambda batch: {
            'output': PROBLEM_OUTPUT,
            'selectHosts': ['hostid', 'name'],
            'selectTags': ['tag', 'value'],
            'select_acknowledges': 'extend',
            'eventids': batch,
            'source': 0,
            'object': 0,
        })

    def fetch_recovery_events(self, event_ids):
        events = self._fan_out('event.get', event_ids, lambda batch: {
            'output': ['eventid', 'clock', 'ns'],
            'eventids': batch,
        })
        return {str(ev.get('eventid')): ev for ev in events}

    def fetch_resolved_events_in_range(self, time_from, time_till):
        return self.client.call('event.get', {
            'output': ['eventid', 'clock', 'ns', 'r_eventid'],
            'time_from': int(time_from),
            'time_till': int(time_till),
            'source': 0,
            'object': 0,
            'value': 0,
            'limit': self.config.resolved_event_limit,
        }) or []

    def fetch_current_problems(self):
        return self.client.call('problem.get', {
            'output': ['eventid', 'name', 'clock', 'severity', 'acknowledged', 'r_eventid'],
            'selectHosts': ['hostid', 'name'],
            'selectTags': 'extend',
            'select_acknowledges': 'extend',
            'recent': True,
            'limit': self.config.open_problem_limit,
        }) or []

    def fetch_triggers_by_ids(self, trigger_ids):
        return self._fan_out('trigger.get', trigger_ids, lambda batch: {
            'output': ['triggerid', 'description', 'comments'],
            'selectItems': ['itemid', 'key_', 'name'],
            'triggerids': batch,
        })


class ReportService:
    """Resolve periodo, busca os dados e chama o coletor de cada relatorio."""

    def __init__(self, config, data_source, max_workers=4):
        self.config = config
        self.data_source = data_source
        self.max_workers = max(1, int(max_workers))
        self.resolver = TimeWindowResolver(config)

    def _collector(self, name, options=None):
        return COLLECTOR_MAP[name](self.config, options=options, resolver=self.resolver)

    def _gather(self, **calls):
        """Executa as buscas independentes em paralelo; a primeira falha aborta tudo."""
        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(calls)))) as pool:
            futures = {name: pool.submit(fn, *args) for name, (fn, *args) in calls.items()}
            return {name: fut.result() for name, fut in futures.items()}

    def _problem_window(self, period):
        return max(0, period.start - self.config.problem_lookback_seconds), period.end

    def _recovery_ids(self, problems):
        return [str(p.get('r_eventid')) for p in problems if has_recovery(p)]

    def _trigger_ids(self, problems):
        return [tid for tid in (trigger_id_of(p) for p in problems) if tid]

    def _missing_hosts(self, hosts, problems):
        known = {str(h.get('hostid')) for h in hosts}
        return _unique(
            str(h.get('hostid'))
            for p in problems for h in (p.get('hosts') or [])
            if h.get('hostid') and str(h.get('hostid')) not in known
        )

    # -------------------- Dashboard --------------------
    def dashboard_metrics(self, month, group_id=None, group_ids=None, include_groups=False, now=None):
        period = self.resolver.resolve_period(month, now=now)
        ids = [str(g) for g in (group_ids or []) if g] or ([str(group_id)] if group_id else None)
        time_from, time_till = self._problem_window(period)
        ds = self.data_source
        fetched = self._gather(
            hosts=(ds.fetch_hosts, ids),
            problems=(ds.fetch_problems, ids, time_from, time_till),
            groups=(ds.fetch_host_groups,),
        )
        hosts, problems, groups = fetched['hosts'], fetched['problems'], fetched['groups']
        if group_id and not any(str(g.get('groupid')) == str(group_id) for g in groups):
            raise GroupNotFound(f'Host group {group_id} nao encontrado no Zabbix.')

        extra = self._gather(
            hosts=(ds.fetch_hosts_by_ids, self._missing_hosts(hosts, problems)),
            recovery=(ds.fetch_recovery_events, self._recovery_ids(problems)),
            triggers=(ds.fetch_triggers_by_ids, self._trigger_ids(problems)),
        )
        known = {str(h.get('hostid')) for h in hosts}
        hosts = list(hosts) + [h for h in extra['hosts'] if str(h.get('hostid')) not in known]
        logger.info('Dashboard %s: %d hosts, %d incidentes', period.label, len(hosts), len(problems))

        return self._collector('dashboard').collect(
            hosts, problems, groups, extra['recovery'], build_trigger_type_map(extra['triggers']),
            period, group_id=group_id, group_ids=group_ids, include_groups=include_groups)

    def group_overview(self, month, group_ids=None, now=None):
        metrics = self.dashboard_metrics(month, group_ids=group_ids, include_groups=True, now=now)
        return {
            'meta': {
                'period': metrics['meta']['period'],
                'generated_at': metrics['meta']['generated_at'],
                'business_window': metrics['meta']['business_window'],
            },
            'kpis': metrics['kpis'],
            'availability': metrics['availability'],
            'reachability': metrics['reachability'],
            'totals': metrics['group_totals'],
            'groups': metrics.get('group_summaries') or [],
            'severity_summary': metrics['severity_summary'],
            'critical_alerts': metrics['critical_alerts'],
        }

    def host_groups(self):
        groups = self.data_source.fetch_host_groups()
        return sorted(
            ({'groupid': str(g.get('groupid')), 'name': g.get('name')} for g in groups),
            key=lambda g: str(g['name'] or '').lower(),
        )

    def host_roster(self, group_ids=None):
        ids = [str(g) for g in (group_ids or []) if g] or None
        ds = self.data_source
        hosts = ds.fetch_host_roster(ids)
        proxies = ds.fetch_proxies_by_ids(_unique(proxy_id_of(h) for h in hosts))
        logger.info('Host roster: %d hosts, %d proxies', len(hosts), len(proxies))
        return self._collector('host_roster').collect(hosts, proxies)

    # -------------------- Alcancabilidade --------------------
    def _reachability_inputs(self, month, scope, group_id, group_ids, window, now):
        if scope not in SCOPES:
            raise InvalidParameter(f"Escopo invalido '{scope}'. Use group ou all.")
        if window not in WINDOWS:
            raise InvalidParameter(f"Janela invalida '{window}'. Use business ou overall.")
        period = self.resolver.resolve_period(month, now=now)
        is_all = scope == 'all' or group_id == 'all'
        if not is_all and not group_id:
            raise InvalidParameter('Parametro groupId obrigatorio.')
        if is_all:
            ids = [str(g) for g in (group_ids or []) if g] or None
        else:
            ids = [str(group_id)]
        time_from, time_till = self._problem_window(period)
        ds = self.data_source
        fetched = self._gather(
            groups=(ds.fetch_host_groups,),
            problems=(ds.fetch_problems, ids, time_from, time_till),
        )
        groups, problems = fetched['groups'], fetched['problems']
        if not is_all and not any(str(g.get('groupid')) == str(group_id) for g in groups):
            raise GroupNotFound(f'Host group {group_id} nao encontrado no Zabbix.')
        host_ids = _unique(str(h.get('hostid')) for p in problems for h in (p.get('hosts') or []) if h.get('hostid'))
        calls = {
            'recovery': (ds.fetch_recovery_events, self._recovery_ids(problems)),
            'triggers': (ds.fetch_triggers_by_ids, self._trigger_ids(problems)),
        }
        if is_all:
            calls['hosts'] = (ds.fetch_hosts_by_ids, host_ids)
        extra = self._gather(**calls)
        return period, groups, problems, extra

    def reachability_report(self, month, scope='group', group_id=None, group_ids=None,
                            window='business', page=1, page_size=DEFAULT_PAGE_SIZE, now=None):
        period, groups, problems, extra = self._reachability_inputs(month, scope, group_id, group_ids, window, now)
        return self._collector('reachability').collect(
            problems, groups, extra['recovery'], build_trigger_type_map(extra['triggers']), period,
            hosts=extra.get('hosts'), scope=scope, group_id=group_id, group_ids=group_ids,
            window=window, page=page, page_size=page_size)

    def reachability_csv(self, month, scope='group', group_id=None, group_ids=None,
                         window='business', now=None):
        """(conteudo CSV, nome do arquivo) com todas as linhas do relatorio."""
        period, groups, problems, extra = self._reachability_inputs(month, scope, group_id, group_ids, window, now)
        collector = self._collector('reachability')
        rows, context = collector.build_rows(
            problems, groups, extra['recovery'], build_trigger_type_map(extra['triggers']), period,
            hosts=extra.get('hosts'), scope=scope, group_id=group_id, group_ids=group_ids, window=window)
        scope_label = 'all' if context['scope'] == 'all' else context['group_id']
        filename = f'reachability-alerts-{scope_label}-{month}-{context["window"]}.csv'
        return collector.to_csv(rows, context['scope']), filename

    # -------------------- Relatorios complementares --------------------
    def group_alert_report(self, group_name, start, end, now=None):
        if not str(group_name or '').strip():
            raise InvalidParameter('Parametro group obrigatorio.')
        period = self.resolver.resolve_range(start, end, now=now)
        ds = self.data_source
        group = find_group_by_name(ds.fetch_host_groups(), group_name)
        if group is None:
            raise GroupNotFound(f'Host group "{group_name}" nao encontrado no Zabbix.')
        gid = [str(group.get('groupid'))]
        fetched = self._gather(
            hosts=(ds.fetch_hosts, gid),
            problems=(ds.fetch_problems, gid, period.start, period.end),
        )
        recovery = ds.fetch_recovery_events(self._recovery_ids(fetched['problems']))
        return self._collector('group_alerts').collect(group, fetched['hosts'], fetched['problems'],
                                                       recovery, period)

    def open_problems(self, now=None):
        ds = self.data_source
        fetched = self._gather(hosts=(ds.fetch_hosts,), problems=(ds.fetch_current_problems,))
        hosts, problems = fetched['hosts'], fetched['problems']
        hosts = list(hosts) + ds.fetch_hosts_by_ids(self._missing_hosts(hosts, problems))
        return self._collector('open_problems').collect(problems, hosts, now=now)

    def daily_dashboard(self, now=None):
        period = self.resolver.current_day(now=now)
        ds = self.data_source
        fetched = self._gather(
            opened=(ds.fetch_problems, None, period.start, period.end),
            resolved=(ds.fetch_resolved_events_in_range, period.start, period.end),
        )
        opened, resolved = fetched['opened'], fetched['resolved']
        problem_ids = _unique(str(ev.get('r_eventid')) for ev in resolved if has_recovery(ev))
        extra = self._gather(
            recovery=(ds.fetch_recovery_events, self._recovery_ids(opened)),
            resolved_problems=(ds.fetch_problems_by_ids, problem_ids),
        )
        return self._collector('daily').collect(period, opened, extra['recovery'], resolved,
                                                extra['resolved_problems'], now=now)


def build_report_service(environ=None):
    """(ReportService, None) ou (None, erro) a partir do ambiente."""
    zabbix_config, erro = obter_config_e_token_zabbix(environ)
    if erro:
        return None, erro
    try:
        engine_config = EngineConfig.from_env(environ)
        data_source = ZabbixDataSource(ZabbixClient(zabbix_config), zabbix_config)
        service = ReportService(engine_config, data_source, max_workers=zabbix_config.max_workers)
    except ValueError as exc:
        logger.error('Configuracao do dashboard invalida: %s', exc)
        return None, f'Configuracao invalida: {exc}'
    return service, None
