"""
Metricas do dashboard: KPIs, disponibilidade/alcancabilidade, severidades,
tabela de hosts, categorias, acuracia, alertas criticos e resumo por grupo.

Regras de contagem:
- alertas (e histograma de severidade) contam incidentes que abrem dentro
  do periodo; em grupos a contagem e deduplicada por event id;
- downtime e KPIs usam apenas incidentes com sobreposicao positiva com o
  periodo (inicio recortado no inicio do periodo);
- disponibilidade agregada usa o modelo host-segundos sobre hosts ativos.
"""

import datetime as dt
import re
from dataclasses import dataclass, field

from ..errors import GroupNotFound
from .alert_classifier import alert_info_for, is_reachability_alert
from .base_collector import BaseCollector
from .downtime import (
    ALL, REACHABILITY, DowntimeAccumulator, aggregate_availability, availability, host_availability,
)
from .kpi import KpiSamples, extract_kpis
from .shared import (
    MAX_SEVERITY, create_severity_counter, parse_severity, percentage,
    severity_summary, to_number, trigger_id_of,
)

HOST_CATEGORIES = [
    ('servers', 'Servidores', [r'server', r'servidor', r'srv', r'vm', r'db']),
    ('endpoints', 'Endpoints', [r'notebook', r'desktop', r'endpoint', r'workstation', r'pc']),
    ('network', 'Dispositivos de Rede', [r'switch', r'router', r'firewall', r'wifi', r'ap', r'gw']),
]
DEFAULT_CATEGORY = ('others', 'IoT/Outros', [])
_CATEGORY_PATTERNS = [
    (cid, label, [re.compile(p, re.IGNORECASE) for p in patterns])
    for cid, label, patterns in HOST_CATEGORIES
]

_FP_RE = re.compile(r'\bfp\b')
_FN_RE = re.compile(r'\bfn\b')


def is_active_host(host):
    # status: 0 = monitorado, 1 = desabilitado
    status = host.get('status')
    return status is None or str(status) == '0'


def classify_host(host):
    inventory = host.get('inventory') or {}
    if not isinstance(inventory, dict):
        inventory = {}
    parts = [
        host.get('name'),
        inventory.get('type_full'),
        inventory.get('type'),
        inventory.get('hardware'),
        inventory.get('alias'),
    ]
    parts += [f"{t.get('tag')}:{t.get('value')}" for t in (host.get('tags') or [])]
    parts += [g.get('name') for g in (host.get('groups') or [])]
    haystack = ' '.join(str(p) for p in parts if p).lower()
    for cid, label, patterns in _CATEGORY_PATTERNS:
        if any(p.search(haystack) for p in patterns):
            return cid
    return DEFAULT_CATEGORY[0]


def detect_false_classification(problem):
    """'fp', 'fn' ou 'tp' conforme marcadores no nome, tags ou mensagens de ack."""
    parts = [problem.get('name')]
    parts += [f"{t.get('tag')}:{t.get('value')}" for t in (problem.get('tags') or [])]
    parts += [a.get('message') or '' for a in (problem.get('acknowledges') or [])]
    haystack = ' '.join(str(p) for p in parts if p).lower()
    if 'falso positivo' in haystack or 'false positive' in haystack or _FP_RE.search(haystack):
        return 'fp'
    if 'falso negativo' in haystack or 'false negative' in haystack or _FN_RE.search(haystack):
        return 'fn'
    return 'tp'


def _sort_name(value):
    return str(value or '').lower()


@dataclass
class IncidentImpact:
    problem: dict
    kpis: object
    alert_type: str
    item_keys: tuple
    reachability: bool
    business_seconds: float
    host_ids: set = field(default_factory=set)


@dataclass
class GroupAccumulator:
    group: dict
    host_ids: set = field(default_factory=set)
    active_host_ids: set = field(default_factory=set)
    inactive_host_ids: set = field(default_factory=set)
    severity_counter: dict = field(default_factory=create_severity_counter)
    event_ids: set = field(default_factory=set)
    open_event_ids: set = field(default_factory=set)
    impact_event_ids: set = field(default_factory=set)
    event_severities: dict = field(default_factory=dict)
    samples: KpiSamples = field(default_factory=KpiSamples)
    sampled_event_ids: set = field(default_factory=set)
    incidents: dict = field(default_factory=dict)
    alert_details: dict = field(default_factory=dict)

    def add_host(self, host_id, active):
        if host_id in self.host_ids:
            return
        self.host_ids.add(host_id)
        if active:
            self.active_host_ids.add(host_id)
        else:
            self.inactive_host_ids.add(host_id)


class DashboardCollector(BaseCollector):
    """Monta o dict de metricas do dashboard a partir dos dados brutos do Zabbix."""

    def collect(self, hosts, problems, host_groups, recovery_map, trigger_types, period,
                group_id=None, group_ids=None, include_groups=False):
        groups_by_id = {str(g.get('groupid')): g for g in (host_groups or []) if g.get('groupid')}
        selected_group = None
        if group_id:
            selected_group = groups_by_id.get(str(group_id))
            if selected_group is None:
                raise GroupNotFound(f'Host group {group_id} nao encontrado no Zabbix.')

        start, end = period.start, period.end
        period_seconds = period.seconds
        period_split = self.resolver.split_by_shift(start, end)
        allow_list = self.config.reachability_alert_types
        threshold = self.config.impact_threshold_minutes * 60

        downtime = DowntimeAccumulator(self.resolver)
        host_names = {}
        host_groups_map = {}
        hosts_by_id = {}
        for host in hosts or []:
            hid = str(host.get('hostid') or '')
            if not hid or hid in hosts_by_id:
                continue
            hosts_by_id[hid] = host
            host_names[hid] = host.get('name') or hid
            host_groups_map[hid] = host.get('groups') or []
        active_ids = {hid for hid, h in hosts_by_id.items() if is_active_host(h)}
        inactive_count = len(hosts_by_id) - len(active_ids)

        accumulators = {}
        if include_groups:
            for gid, group in groups_by_id.items():
                accumulators[gid] = GroupAccumulator(group)
            for hid, host in hosts_by_id.items():
                for g in host_groups_map[hid]:
                    acc = self._accumulator(accumulators, g)
                    if acc is not None:
                        acc.add_host(hid, hid in active_ids)

        samples = KpiSamples()
        host_samples = {}
        host_event_count = {}
        host_open_count = {}
        severity_totals = create_severity_counter()
        alert_ids = set()
        open_ids = set()
        impact_ids = set()
        critical_alerts = []
        false_positives = 0
        false_negatives = 0
        counted = 0

        for problem in problems or []:
            kpis = extract_kpis(problem, recovery_map, start, end)
            if kpis is None:
                continue
            event_id = str(problem.get('eventid') or '')
            clock = to_number(problem.get('clock'))
            inside = start <= clock < end
            severity = parse_severity(problem.get('severity'))
            is_open = kpis.is_open
            info = alert_info_for(problem, trigger_types)
            reach = is_reachability_alert(info, allow_list)
            overlap = kpis.has_overlap
            business_seconds = self.resolver.split_by_shift(kpis.start, kpis.end).business if overlap else 0.0
            impactful = (severity == MAX_SEVERITY and business_seconds > 0
                         and kpis.resolution > threshold)

            problem_hosts = []
            seen = set()
            for h in problem.get('hosts') or []:
                hid = str(h.get('hostid') or '')
                if not hid or hid in seen:
                    continue
                seen.add(hid)
                problem_hosts.append(h)
                if hid not in host_names:
                    host_names[hid] = h.get('name') or hid

            if inside:
                counted += 1
                if severity is not None:
                    severity_totals[severity] = severity_totals.get(severity, 0) + 1
                if event_id:
                    alert_ids.add(event_id)
                    if is_open:
                        open_ids.add(event_id)
                    if impactful:
                        impact_ids.add(event_id)
                marker = detect_false_classification(problem)
                if marker == 'fp':
                    false_positives += 1
                elif marker == 'fn':
                    false_negatives += 1
            if overlap:
                samples.add(kpis)

            for h in problem_hosts:
                hid = str(h.get('hostid'))
                if inside:
                    host_event_count[hid] = host_event_count.get(hid, 0) + 1
                    if is_open:
                        host_open_count[hid] = host_open_count.get(hid, 0) + 1
                if overlap:
                    downtime.add(hid, kpis.start, kpis.end, reachability=reach)
                    host_samples.setdefault(hid, KpiSamples()).add(kpis)
                if include_groups:
                    for g in host_groups_map.get(hid, []):
                        acc = self._accumulator(accumulators, g)
                        if acc is None:
                            continue
                        self._account_group(acc, problem, event_id, kpis, info, reach, severity,
                                            inside, impactful, business_seconds, hid)

            if severity == MAX_SEVERITY and inside:
                critical_alerts.append(self._critical_alert(problem, event_id, kpis, severity,
                                                            business_seconds, problem_hosts,
                                                            host_groups_map))

        active_totals = downtime.sum_totals(active_ids)
        active_reach = downtime.sum_totals(active_ids, REACHABILITY)
        n_active = len(active_ids)
        avail = aggregate_availability(active_totals, n_active, period_seconds,
                                       period_split.business, period_split.off)
        reach_avail = aggregate_availability(active_reach, n_active, period_seconds,
                                             period_split.business, period_split.off)

        averages = samples.averages_minutes()
        true_positives = max(counted - (false_positives + false_negatives), 0)
        metrics = {
            'kpis': dict(averages, availability_pct=avail['overall'],
                         reachability_pct=reach_avail['overall']),
            'availability': {
                'business_pct': avail['business'],
                'off_hours_pct': avail['off_hours'],
                'overall_pct': avail['overall'],
            },
            'reachability': {
                'business_pct': reach_avail['business'],
                'off_hours_pct': reach_avail['off_hours'],
                'overall_pct': reach_avail['overall'],
            },
            'host_categories': self._host_categories(hosts_by_id, downtime, period_seconds),
            'severity_summary': severity_summary(severity_totals),
            'hosts': self._host_metrics(host_names, downtime, host_samples, host_event_count,
                                        host_open_count, period_seconds, period_split),
            'accuracy': {
                'false_positive_pct': percentage(false_positives, counted),
                'false_negative_pct': percentage(false_negatives, counted),
                'precision_pct': percentage(true_positives, counted),
            },
            'totals': {
                'hosts': len(hosts_by_id),
                'coverage_pct': 100.0,
                'sla_pct': avail['overall'],
            },
            'group_totals': {
                'alerts': len(alert_ids),
                'open_alerts': len(open_ids),
                'impact_incidents': len(impact_ids),
                'host_count': n_active,
                'inactive_hosts': inactive_count,
            },
            'critical_alerts': critical_alerts,
            'meta': {
                'period': period.label,
                'period_start': self._iso(start),
                'period_end': self._iso(end),
                'timezone': self.config.timezone,
                'business_window': self.resolver.business_window_label(),
                'group_id': str(group_id) if group_id else None,
                'group_name': selected_group.get('name') if selected_group else None,
                'generated_at': dt.datetime.now(dt.timezone.utc).isoformat().replace('+00:00', 'Z'),
            },
        }
        if include_groups:
            selected = {str(g) for g in (group_ids or []) if g}
            metrics['group_summaries'] = self._group_summaries(
                accumulators, downtime, host_names, period_seconds, period_split, selected)
        self.logger.debug('Dashboard %s: %d hosts, %d incidentes, %d alertas no periodo',
                          period.label, len(hosts_by_id), len(problems or []), counted)
        return metrics

    # -------------------- Grupos --------------------
    def _accumulator(self, accumulators, group):
        gid = str(group.get('groupid') or '')
        if not gid:
            return None
        acc = accumulators.get(gid)
        if acc is None:
            acc = GroupAccumulator({'groupid': gid, 'name': group.get('name') or gid})
            accumulators[gid] = acc
        return acc

    def _account_group(self, acc, problem, event_id, kpis, info, reach, severity,
                       inside, impactful, business_seconds, host_id):
        if not event_id:
            return
        if inside:
            if event_id not in acc.event_ids:
                acc.event_ids.add(event_id)
                if severity is not None:
                    acc.severity_counter[severity] = acc.severity_counter.get(severity, 0) + 1
                    acc.event_severities[event_id] = severity
                acc.alert_details[event_id] = self._alert_detail(problem, event_id, kpis, severity)
            if kpis.is_open:
                acc.open_event_ids.add(event_id)
            if impactful:
                acc.impact_event_ids.add(event_id)
        if not kpis.has_overlap:
            return
        if event_id not in acc.sampled_event_ids:
            acc.sampled_event_ids.add(event_id)
            acc.samples.add(kpis)
        record = acc.incidents.get(event_id)
        if record is None:
            record = IncidentImpact(problem, kpis, info.alert_type, info.item_keys, reach, business_seconds)
            acc.incidents[event_id] = record
        if host_id in acc.active_host_ids:
            record.host_ids.add(host_id)

    def _alert_detail(self, problem, event_id, kpis, severity):
        return {
            'event_id': event_id,
            'name': problem.get('name') or '',
            'severity': severity,
            'opened_at': self._iso(kpis.start),
            'closed_at': self._iso(kpis.recovered_at),
            'first_ack_at': self._iso(kpis.first_ack),
            'second_ack_at': self._iso(kpis.second_ack),
            'detection_minutes': self._optional_minutes(kpis.detection),
            'response_minutes': self._optional_minutes(kpis.response),
            'resolution_minutes': self._minutes(kpis.resolution),
            'hosts': sorted({h.get('name') for h in (problem.get('hosts') or []) if h.get('name')},
                            key=_sort_name),
            'is_open': kpis.is_open,
        }

    def _group_summaries(self, accumulators, downtime, host_names, period_seconds, period_split, selected):
        summaries = []
        for gid, acc in accumulators.items():
            if not acc.host_ids:
                continue
            if selected and gid not in selected:
                continue
            active = acc.active_host_ids
            n_active = len(active)
            totals = downtime.sum_totals(active)
            reach_totals = downtime.sum_totals(active, REACHABILITY)
            avail = aggregate_availability(totals, n_active, period_seconds,
                                           period_split.business, period_split.off)
            reach = aggregate_availability(reach_totals, n_active, period_seconds,
                                           period_split.business, period_split.off)
            summary = {
                'groupid': gid,
                'name': acc.group.get('name') or gid,
                'hosts': n_active,
                'inactive_hosts': len(acc.inactive_host_ids),
                'host_ids': sorted(active),
                'inactive_host_ids': sorted(acc.inactive_host_ids),
                'severity_summary': severity_summary(acc.severity_counter),
                'alerts': len(acc.event_ids),
                'open_alerts': len(acc.open_event_ids),
                'impact_incidents': len(acc.impact_event_ids),
                'event_ids': sorted(acc.event_ids),
                'open_event_ids': sorted(acc.open_event_ids),
                'impact_incident_ids': sorted(acc.impact_event_ids),
                'event_severities': [
                    {'event_id': eid, 'severity': sev}
                    for eid, sev in sorted(acc.event_severities.items())
                ],
                'alert_details': sorted(acc.alert_details.values(),
                                        key=lambda d: d['opened_at'] or ''),
                'availability_pct': avail['overall'],
                'business_availability_pct': avail['business'],
                'reachability_pct': reach['overall'],
                'business_reachability_pct': reach['business'],
                'availability_insights': self._insights(acc, downtime, host_names, ALL, 'business',
                                                        period_seconds, period_split),
                'reachability_insights': self._insights(acc, downtime, host_names, REACHABILITY, 'business',
                                                        period_seconds, period_split),
                'reachability_overall_insights': self._insights(acc, downtime, host_names, REACHABILITY, 'overall',
                                                                period_seconds, period_split),
            }
            summary.update(acc.samples.averages_minutes())
            summaries.append(summary)
        summaries.sort(key=lambda s: _sort_name(s['name']))
        return summaries

    def _insights(self, acc, downtime, host_names, view, window, period_seconds, period_split):
        """Top hosts e top incidentes por contribuicao ao downtime do grupo na janela."""
        business = window == 'business'
        window_seconds = period_split.business if business else period_seconds
        top_n = self.config.top_n

        host_rows = []
        group_window = 0.0
        for hid in acc.active_host_ids:
            totals = downtime.totals(hid, view)
            host_window = totals.business if business else totals.total
            group_window += host_window
            if host_window > 0:
                host_rows.append((hid, host_window, totals.total))

        def share(value):
            return min(100.0, max(0.0, percentage(value, group_window)))

        host_rows.sort(key=lambda r: (-r[1], _sort_name(host_names.get(r[0], r[0]))))
        top_hosts = [
            {
                'hostid': hid,
                'name': host_names.get(hid, hid),
                'window_downtime_minutes': self._minutes(host_window),
                'total_downtime_minutes': self._minutes(total),
                'window_availability_pct': availability(window_seconds, host_window),
                'share_of_group_window_downtime_pct': share(host_window),
            }
            for hid, host_window, total in host_rows[:top_n]
        ]

        alert_rows = []
        for eid, record in acc.incidents.items():
            if view == REACHABILITY and not record.reachability:
                continue
            n_hosts = len(record.host_ids)
            if not n_hosts:
                continue
            per_host_window = record.business_seconds if business else record.kpis.duration
            impact = per_host_window * n_hosts
            if impact <= 0:
                continue
            alert_rows.append((eid, record, impact, record.kpis.duration * n_hosts))
        alert_rows.sort(key=lambda r: (-r[2], -r[1].kpis.start))
        top_alerts = []
        for eid, record, impact, total in alert_rows[:top_n]:
            problem = record.problem
            top_alerts.append({
                'event_id': eid,
                'trigger_id': trigger_id_of(problem),
                'name': problem.get('name') or '',
                'severity': parse_severity(problem.get('severity')),
                'opened_at': self._iso(record.kpis.start),
                'closed_at': self._iso(record.kpis.recovered_at),
                'window_downtime_minutes': self._minutes(impact),
                'total_downtime_minutes': self._minutes(total),
                'share_of_group_window_downtime_pct': share(impact),
                'host_names': sorted({h.get('name') for h in (problem.get('hosts') or []) if h.get('name')},
                                     key=_sort_name),
                'alert_type': record.alert_type,
                'item_keys': list(record.item_keys),
            })

        return {
            'window_type': window,
            'window_label': self.resolver.business_window_label() if business else 'Periodo completo',
            'group_downtime_minutes': self._minutes(group_window),
            'top_hosts': top_hosts,
            'top_alerts': top_alerts,
        }

    # -------------------- Hosts --------------------
    def _host_metrics(self, host_names, downtime, host_samples, event_count, open_count,
                      period_seconds, period_split):
        rows = []
        for hid, name in host_names.items():
            totals = downtime.totals(hid)
            reach = downtime.totals(hid, REACHABILITY)
            samples = host_samples.get(hid) or KpiSamples()
            avail = host_availability(totals, period_seconds, period_split.business, period_split.off)
            reach_avail = host_availability(reach, period_seconds, period_split.business, period_split.off)
            row = {
                'hostid': hid,
                'name': name,
                'event_count': event_count.get(hid, 0),
                'open_event_count': open_count.get(hid, 0),
                'availability_pct': avail['overall'],
                'business_availability_pct': avail['business'],
                'off_hours_availability_pct': avail['off_hours'],
                'reachability_pct': reach_avail['overall'],
                'business_reachability_pct': reach_avail['business'],
                'downtime_minutes': self._minutes(totals.total),
            }
            row.update(samples.averages_minutes())
            rows.append(row)
        rows.sort(key=lambda r: _sort_name(r['name']))
        return rows

    def _host_categories(self, hosts_by_id, downtime, period_seconds):
        buckets = {}
        for hid, host in hosts_by_id.items():
            buckets.setdefault(classify_host(host), []).append(hid)
        total_hosts = len(hosts_by_id) or 1
        result = []
        for cid, label, _ in HOST_CATEGORIES + [DEFAULT_CATEGORY]:
            ids = buckets.get(cid, [])
            lost = downtime.sum_totals(ids).total
            result.append({
                'id': cid,
                'label': label,
                'count': len(ids),
                'coverage_pct': len(ids) / total_hosts * 100.0,
                'sla_pct': availability(period_seconds * len(ids), lost),
            })
        return result

    def _critical_alert(self, problem, event_id, kpis, severity, business_seconds,
                        problem_hosts, host_groups_map):
        group_names = {}
        for h in problem_hosts:
            for g in host_groups_map.get(str(h.get('hostid')), []):
                if g.get('groupid'):
                    group_names[str(g.get('groupid'))] = g.get('name')
        return {
            'event_id': event_id,
            'name': problem.get('name') or '',
            'severity': severity,
            'host_ids': [str(h.get('hostid')) for h in problem_hosts],
            'host_names': [h.get('name') for h in problem_hosts if h.get('name')],
            'group_ids': list(group_names.keys()),
            'group_names': list(group_names.values()),
            'opened_at': self._iso(kpis.start),
            'closed_at': self._iso(kpis.recovered_at),
            'is_open': kpis.is_open,
            'detection_minutes': self._optional_minutes(kpis.detection),
            'response_minutes': self._optional_minutes(kpis.response),
            'resolution_minutes': self._minutes(kpis.resolution),
            'business_minutes': self._minutes(business_seconds),
        }
