"""
Relatorio de alertas de alcancabilidade (ICMP, Agent, Uptime, SNMP...).

Lista os incidentes de alcancabilidade com downtime positivo na janela
escolhida ('business' = horario comercial, 'overall' = periodo inteiro),
ordenados por downtime na janela (desc) e depois abertura (desc).
"""

import math

import pandas as pd

from ..errors import GroupNotFound, InvalidParameter
from .alert_classifier import alert_info_for, is_reachability_alert
from .base_collector import BaseCollector
from .kpi import extract_kpis
from .shared import format_duration_minutes, parse_severity, severity_label, trigger_id_of

WINDOWS = ('business', 'overall')
SCOPES = ('group', 'all')
DEFAULT_PAGE_SIZE = 25

CSV_COLUMNS = [
    'event_id', 'alerta', 'severidade', 'tipo', 'item_keys', 'hosts', 'abertura',
    'dia_semana_abertura', 'janela_abertura', 'fechamento', 'downtime_janela',
    'downtime_total', 'status',
]
ALL_SCOPE_COLUMNS = ['host_group'] + CSV_COLUMNS


def is_relevant_group_name(name):
    normalized = str(name or '').strip().lower()
    if not normalized:
        return False
    if 'templates' in normalized:
        return False
    if normalized.startswith('test'):
        return False
    if normalized == 'discovered hosts':
        return False
    return True


def format_group_selection_label(groups, fallback_count):
    names = [g.get('name') for g in groups or [] if g.get('name')]
    if not names:
        if fallback_count == 1:
            return '1 host group selecionado'
        if fallback_count > 1:
            return f'{fallback_count} host groups selecionados'
        return 'Host groups selecionados'
    if len(names) <= 2:
        return ', '.join(names)
    return f'{names[0]}, {names[1]} +{len(names) - 2}'


def paginate(items, page, page_size):
    """Fatia `items`; retorna (fatia, pagina efetiva, tamanho efetivo, total de paginas)."""
    try:
        size = max(1, int(page_size))
    except (TypeError, ValueError):
        size = DEFAULT_PAGE_SIZE
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    total = len(items)
    pages = max(1, math.ceil(total / size))
    page = min(max(1, page), pages)
    start = (page - 1) * size
    return items[start:start + size], page, size, pages


class ReachabilityCollector(BaseCollector):

    def collect(self, problems, host_groups, recovery_map, trigger_types, period, hosts=None,
                scope='group', group_id=None, group_ids=None, window='business',
                page=1, page_size=DEFAULT_PAGE_SIZE):
        rows, context = self.build_rows(problems, host_groups, recovery_map, trigger_types, period,
                                        hosts=hosts, scope=scope, group_id=group_id,
                                        group_ids=group_ids, window=window)
        page_items, page, page_size, pages = paginate(rows, page, page_size)
        window = context['window']
        return {
            'scope': context['scope'],
            'group_id': context['group_id'],
            'group_label': context['group_label'],
            'month_label': period.label,
            'window': window,
            'window_label': self.resolver.business_window_label() if window == 'business' else 'Periodo completo',
            'page': page,
            'page_size': page_size,
            'total': len(rows),
            'pages': pages,
            'alerts': [self._public(r) for r in page_items],
        }

    def build_rows(self, problems, host_groups, recovery_map, trigger_types, period, hosts=None,
                   scope='group', group_id=None, group_ids=None, window='business'):
        """Linhas ordenadas do relatorio (sem paginacao) e o contexto de escopo."""
        if window not in WINDOWS:
            raise InvalidParameter(f"Janela invalida '{window}'. Use business ou overall.")
        if scope not in SCOPES:
            raise InvalidParameter(f"Escopo invalido '{scope}'. Use group ou all.")
        is_all = scope == 'all' or group_id == 'all'
        groups = host_groups or []
        selected_ids = [str(g).strip() for g in (group_ids or []) if str(g).strip()]

        resolved_group = None
        if not is_all:
            if not group_id:
                raise InvalidParameter('Parametro groupId obrigatorio.')
            resolved_group = next((g for g in groups if str(g.get('groupid')) == str(group_id)), None)
            if resolved_group is None:
                raise GroupNotFound(f'Host group {group_id} nao encontrado no Zabbix.')

        selected_groups = [g for g in groups if str(g.get('groupid')) in selected_ids]
        if selected_ids:
            allowed_names = {g.get('name') for g in selected_groups}
        else:
            allowed_names = {g.get('name') for g in groups if is_relevant_group_name(g.get('name'))}
        group_names_by_host = self._group_names_by_host(hosts, allowed_names) if is_all else {}

        rows = []
        for problem in problems or []:
            row = self._build_row(problem, recovery_map, trigger_types, period, window)
            if row is None:
                continue
            if not is_all:
                rows.append(row)
                continue
            # uma linha por par incidente/grupo
            names = sorted({
                name
                for h in (problem.get('hosts') or [])
                for name in group_names_by_host.get(str(h.get('hostid')), [])
            }, key=str.lower)
            for name in names:
                rows.append(dict(row, group_name=name))

        rows.sort(key=lambda r: (-r['window_minutes'], -r['_opened_ts']))

        if resolved_group is not None:
            group_label = resolved_group.get('name')
        elif selected_ids:
            group_label = format_group_selection_label(selected_groups, len(selected_ids))
        else:
            group_label = 'Todos os host groups'
        self.logger.debug('Relatorio de alcancabilidade %s/%s: %d linhas',
                          'all' if is_all else 'group', window, len(rows))
        context = {
            'scope': 'all' if is_all else 'group',
            'group_id': str(resolved_group.get('groupid')) if resolved_group else 'all',
            'group_label': group_label,
            'window': window,
        }
        return rows, context

    def _group_names_by_host(self, hosts, allowed_names):
        mapping = {}
        for host in hosts or []:
            names = {
                g.get('name') for g in (host.get('groups') or [])
                if g.get('name') and is_relevant_group_name(g.get('name')) and g.get('name') in allowed_names
            }
            mapping[str(host.get('hostid'))] = sorted(names)
        return mapping

    def _build_row(self, problem, recovery_map, trigger_types, period, window):
        info = alert_info_for(problem, trigger_types)
        if not is_reachability_alert(info, self.config.reachability_alert_types):
            return None
        kpis = extract_kpis(problem, recovery_map, period.start, period.end)
        if kpis is None or not kpis.has_overlap:
            return None
        split = self.resolver.split_by_shift(kpis.start, kpis.end)
        window_seconds = split.business if window == 'business' else kpis.duration
        if window_seconds <= 0:
            return None
        severity = parse_severity(problem.get('severity'))
        return {
            'event_id': str(problem.get('eventid') or ''),
            'trigger_id': trigger_id_of(problem),
            'name': problem.get('name') or '',
            'severity': severity,
            'severity_label': severity_label(severity),
            'opened_at': self._iso(kpis.start),
            'closed_at': self._iso(kpis.recovered_at),
            'is_open': kpis.is_open,
            'opened_in_business_window': self.resolver.is_business_time(kpis.start),
            'group_name': None,
            'alert_type': info.alert_type,
            'item_keys': list(info.item_keys),
            'host_names': sorted({h.get('name') for h in (problem.get('hosts') or []) if h.get('name')},
                                 key=str.lower),
            'window_minutes': self._minutes(window_seconds),
            'total_minutes': self._minutes(kpis.duration),
            'business_minutes': self._minutes(split.business),
            '_opened_ts': kpis.start,
            '_closed_ts': kpis.recovered_at,
        }

    @staticmethod
    def _public(row):
        return {k: v for k, v in row.items() if not k.startswith('_')}

    def to_csv(self, rows, scope='group'):
        """CSV das linhas do relatorio (UTF-8 com BOM, cabecalho em portugues)."""
        is_all = scope == 'all'
        window_label = self.resolver.business_window_label(with_timezone=False)
        records = []
        for row in rows:
            record = {
                'event_id': row['event_id'],
                'alerta': row['name'],
                'severidade': row['severity_label'],
                'tipo': row['alert_type'],
                'item_keys': ' | '.join(row['item_keys']),
                'hosts': ' | '.join(row['host_names']),
                'abertura': self.resolver.format_local(row['_opened_ts']),
                'dia_semana_abertura': self.resolver.weekday_name(row['_opened_ts']),
                'janela_abertura': window_label if row['opened_in_business_window'] else 'Fora',
                'fechamento': self.resolver.format_local(row['_closed_ts']),
                'downtime_janela': format_duration_minutes(row['window_minutes']),
                'downtime_total': format_duration_minutes(row['total_minutes']),
                'status': 'Em aberto' if row['is_open'] else 'Resolvido',
            }
            if is_all:
                record['host_group'] = row.get('group_name') or 'Nao informado'
            records.append(record)
        df = pd.DataFrame(records, columns=ALL_SCOPE_COLUMNS if is_all else CSV_COLUMNS)
        return '\ufeff' + df.to_csv(index=False, lineterminator='\n')
