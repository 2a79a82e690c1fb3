from .base_collector import BaseCollector
from .dashboard_collector import is_active_host
from .kpi import extract_kpis
from .shared import parse_severity, severity_label
from ..errors import GroupNotFound

# incidente aberto por pelo menos este tempo gera chamado
TICKET_MIN_OPEN_MINUTES = 5


def find_group_by_name(groups, name):
    normalized = str(name or '').strip().lower()
    if not normalized:
        return None
    for group in groups or []:
        if str(group.get('name') or '').strip().lower() == normalized:
            return group
    return None


class GroupAlertCollector(BaseCollector):
    """Todos os incidentes de um host group num intervalo explicito, ordenados pela abertura."""

    def collect(self, group, hosts, problems, recovery_map, period):
        if group is None:
            raise GroupNotFound('Host group nao encontrado no Zabbix.')
        status = {str(h.get('hostid')): is_active_host(h) for h in hosts or []}
        alerts = []
        for problem in problems or []:
            row = self._map_problem(problem, recovery_map, period, status)
            if row is not None:
                alerts.append(row)
        alerts.sort(key=lambda a: a['_opened_ts'])
        for a in alerts:
            a.pop('_opened_ts', None)
        self.logger.debug('Relatorio do grupo %s: %d alertas', group.get('name'), len(alerts))
        return {
            'group_id': str(group.get('groupid')),
            'group_label': group.get('name'),
            'period': period.label,
            'alerts': alerts,
        }

    def _map_problem(self, problem, recovery_map, period, status):
        kpis = extract_kpis(problem, recovery_map, period.start, period.end)
        if kpis is None:
            return None
        severity = parse_severity(problem.get('severity'))
        open_minutes = self._minutes(kpis.duration)
        return {
            'event_id': str(problem.get('eventid') or ''),
            'name': problem.get('name') or '',
            'severity': severity,
            'severity_label': severity_label(severity),
            'hosts': [
                {
                    'hostid': str(h.get('hostid')),
                    'name': h.get('name'),
                    'is_active': status.get(str(h.get('hostid')), True),
                }
                for h in problem.get('hosts') or []
            ],
            'opened_at': self._iso(kpis.start),
            'closed_at': self._iso(kpis.recovered_at),
            'detection_minutes': self._optional_minutes(kpis.detection),
            'response_minutes': self._optional_minutes(kpis.response),
            'resolution_minutes': self._minutes(kpis.resolution),
            'open_duration_minutes': open_minutes,
            'ticket_opened': open_minutes >= TICKET_MIN_OPEN_MINUTES,
            'first_ack_at': self._iso(kpis.first_ack),
            'second_ack_at': self._iso(kpis.second_ack if kpis.second_ack is not None else kpis.first_ack),
            'second_ack_minutes': self._optional_minutes(kpis.response),
            '_opened_ts': kpis.start,
        }
