import time

from .base_collector import BaseCollector
from .kpi import extract_kpis
from .shared import has_recovery, parse_severity, severity_label


class OpenProblemsCollector(BaseCollector):
    """Problemas sem recuperacao, mais graves primeiro e depois os mais antigos."""

    def collect(self, problems, hosts, now=None):
        now = int(time.time()) if now is None else int(now)
        host_map = {str(h.get('hostid')): h for h in hosts or []}
        rows = []
        for problem in problems or []:
            if has_recovery(problem):
                continue
            kpis = extract_kpis(problem, None, 0, now)
            if kpis is None:
                continue
            severity = parse_severity(problem.get('severity'))
            group_names = []
            for h in problem.get('hosts') or []:
                for g in (host_map.get(str(h.get('hostid'))) or {}).get('groups') or []:
                    name = g.get('name')
                    if name and name not in group_names:
                        group_names.append(name)
            rows.append({
                'event_id': str(problem.get('eventid') or ''),
                'name': problem.get('name') or '',
                'severity': severity,
                'severity_label': severity_label(severity),
                'opened_at': self._iso(kpis.start),
                'duration_minutes': self._minutes(kpis.duration),
                'detection_minutes': self._optional_minutes(kpis.detection),
                'response_minutes': self._optional_minutes(kpis.response),
                'hosts': [{'hostid': str(h.get('hostid')), 'name': h.get('name')}
                          for h in problem.get('hosts') or []],
                'group_names': group_names,
                'tags': problem.get('tags') or [],
                '_opened_ts': kpis.start,
            })
        rows.sort(key=lambda r: (-(r['severity'] if r['severity'] is not None else -1), r['_opened_ts']))
        for r in rows:
            del r['_opened_ts']
        return {
            'problems': rows,
            'total': len(rows),
            'generated_at': self._iso(now),
        }
