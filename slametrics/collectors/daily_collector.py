import time

from .base_collector import BaseCollector
from .kpi import extract_kpis
from .shared import has_recovery, safe_average, seconds_to_minutes


class DailyCollector(BaseCollector):
    """
    Painel do dia corrente (fuso configurado).

    - abertos: problemas abertos hoje ainda sem recuperacao;
    - resolvidos: problemas cujo evento de recuperacao ocorreu hoje, com
      deteccao e resolucao medidas a partir da abertura original.
    """

    def collect(self, period, opened_today, recovery_map, resolved_events, resolved_problems, now=None):
        now = int(time.time()) if now is None else int(now)
        open_count = 0
        for problem in opened_today or []:
            if extract_kpis(problem, recovery_map, period.start, period.end) is None:
                continue
            if not has_recovery(problem) or not (recovery_map or {}).get(str(problem.get('r_eventid'))):
                open_count += 1

        events_by_id = {str(e.get('eventid')): e for e in resolved_events or [] if e.get('eventid')}
        detection = []
        resolution = []
        resolved = 0
        for problem in resolved_problems or []:
            if not has_recovery(problem) or str(problem.get('r_eventid')) not in events_by_id:
                continue
            kpis = extract_kpis(problem, events_by_id, 0, period.end)
            if kpis is None:
                continue
            resolved += 1
            if kpis.detection is not None:
                detection.append(kpis.detection)
            resolution.append(kpis.resolution)

        return {
            'period_start': self._iso(period.start),
            'period_end': self._iso(period.end),
            'generated_at': self._iso(now),
            'open_count': open_count,
            'resolved_count': resolved,
            'detection_avg_minutes': seconds_to_minutes(safe_average(detection)),
            'resolution_avg_minutes': seconds_to_minutes(safe_average(resolution)),
        }
