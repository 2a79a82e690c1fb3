"""
Acumulo de indisponibilidade por host e calculo de disponibilidade.

Cada par (incidente, host) que sobrepoe a janela gera um intervalo bruto.
Os intervalos ficam em duas visoes: todos os incidentes e apenas os de
alcancabilidade. No fechamento os intervalos de cada host sao unidos (sem
contar duas vezes incidentes sobrepostos) e divididos em horario comercial
e fora de horario.
"""

from collections import defaultdict
from typing import NamedTuple

from .intervals import Interval, merge_intervals

ALL = 'all'
REACHABILITY = 'reachability'


class DowntimeTotals(NamedTuple):
    total: float = 0.0
    business: float = 0.0
    off: float = 0.0


ZERO_DOWNTIME = DowntimeTotals()


def availability(window_seconds, downtime_seconds):
    """Percentual disponivel da janela, limitado a [0, 100]; janela vazia = 100."""
    if not window_seconds or window_seconds <= 0:
        return 100.0
    pct = (window_seconds - (downtime_seconds or 0)) / window_seconds * 100.0
    return min(100.0, max(0.0, pct))


class DowntimeAccumulator:
    def __init__(self, resolver):
        self.resolver = resolver
        self._intervals = {ALL: defaultdict(list), REACHABILITY: defaultdict(list)}
        self._cache = {}

    def add(self, host_id, start, end, reachability=False):
        if end <= start or not host_id:
            return
        interval = Interval(start, end)
        self._intervals[ALL][host_id].append(interval)
        if reachability:
            self._intervals[REACHABILITY][host_id].append(interval)
        self._cache.pop((ALL, host_id), None)
        self._cache.pop((REACHABILITY, host_id), None)

    def hosts(self, view=ALL):
        return list(self._intervals[view].keys())

    def totals(self, host_id, view=ALL):
        key = (view, host_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        raw = self._intervals[view].get(host_id)
        if not raw:
            return ZERO_DOWNTIME
        merged, total = merge_intervals(raw)
        split = self.resolver.split_intervals(merged)
        result = DowntimeTotals(float(total), split.business, split.off)
        self._cache[key] = result
        return result

    def sum_totals(self, host_ids, view=ALL):
        total = business = off = 0.0
        for host_id in host_ids:
            item = self.totals(host_id, view)
            total += item.total
            business += item.business
            off += item.off
        return DowntimeTotals(total, business, off)


def host_availability(totals, period_seconds, business_seconds, off_seconds):
    return {
        'overall': availability(period_seconds, totals.total),
        'business': availability(business_seconds, totals.business),
        'off_hours': availability(off_seconds, totals.off),
    }


def aggregate_availability(totals, host_count, period_seconds, business_seconds, off_seconds):
    """Modelo host-segundos: janela * hosts ativos contra a soma dos downtimes."""
    return {
        'overall': availability(period_seconds * host_count, totals.total),
        'business': availability(business_seconds * host_count, totals.business),
        'off_hours': availability(off_seconds * host_count, totals.off),
    }
