import math
from typing import NamedTuple


class Interval(NamedTuple):
    start: float
    end: float

    @property
    def length(self):
        return max(0, self.end - self.start)

    @classmethod
    def parse(cls, item):
        """Interval a partir de um par (inicio, fim); None se algum lado nao for numero finito."""
        try:
            start, end = (float(v) for v in item)
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(start) and math.isfinite(end)):
            return None
        return cls(start, max(start, end))

    def touches(self, other):
        return other.start <= self.end


def merge_intervals(intervals):
    """Une intervalos sobrepostos ou encostados.

    Retorna (merged, total): `merged` ordenado e sem sobreposicao, `total` a
    soma dos comprimentos. Entradas invalidas sao descartadas; fim anterior ao
    inicio vira intervalo de comprimento zero.
    """
    parsed = (Interval.parse(item) for item in intervals or [])
    merged = []
    for current in sorted(i for i in parsed if i is not None):
        if merged and merged[-1].touches(current):
            if current.end > merged[-1].end:
                merged[-1] = merged[-1]._replace(end=current.end)
        else:
            merged.append(current)
    return merged, sum(i.length for i in merged)
