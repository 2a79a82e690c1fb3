import math
from typing import NamedTuple, Optional

from .shared import has_recovery, recovery_clock, safe_average, seconds_to_minutes, to_number


class IncidentKpis(NamedTuple):
    """Marcos de um incidente recortado na janela (segundos epoch / deltas em segundos)."""
    start: float
    end: float
    is_open: bool
    first_ack: Optional[float]
    second_ack: Optional[float]
    detection: Optional[float]
    response: Optional[float]
    resolution: float
    recovered_at: Optional[float] = None

    @property
    def duration(self):
        return max(0, self.end - self.start)

    @property
    def has_overlap(self):
        return self.duration > 0


def sorted_ack_clocks(problem):
    clocks = []
    for ack in problem.get('acknowledges') or []:
        clock = to_number(ack.get('clock'))
        if not math.isnan(clock):
            clocks.append(clock)
    clocks.sort()
    return clocks


def extract_kpis(problem, recovery_map, window_start, window_end):
    """Deteccao/resposta/resolucao de um incidente dentro de [window_start, window_end).

    Retorna None quando o clock do incidente e invalido.
    """
    clock = to_number(problem.get('clock'))
    if math.isnan(clock):
        return None
    start = min(max(clock, window_start), window_end)

    closed_at = recovery_clock(problem, recovery_map)
    end = window_end if closed_at is None else min(closed_at, window_end)
    end = max(end, start)

    acks = sorted_ack_clocks(problem)
    first_ack = acks[0] if acks else None
    second_ack = acks[1] if len(acks) > 1 else None
    detection = max(0, first_ack - start) if first_ack is not None else None
    if second_ack is not None:
        response = max(0, second_ack - start)
    else:
        response = detection

    return IncidentKpis(
        start=start,
        end=end,
        is_open=not has_recovery(problem),
        first_ack=first_ack,
        second_ack=second_ack,
        detection=detection,
        response=response,
        resolution=max(0, end - start),
        recovered_at=closed_at,
    )


class KpiSamples:
    """Amostras de deteccao/resposta/resolucao para medias."""

    def __init__(self):
        self.detection = []
        self.response = []
        self.resolution = []

    def add(self, kpis):
        if kpis.detection is not None:
            self.detection.append(kpis.detection)
        if kpis.response is not None:
            self.response.append(kpis.response)
        self.resolution.append(kpis.resolution)

    def averages_minutes(self):
        return {
            'detection_minutes': seconds_to_minutes(safe_average(self.detection)),
            'response_minutes': seconds_to_minutes(safe_average(self.response)),
            'resolution_minutes': seconds_to_minutes(safe_average(self.resolution)),
        }
