"""Helpers compartilhados pelos coletores (numeros, severidades, formatacao)."""

import math

import numpy as np

SEVERITY_LEVELS = [
    (5, 'Desastre'),
    (4, 'Alta'),
    (3, 'Media'),
    (2, 'Baixa'),
    (1, 'Informativo'),
    (0, 'Nao classificado'),
]
SEVERITY_LABELS = dict(SEVERITY_LEVELS)
MAX_SEVERITY = 5


def severity_label(severity):
    try:
        key = int(severity)
    except (TypeError, ValueError):
        return 'Severidade desconhecida'
    return SEVERITY_LABELS.get(key, f'Severidade {key}')


def create_severity_counter():
    return {key: 0 for key, _ in SEVERITY_LEVELS}


def severity_summary(counter):
    return [
        {'severity': key, 'label': label, 'count': int(counter.get(key, 0))}
        for key, label in SEVERITY_LEVELS
    ]


def to_number(value):
    """Numero finito ou NaN (campos malformados do Zabbix viram NaN)."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return math.nan
    if math.isinf(parsed):
        return math.nan
    return parsed


def parse_severity(value):
    parsed = to_number(value if value is not None else 0)
    if math.isnan(parsed):
        return None
    return int(parsed)


def seconds_to_minutes(value):
    if value is None:
        return 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if not value or not math.isfinite(value):
        return 0
    return value / 60


def safe_average(values, fallback=0.0):
    samples = [v for v in (values or []) if v is not None and math.isfinite(v)]
    if not samples:
        return fallback
    return float(np.mean(samples))


def percentage(value, total):
    if not total:
        return 0.0
    return value / total * 100.0


def has_recovery(problem):
    r_eid = problem.get('r_eventid')
    return bool(r_eid) and str(r_eid) != '0'


def recovery_clock(problem, recovery_map):
    """Clock de fechamento do incidente, ou None se ainda aberto/desconhecido."""
    if not has_recovery(problem):
        return None
    event = (recovery_map or {}).get(str(problem.get('r_eventid')))
    if not event:
        return None
    clock = to_number(event.get('clock'))
    if math.isnan(clock) or clock <= 0:
        return None
    return clock


def trigger_id_of(problem):
    tid = problem.get('objectid')
    if tid in (None, '', '0', 0):
        return None
    return str(tid)


def format_duration_minutes(value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return '0 min'
    if not math.isfinite(value) or value <= 0:
        return '0 min'
    total = int(value)
    days, rem = divmod(total, 60 * 24)
    hours, mins = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f'{days}d')
    if hours:
        parts.append(f'{hours}h')
    if mins:
        parts.append(f'{mins}min')
    return ' '.join(parts) or '0 min'
