"""
Classificacao de alertas por tipo (ICMP, Agent, SNMP, ...).

O tipo e inferido dos item keys do trigger concatenados ao texto do trigger
(description + comments). As regras sao avaliadas em ordem e a primeira que
casa define o tipo e se o alerta e de alcancabilidade.
"""

from typing import NamedTuple

from .shared import trigger_id_of


class AlertTypeInfo(NamedTuple):
    alert_type: str
    item_keys: tuple
    is_reachability: bool


_AGENT_KEY_MARKERS = ('agent.ping', 'zabbix[host,agent,available]')
_AGENT_TEXT_MARKERS = (
    'agent is not available',
    'zabbix agent is not available',
    'agent not available',
    'agent unavailable',
    'agent is unreachable',
    'zabbix agent is unreachable',
)

# (rotulo, marcadores, alcancabilidade); ordem importa
RULES = [
    ('SNMP', ('snmptrap', 'snmp trap'), False),
    ('Agent', _AGENT_KEY_MARKERS + _AGENT_TEXT_MARKERS, True),
    ('ICMP', ('icmpping', 'icmp'), True),
    ('SNMP', ('snmp',), True),
    ('HTTP', ('http', 'web'), False),
    ('Port/TCP', ('net.tcp', 'tcp', 'udp'), False),
    ('Log', ('log',), False),
    ('Uptime', ('system.uptime',), True),
]
FALLBACK_TYPE = 'Other'


def _normalize_keys(item_keys):
    return tuple(sorted({str(k).strip() for k in (item_keys or []) if k and str(k).strip()}))


def classify_alert(item_keys, text=''):
    keys = _normalize_keys(item_keys)
    haystack = f"{' '.join(keys)} {text or ''}".lower()
    for label, markers, reachable in RULES:
        if any(marker in haystack for marker in markers):
            return AlertTypeInfo(label, keys, reachable)
    return AlertTypeInfo(FALLBACK_TYPE, keys, False)


def is_reachability_alert(info, allow_list):
    """Alerta conta como alcancabilidade se a regra marcou e o tipo esta na allow-list."""
    if info is None or not info.is_reachability:
        return False
    allowed = {str(t).strip().lower() for t in (allow_list or [])}
    return info.alert_type.lower() in allowed


def build_trigger_type_map(triggers):
    mapping = {}
    for trigger in triggers or []:
        tid = trigger.get('triggerid')
        if not tid:
            continue
        text = ' '.join(part for part in (trigger.get('description'), trigger.get('comments')) if part)
        keys = [item.get('key_') for item in (trigger.get('items') or [])]
        mapping[str(tid)] = classify_alert(keys, text)
    return mapping


def alert_info_for(problem, trigger_types):
    """Tipo do incidente; sem trigger conhecido classifica pelo proprio nome."""
    tid = trigger_id_of(problem)
    if tid and tid in (trigger_types or {}):
        return trigger_types[tid]
    return classify_alert([], problem.get('name') or '')
