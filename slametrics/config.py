"""
Configuracao do motor de SLA e do acesso ao Zabbix.

Os valores vem do ambiente (o .env e carregado via python-dotenv em
create_app e nos scripts). Cada configuracao aceita uma lista de variaveis
em ordem de precedencia: a primeira que estiver definida e for valida vence,
senao vale o default.
"""

import os
from dataclasses import dataclass, field

DEFAULT_REACHABILITY_ALERT_TYPES = ('ICMP', 'Agent', 'Uptime', 'SNMP')

_TRUE_VALUES = {'1', 'true', 'yes', 'on', 'sim'}
_FALSE_VALUES = {'0', 'false', 'no', 'off', 'nao'}


def parse_number(value):
    """Converte para float; None quando vazio ou nao finito."""
    if value is None:
        return None
    raw = str(value).strip()
    if raw == '':
        return None
    try:
        parsed = float(raw)
    except ValueError:
        return None
    if parsed != parsed or parsed in (float('inf'), float('-inf')):
        return None
    return parsed


def parse_int(value):
    parsed = parse_number(value)
    return int(parsed) if parsed is not None else None


def parse_bool(value):
    if value is None:
        return None
    raw = str(value).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return None


def parse_list(value):
    if value is None:
        return None
    items = tuple(part.strip() for part in str(value).split(',') if part.strip())
    return items or None


def parse_text(value):
    if value is None:
        return None
    raw = str(value).strip()
    return raw or None


def resolve_setting(environ, names, default, parser=parse_text):
    """Resolve uma configuracao percorrendo `names` em ordem.

    A primeira variavel presente em `environ` cujo valor o `parser` aceita
    (retorno diferente de None) e usada. Nenhuma valida: `default`.
    """
    if isinstance(names, str):
        names = (names,)
    for name in names:
        if name not in environ:
            continue
        parsed = parser(environ.get(name))
        if parsed is not None:
            return parsed
    return default


@dataclass(frozen=True)
class EngineConfig:
    timezone: str = 'America/Sao_Paulo'
    business_start_hour: float = 7
    business_end_hour: float = 24
    shift_step_minutes: float = 5
    reachability_alert_types: tuple = DEFAULT_REACHABILITY_ALERT_TYPES
    problem_lookback_days: float = 45
    impact_threshold_minutes: float = 60
    top_n: int = 5

    def __post_init__(self):
        if self.shift_step_minutes <= 0:
            raise ValueError('shift_step_minutes deve ser maior que zero.')
        if not 0 <= self.business_start_hour < 24:
            raise ValueError('business_start_hour deve estar entre 0 e 24.')
        if self.business_end_hour < self.business_start_hour:
            raise ValueError('business_end_hour deve ser >= business_start_hour.')
        if self.top_n < 0:
            raise ValueError('top_n nao pode ser negativo.')
        object.__setattr__(self, 'reachability_alert_types',
                           tuple(str(t).strip() for t in self.reachability_alert_types if str(t).strip()))

    @property
    def shift_step_seconds(self):
        return self.shift_step_minutes * 60

    @property
    def business_start_minutes(self):
        return self.business_start_hour * 60

    @property
    def business_end_minutes(self):
        return self.business_end_hour * 60

    @property
    def problem_lookback_seconds(self):
        return max(0, int(self.problem_lookback_days * 24 * 3600))

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            timezone=resolve_setting(env, 'DASHBOARD_TIMEZONE', defaults.timezone),
            business_start_hour=resolve_setting(env, 'DASHBOARD_BUSINESS_START_HOUR',
                                                defaults.business_start_hour, parse_number),
            business_end_hour=resolve_setting(env, 'DASHBOARD_BUSINESS_END_HOUR',
                                              defaults.business_end_hour, parse_number),
            shift_step_minutes=resolve_setting(env, 'DASHBOARD_SHIFT_STEP_MINUTES',
                                               defaults.shift_step_minutes, parse_number),
            reachability_alert_types=resolve_setting(env, 'DASHBOARD_REACHABILITY_ALERT_TYPES',
                                                     defaults.reachability_alert_types, parse_list),
            problem_lookback_days=resolve_setting(env, 'ZABBIX_PROBLEM_LOOKBACK_DAYS',
                                                  defaults.problem_lookback_days, parse_number),
            impact_threshold_minutes=resolve_setting(env, 'DASHBOARD_IMPACT_THRESHOLD_MINUTES',
                                                     defaults.impact_threshold_minutes, parse_number),
            top_n=resolve_setting(env, 'DASHBOARD_TOP_N', defaults.top_n, parse_int),
        )


@dataclass(frozen=True)
class ZabbixConfig:
    url: str
    token: str = field(repr=False)
    connect_timeout_ms: float = 20000
    read_timeout_ms: float = 120000
    max_retries: int = 2
    retry_delay_ms: float = 1000
    problem_limit: int = 5000
    problem_max_pages: int = 5
    host_limit: int = 10000
    open_problem_limit: int = 5000
    resolved_event_limit: int = 5000
    batch_size: int = 100
    max_workers: int = 4
    verify_ssl: bool = True

    @property
    def timeout(self):
        return (max(1, self.connect_timeout_ms) / 1000.0, max(1, self.read_timeout_ms) / 1000.0)

    @classmethod
    def from_env(cls, environ=None):
        """Monta a configuracao do Zabbix; (config, None) ou (None, erro)."""
        env = os.environ if environ is None else environ
        url = resolve_setting(env, ('ZABBIX_API_URL', 'ZABBIX_API_ENDPOINT'), None)
        token = resolve_setting(env, 'ZABBIX_API_TOKEN', None)
        if not url:
            return None, 'ZABBIX_API_URL nao configurado. Defina-o no arquivo .env.'
        if not token:
            return None, 'ZABBIX_API_TOKEN nao configurado. Defina-o no arquivo .env.'
        d = cls(url=url, token=token)
        config = cls(
            url=url,
            token=token,
            connect_timeout_ms=max(1, resolve_setting(env, 'ZABBIX_CONNECT_TIMEOUT', d.connect_timeout_ms, parse_number)),
            read_timeout_ms=max(1, resolve_setting(env, 'ZABBIX_READ_TIMEOUT', d.read_timeout_ms, parse_number)),
            max_retries=max(0, resolve_setting(env, 'ZABBIX_MAX_RETRIES', d.max_retries, parse_int)),
            retry_delay_ms=max(0, resolve_setting(env, 'ZABBIX_RETRY_DELAY_MS', d.retry_delay_ms, parse_number)),
            problem_limit=max(1, resolve_setting(env, 'ZABBIX_PROBLEM_LIMIT', d.problem_limit, parse_int)),
            problem_max_pages=max(1, resolve_setting(env, 'ZABBIX_PROBLEM_MAX_PAGES', d.problem_max_pages, parse_int)),
            host_limit=max(1, resolve_setting(env, 'ZABBIX_HOST_LIMIT', d.host_limit, parse_int)),
            open_problem_limit=max(1, resolve_setting(env, 'ZABBIX_OPEN_PROBLEM_LIMIT', d.open_problem_limit, parse_int)),
            resolved_event_limit=max(1, resolve_setting(env, 'ZABBIX_RESOLVED_EVENT_LIMIT', d.resolved_event_limit, parse_int)),
            batch_size=max(1, resolve_setting(env, 'ZABBIX_BATCH_SIZE', d.batch_size, parse_int)),
            max_workers=max(1, resolve_setting(env, 'ZABBIX_MAX_WORKERS', d.max_workers, parse_int)),
            verify_ssl=resolve_setting(env, 'ZABBIX_VERIFY_SSL', d.verify_ssl, parse_bool),
        )
        return config, None
