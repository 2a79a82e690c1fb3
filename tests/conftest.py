import pytest

from slametrics.collectors.time_window import Period, TimeWindowResolver
from slametrics.config import EngineConfig, ZabbixConfig

from factories import utc_ts


@pytest.fixture
def engine_config():
    return EngineConfig(timezone='UTC', business_start_hour=7, business_end_hour=24,
                        shift_step_minutes=5, top_n=5)


@pytest.fixture
def resolver(engine_config):
    return TimeWindowResolver(engine_config)


@pytest.fixture
def zabbix_config():
    return ZabbixConfig(url='http://zabbix.local/api_jsonrpc.php', token='secret-token',
                        max_retries=2, retry_delay_ms=1000, problem_limit=3,
                        problem_max_pages=5, batch_size=2, max_workers=2)


@pytest.fixture
def october():
    return Period(utc_ts(2026, 10, 1), utc_ts(2026, 11, 1), 'outubro 2026')


@pytest.fixture
def business_day():
    """Segunda-feira 05/10/2026, dia inteiro em UTC."""
    return Period(utc_ts(2026, 10, 5), utc_ts(2026, 10, 6), '05/10/2026')
