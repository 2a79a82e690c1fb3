import logging

from .time_window import TimeWindowResolver, to_iso
from .shared import seconds_to_minutes


class BaseCollector:
    """
    Base dos coletores de relatorio.

    Um coletor recebe os dados ja buscados no Zabbix (listas de dicts) e o
    periodo resolvido, e devolve um dict pronto para JSON. Nao faz I/O.
    """

    def __init__(self, config, options=None, resolver=None):
        self.config = config
        self.options = options or {}
        self.resolver = resolver or TimeWindowResolver(config)
        self.logger = logging.getLogger(self.__class__.__module__)

    def collect(self, *args, **kwargs):
        raise NotImplementedError

    def _minutes(self, seconds):
        return seconds_to_minutes(seconds)

    def _optional_minutes(self, seconds):
        return None if seconds is None else seconds_to_minutes(seconds)

    def _iso(self, ts):
        return to_iso(ts)
