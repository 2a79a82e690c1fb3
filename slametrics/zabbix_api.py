"""
Transporte JSON-RPC do Zabbix.

Falhas transitorias (conexao recusada/resetada, timeout, resposta cortada)
sao repetidas ate `max_retries` vezes com espera linear
`retry_delay_ms * tentativa`. Erros HTTP, JSON invalido e erros JSON-RPC
nao sao repetidos. Qualquer falha final vira ZabbixError.
"""

import itertools
import logging
import threading
import time

import requests
import urllib3

from .config import ZabbixConfig
from .errors import ZabbixError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {'Content-Type': 'application/json-rpc'}
RETRYABLE_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)

_request_ids = itertools.count(1)


def obter_config_e_token_zabbix(environ=None):
    """(ZabbixConfig, None) ou (None, mensagem de erro)."""
    return ZabbixConfig.from_env(environ)


def fazer_request_zabbix(body, config, session=None, sleep=time.sleep):
    """Envia `body` (envelope JSON-RPC completo) e devolve o `result`."""
    method = body.get('method')
    session = session or requests.Session()
    attempts = config.max_retries + 1
    for attempt in range(attempts):
        try:
            resp = session.post(config.url, json=body, headers=DEFAULT_HEADERS,
                                timeout=config.timeout, verify=config.verify_ssl)
        except RETRYABLE_EXCEPTIONS as exc:
            if attempt == attempts - 1:
                logger.error('Falha ao comunicar com o Zabbix (%s) apos %d tentativas: %s',
                             method, attempts, exc)
                raise ZabbixError(f'Falha ao comunicar com o Zabbix ({method}): {exc}',
                                  method=method) from exc
            delay = config.retry_delay_ms * (attempt + 1) / 1000.0
            logger.warning('Erro transitorio no Zabbix (%s), tentativa %d/%d; nova tentativa em %.1fs: %s',
                           method, attempt + 1, attempts, delay, exc)
            if delay > 0:
                sleep(delay)
            continue
        except requests.exceptions.RequestException as exc:
            raise ZabbixError(f'Falha ao comunicar com o Zabbix ({method}): {exc}', method=method) from exc

        if resp.status_code != 200:
            raise ZabbixError(f'Erro {resp.status_code} ao falar com o Zabbix ({method})',
                              method=method, code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ZabbixError(f'Resposta invalida do Zabbix ({method})', method=method) from exc
        if isinstance(data, dict) and 'error' in data:
            err = data.get('error') or {}
            detail = err.get('data') or err.get('message')
            raise ZabbixError(f"Zabbix retornou erro {err.get('code')} ({method}): {detail}",
                              method=method, code=err.get('code'))
        if not isinstance(data, dict) or 'result' not in data:
            raise ZabbixError(f'Resposta inesperada do Zabbix ({method})', method=method)
        return data['result']
    raise ZabbixError(f'Falha inesperada ao falar com o Zabbix ({method}).', method=method)


class ZabbixClient:
    """Cliente JSON-RPC com uma requests.Session por thread."""

    def __init__(self, config, sleep=time.sleep):
        self.config = config
        self.url = config.url
        self.token = config.token
        self._sleep = sleep
        self._local = threading.local()
        if not config.verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _session(self):
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def call(self, method, params):
        body = {
            'jsonrpc': '2.0',
            'method': method,
            'params': params,
            'auth': self.token,
            'id': next(_request_ids),
        }
        return fazer_request_zabbix(body, self.config, session=self._session(), sleep=self._sleep)
