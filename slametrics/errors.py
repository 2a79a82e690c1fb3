"""Excecoes do motor de metricas (ASCII only)."""


class SlaMetricsError(Exception):
    """Base para erros reportados ao consumidor com uma mensagem legivel."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidPeriod(SlaMetricsError):
    status_code = 400


class GroupNotFound(SlaMetricsError):
    status_code = 404


class ZabbixError(SlaMetricsError):
    """Falha de transporte ou erro JSON-RPC retornado pelo Zabbix."""

    status_code = 502

    def __init__(self, message, method=None, code=None):
        super().__init__(message)
        self.method = method
        self.code = code


class InvalidParameter(SlaMetricsError):
    """Parametro de consulta ausente ou invalido (host group, janela, escopo...)."""

    status_code = 400


class ServiceUnavailable(SlaMetricsError):
    """Acesso ao Zabbix nao configurado."""

    status_code = 503
