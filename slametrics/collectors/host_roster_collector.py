from .base_collector import BaseCollector


def proxy_id_of(host):
    # Zabbix < 7.0 usa proxy_hostid; 7.x usa proxyid. '0' = monitorado pelo server
    for key in ('proxy_hostid', 'proxyid'):
        value = str(host.get(key) or '').strip()
        if value and value != '0':
            return value
    return None


class HostRosterCollector(BaseCollector):
    """Lista de hosts com status, grupos, interfaces e proxy de monitoramento."""

    def collect(self, hosts, proxies):
        proxy_names = {}
        for proxy in proxies or []:
            pid = str(proxy.get('proxyid') or '')
            if pid:
                proxy_names[pid] = proxy.get('host') or proxy.get('name') or ''
        rows = []
        for host in hosts or []:
            pid = proxy_id_of(host)
            rows.append({
                'hostid': str(host.get('hostid')),
                'name': host.get('name'),
                'status': str(host.get('status') if host.get('status') is not None else '0'),
                'groups': [g.get('name') for g in host.get('groups') or [] if g.get('name')],
                'interfaces': host.get('interfaces') or [],
                'proxy': proxy_names.get(pid, '') if pid else '',
            })
        missing = {proxy_id_of(h) for h in hosts or []} - set(proxy_names) - {None}
        if missing:
            self.logger.warning('Proxies nao encontrados no Zabbix: %s', ', '.join(sorted(missing)))
        return {'hosts': rows, 'total': len(rows)}
