import argparse
import datetime as dt
import logging
import sys

from dotenv import load_dotenv

from slametrics.errors import SlaMetricsError
from slametrics.services import build_report_service


def export_csv(month, group_id, group_ids, window, output):
    service, erro = build_report_service()
    if erro:
        logging.error(erro)
        return 1
    scope = 'all' if not group_id or group_id == 'all' else 'group'
    try:
        content, filename = service.reachability_csv(
            month, scope=scope, group_id=None if scope == 'all' else group_id,
            group_ids=group_ids, window=window)
    except SlaMetricsError as exc:
        logging.error(f"Falha ao gerar o relatorio: {exc.message}")
        return 1
    path = output or filename
    with open(path, 'w', encoding='utf-8', newline='') as fh:
        fh.write(content)
    logging.info(f"Relatorio salvo em {path}")
    return 0


def main():
    parser = argparse.ArgumentParser(description='Exporta o relatorio de alertas de alcancabilidade em CSV.')
    parser.add_argument('--month', default=dt.date.today().strftime('%Y-%m'), help='Mes AAAA-MM')
    parser.add_argument('--group', help='ID do host group (omitido = todos)')
    parser.add_argument('--groups', nargs='+', help='IDs de host groups para o escopo "all"')
    parser.add_argument('--window', choices=['business', 'overall'], default='business')
    parser.add_argument('--output', help='Arquivo de saida (padrao: nome sugerido pelo relatorio)')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(message)s',
                        datefmt='%Y-%m-%d %H:%M:%S')
    load_dotenv()
    sys.exit(export_csv(args.month, args.group, args.groups, args.window, args.output))


if __name__ == '__main__':
    main()
