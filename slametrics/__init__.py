# slametrics/__init__.py
import logging

from dotenv import load_dotenv
from flask import Flask

from .services import build_report_service


def create_app(report_service=None, config_overrides=None):
    """Cria a app Flask. Sem `report_service`, monta um a partir do ambiente (.env)."""
    load_dotenv()
    app = Flask(__name__)
    app.json.sort_keys = False
    if config_overrides:
        app.config.update(config_overrides)

    if report_service is None:
        report_service, erro = build_report_service()
        if erro:
            app.logger.warning(f"Zabbix nao configurado: {erro}")
            app.config['ZABBIX_CONFIG_ERROR'] = erro
    app.extensions['report_service'] = report_service

    if not app.debug:
        app.logger.setLevel(logging.INFO)

    from .main import main as main_blueprint
    app.register_blueprint(main_blueprint)
    return app
