# nexfy_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .extensions import db, bcrypt, migrate, scheduler, init_extensions, register_cli
from .errors import register_error_handlers
from .services.currency import format_money, init_currency
from .blueprints.payments import bp as payments_bp
from .blueprints.webhooks import bp as webhooks_bp
from .blueprints.coupons import bp as coupons_bp
from .blueprints.currency import bp as currency_bp

CONFIGS = {
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}


def create_app(config_object: type[Config] | None = None, **overrides) -> Flask:
    app = Flask(__name__, template_folder="../templates")

    if config_object is None:
        config_object = CONFIGS.get(os.getenv("APP_ENV", "").lower(), Config)
    app.config.from_object(config_object)
    app.config.update(overrides)

    # Extensões (DB/Bcrypt/Migrate)
    init_extensions(app)
    register_error_handlers(app)

    # cache de câmbio em app.extensions["exchange_rates"]
    init_currency(app)

    # Blueprints
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(currency_bp)
    # CLI (flask init-db, flask replay-webhook)
    register_cli(app)

    # Scheduler: reconciliação de webhooks fora da requisição
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        if not scheduler.running:
            scheduler.start()

    @app.template_filter("money")
    def money(value, currency="BRL"):
        return format_money(value, currency)

    return app
