# nexfy_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_migrate import Migrate
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import text


db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
# executa a reconciliação dos webhooks fora do ciclo request/response
scheduler = BackgroundScheduler(daemon=True)


def init_extensions(app):
    # DB/Bcrypt/Migrate
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)


def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Cria as tabelas iniciais (DEV/MVP). Para produção: use flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            print("Tabelas criadas.")

    @app.cli.command("replay-webhook")
    @click.argument("log_id", type=int)
    def replay_webhook_cmd(log_id):
        """Reprocessa um webhook já registrado em webhook_logs."""
        from .services.reconciler import replay

        with app.app_context():
            outcome = replay(log_id)
            print(f"[{outcome.status_code}] {outcome.message}")
