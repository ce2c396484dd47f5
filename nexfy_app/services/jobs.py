# nexfy_app/services/jobs.py
"""
Trabalho adiado: o webhook responde 200 e a reconciliação roda depois, no
BackgroundScheduler, dentro de um app context próprio.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import scheduler


def _run_in_context(app, func, args, kwargs):
    with app.app_context():
        try:
            func(*args, **kwargs)
        except Exception:
            # a função já tem sua própria fronteira de erro; isto é o último recurso
            app.logger.exception("Deferred job %s failed", getattr(func, "__name__", func))


def defer(func, *args, **kwargs) -> None:
    app = current_app._get_current_object()
    if app.config.get("RUN_DEFERRED_INLINE") or not scheduler.running:
        _run_in_context(app, func, args, kwargs)
        return
    scheduler.add_job(
        _run_in_context,
        trigger="date",
        run_date=datetime.now(),
        args=[app, func, args, kwargs],
        misfire_grace_time=300,
    )
