# nexfy_app/services/notifications.py
"""E-mails transacionais via API HTTP do Resend. Nunca levanta exceção."""
from __future__ import annotations

import requests
from flask import current_app, render_template

from .currency import format_money


def send_email(to: str, subject: str, html: str) -> dict:
    cfg = current_app.config
    api_key = cfg.get("RESEND_API_KEY")
    if not api_key:
        current_app.logger.info("Email skipped (RESEND_API_KEY vazio): %s -> %s", subject, to)
        return {"success": False, "error": "RESEND_API_KEY nao configurada"}
    try:
        res = requests.post(
            cfg.get("RESEND_API_URL", "https://api.resend.com/emails"),
            json={"from": cfg.get("EMAIL_FROM"), "to": [to], "subject": subject, "html": html},
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=float(cfg.get("GATEWAY_TIMEOUT", 15)),
        )
        data = res.json() if res.content else {}
    except (requests.RequestException, ValueError) as e:
        current_app.logger.exception("Email error")
        return {"success": False, "error": str(e)}
    if res.status_code >= 400:
        current_app.logger.error("Email send error: %s %s", res.status_code, data)
        return {"success": False, "error": data.get("message") or f"HTTP {res.status_code}"}
    return {"success": True, "id": data.get("id")}


def send_welcome_email(transaction, product) -> dict:
    app_url = (current_app.config.get("APP_URL") or "").rstrip("/")
    html = render_template(
        "emails/welcome.html",
        customer_name=transaction.customer_name or "Cliente",
        product_name=product.name,
        access_url=f"{app_url}/member",
        login_url=f"{app_url}/login",
    )
    return send_email(transaction.customer_email, f"Compra confirmada - {product.name}", html)


def send_refund_email(transaction, product, amount=None) -> dict:
    html = render_template(
        "emails/refund.html",
        customer_name=transaction.customer_name or "Cliente",
        product_name=product.name,
        amount=format_money(amount if amount is not None else transaction.amount,
                            transaction.currency or "BRL"),
    )
    return send_email(transaction.customer_email, f"Reembolso processado - {product.name}", html)
