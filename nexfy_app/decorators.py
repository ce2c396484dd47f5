# nexfy_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session

from .errors import Unauthorized
from .models import User


def current_user() -> User | None:
    data = session.get("user")
    if not data:
        return None
    email = data.get("email")
    if not email:
        return None
    return User.query.filter_by(email=email, active=True).first()


def api_login_required(view_func):
    """Versão JSON do login_required: responde 401 em vez de redirecionar."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not current_user():
            raise Unauthorized("Faca login para continuar")
        return view_func(*args, **kwargs)
    return wrapper
