# D:\splitpay\splitpay\views\view_utils.py
"""
view_utils.py

Funções auxiliares compartilhadas pelas views: tradução de erros de domínio,
leitura de parâmetros e verificação de acesso às contas virtuais.
"""

from typing import Optional

from aiohttp import web

from splitpay.models.finance_models import VirtualAccount
from splitpay.services.errors import FinanceError


def finance_error_response(error: FinanceError) -> web.Response:
    """Converte um erro de domínio em resposta JSON com código e status HTTP."""
    return web.json_response(error.to_dict(), status=error.status)


def bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


def query_int(request: web.Request, name: str, default: Optional[int] = None) -> Optional[int]:
    """
    Lê um inteiro da query string.

    Raises:
        ValueError: Valor presente mas não numérico.
    """
    value = request.query.get(name)
    if value is None or value == "":
        return default
    return int(value)


def can_access_account(user: dict, account: VirtualAccount) -> bool:
    """
    Administradores acessam qualquer conta; gerentes a conta do seu tenant; os
    demais apenas a própria conta.
    """
    if user["role"] == "admin":
        return True
    if user["role"] == "manager" and account.owner_key == f"tenant:{user.get('organization_id')}":
        return True
    return account.user_id is not None and account.user_id == user["id"]
