# D:\splitpay\splitpay\middleware\authorization_middleware.py
"""
authorization_middleware.py

Este módulo define decoradores para verificar autorização com base no papel (role) do usuário
armazenado no token JWT. Ele extrai o token do cabeçalho Authorization, decodifica-o e checa
se o usuário possui um dos papéis exigidos para acessar a rota.

Funções:
    require_role(allowed_roles: List[str]) -> Callable:
        Decorador que valida o papel do usuário antes de executar a rota.

    require_auth(handler) -> Callable:
        Decorador que apenas verifica se o usuário está autenticado.

Os dados do usuário ficam em request["user"]: id, role e organization_id.

Exemplo de Uso:
    @routes.put("/finance/withdrawals/{withdrawal_id}/review")
    @require_role(["admin"])
    async def review(request: web.Request) -> web.Response:
        ...
"""

import functools
import json
from typing import Callable, List
from aiohttp import web
from splitpay.services.auth_service import AuthService


def _unauthorized(message: str) -> web.HTTPUnauthorized:
    return web.HTTPUnauthorized(
        text=json.dumps({"error": message}),
        content_type="application/json"
    )


async def _authenticate(request: web.Request) -> dict:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise _unauthorized("Missing or invalid Authorization header")

    try:
        payload = AuthService.verify_jwt_token(auth_header.split(" ", 1)[1])
    except ValueError as e:
        # Token expirado ou inválido
        raise _unauthorized(str(e))

    user_id = payload.get("sub")
    organization_id = payload.get("organization_id")
    user = {
        "id": int(user_id) if user_id is not None else None,
        "role": payload.get("role"),
        "organization_id": int(organization_id) if organization_id is not None else None,
    }
    # Armazena os dados do usuário no request, para uso nas rotas.
    request["user"] = user
    return user


def require_role(allowed_roles: List[str]) -> Callable:
    """
    Decorador que verifica se o usuário possui um dos papéis especificados.

    Args:
        allowed_roles (List[str]): Lista de papéis que podem acessar a rota (ex.: ["admin", "manager"]).

    Returns:
        Callable: Função decoradora que envolve o handler original.

    Raises:
        web.HTTPUnauthorized: Se o cabeçalho Authorization estiver ausente ou inválido, ou se o token for inválido.
        web.HTTPForbidden: Se o papel do usuário não estiver em allowed_roles.
    """
    def decorator(handler: Callable) -> Callable:
        @functools.wraps(handler)
        async def wrapper(request: web.Request) -> web.Response:
            user = await _authenticate(request)
            if user["role"] not in allowed_roles:
                raise web.HTTPForbidden(
                    text='{"error": "Acesso negado: privilégio insuficiente."}',
                    content_type="application/json"
                )
            return await handler(request)
        return wrapper
    return decorator


def require_auth(handler: Callable) -> Callable:
    """
    Decorador que verifica apenas se o usuário está autenticado, sem verificar papéis.

    Args:
        handler (Callable): O handler original da rota.

    Returns:
        Callable: Função decoradora que envolve o handler original.

    Raises:
        web.HTTPUnauthorized: Se o token estiver ausente, inválido ou expirado.
    """
    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.Response:
        await _authenticate(request)
        return await handler(request)
    return wrapper
