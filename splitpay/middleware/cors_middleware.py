# D:\splitpay\splitpay\middleware\cors_middleware.py
"""
cors_middleware.py

Este módulo define a configuração CORS para permitir requisições cross-origin dos
painéis de administração e dos tenants.

Functions:
    setup_cors(app, origins) -> None:
        Configura o CORS para a aplicação AIOHTTP.
"""

import os

import aiohttp_cors

DEFAULT_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:8080",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8080",
)


def setup_cors(app, origins=None):
    """
    Configura o CORS para a aplicação AIOHTTP.

    As origens vêm do argumento, da variável CORS_ORIGINS (separadas por vírgula) ou
    das origens locais de desenvolvimento. As rotas de webhook não recebem CORS,
    pois são chamadas servidor a servidor.

    Args:
        app (web.Application): A aplicação AIOHTTP onde o CORS será configurado.
        origins (Iterable[str], opcional): Origens permitidas.
    """
    if origins is None:
        env_origins = os.getenv("CORS_ORIGINS")
        origins = [o.strip() for o in env_origins.split(",") if o.strip()] if env_origins else DEFAULT_ORIGINS

    cors = aiohttp_cors.setup(app, defaults={
        origin: aiohttp_cors.ResourceOptions(
            allow_credentials=True,
            expose_headers="*",
            allow_headers="*",
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
        )
        for origin in origins
    })

    # Aplicar CORS a todas as rotas existentes na aplicação
    for route in list(app.router.routes()):
        if "/webhook" in (route.resource.canonical if route.resource else ""):
            continue
        cors.add(route)
