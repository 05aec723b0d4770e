# D:\splitpay\main.py

"""
main.py

Este módulo inicializa e executa a aplicação AIOHTTP. Ele configura o logging e o
banco de dados, registra as rotas, agenda a rotina de liberação de saldos e inicia
o servidor web.

Functions:
    init_app() -> web.Application:
        Inicializa a aplicação, configurando o banco de dados e as rotas.

    release_job(app) -> AsyncIterator[None]:
        Contexto de ciclo de vida que executa periodicamente a liberação dos
        créditos pendentes vencidos.

    main() -> None:
        Executa a aplicação e inicia o servidor.
"""

import asyncio
import logging

from aiohttp import web

from splitpay.config.settings import (
    DATABASE_URL, DB_SESSION_KEY, LOG_LEVEL, RELEASE_JOB_INTERVAL_SECONDS, HOST, PORT
)
from splitpay.middleware.cors_middleware import setup_cors
from splitpay.models.database import create_database, get_session_maker, get_async_engine
from splitpay.services.ledger_service import release_due_transactions
from splitpay.views.admin_views import routes as admin_routes
from splitpay.views.finance_views import routes as finance_routes
from splitpay.views.payment_views import routes as payment_routes
from splitpay.views.sales_views import routes as sales_routes

logger = logging.getLogger(__name__)


async def release_job(app: web.Application):
    """
    Executa a liberação de créditos vencidos a cada RELEASE_JOB_INTERVAL_SECONDS.

    Falhas são registradas em log e a rotina continua no próximo ciclo.
    """
    async def _loop():
        while True:
            await asyncio.sleep(RELEASE_JOB_INTERVAL_SECONDS)
            try:
                async with app[DB_SESSION_KEY]() as session:
                    await release_due_transactions(session)
            except Exception:
                logger.exception("Falha na rotina de liberação de saldos")

    task = None
    if RELEASE_JOB_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(_loop())
        logger.info("Rotina de liberação agendada a cada %ss", RELEASE_JOB_INTERVAL_SECONDS)

    yield

    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def init_app():
    """
    Inicializa a aplicação, criando as tabelas do banco de dados e configurando rotas.

    Returns:
        web.Application: Instância configurada da aplicação AIOHTTP.
    """
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )

    # Cria as tabelas do banco de dados
    await create_database(DATABASE_URL)

    # Configuração do banco de dados
    engine = get_async_engine(DATABASE_URL)

    # Configuração da aplicação AIOHTTP
    app = web.Application()
    app[DB_SESSION_KEY] = get_session_maker(engine)

    app.add_routes(payment_routes)
    app.add_routes(finance_routes)
    app.add_routes(sales_routes)
    app.add_routes(admin_routes)

    # Configuração do CORS
    setup_cors(app)

    app.cleanup_ctx.append(release_job)

    async def dispose_engine(_app):
        await engine.dispose()

    app.on_cleanup.append(dispose_engine)

    return app


def main():
    """
    Executa a aplicação em HOST:PORT.
    """
    web.run_app(init_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    main()
