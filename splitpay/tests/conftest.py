# D:\splitpay\splitpay\tests\conftest.py

"""
conftest.py

Este módulo contém fixtures para configuração de banco de dados e cliente de teste
utilizados nos testes da aplicação.

Cada teste usa um banco SQLite em arquivo próprio (tmp_path), o que permite abrir
várias sessões simultâneas, como acontece com requisições concorrentes.

Fixtures:
    setup_database: Cria o banco e o schema; entrega o engine.
    session_maker: Criador de sessões ligado ao banco de teste.
    async_db_session: Sessão de banco de dados assíncrona para testes de serviço.
    test_client_fixture: Cliente de teste para a aplicação AIOHTTP.
"""

import logging

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer, TestClient

from splitpay.config.settings import DB_SESSION_KEY
from splitpay.models.database import Base, get_async_engine, get_session_maker

# Importa os módulos de rotas
from splitpay.views.admin_views import routes as admin_routes
from splitpay.views.finance_views import routes as finance_routes
from splitpay.views.payment_views import routes as payment_routes
from splitpay.views.sales_views import routes as sales_routes


@pytest_asyncio.fixture(scope="function")
async def setup_database(tmp_path):
    """
    Configura um banco de dados em arquivo, exclusivo do teste.

    Yields:
        AsyncEngine: Engine ligado ao banco de teste.
    """
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'splitpay_test.db'}"
    engine = get_async_engine(db_url)

    # Cria as tabelas
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(setup_database):
    """
    Criador de sessões do banco de teste, para testes que precisam de várias sessões.
    """
    return get_session_maker(setup_database)


@pytest_asyncio.fixture(scope="function")
async def async_db_session(session_maker):
    """
    Configura uma sessão de banco de dados assíncrona para testes.

    Yields:
        AsyncSession: Sessão de banco de dados assíncrona configurada para testes.
    """
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_client_fixture(session_maker):
    """
    Configura um cliente de teste para a aplicação AIOHTTP.

    Yields:
        TestClient: Cliente de teste configurado para a aplicação.
    """
    # Monta a aplicação AIOHTTP
    app = web.Application()
    # Injeta o criador de sessões usando a key do AIOHTTP
    app[DB_SESSION_KEY] = session_maker

    # Adiciona as rotas
    app.add_routes(payment_routes)
    app.add_routes(finance_routes)
    app.add_routes(sales_routes)
    app.add_routes(admin_routes)

    server = TestServer(app)
    client = TestClient(server)

    async with server, client:
        yield client


@pytest.fixture(autouse=True)
def _finance_logging(caplog):
    """Captura os logs dos serviços financeiros em nível INFO."""
    caplog.set_level(logging.INFO, logger="splitpay")
    return caplog
