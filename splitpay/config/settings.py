# D:\splitpay\splitpay\config\settings.py

"""
settings.py

Este módulo contém as configurações principais da aplicação, incluindo variáveis
de ambiente, configurações do banco de dados, chave JWT, logging e a rotina de
liberação de saldos.

Configurações:
    JWT_SECRET_KEY: Chave secreta para verificar tokens JWT.
    JWT_ALGORITHM: Algoritmo de assinatura dos tokens.
    DATABASE_URL: URL de conexão com o banco de dados assíncrono.
    LOG_LEVEL: Nível de log da aplicação.
    WEBHOOK_SIGNATURE_REQUIRED: Se webhooks sem segredo configurado devem ser rejeitados.
    RELEASE_JOB_INTERVAL_SECONDS: Intervalo da rotina de liberação de saldos pendentes.
    DB_SESSION_KEY: Chave para armazenar o criador de sessões na aplicação.
"""

from dotenv import load_dotenv
import os
from aiohttp import web
from sqlalchemy.ext.asyncio import async_sessionmaker
from datetime import datetime, timezone

# Carrega as variáveis do arquivo .env
load_dotenv()

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "default_secret_key")
"""
str: Chave secreta usada para verificar tokens JWT emitidos pelo serviço de autenticação.
Carregada de uma variável de ambiente ou definida como um valor padrão para desenvolvimento.
"""

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

JWT_EXPIRATION_MINUTES = int(os.getenv("JWT_EXPIRATION_MINUTES", 60))
"""
int: Tempo de expiração dos tokens JWT, em minutos.
"""

# URL do banco de dados assíncrono
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./splitpay.db")
"""
str: URL de conexão com o banco de dados assíncrono.
Carregada de uma variável de ambiente ou definida como SQLite em ambiente de desenvolvimento.
"""

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

WEBHOOK_SIGNATURE_REQUIRED = os.getenv("WEBHOOK_SIGNATURE_REQUIRED", "true").lower() in ("1", "true", "yes")
"""
bool: Quando verdadeiro, webhooks de gateways sem segredo configurado são recusados.
Gateways com segredo configurado são sempre verificados.
"""

RELEASE_JOB_INTERVAL_SECONDS = int(os.getenv("RELEASE_JOB_INTERVAL_SECONDS", 300))
"""
int: Intervalo, em segundos, da rotina que libera saldos pendentes vencidos. 0 desativa.
"""

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

DB_SESSION_KEY = web.AppKey[async_sessionmaker]("db_session_maker")
"""
web.AppKey[async_sessionmaker]: Chave para armazenar o criador de sessões na aplicação AIOHTTP.
Cada requisição abre a sua própria sessão.
"""


def now_utc() -> datetime:
    """
    Retorna a data e hora atual em UTC, sem tzinfo, no formato gravado no banco.

    Returns:
        datetime: Data e hora atual (UTC, naive).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
