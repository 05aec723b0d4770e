# D:\splitpay\splitpay\views\finance_views.py
"""
finance_views.py

Módulo responsável pelos endpoints das contas virtuais: saldo, extrato, dados
bancários, saques e liberação de saldos.

Endpoints:
    - GET /finance/accounts/me: Conta virtual do usuário autenticado
    - GET /finance/accounts/{account_id}: Consulta uma conta virtual
    - GET /finance/accounts/{account_id}/transactions: Extrato paginado
    - PUT /finance/accounts/{account_id}/bank-data: Cadastra os dados bancários
    - POST /finance/accounts/{account_id}/deactivate: Desativa uma conta
    - POST /finance/withdrawals: Solicita um saque
    - GET /finance/withdrawals: Lista solicitações de saque
    - PUT /finance/withdrawals/{withdrawal_id}/review: Revisa uma solicitação
    - POST /finance/releases/run: Libera os créditos pendentes vencidos

Regras de Negócio:
    - Beneficiários acessam apenas a própria conta (gerentes, a conta do tenant)
    - Administradores acessam qualquer conta e revisam os saques
    - Saques são reservados no saldo no momento da solicitação

Dependências:
    - aiohttp para rotas
    - splitpay.services.ledger_service e withdrawal_service para a lógica financeira
    - splitpay.middleware.authorization_middleware para autenticação
"""

from aiohttp import web

from splitpay.config.settings import DB_SESSION_KEY
from splitpay.middleware.authorization_middleware import require_role, require_auth
from splitpay.services import ledger_service, withdrawal_service
from splitpay.services.errors import FinanceError
from splitpay.views.view_utils import (
    finance_error_response, bad_request, query_int, can_access_account
)

# Definição das rotas
routes = web.RouteTableDef()

FORBIDDEN = {"error": "Acesso negado a esta conta"}


def _account_id(request: web.Request) -> int:
    return int(request.match_info["account_id"])


@routes.get('/finance/accounts/me')
@require_auth
async def get_my_account(request: web.Request) -> web.Response:
    """
    Retorna a conta virtual do usuário autenticado, com os dados bancários principais.
    """
    user = request["user"]
    async with request.app[DB_SESSION_KEY]() as session:
        try:
            account = await ledger_service.find_account_for_user(
                session, user["id"], user["role"], user.get("organization_id")
            )
        except FinanceError as e:
            return finance_error_response(e)

        bank_data = await withdrawal_service.get_primary_bank_data(session, account.id)
        data = account.to_dict()
        data["bank_data"] = bank_data.to_dict() if bank_data else None
        return web.json_response(data, status=200)


@routes.get(r'/finance/accounts/{account_id:\d+}')
@require_auth
async def get_account(request: web.Request) -> web.Response:
    async with request.app[DB_SESSION_KEY]() as session:
        try:
            account = await ledger_service.get_account(session, _account_id(request))
        except FinanceError as e:
            return finance_error_response(e)

        if not can_access_account(request["user"], account):
            return web.json_response(FORBIDDEN, status=403)

        bank_data = await withdrawal_service.get_primary_bank_data(session, account.id)
        data = account.to_dict()
        data["bank_data"] = bank_data.to_dict() if bank_data else None
        return web.json_response(data, status=200)


@routes.get(r'/finance/accounts/{account_id:\d+}/transactions')
@require_auth
async def get_account_transactions(request: web.Request) -> web.Response:
    """
    Retorna o extrato de uma conta virtual.

    Query params:
        type (str, opcional): credit, debit, fee, withdrawal, refund ou chargeback
        page (int, opcional): Página de resultados (padrão: 1)
        page_size (int, opcional): Tamanho da página (padrão: 20, máximo 100)

    Returns:
        web.Response: JSON com a conta, as transações e metadados de paginação
    """
    try:
        page = max(query_int(request, "page", 1), 1)
        page_size = min(max(query_int(request, "page_size", 20), 1), 100)
    except ValueError:
        return bad_request("Parâmetros de paginação inválidos")

    transaction_type = request.query.get("type")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            account = await ledger_service.get_account(session, _account_id(request))
            if not can_access_account(request["user"], account):
                return web.json_response(FORBIDDEN, status=403)
            statement = await ledger_service.get_account_statement(
                session, account.id, page, page_size, transaction_type
            )
        except FinanceError as e:
            return finance_error_response(e)
        except ValueError:
            return bad_request(f"Tipo de transação inválido: {transaction_type}")

    return web.json_response(statement, status=200)


@routes.put(r'/finance/accounts/{account_id:\d+}/bank-data')
@require_auth
async def update_bank_data(request: web.Request) -> web.Response:
    """
    Cadastra ou atualiza os dados bancários principais de uma conta.

    Corpo da requisição (JSON): bank_code, bank_name, agency, account_number,
    account_holder, document, pix_key, pix_key_type.
    """
    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")
    if not isinstance(data, dict):
        return bad_request("JSON inválido")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            account = await ledger_service.get_account(session, _account_id(request))
            if not can_access_account(request["user"], account):
                return web.json_response(FORBIDDEN, status=403)
            bank_data = await withdrawal_service.upsert_bank_data(session, account.id, data)
        except FinanceError as e:
            return finance_error_response(e)

        return web.json_response(
            {"message": "Dados bancários atualizados", "bank_data": bank_data.to_dict()},
            status=200
        )


@routes.post(r'/finance/accounts/{account_id:\d+}/deactivate')
@require_role(['admin'])
async def deactivate_account(request: web.Request) -> web.Response:
    async with request.app[DB_SESSION_KEY]() as session:
        try:
            account = await ledger_service.deactivate_account(session, _account_id(request))
        except FinanceError as e:
            return finance_error_response(e)
        return web.json_response({"message": "Conta desativada", "account": account.to_dict()})


@routes.post('/finance/withdrawals')
@require_auth
async def create_withdrawal(request: web.Request) -> web.Response:
    """
    Solicita um saque.

    Corpo da requisição (JSON):
        {
            "account_id": 1,       // opcional; padrão é a conta do usuário
            "amount_cents": 5000
        }

    Returns:
        web.Response: 201 com a solicitação criada; 400 com o código do erro
        (insufficient_balance, missing_bank_data, invalid_amount, ...).
    """
    user = request["user"]
    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")
    if not isinstance(data, dict):
        return bad_request("JSON inválido")

    amount_cents = data.get("amount_cents")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            if data.get("account_id") is not None:
                account = await ledger_service.get_account(session, int(data["account_id"]))
                if not can_access_account(user, account):
                    return web.json_response(FORBIDDEN, status=403)
            else:
                account = await ledger_service.find_account_for_user(
                    session, user["id"], user["role"], user.get("organization_id")
                )
            withdrawal = await withdrawal_service.request_withdrawal(
                session, account.id, amount_cents, requested_by=user["id"]
            )
        except FinanceError as e:
            return finance_error_response(e)
        except (TypeError, ValueError):
            return bad_request("account_id inválido")

        return web.json_response(
            {"message": "Saque solicitado", "withdrawal": withdrawal.to_dict()},
            status=201
        )


@routes.get('/finance/withdrawals')
@require_auth
async def list_withdrawals(request: web.Request) -> web.Response:
    """
    Lista solicitações de saque.

    Administradores veem todas (filtro opcional account_id); os demais apenas as
    da própria conta.

    Query params:
        status (str, opcional): Um ou mais status separados por vírgula
        account_id (int, opcional): Apenas administradores
        page, page_size (int, opcionais)
    """
    user = request["user"]
    try:
        page = max(query_int(request, "page", 1), 1)
        page_size = min(max(query_int(request, "page_size", 20), 1), 100)
        account_id = query_int(request, "account_id")
    except ValueError:
        return bad_request("Parâmetros numéricos inválidos")

    statuses = [s for s in request.query.get("status", "").split(",") if s] or None

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            if user["role"] != "admin":
                account = await ledger_service.find_account_for_user(
                    session, user["id"], user["role"], user.get("organization_id")
                )
                account_id = account.id
            result = await withdrawal_service.list_withdrawals(
                session, account_id=account_id, statuses=statuses, page=page, page_size=page_size
            )
        except FinanceError as e:
            return finance_error_response(e)
        except ValueError:
            return bad_request("Status de saque inválido")

    return web.json_response(result, status=200)


@routes.put(r'/finance/withdrawals/{withdrawal_id:\d+}/review')
@require_role(['admin'])
async def review_withdrawal(request: web.Request) -> web.Response:
    """
    Revisa uma solicitação de saque.

    Corpo da requisição (JSON):
        {
            "status": "approved" | "processing" | "completed" | "rejected",
            "rejection_reason": "...",     // rejeição
            "transfer_proof_url": "..."    // conclusão
        }

    Returns:
        web.Response: 200 com a solicitação atualizada; 409 para transição inválida.

    Requer: Papel de administrador.
    """
    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")
    if not isinstance(data, dict):
        return bad_request("JSON inválido")

    new_status = data.get("status")
    if not new_status:
        return bad_request("status é obrigatório")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            withdrawal = await withdrawal_service.review_withdrawal(
                session,
                int(request.match_info["withdrawal_id"]),
                new_status,
                reviewer_id=request["user"]["id"],
                rejection_reason=data.get("rejection_reason"),
                transfer_proof_url=data.get("transfer_proof_url"),
            )
        except FinanceError as e:
            return finance_error_response(e)

        return web.json_response(
            {"message": f"Saque {withdrawal.status.value}", "withdrawal": withdrawal.to_dict()},
            status=200
        )


@routes.post('/finance/releases/run')
@require_role(['admin'])
async def run_releases(request: web.Request) -> web.Response:
    async with request.app[DB_SESSION_KEY]() as session:
        released = await ledger_service.release_due_transactions(session)
    return web.json_response({"released": released}, status=200)
