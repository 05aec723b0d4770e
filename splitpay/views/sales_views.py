# D:\splitpay\splitpay\views\sales_views.py
"""
sales_views.py

Este módulo contém as rotas de entrega e de conferência de pagamentos em dinheiro.

Endpoints:
    - PUT /sales/{sale_id}/delivery: Marca a venda como despachada ou entregue
    - POST /sales/{sale_id}/cash-confirmations: Registra uma confirmação de dinheiro
    - GET /sales/cash-payments: Lista vendas em dinheiro e suas confirmações

Regras de Negócio:
    - Usuários de um tenant só operam vendas do próprio tenant
    - Administradores operam vendas de qualquer tenant
    - Confirmações nunca são alteradas; cada chamada cria um novo registro
"""

from aiohttp import web

from splitpay.config.settings import DB_SESSION_KEY
from splitpay.middleware.authorization_middleware import require_role
from splitpay.services.cash_confirmation_service import (
    confirm_cash_payment, list_cash_payment_sales, update_delivery_status
)
from splitpay.services.errors import FinanceError
from splitpay.views.view_utils import finance_error_response, bad_request, query_int

# Definição das rotas
routes = web.RouteTableDef()

STAFF_ROLES = ['admin', 'manager', 'user']


def _tenant_scope(user: dict):
    """Tenant ao qual as operações ficam restritas (None para administradores)."""
    return None if user["role"] == "admin" else user.get("organization_id")


@routes.put(r'/sales/{sale_id:\d+}/delivery')
@require_role(STAFF_ROLES)
async def set_delivery_status(request: web.Request) -> web.Response:
    """
    Atualiza o status de entrega de uma venda.

    Corpo da requisição (JSON):
        {"status": "dispatched" | "delivered", "delivery_payment_type": "cash"}
    """
    user = request["user"]
    if user["role"] != "admin" and user.get("organization_id") is None:
        return web.json_response({"error": "Usuário sem tenant"}, status=403)

    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")
    if not isinstance(data, dict):
        return bad_request("JSON inválido")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            sale = await update_delivery_status(
                session,
                int(request.match_info["sale_id"]),
                data.get("status"),
                user["id"],
                delivery_payment_type=data.get("delivery_payment_type"),
                organization_id=_tenant_scope(user),
            )
        except FinanceError as e:
            return finance_error_response(e)

        return web.json_response({
            "sale_id": sale.id,
            "status": sale.status.value,
            "delivery_payment_type": sale.delivery_payment_type,
            "delivery_confirmed_by": sale.delivery_confirmed_by,
            "delivery_confirmed_at": sale.delivery_confirmed_at.isoformat() if sale.delivery_confirmed_at else None,
        }, status=200)


@routes.post(r'/sales/{sale_id:\d+}/cash-confirmations')
@require_role(STAFF_ROLES)
async def create_cash_confirmation(request: web.Request) -> web.Response:
    """
    Registra uma confirmação de pagamento em dinheiro.

    Corpo da requisição (JSON):
        {
            "confirmation_type": "receipt" | "handover" | "final_verification",
            "notes": "...",          // opcional
            "amount_cents": 10000    // opcional
        }

    Returns:
        web.Response: 201 com a confirmação criada.
    """
    user = request["user"]
    if user["role"] != "admin" and user.get("organization_id") is None:
        return web.json_response({"error": "Usuário sem tenant"}, status=403)

    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")
    if not isinstance(data, dict):
        return bad_request("JSON inválido")

    amount_cents = data.get("amount_cents")
    if amount_cents is not None and (not isinstance(amount_cents, int) or amount_cents < 0):
        return bad_request("amount_cents deve ser um inteiro não negativo")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            confirmation = await confirm_cash_payment(
                session,
                int(request.match_info["sale_id"]),
                data.get("confirmation_type"),
                user["id"],
                notes=data.get("notes"),
                amount_cents=amount_cents,
                organization_id=_tenant_scope(user),
            )
        except FinanceError as e:
            return finance_error_response(e)

        return web.json_response({
            "id": confirmation.id,
            "sale_id": confirmation.sale_id,
            "confirmation_type": confirmation.confirmation_type.value,
            "confirmed_by": confirmation.confirmed_by,
            "amount_cents": confirmation.amount_cents,
            "notes": confirmation.notes,
            "created_at": confirmation.created_at.isoformat() if confirmation.created_at else None,
        }, status=201)


@routes.get('/sales/cash-payments')
@require_role(STAFF_ROLES)
async def get_cash_payments(request: web.Request) -> web.Response:
    """
    Lista as vendas em dinheiro entregues ou despachadas com suas confirmações.

    Query params:
        pending_only (bool, opcional): Apenas vendas sem conferência final.
        organization_id (int, opcional): Apenas administradores.
    """
    user = request["user"]
    pending_only = request.query.get("pending_only", "false").lower() in ("1", "true", "yes")

    organization_id = _tenant_scope(user)
    if user["role"] == "admin":
        try:
            organization_id = query_int(request, "organization_id")
        except ValueError:
            return bad_request("organization_id inválido")
    elif organization_id is None:
        return web.json_response({"error": "Usuário sem tenant"}, status=403)

    async with request.app[DB_SESSION_KEY]() as session:
        sales = await list_cash_payment_sales(session, organization_id=organization_id, pending_only=pending_only)

    return web.json_response({"sales": sales, "total": len(sales)}, status=200)
