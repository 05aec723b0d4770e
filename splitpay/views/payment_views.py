# D:\splitpay\splitpay\views\payment_views.py
"""
payment_views.py

Este módulo contém as rotas relacionadas a pagamentos: recebimento de webhooks dos
gateways, cotação de taxas e configuração dos gateways.

Endpoints:
    - POST /payments/webhooks/{gateway}: Recebe webhooks de um gateway específico
    - POST /payments/webhook: Recebe webhooks detectando o gateway pelo payload
    - GET /payments/webhook: Verificação de disponibilidade do receptor
    - GET /payments/fees/quote: Cota as taxas de uma venda
    - POST /payments/gateways/config: Configura um gateway
    - GET /payments/gateways: Lista os gateways configurados

Regras de Negócio:
    - Webhooks não exigem token, mas têm a assinatura verificada
    - Eventos ignorados ou duplicados respondem 200 para que o gateway não reenvie
    - Falhas no processamento respondem 500 para que o gateway reenvie
    - Apenas administradores configuram gateways

Dependências:
    - AIOHTTP para manipulação de requisições.
    - Middleware de autenticação para proteção dos endpoints.
    - PaymentService para o processamento dos webhooks.
"""

import logging

from aiohttp import web

from splitpay.config.settings import DB_SESSION_KEY
from splitpay.middleware.authorization_middleware import require_role, require_auth
from splitpay.services.errors import FinanceError, InvalidWebhookSignature, UnsupportedGateway
from splitpay.services.fee_service import quote_fees
from splitpay.services.payment.gateway_factory import PaymentGatewayFactory
from splitpay.services.payment_service import PaymentService, InvalidWebhookPayload
from splitpay.views.view_utils import finance_error_response, bad_request, query_int

logger = logging.getLogger(__name__)

# Definição das rotas
routes = web.RouteTableDef()


async def _handle_webhook(request: web.Request, gateway_name=None) -> web.Response:
    raw_body = await request.read()

    async with request.app[DB_SESSION_KEY]() as session:
        service = PaymentService(session)
        try:
            result = await service.process_webhook(gateway_name, raw_body, request.headers)
        except InvalidWebhookPayload as e:
            return web.json_response({"error": str(e)}, status=400)
        except InvalidWebhookSignature as e:
            logger.warning("Webhook recusado: %s", e.message)
            return finance_error_response(e)
        except UnsupportedGateway as e:
            logger.warning("Webhook ignorado: %s", e.message)
            return web.json_response({"received": True, "processed": False, "message": e.message})
        except Exception:
            return web.json_response(
                {"error": "Erro ao processar webhook"},
                status=500
            )

    return web.json_response(result.to_dict(), status=200)


@routes.post('/payments/webhooks/{gateway}')
async def receive_gateway_webhook(request: web.Request) -> web.Response:
    """
    Recebe o webhook de um gateway específico.

    Path params:
        gateway (str): 'pagarme', 'stripe' ou 'asaas'.

    Returns:
        web.Response: 200 com {"received": true, ...}; 400 para JSON inválido;
        401 para assinatura inválida; 500 em falha de processamento.
    """
    return await _handle_webhook(request, request.match_info["gateway"])


@routes.post('/payments/webhook')
async def receive_webhook(request: web.Request) -> web.Response:
    """
    Recebe um webhook identificando o gateway pelo formato do payload.
    """
    return await _handle_webhook(request)


@routes.get('/payments/webhook')
async def webhook_health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "ok",
        "gateways": sorted(PaymentGatewayFactory.get_supported_gateways()),
    })


@routes.get('/payments/fees/quote')
@require_auth
async def quote_payment_fees(request: web.Request) -> web.Response:
    """
    Cota as taxas de uma venda com a configuração do tenant.

    Usa o mesmo cálculo da liquidação, portanto o valor cotado é o valor cobrado.

    Query params:
        amount_cents (int): Valor da venda.
        payment_method (str): pix, credit_card ou boleto.
        installments (int, opcional): Parcelas (padrão 1).
        organization_id (int, opcional): Tenant (apenas administradores; os demais
            usam o tenant do token).

    Returns:
        web.Response: JSON com o detalhamento das taxas.
    """
    user = request["user"]
    try:
        amount_cents = query_int(request, "amount_cents")
        installments = query_int(request, "installments", 1)
        organization_id = query_int(request, "organization_id")
    except ValueError:
        return bad_request("Parâmetros numéricos inválidos")

    payment_method = request.query.get("payment_method")
    if amount_cents is None or not payment_method:
        return bad_request("amount_cents e payment_method são obrigatórios")

    if user["role"] != "admin" or organization_id is None:
        organization_id = user.get("organization_id")
    if organization_id is None:
        return bad_request("Tenant não informado")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            breakdown = await quote_fees(session, organization_id, payment_method, amount_cents, installments)
        except FinanceError as e:
            return finance_error_response(e)

    data = breakdown.to_dict()
    data.update({
        "organization_id": organization_id,
        "payment_method": payment_method,
        "amount_cents": amount_cents,
        "installments": installments,
    })
    return web.json_response(data, status=200)


@routes.post('/payments/gateways/config')
@require_role(['admin'])
async def configure_payment_gateway(request: web.Request) -> web.Response:
    """
    Configura um gateway de pagamento.

    Corpo da requisição (JSON):
        {
            "gateway_name": "pagarme",
            "api_key": "ak_...",
            "webhook_secret": "...",
            "is_active": true,
            "configuration": {}
        }

    Returns:
        web.Response: 201 com a configuração (sem segredos).

    Requer: Papel de administrador.
    """
    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")

    gateway_name = data.get("gateway_name")
    if not gateway_name:
        return bad_request("Nome do gateway é obrigatório")

    async with request.app[DB_SESSION_KEY]() as session:
        service = PaymentService(session)
        try:
            config = await service.create_or_update_gateway_config(
                gateway_name=gateway_name,
                api_key=data.get("api_key"),
                webhook_secret=data.get("webhook_secret"),
                is_active=data.get("is_active", True),
                configuration=data.get("configuration"),
            )
        except FinanceError as e:
            return finance_error_response(e)

        return web.json_response(
            {
                "message": f"Gateway {config.gateway_name} configurado com sucesso",
                "config": config.to_dict(),
            },
            status=201
        )


@routes.get('/payments/gateways')
@require_role(['admin'])
async def list_payment_gateways(request: web.Request) -> web.Response:
    async with request.app[DB_SESSION_KEY]() as session:
        configs = await PaymentService(session).list_gateway_configs()
        return web.json_response({"gateways": [c.to_dict() for c in configs]})
