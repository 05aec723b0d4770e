# D:\splitpay\splitpay\views\admin_views.py
"""
admin_views.py

Rotas administrativas de configuração financeira.

Endpoints:
    - PUT /admin/settings/{key}: Atualiza 'platform_fees' ou 'withdrawal_rules'
    - PUT /admin/organizations/{organization_id}/payment-fees: Taxas de um tenant

Requer: Papel de administrador.
"""

from aiohttp import web

from splitpay.config.settings import DB_SESSION_KEY
from splitpay.middleware.authorization_middleware import require_role
from splitpay.services.errors import FinanceError
from splitpay.services.fee_calculator import FeeConfig
from splitpay.services.settings_service import update_platform_setting, upsert_tenant_payment_fees
from splitpay.views.view_utils import finance_error_response, bad_request

# Definição das rotas
routes = web.RouteTableDef()


@routes.put('/admin/settings/{key}')
@require_role(['admin'])
async def put_platform_setting(request: web.Request) -> web.Response:
    """
    Atualiza uma configuração financeira da plataforma.

    Corpo da requisição (JSON):
        {"fee_percentage": 5.0, "fee_fixed_cents": 0}
    """
    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            setting = await update_platform_setting(
                session, request.match_info["key"], data, updated_by=request["user"]["id"]
            )
        except FinanceError as e:
            return finance_error_response(e)

        return web.json_response(
            {"setting_key": setting.setting_key, "setting_value": setting.setting_value},
            status=200
        )


@routes.put(r'/admin/organizations/{organization_id:\d+}/payment-fees')
@require_role(['admin'])
async def put_tenant_payment_fees(request: web.Request) -> web.Response:
    """
    Cria ou atualiza as taxas de um tenant por meio de pagamento.

    Corpo da requisição (JSON): qualquer subconjunto de pix_fee_percentage,
    pix_fee_fixed_cents, pix_release_days, pix_enabled, card_*, boleto_*,
    max_installments e installment_fees ({"2": 3.49, ...}).
    """
    try:
        data = await request.json()
    except ValueError:
        return bad_request("JSON inválido")
    if not isinstance(data, dict):
        return bad_request("JSON inválido")

    async with request.app[DB_SESSION_KEY]() as session:
        try:
            fees = await upsert_tenant_payment_fees(
                session, int(request.match_info["organization_id"]), data
            )
        except FinanceError as e:
            return finance_error_response(e)

        config = FeeConfig.from_row(fees)
        return web.json_response({
            "organization_id": fees.organization_id,
            "methods": {
                method.value: {
                    "fee_percentage": fee.percentage,
                    "fee_fixed_cents": fee.fixed_cents,
                    "release_days": fee.release_days,
                    "enabled": fee.enabled,
                }
                for method, fee in config.methods.items()
            },
            "max_installments": config.max_installments,
            "installment_fees": {str(k): v for k, v in sorted(config.installment_fees.items())},
        }, status=200)
