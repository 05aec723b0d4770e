# D:\splitpay\splitpay\services\fee_service.py
"""
fee_service.py

Ponto único de cálculo de taxas com a configuração do tenant.

Usado tanto pela cotação exibida no checkout quanto pela liquidação da venda,
garantindo que o valor cotado seja o valor cobrado.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitpay.models.database import TenantPaymentFees
from splitpay.services.fee_calculator import FeeConfig, FeeBreakdown, compute_fees


async def get_fee_config(session: AsyncSession, organization_id: int) -> Optional[FeeConfig]:
    """
    Lê a configuração de taxas de um tenant.

    Returns:
        Optional[FeeConfig]: Configuração do tenant ou None (taxas padrão).
    """
    result = await session.execute(
        select(TenantPaymentFees).where(TenantPaymentFees.organization_id == organization_id)
    )
    row = result.scalar_one_or_none()
    return FeeConfig.from_row(row) if row else None


async def quote_fees(
    session: AsyncSession,
    organization_id: int,
    payment_method,
    amount_cents: int,
    installments: int = 1,
    enforce_availability: bool = True,
) -> FeeBreakdown:
    """
    Calcula as taxas de uma venda de um tenant.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        organization_id (int): ID do tenant.
        payment_method (PaymentMethod | str): Meio de pagamento.
        amount_cents (int): Valor em centavos.
        installments (int): Número de parcelas.
        enforce_availability (bool): False na liquidação: meio desabilitado ou
            limite de parcelas reduzido depois do checkout não impedem o cálculo.

    Returns:
        FeeBreakdown: Detalhamento das taxas.
    """
    config = await get_fee_config(session, organization_id)
    return compute_fees(config, payment_method, amount_cents, installments, enforce_availability)
