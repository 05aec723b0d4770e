# D:\splitpay\splitpay\services\split_service.py
"""
split_service.py

Divisão do valor de uma venda paga entre os beneficiários e lançamento dos
créditos nas contas virtuais.

Regras de Negócio:
    - taxa_plataforma = arredonda(total * percentual / 100) + fixo
    - tenant = total - taxa_do_meio - taxa_plataforma - comissão_afiliado
    - Cada parcela é limitada ao que resta do total e nunca é negativa
    - Créditos ficam pendentes até agora + dias de liberação do meio de pagamento
    - Uma venda é liquidada no máximo uma vez (divisão única por tipo)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitpay.config.settings import now_utc
from splitpay.models.database import Sale, AffiliateAttribution
from splitpay.models.enums import SplitType
from splitpay.models.finance_models import SaleSplit
from splitpay.services import ledger_service
from splitpay.services.fee_calculator import FeeBreakdown, percentage_of
from splitpay.services.fee_service import quote_fees
from splitpay.services.settings_service import PlatformSettingsSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitPlan:
    """
    Resultado puro da divisão de uma venda.

    Attributes:
        total_cents (int): Valor total da venda.
        method_fee_cents (int): Taxa do meio de pagamento.
        platform_fee_cents (int): Taxa da plataforma.
        affiliate_cents (int): Comissão do afiliado.
        tenant_cents (int): Valor líquido do tenant.
        release_days (int): Dias até a liberação dos créditos.
    """
    total_cents: int
    method_fee_cents: int
    platform_fee_cents: int
    affiliate_cents: int
    tenant_cents: int
    release_days: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_cents": self.total_cents,
            "method_fee_cents": self.method_fee_cents,
            "platform_fee_cents": self.platform_fee_cents,
            "affiliate_cents": self.affiliate_cents,
            "tenant_cents": self.tenant_cents,
            "release_days": self.release_days,
        }


def compute_sale_split(
    total_cents: int,
    fee_breakdown: FeeBreakdown,
    settings: PlatformSettingsSnapshot,
    affiliate_commission_cents: int = 0,
) -> SplitPlan:
    """
    Calcula a divisão de uma venda entre taxa do meio, plataforma, afiliado e tenant.

    Args:
        total_cents (int): Valor total da venda.
        fee_breakdown (FeeBreakdown): Taxas do meio de pagamento (ver fee_service.quote_fees).
        settings (PlatformSettingsSnapshot): Configurações da plataforma.
        affiliate_commission_cents (int): Comissão já calculada do afiliado.

    Returns:
        SplitPlan: Divisão cuja soma das parcelas é igual ao total.
    """
    remaining = max(total_cents, 0)

    method_fee = min(max(fee_breakdown.total_fee_cents, 0), remaining)
    remaining -= method_fee

    platform_fee = percentage_of(total_cents, settings.platform_fee_percentage) + settings.platform_fee_fixed_cents
    platform_fee = min(max(platform_fee, 0), remaining)
    remaining -= platform_fee

    affiliate = min(max(affiliate_commission_cents or 0, 0), remaining)
    remaining -= affiliate

    return SplitPlan(
        total_cents=total_cents,
        method_fee_cents=method_fee,
        platform_fee_cents=platform_fee,
        affiliate_cents=affiliate,
        tenant_cents=remaining,
        release_days=fee_breakdown.release_days,
    )


async def get_sale_splits(session: AsyncSession, sale_id: int) -> List[SaleSplit]:
    result = await session.execute(
        select(SaleSplit).where(SaleSplit.sale_id == sale_id).order_by(SaleSplit.id)
    )
    return list(result.scalars().all())


async def settle_sale(
    session: AsyncSession,
    sale: Sale,
    settings: PlatformSettingsSnapshot,
    now: Optional[datetime] = None,
) -> Optional[SplitPlan]:
    """
    Liquida uma venda paga: grava as divisões e credita os beneficiários.

    Não faz commit; roda dentro da transação do webhook. Se a venda já possui a
    divisão do tenant nada é feito; a restrição única (sale_id, split_type) cobre
    liquidações concorrentes, fazendo a transação perdedora falhar por inteiro.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        sale (Sale): Venda paga.
        settings (PlatformSettingsSnapshot): Configurações lidas no início da operação.
        now (Optional[datetime]): Momento da liquidação.

    Returns:
        Optional[SplitPlan]: Divisão aplicada, ou None se a venda já estava liquidada.
    """
    now = now or now_utc()

    existing = await session.execute(
        select(SaleSplit.id).where(
            SaleSplit.sale_id == sale.id,
            SaleSplit.split_type == SplitType.TENANT,
        )
    )
    if existing.scalar_one_or_none() is not None:
        logger.info("Venda %s já liquidada; nenhuma ação", sale.id)
        return None

    fees = await quote_fees(
        session, sale.organization_id, sale.payment_method, sale.total_cents, sale.installments,
        enforce_availability=False,
    )

    attribution_result = await session.execute(
        select(AffiliateAttribution).where(AffiliateAttribution.sale_id == sale.id)
    )
    attribution = attribution_result.scalar_one_or_none()
    commission = attribution.commission_cents if attribution else 0

    plan = compute_sale_split(sale.total_cents, fees, settings, commission)
    release_at = now + timedelta(days=plan.release_days)

    # Tenant
    tenant_account = await ledger_service.get_or_create_tenant_account(session, sale.organization_id)
    tenant_tx = None
    if plan.tenant_cents > 0:
        tenant_tx = await ledger_service.credit(
            session,
            tenant_account.id,
            plan.tenant_cents,
            release_at,
            sale_id=sale.id,
            reference_id=f"sale:{sale.id}:{SplitType.TENANT.value}",
            fee_cents=plan.method_fee_cents + plan.platform_fee_cents,
            description=f"Venda #{sale.id}",
        )
    session.add(SaleSplit(
        sale_id=sale.id,
        split_type=SplitType.TENANT,
        virtual_account_id=tenant_account.id,
        gross_amount_cents=plan.total_cents - plan.affiliate_cents,
        fee_cents=plan.method_fee_cents + plan.platform_fee_cents,
        net_amount_cents=plan.tenant_cents,
        percentage=_share(plan.tenant_cents, plan.total_cents),
        transaction_id=tenant_tx.id if tenant_tx else None,
    ))

    # Afiliado
    if attribution and plan.affiliate_cents > 0:
        affiliate_account = await ledger_service.get_or_create_affiliate_account(
            session, attribution.affiliate_user_id
        )
        affiliate_tx = await ledger_service.credit(
            session,
            affiliate_account.id,
            plan.affiliate_cents,
            release_at,
            sale_id=sale.id,
            reference_id=f"sale:{sale.id}:{SplitType.AFFILIATE.value}",
            description=f"Comissão da venda #{sale.id}",
        )
        session.add(SaleSplit(
            sale_id=sale.id,
            split_type=SplitType.AFFILIATE,
            virtual_account_id=affiliate_account.id,
            gross_amount_cents=plan.affiliate_cents,
            fee_cents=0,
            net_amount_cents=plan.affiliate_cents,
            percentage=attribution.commission_percentage,
            transaction_id=affiliate_tx.id,
        ))

    # Plataforma (registro contábil, sem conta virtual)
    session.add(SaleSplit(
        sale_id=sale.id,
        split_type=SplitType.PLATFORM,
        virtual_account_id=None,
        gross_amount_cents=plan.platform_fee_cents + plan.method_fee_cents,
        fee_cents=plan.method_fee_cents,
        net_amount_cents=plan.platform_fee_cents,
        percentage=settings.platform_fee_percentage,
    ))

    await session.flush()

    logger.info(
        "Venda %s liquidada: tenant=%s afiliado=%s plataforma=%s taxa_meio=%s liberação=%s",
        sale.id, plan.tenant_cents, plan.affiliate_cents, plan.platform_fee_cents,
        plan.method_fee_cents, release_at.isoformat()
    )
    return plan


def _share(part: int, total: int) -> Optional[float]:
    if not total:
        return None
    return round(part * 100.0 / total, 2)
