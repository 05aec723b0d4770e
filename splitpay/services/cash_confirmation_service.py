# D:\splitpay\splitpay\services\cash_confirmation_service.py
"""
cash_confirmation_service.py

Cadeia de confirmação de pagamentos em dinheiro recebidos na entrega.

O protocolo esperado é: o entregador confirma o recebimento (receipt), confirma o
repasse ao responsável (handover) e o financeiro faz a conferência final
(final_verification). A ordem é apenas orientativa: qualquer confirmação é aceita
a qualquer momento e todas ficam registradas.

Regras de Negócio:
    - Confirmações são append-only: nunca alteradas ou excluídas
    - Apenas vendas com pagamento em dinheiro aceitam confirmações
    - Cada confirmação gera um registro no histórico da venda
    - Vendas entregues/despachadas sem conferência final aparecem como pendentes
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from splitpay.config.settings import now_utc
from splitpay.models.database import Sale, SaleChangeLog, CashPaymentConfirmation
from splitpay.models.enums import ConfirmationType, PaymentMethod, SaleStatus
from splitpay.services.errors import (
    SaleNotFound, NotCashSale, InvalidConfirmationType, InvalidDeliveryStatus
)

logger = logging.getLogger(__name__)

CONFIRMATION_ORDER = (
    ConfirmationType.RECEIPT,
    ConfirmationType.HANDOVER,
    ConfirmationType.FINAL_VERIFICATION,
)

LISTED_STATUSES = (SaleStatus.DELIVERED, SaleStatus.DISPATCHED)

DELIVERY_STATUSES = (SaleStatus.DISPATCHED, SaleStatus.DELIVERED)


def is_cash_sale(sale: Sale) -> bool:
    """Venda paga em dinheiro, seja no checkout ou na entrega."""
    return sale.payment_method == PaymentMethod.CASH or (sale.delivery_payment_type or "").lower() == "cash"


def _cash_sale_filter():
    return or_(Sale.payment_method == PaymentMethod.CASH, Sale.delivery_payment_type == "cash")


async def confirm_cash_payment(
    session: AsyncSession,
    sale_id: int,
    confirmation_type,
    confirmed_by: int,
    notes: Optional[str] = None,
    amount_cents: Optional[int] = None,
    organization_id: Optional[int] = None
) -> CashPaymentConfirmation:
    """
    Registra uma confirmação de pagamento em dinheiro.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        sale_id (int): ID da venda.
        confirmation_type (ConfirmationType | str): receipt, handover ou final_verification.
        confirmed_by (int): Usuário que confirma.
        notes (Optional[str]): Observações.
        amount_cents (Optional[int]): Valor conferido.
        organization_id (Optional[int]): Quando informado, a venda deve ser deste tenant.

    Returns:
        CashPaymentConfirmation: Confirmação criada.

    Raises:
        InvalidConfirmationType: Tipo fora da lista permitida.
        SaleNotFound: Venda inexistente.
        NotCashSale: A venda não é paga em dinheiro.
    """
    try:
        kind = ConfirmationType(confirmation_type)
    except ValueError:
        raise InvalidConfirmationType(f"Tipo de confirmação inválido: {confirmation_type}")

    sale = await session.get(Sale, sale_id)
    if sale is None or (organization_id is not None and sale.organization_id != organization_id):
        raise SaleNotFound(f"Venda {sale_id} não encontrada")
    if not is_cash_sale(sale):
        raise NotCashSale(f"A venda {sale_id} não é um pagamento em dinheiro")

    confirmation = CashPaymentConfirmation(
        sale_id=sale_id,
        confirmation_type=kind,
        confirmed_by=confirmed_by,
        amount_cents=amount_cents,
        notes=notes,
    )
    session.add(confirmation)
    session.add(SaleChangeLog(
        sale_id=sale_id,
        change_type="cash_confirmation",
        field_name="confirmation_type",
        new_value=kind.value,
        changed_by=confirmed_by,
        source="cash_verification",
    ))

    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(confirmation)
    logger.info("Confirmação %s registrada na venda %s por %s", kind.value, sale_id, confirmed_by)
    return confirmation


def _next_action(types: set) -> Optional[str]:
    for kind in CONFIRMATION_ORDER:
        if kind not in types:
            return kind.value
    return None


async def list_cash_payment_sales(
    session: AsyncSession,
    organization_id: Optional[int] = None,
    pending_only: bool = False
) -> List[Dict]:
    """
    Lista vendas em dinheiro entregues ou despachadas com suas confirmações.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        organization_id (Optional[int]): Restringe a um tenant.
        pending_only (bool): Exclui vendas que já têm conferência final.

    Returns:
        List[Dict]: Vendas com 'confirmations' (ordem cronológica),
        'pending_final_verification' e 'next_action'.
    """
    stmt = (
        select(Sale)
        .options(selectinload(Sale.confirmations))
        .where(_cash_sale_filter(), Sale.status.in_(LISTED_STATUSES))
        .order_by(Sale.id)
        .execution_options(populate_existing=True)
    )
    if organization_id is not None:
        stmt = stmt.where(Sale.organization_id == organization_id)

    result = await session.execute(stmt)
    sales = []
    for sale in result.scalars().all():
        confirmations = sorted(sale.confirmations, key=lambda c: (c.created_at, c.id))
        types = {c.confirmation_type for c in confirmations}
        pending_final = ConfirmationType.FINAL_VERIFICATION not in types
        if pending_only and not pending_final:
            continue
        sales.append({
            "sale_id": sale.id,
            "organization_id": sale.organization_id,
            "total_cents": sale.total_cents,
            "status": sale.status.value,
            "delivery_confirmed_by": sale.delivery_confirmed_by,
            "delivery_confirmed_at": sale.delivery_confirmed_at.isoformat() if sale.delivery_confirmed_at else None,
            "confirmations": [
                {
                    "id": c.id,
                    "confirmation_type": c.confirmation_type.value,
                    "confirmed_by": c.confirmed_by,
                    "amount_cents": c.amount_cents,
                    "notes": c.notes,
                    "created_at": c.created_at.isoformat() if c.created_at else None,
                }
                for c in confirmations
            ],
            "pending_final_verification": pending_final,
            "next_action": _next_action(types),
        })
    return sales


async def update_delivery_status(
    session: AsyncSession,
    sale_id: int,
    status,
    user_id: int,
    delivery_payment_type: Optional[str] = None,
    organization_id: Optional[int] = None
) -> Sale:
    """
    Marca uma venda como despachada ou entregue.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        sale_id (int): ID da venda.
        status (SaleStatus | str): 'dispatched' ou 'delivered'.
        user_id (int): Usuário que confirma a entrega.
        delivery_payment_type (Optional[str]): Forma de pagamento na entrega ('cash', ...).
        organization_id (Optional[int]): Quando informado, a venda deve ser deste tenant.

    Returns:
        Sale: Venda atualizada.

    Raises:
        InvalidDeliveryStatus: Status diferente de dispatched/delivered.
        SaleNotFound: Venda inexistente.
    """
    try:
        new_status = SaleStatus(status)
    except ValueError:
        raise InvalidDeliveryStatus(f"Status de entrega inválido: {status}")
    if new_status not in DELIVERY_STATUSES:
        raise InvalidDeliveryStatus(f"Status de entrega inválido: {status}")

    sale = await session.get(Sale, sale_id)
    if sale is None or (organization_id is not None and sale.organization_id != organization_id):
        raise SaleNotFound(f"Venda {sale_id} não encontrada")
    if sale.status == SaleStatus.CANCELLED:
        raise InvalidDeliveryStatus("Venda cancelada não pode ser entregue")

    now = now_utc()
    if sale.status != new_status:
        session.add(SaleChangeLog(
            sale_id=sale_id,
            change_type="status",
            field_name="status",
            old_value=sale.status.value if sale.status else None,
            new_value=new_status.value,
            changed_by=user_id,
            source="delivery",
        ))
        sale.status = new_status

    if delivery_payment_type is not None and delivery_payment_type != sale.delivery_payment_type:
        session.add(SaleChangeLog(
            sale_id=sale_id,
            change_type="delivery_payment_type",
            field_name="delivery_payment_type",
            old_value=sale.delivery_payment_type,
            new_value=delivery_payment_type,
            changed_by=user_id,
            source="delivery",
        ))
        sale.delivery_payment_type = delivery_payment_type

    sale.delivery_confirmed_by = user_id
    sale.delivery_confirmed_at = now
    sale.updated_at = now

    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(sale)
    logger.info("Venda %s marcada como %s por %s", sale_id, new_status.value, user_id)
    return sale
