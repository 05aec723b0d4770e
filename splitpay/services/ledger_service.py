# D:\splitpay\splitpay\services\ledger_service.py
"""
ledger_service.py

Módulo responsável pelas contas virtuais dos beneficiários: criação, créditos com
agenda de liberação, liberação de saldos, estornos e extrato.

Funcionalidades principais:
    - Criação sob demanda de contas de tenant e de afiliado
    - Créditos pendentes com data de liberação
    - Liberação (pendente -> disponível) de créditos vencidos
    - Reversão de créditos de vendas estornadas ou contestadas
    - Extrato paginado e verificação das invariantes de saldo

Regras de Negócio:
    - balance_cents nunca fica negativo
    - Créditos entram em pending_balance_cents e só passam para balance_cents na liberação
    - Cada crédito é liberado no máximo uma vez
    - Saldos são alterados apenas por UPDATE com expressão SQL

As funções que alteram saldo não fazem commit; quem chama é dono da transação,
exceto as operações de nível superior (release_due_transactions, deactivate_account).

Dependências:
    - SQLAlchemy para persistência de dados
    - splitpay.models.finance_models para as estruturas do razão
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update, func, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from splitpay.config.settings import now_utc
from splitpay.models.database import Organization, User
from splitpay.models.enums import AccountType, TransactionType, TransactionStatus
from splitpay.models.finance_models import VirtualAccount, VirtualTransaction
from splitpay.services.errors import AccountNotFound, InvalidAmount

logger = logging.getLogger(__name__)


async def apply_balance_delta(session: AsyncSession, account_id: int, *conditions, **deltas) -> int:
    """
    Aplica incrementos nas colunas de saldo de uma conta com um único UPDATE.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        account_id (int): ID da conta.
        *conditions: Condições adicionais do WHERE (ex.: saldo suficiente).
        **deltas: coluna=incremento (negativo para débito).

    Returns:
        int: Número de linhas alteradas (0 quando alguma condição falhou).
    """
    values = {name: getattr(VirtualAccount, name) + delta for name, delta in deltas.items()}
    values["updated_at"] = now_utc()
    stmt = (
        update(VirtualAccount)
        .where(VirtualAccount.id == account_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount


async def _get_or_create_account(
    session: AsyncSession,
    owner_key: str,
    **fields
) -> VirtualAccount:
    result = await session.execute(
        select(VirtualAccount).where(VirtualAccount.owner_key == owner_key)
    )
    account = result.scalar_one_or_none()
    if account is None:
        account = VirtualAccount(owner_key=owner_key, **fields)
        session.add(account)
        await session.flush()
        logger.info("Conta virtual %s criada (%s)", account.id, owner_key)
    return account


async def get_or_create_tenant_account(session: AsyncSession, organization_id: int) -> VirtualAccount:
    """
    Obtém ou cria a conta virtual de um tenant.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        organization_id (int): ID do tenant.

    Returns:
        VirtualAccount: Conta do tenant.
    """
    organization = await session.get(Organization, organization_id)
    return await _get_or_create_account(
        session,
        f"tenant:{organization_id}",
        account_type=AccountType.TENANT,
        organization_id=organization_id,
        holder_name=organization.name if organization else None,
        holder_email=organization.owner_email if organization else None,
    )


async def get_or_create_affiliate_account(session: AsyncSession, user_id: int) -> VirtualAccount:
    """
    Obtém ou cria a conta virtual de um afiliado.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        user_id (int): ID do usuário afiliado.

    Returns:
        VirtualAccount: Conta do afiliado.
    """
    user = await session.get(User, user_id)
    return await _get_or_create_account(
        session,
        f"affiliate:{user_id}",
        account_type=AccountType.AFFILIATE,
        user_id=user_id,
        organization_id=user.organization_id if user else None,
        holder_name=user.name if user else None,
        holder_email=user.email if user else None,
    )


async def get_account(session: AsyncSession, account_id: int) -> VirtualAccount:
    """
    Busca uma conta virtual.

    Raises:
        AccountNotFound: Conta inexistente.
    """
    account = await session.get(VirtualAccount, account_id)
    if account is None:
        raise AccountNotFound(f"Conta virtual {account_id} não encontrada")
    return account


async def find_account_for_user(
    session: AsyncSession,
    user_id: int,
    role: str,
    organization_id: Optional[int] = None
) -> VirtualAccount:
    """
    Localiza a conta virtual do usuário autenticado.

    Gerentes enxergam a conta do seu tenant; os demais papéis a sua conta pessoal.

    Raises:
        AccountNotFound: O usuário ainda não recebeu nenhum crédito.
    """
    if role == "manager" and organization_id is not None:
        owner_key = f"tenant:{organization_id}"
    else:
        owner_key = f"affiliate:{user_id}"

    result = await session.execute(select(VirtualAccount).where(VirtualAccount.owner_key == owner_key))
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFound("Nenhuma conta virtual para este usuário")
    return account


async def credit(
    session: AsyncSession,
    account_id: int,
    amount_cents: int,
    release_at: datetime,
    sale_id: Optional[int] = None,
    reference_id: Optional[str] = None,
    fee_cents: int = 0,
    description: Optional[str] = None,
) -> VirtualTransaction:
    """
    Lança um crédito pendente em uma conta virtual.

    Incrementa pending_balance_cents e total_received_cents; balance_cents só muda
    na liberação. Não faz commit.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        account_id (int): Conta creditada.
        amount_cents (int): Valor líquido creditado (> 0).
        release_at (datetime): Data a partir da qual o crédito pode ser liberado.
        sale_id (Optional[int]): Venda de origem.
        reference_id (Optional[str]): Chave de idempotência, única por conta.
        fee_cents (int): Taxas já descontadas, apenas informativo.
        description (Optional[str]): Descrição do lançamento.

    Returns:
        VirtualTransaction: Lançamento criado.

    Raises:
        InvalidAmount: Valor não positivo.
    """
    if amount_cents is None or amount_cents <= 0:
        raise InvalidAmount("O crédito deve ser positivo")

    transaction = VirtualTransaction(
        virtual_account_id=account_id,
        transaction_type=TransactionType.CREDIT,
        amount_cents=amount_cents,
        fee_cents=fee_cents,
        net_amount_cents=amount_cents,
        status=TransactionStatus.PENDING,
        release_at=release_at,
        reference_id=reference_id,
        sale_id=sale_id,
        description=description,
    )
    session.add(transaction)
    await session.flush()

    await apply_balance_delta(
        session, account_id,
        pending_balance_cents=amount_cents,
        total_received_cents=amount_cents,
    )
    return transaction


async def release_transaction(
    session: AsyncSession,
    transaction_id: int,
    now: Optional[datetime] = None
) -> bool:
    """
    Libera um crédito pendente cuja data de liberação já passou.

    O status é trocado por um UPDATE condicional (status = pending), de modo que
    execuções concorrentes liberam o crédito uma única vez. Não faz commit.

    Returns:
        bool: True se o crédito foi liberado por esta chamada.
    """
    now = now or now_utc()
    transaction = await session.get(VirtualTransaction, transaction_id)
    if transaction is None or transaction.transaction_type != TransactionType.CREDIT:
        return False

    result = await session.execute(
        update(VirtualTransaction)
        .where(
            VirtualTransaction.id == transaction_id,
            VirtualTransaction.status == TransactionStatus.PENDING,
            VirtualTransaction.release_at <= now,
        )
        .values(status=TransactionStatus.RELEASED, released_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    await apply_balance_delta(
        session, transaction.virtual_account_id,
        pending_balance_cents=-transaction.amount_cents,
        balance_cents=transaction.amount_cents,
    )
    await session.refresh(transaction)
    logger.info(
        "Crédito %s liberado na conta %s: %s centavos",
        transaction_id, transaction.virtual_account_id, transaction.amount_cents
    )
    return True


async def release_due_transactions(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Libera todos os créditos pendentes vencidos e faz commit.

    Chamada periodicamente pela rotina de liberação da aplicação e pelo endpoint
    administrativo.

    Returns:
        int: Quantidade de créditos liberados.
    """
    now = now or now_utc()
    result = await session.execute(
        select(VirtualTransaction.id)
        .where(
            VirtualTransaction.transaction_type == TransactionType.CREDIT,
            VirtualTransaction.status == TransactionStatus.PENDING,
            VirtualTransaction.release_at <= now,
        )
        .order_by(VirtualTransaction.release_at)
    )
    due_ids = list(result.scalars().all())

    released = 0
    try:
        for transaction_id in due_ids:
            if await release_transaction(session, transaction_id, now):
                released += 1
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    if released:
        logger.info("%s créditos liberados", released)
    return released


async def reverse_sale_credits(session: AsyncSession, sale_id: int, kind: TransactionType) -> Dict[str, int]:
    """
    Reverte os créditos de uma venda estornada (refund) ou contestada (chargeback).

    Créditos pendentes são cancelados. Créditos já liberados geram um débito do
    tipo informado, limitado ao saldo disponível para que balance_cents não fique
    negativo; a diferença não recuperada é registrada em log. Cada crédito é
    revertido no máximo uma vez (reference_id 'reversal:<id>'). Não faz commit.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        sale_id (int): ID da venda.
        kind (TransactionType): REFUND ou CHARGEBACK.

    Returns:
        Dict[str, int]: cancelled, debited_cents e shortfall_cents.
    """
    summary = {"cancelled": 0, "debited_cents": 0, "shortfall_cents": 0}

    result = await session.execute(
        select(VirtualTransaction)
        .where(
            VirtualTransaction.sale_id == sale_id,
            VirtualTransaction.transaction_type == TransactionType.CREDIT,
        )
        .order_by(VirtualTransaction.id)
    )
    credits = list(result.scalars().all())

    for credit_tx in credits:
        cancelled = await session.execute(
            update(VirtualTransaction)
            .where(
                VirtualTransaction.id == credit_tx.id,
                VirtualTransaction.status == TransactionStatus.PENDING,
            )
            .values(status=TransactionStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        if cancelled.rowcount == 1:
            await apply_balance_delta(
                session, credit_tx.virtual_account_id,
                pending_balance_cents=-credit_tx.amount_cents,
            )
            summary["cancelled"] += 1
            logger.info("Crédito pendente %s cancelado (%s da venda %s)", credit_tx.id, kind.value, sale_id)
            continue

        await session.refresh(credit_tx)
        if credit_tx.status == TransactionStatus.CANCELLED:
            continue

        reference_id = f"reversal:{credit_tx.id}"
        existing = await session.execute(
            select(VirtualTransaction.id).where(
                VirtualTransaction.virtual_account_id == credit_tx.virtual_account_id,
                VirtualTransaction.reference_id == reference_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            continue

        debited = 0
        for _ in range(3):
            available = await session.scalar(
                select(VirtualAccount.balance_cents).where(VirtualAccount.id == credit_tx.virtual_account_id)
            )
            debited = min(credit_tx.amount_cents, max(available or 0, 0))
            if debited == 0:
                break
            rows = await apply_balance_delta(
                session, credit_tx.virtual_account_id,
                VirtualAccount.balance_cents >= debited,
                balance_cents=-debited,
            )
            if rows == 1:
                break
            debited = 0

        shortfall = credit_tx.amount_cents - debited
        session.add(VirtualTransaction(
            virtual_account_id=credit_tx.virtual_account_id,
            transaction_type=kind,
            amount_cents=-debited,
            fee_cents=0,
            net_amount_cents=-debited,
            status=TransactionStatus.COMPLETED,
            reference_id=reference_id,
            sale_id=sale_id,
            description=f"{kind.value.capitalize()} da venda #{sale_id}",
        ))
        await session.flush()

        summary["debited_cents"] += debited
        summary["shortfall_cents"] += shortfall
        if shortfall:
            logger.warning(
                "Saldo insuficiente para reverter crédito %s da conta %s: %s centavos não recuperados",
                credit_tx.id, credit_tx.virtual_account_id, shortfall
            )
        else:
            logger.info("Crédito %s revertido (%s): %s centavos", credit_tx.id, kind.value, debited)

    return summary


async def get_account_statement(
    session: AsyncSession,
    account_id: int,
    page: int = 1,
    page_size: int = 20,
    transaction_type: Optional[str] = None
) -> Dict:
    """
    Retorna o extrato paginado de uma conta virtual, mais recentes primeiro.

    Raises:
        AccountNotFound: Conta inexistente.
    """
    account = await get_account(session, account_id)

    conditions = [VirtualTransaction.virtual_account_id == account_id]
    if transaction_type:
        conditions.append(VirtualTransaction.transaction_type == TransactionType(transaction_type))

    total = await session.scalar(
        select(func.count(VirtualTransaction.id)).where(and_(*conditions))
    )
    result = await session.execute(
        select(VirtualTransaction)
        .where(and_(*conditions))
        .order_by(desc(VirtualTransaction.created_at), desc(VirtualTransaction.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return {
        "account": account.to_dict(),
        "transactions": [t.to_dict() for t in result.scalars().all()],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size if total else 0,
    }


async def check_account_invariants(session: AsyncSession, account_id: int) -> List[str]:
    """
    Verifica a consistência dos saldos de uma conta com o seu extrato.

    Returns:
        List[str]: Violações encontradas (lista vazia quando a conta está consistente).
    """
    account = await get_account(session, account_id)
    await session.refresh(account)
    violations = []

    if account.balance_cents < 0:
        violations.append(f"balance_cents negativo: {account.balance_cents}")
    if account.pending_balance_cents < 0:
        violations.append(f"pending_balance_cents negativo: {account.pending_balance_cents}")

    limit = account.total_received_cents - account.total_withdrawn_cents
    if account.balance_cents + account.pending_balance_cents > limit:
        violations.append(
            f"balance + pending ({account.balance_cents + account.pending_balance_cents}) "
            f"excede total_received - total_withdrawn ({limit})"
        )

    pending_credits = await session.scalar(
        select(func.coalesce(func.sum(VirtualTransaction.amount_cents), 0)).where(
            VirtualTransaction.virtual_account_id == account_id,
            VirtualTransaction.transaction_type == TransactionType.CREDIT,
            VirtualTransaction.status == TransactionStatus.PENDING,
        )
    )
    if pending_credits != account.pending_balance_cents:
        violations.append(
            f"pending_balance_cents ({account.pending_balance_cents}) difere dos créditos pendentes ({pending_credits})"
        )

    ledger_total = await session.scalar(
        select(func.coalesce(func.sum(VirtualTransaction.amount_cents), 0)).where(
            VirtualTransaction.virtual_account_id == account_id,
            VirtualTransaction.status != TransactionStatus.CANCELLED,
        )
    )
    if ledger_total != account.balance_cents + account.pending_balance_cents:
        violations.append(
            f"balance + pending ({account.balance_cents + account.pending_balance_cents}) "
            f"difere da soma do extrato ({ledger_total})"
        )

    return violations


async def deactivate_account(session: AsyncSession, account_id: int) -> VirtualAccount:
    """
    Desativa uma conta virtual (exclusão lógica). Contas inativas não sacam.

    Raises:
        AccountNotFound: Conta inexistente.
    """
    account = await get_account(session, account_id)
    account.is_active = False
    await session.commit()
    await session.refresh(account)
    logger.info("Conta virtual %s desativada", account_id)
    return account
