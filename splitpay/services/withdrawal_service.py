# D:\splitpay\splitpay\services\withdrawal_service.py
"""
withdrawal_service.py

Solicitações de saque das contas virtuais e sua revisão manual.

Funcionalidades principais:
    - Cadastro dos dados bancários principais de uma conta
    - Solicitação de saque com reserva imediata do valor
    - Revisão (aprovação, processamento, conclusão ou rejeição) por administradores
    - Listagem de solicitações

Regras de Negócio:
    - O valor solicitado não pode exceder o saldo disponível
    - A conta precisa de dados bancários principais
    - A reserva usa um único UPDATE condicional (saldo >= valor), de modo que saques
      concorrentes nunca deixam o saldo negativo
    - Transições: pending -> approved|rejected, approved -> processing|rejected,
      processing -> completed|rejected
    - Rejeição devolve o valor reservado ao saldo; conclusão soma em total_withdrawn

Dependências:
    - SQLAlchemy para persistência de dados
    - splitpay.services.ledger_service para alteração de saldos
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from splitpay.config.settings import now_utc
from splitpay.models.enums import TransactionType, TransactionStatus, WithdrawalStatus
from splitpay.models.finance_models import (
    VirtualAccount, VirtualAccountBankData, VirtualTransaction, WithdrawalRequest
)
from splitpay.services.errors import (
    AccountInactive, InsufficientBalance, InvalidAmount, MissingBankData,
    WithdrawalNotFound, InvalidWithdrawalTransition
)
from splitpay.services.fee_calculator import percentage_of
from splitpay.services.ledger_service import get_account, apply_balance_delta
from splitpay.services.settings_service import load_platform_settings

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    WithdrawalStatus.PENDING: {WithdrawalStatus.APPROVED, WithdrawalStatus.REJECTED},
    WithdrawalStatus.APPROVED: {WithdrawalStatus.PROCESSING, WithdrawalStatus.REJECTED},
    WithdrawalStatus.PROCESSING: {WithdrawalStatus.COMPLETED, WithdrawalStatus.REJECTED},
}

BANK_DATA_FIELDS = (
    "bank_code", "bank_name", "agency", "account_number", "account_holder",
    "document", "pix_key", "pix_key_type",
)


async def get_primary_bank_data(session: AsyncSession, account_id: int) -> Optional[VirtualAccountBankData]:
    result = await session.execute(
        select(VirtualAccountBankData).where(
            VirtualAccountBankData.virtual_account_id == account_id,
            VirtualAccountBankData.is_primary.is_(True),
        )
    )
    return result.scalars().first()


async def upsert_bank_data(session: AsyncSession, account_id: int, data: Dict) -> VirtualAccountBankData:
    """
    Cria ou atualiza os dados bancários principais de uma conta.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        account_id (int): ID da conta virtual.
        data (Dict): Campos bancários; é preciso informar uma chave PIX ou
            banco/agência/conta.

    Returns:
        VirtualAccountBankData: Registro principal atualizado.

    Raises:
        AccountNotFound: Conta inexistente.
        MissingBankData: Dados insuficientes para uma transferência.
    """
    await get_account(session, account_id)

    cleaned = {k: (str(data[k]).strip() if data.get(k) is not None else None) for k in BANK_DATA_FIELDS if k in data}

    bank_data = await get_primary_bank_data(session, account_id)
    if bank_data is None:
        bank_data = VirtualAccountBankData(virtual_account_id=account_id, is_primary=True)
        session.add(bank_data)

    for key, value in cleaned.items():
        setattr(bank_data, key, value or None)

    has_pix = bool(bank_data.pix_key)
    has_account = all([bank_data.bank_code, bank_data.agency, bank_data.account_number])
    if not (has_pix or has_account):
        await session.rollback()
        raise MissingBankData("Informe uma chave PIX ou banco, agência e conta")

    await session.commit()
    await session.refresh(bank_data)
    logger.info("Dados bancários da conta %s atualizados", account_id)
    return bank_data


async def request_withdrawal(
    session: AsyncSession,
    account_id: int,
    amount_cents: int,
    requested_by: Optional[int] = None
) -> WithdrawalRequest:
    """
    Solicita um saque, reservando o valor no saldo disponível.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        account_id (int): Conta virtual de origem.
        amount_cents (int): Valor solicitado em centavos.
        requested_by (Optional[int]): Usuário que solicitou.

    Returns:
        WithdrawalRequest: Solicitação criada com status 'pending'.

    Raises:
        AccountNotFound: Conta inexistente.
        AccountInactive: Conta desativada.
        InvalidAmount: Valor não positivo.
        InsufficientBalance: Valor acima do saldo disponível (nada é alterado).
        MissingBankData: Conta sem dados bancários principais.
    """
    account = await get_account(session, account_id)
    await session.refresh(account)

    if not account.is_active:
        raise AccountInactive("Conta virtual inativa")

    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise InvalidAmount("O valor do saque deve ser um inteiro positivo")

    if amount_cents > account.balance_cents:
        raise InsufficientBalance(
            f"Saldo disponível ({account.balance_cents}) menor que o valor solicitado ({amount_cents})"
        )

    bank_data = await get_primary_bank_data(session, account_id)
    if bank_data is None:
        raise MissingBankData("Cadastre os dados bancários antes de solicitar o saque")

    settings = await load_platform_settings(session)
    fee = percentage_of(amount_cents, settings.withdrawal_fee_percentage) + settings.withdrawal_fee_fixed_cents
    fee = min(fee, amount_cents)

    try:
        reserved = await apply_balance_delta(
            session, account_id,
            VirtualAccount.balance_cents >= amount_cents,
            balance_cents=-amount_cents,
        )
        if reserved != 1:
            raise InsufficientBalance("Saldo disponível insuficiente para o saque")

        transaction = VirtualTransaction(
            virtual_account_id=account_id,
            transaction_type=TransactionType.WITHDRAWAL,
            amount_cents=-amount_cents,
            fee_cents=fee,
            net_amount_cents=-(amount_cents - fee),
            status=TransactionStatus.PENDING,
            description="Saque solicitado",
        )
        session.add(transaction)
        await session.flush()

        withdrawal = WithdrawalRequest(
            virtual_account_id=account_id,
            amount_cents=amount_cents,
            fee_cents=fee,
            net_amount_cents=amount_cents - fee,
            status=WithdrawalStatus.PENDING,
            requested_by=requested_by,
            transaction_id=transaction.id,
        )
        withdrawal.bank_data = bank_data.to_dict()
        session.add(withdrawal)
        await session.flush()

        transaction.reference_id = f"withdrawal:{withdrawal.id}"
        transaction.description = f"Saque #{withdrawal.id}"

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(withdrawal)
    logger.info(
        "Saque %s solicitado na conta %s: %s centavos (taxa %s)",
        withdrawal.id, account_id, amount_cents, fee
    )
    return withdrawal


async def review_withdrawal(
    session: AsyncSession,
    request_id: int,
    new_status,
    reviewer_id: int,
    rejection_reason: Optional[str] = None,
    transfer_proof_url: Optional[str] = None
) -> WithdrawalRequest:
    """
    Revisa uma solicitação de saque.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        request_id (int): ID da solicitação.
        new_status (WithdrawalStatus | str): approved, processing, completed ou rejected.
        reviewer_id (int): Administrador responsável.
        rejection_reason (Optional[str]): Motivo da rejeição.
        transfer_proof_url (Optional[str]): Comprovante da transferência (conclusão).

    Returns:
        WithdrawalRequest: Solicitação atualizada.

    Raises:
        WithdrawalNotFound: Solicitação inexistente.
        InvalidWithdrawalTransition: Transição não permitida a partir do status atual,
            inclusive quando outra revisão concorrente alterou o status antes.
    """
    try:
        target = WithdrawalStatus(new_status)
    except ValueError:
        raise InvalidWithdrawalTransition(f"Status inválido: {new_status}")

    withdrawal = await session.get(WithdrawalRequest, request_id)
    if withdrawal is None:
        raise WithdrawalNotFound(f"Solicitação de saque {request_id} não encontrada")
    await session.refresh(withdrawal)

    current = withdrawal.status
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidWithdrawalTransition(
            f"Não é possível alterar o saque de '{current.value}' para '{target.value}'"
        )

    now = now_utc()
    values = {"status": target, "reviewed_by": reviewer_id, "reviewed_at": now, "updated_at": now}
    if target == WithdrawalStatus.REJECTED:
        values["rejection_reason"] = rejection_reason
    if target == WithdrawalStatus.COMPLETED:
        values["completed_at"] = now
    if transfer_proof_url:
        values["transfer_proof_url"] = transfer_proof_url

    try:
        result = await session.execute(
            update(WithdrawalRequest)
            .where(WithdrawalRequest.id == request_id, WithdrawalRequest.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidWithdrawalTransition("A solicitação foi alterada por outra revisão")

        if target == WithdrawalStatus.COMPLETED:
            await apply_balance_delta(
                session, withdrawal.virtual_account_id,
                total_withdrawn_cents=withdrawal.amount_cents,
            )
            await _set_transaction_status(session, withdrawal.transaction_id, TransactionStatus.COMPLETED)
        elif target == WithdrawalStatus.REJECTED:
            await apply_balance_delta(
                session, withdrawal.virtual_account_id,
                balance_cents=withdrawal.amount_cents,
            )
            await _set_transaction_status(session, withdrawal.transaction_id, TransactionStatus.CANCELLED)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(withdrawal)
    logger.info(
        "Saque %s: %s -> %s por %s", request_id, current.value, target.value, reviewer_id
    )
    return withdrawal


async def _set_transaction_status(session: AsyncSession, transaction_id: Optional[int], status: TransactionStatus):
    if transaction_id is None:
        return
    await session.execute(
        update(VirtualTransaction)
        .where(VirtualTransaction.id == transaction_id)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )


async def list_withdrawals(
    session: AsyncSession,
    account_id: Optional[int] = None,
    statuses: Optional[List[str]] = None,
    page: int = 1,
    page_size: int = 20
) -> Dict:
    """
    Lista solicitações de saque, mais recentes primeiro.

    Args:
        account_id (Optional[int]): Filtra por conta.
        statuses (Optional[List[str]]): Filtra por status.

    Returns:
        Dict: withdrawals, total, page, page_size e total_pages.
    """
    conditions = []
    if account_id is not None:
        conditions.append(WithdrawalRequest.virtual_account_id == account_id)
    if statuses:
        conditions.append(WithdrawalRequest.status.in_([WithdrawalStatus(s) for s in statuses]))

    total = await session.scalar(select(func.count(WithdrawalRequest.id)).where(*conditions))
    result = await session.execute(
        select(WithdrawalRequest)
        .where(*conditions)
        .order_by(desc(WithdrawalRequest.created_at), desc(WithdrawalRequest.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return {
        "withdrawals": [w.to_dict() for w in result.scalars().all()],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size if total else 0,
    }
