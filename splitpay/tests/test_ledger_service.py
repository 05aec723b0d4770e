# D:\splitpay\splitpay\tests\test_ledger_service.py

"""
test_ledger_service.py

Testes do razão de contas virtuais.

Testes:
    - Créditos pendentes e liberação na data prevista
    - Liberação única de cada crédito
    - Reversão de créditos pendentes e liberados (com saldo insuficiente)
    - Extrato paginado
    - Verificação de invariantes
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from splitpay.models.enums import AccountType, TransactionType, TransactionStatus
from splitpay.models.finance_models import VirtualAccount, VirtualTransaction
from splitpay.services import ledger_service
from splitpay.services.errors import AccountNotFound, InvalidAmount
from splitpay.tests.utils.factories import create_organization, create_sale, create_user

NOW = datetime(2026, 3, 10, 12, 0, 0)


async def _account(session, account_id):
    return await session.get(VirtualAccount, account_id, populate_existing=True)


@pytest.mark.asyncio
async def test_tenant_account_created_once(async_db_session):
    org = await create_organization(async_db_session, name="Loja Centro")

    first = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    second = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    await async_db_session.commit()

    assert first.id == second.id
    assert first.account_type == AccountType.TENANT
    assert first.owner_key == f"tenant:{org.id}"
    assert first.holder_name == "Loja Centro"
    assert first.balance_cents == 0


@pytest.mark.asyncio
async def test_affiliate_account_for_user(async_db_session):
    user = await create_user(async_db_session, role="affiliate")

    account = await ledger_service.get_or_create_affiliate_account(async_db_session, user.id)
    await async_db_session.commit()

    found = await ledger_service.find_account_for_user(async_db_session, user.id, "affiliate")
    assert found.id == account.id
    assert account.account_type == AccountType.AFFILIATE


@pytest.mark.asyncio
async def test_find_account_for_user_without_credits(async_db_session):
    with pytest.raises(AccountNotFound):
        await ledger_service.find_account_for_user(async_db_session, 999, "affiliate")


@pytest.mark.asyncio
async def test_get_account_not_found(async_db_session):
    with pytest.raises(AccountNotFound):
        await ledger_service.get_account(async_db_session, 12345)


@pytest.mark.asyncio
async def test_credit_goes_to_pending(async_db_session):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)

    transaction = await ledger_service.credit(
        async_db_session, account.id, 5000, NOW + timedelta(days=2), reference_id="manual:1"
    )
    await async_db_session.commit()

    account = await _account(async_db_session, account.id)
    assert transaction.status == TransactionStatus.PENDING
    assert account.pending_balance_cents == 5000
    assert account.balance_cents == 0
    assert account.total_received_cents == 5000


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -10])
async def test_credit_rejects_non_positive_amount(async_db_session, amount):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)

    with pytest.raises(InvalidAmount):
        await ledger_service.credit(async_db_session, account.id, amount, NOW)


@pytest.mark.asyncio
async def test_release_only_after_release_date(async_db_session):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    transaction = await ledger_service.credit(async_db_session, account.id, 9350, NOW + timedelta(days=2))
    await async_db_session.commit()

    assert await ledger_service.release_transaction(async_db_session, transaction.id, NOW + timedelta(days=1)) is False

    assert await ledger_service.release_transaction(async_db_session, transaction.id, NOW + timedelta(days=2)) is True
    await async_db_session.commit()

    account = await _account(async_db_session, account.id)
    assert account.balance_cents == 9350
    assert account.pending_balance_cents == 0
    assert transaction.status == TransactionStatus.RELEASED
    assert transaction.released_at == NOW + timedelta(days=2)

    # Segunda liberação não tem efeito
    assert await ledger_service.release_transaction(async_db_session, transaction.id, NOW + timedelta(days=3)) is False
    account = await _account(async_db_session, account.id)
    assert account.balance_cents == 9350


@pytest.mark.asyncio
async def test_release_due_transactions(async_db_session):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    await ledger_service.credit(async_db_session, account.id, 1000, NOW + timedelta(days=1))
    await ledger_service.credit(async_db_session, account.id, 2000, NOW + timedelta(days=2))
    await ledger_service.credit(async_db_session, account.id, 4000, NOW + timedelta(days=14))
    await async_db_session.commit()

    released = await ledger_service.release_due_transactions(async_db_session, NOW + timedelta(days=2))
    assert released == 2

    account = await _account(async_db_session, account.id)
    assert account.balance_cents == 3000
    assert account.pending_balance_cents == 4000

    assert await ledger_service.release_due_transactions(async_db_session, NOW + timedelta(days=2)) == 0
    assert await ledger_service.check_account_invariants(async_db_session, account.id) == []


@pytest.mark.asyncio
async def test_reverse_pending_credit_cancels_it(async_db_session):
    org = await create_organization(async_db_session)
    sale = await create_sale(async_db_session, org.id)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    transaction = await ledger_service.credit(
        async_db_session, account.id, 9350, NOW + timedelta(days=2), sale_id=sale.id
    )
    await async_db_session.commit()

    summary = await ledger_service.reverse_sale_credits(async_db_session, sale.id, TransactionType.REFUND)
    await async_db_session.commit()

    assert summary == {"cancelled": 1, "debited_cents": 0, "shortfall_cents": 0}
    await async_db_session.refresh(transaction)
    assert transaction.status == TransactionStatus.CANCELLED

    account = await _account(async_db_session, account.id)
    assert account.pending_balance_cents == 0
    assert account.balance_cents == 0
    assert await ledger_service.check_account_invariants(async_db_session, account.id) == []

    # O crédito cancelado não é mais liberado
    assert await ledger_service.release_due_transactions(async_db_session, NOW + timedelta(days=5)) == 0


@pytest.mark.asyncio
async def test_reverse_released_credit_debits_balance(async_db_session):
    org = await create_organization(async_db_session)
    sale = await create_sale(async_db_session, org.id)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    transaction = await ledger_service.credit(async_db_session, account.id, 9350, NOW, sale_id=sale.id)
    await ledger_service.release_transaction(async_db_session, transaction.id, NOW)
    await async_db_session.commit()

    summary = await ledger_service.reverse_sale_credits(async_db_session, sale.id, TransactionType.CHARGEBACK)
    await async_db_session.commit()

    assert summary == {"cancelled": 0, "debited_cents": 9350, "shortfall_cents": 0}
    account = await _account(async_db_session, account.id)
    assert account.balance_cents == 0

    result = await async_db_session.execute(
        select(VirtualTransaction).where(VirtualTransaction.reference_id == f"reversal:{transaction.id}")
    )
    reversal = result.scalar_one()
    assert reversal.transaction_type == TransactionType.CHARGEBACK
    assert reversal.amount_cents == -9350
    assert await ledger_service.check_account_invariants(async_db_session, account.id) == []

    # Reversão repetida não debita novamente
    again = await ledger_service.reverse_sale_credits(async_db_session, sale.id, TransactionType.CHARGEBACK)
    assert again == {"cancelled": 0, "debited_cents": 0, "shortfall_cents": 0}


@pytest.mark.asyncio
async def test_reverse_released_credit_never_goes_negative(async_db_session, caplog):
    org = await create_organization(async_db_session)
    sale = await create_sale(async_db_session, org.id)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    transaction = await ledger_service.credit(async_db_session, account.id, 9350, NOW, sale_id=sale.id)
    await ledger_service.release_transaction(async_db_session, transaction.id, NOW)
    # Parte do saldo já reservada (ex.: saque)
    await ledger_service.apply_balance_delta(async_db_session, account.id, balance_cents=-6000)
    async_db_session.add(VirtualTransaction(
        virtual_account_id=account.id,
        transaction_type=TransactionType.WITHDRAWAL,
        amount_cents=-6000,
        net_amount_cents=-6000,
        status=TransactionStatus.PENDING,
    ))
    await async_db_session.commit()

    summary = await ledger_service.reverse_sale_credits(async_db_session, sale.id, TransactionType.REFUND)
    await async_db_session.commit()

    assert summary == {"cancelled": 0, "debited_cents": 3350, "shortfall_cents": 6000}
    account = await _account(async_db_session, account.id)
    assert account.balance_cents == 0
    assert "não recuperados" in caplog.text
    assert await ledger_service.check_account_invariants(async_db_session, account.id) == []


@pytest.mark.asyncio
async def test_account_statement_pagination(async_db_session):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    for i in range(5):
        await ledger_service.credit(async_db_session, account.id, 100 * (i + 1), NOW, reference_id=f"manual:{i}")
    await async_db_session.commit()

    statement = await ledger_service.get_account_statement(async_db_session, account.id, page=1, page_size=2)
    assert statement["total"] == 5
    assert statement["total_pages"] == 3
    assert len(statement["transactions"]) == 2
    assert statement["transactions"][0]["amount_cents"] == 500

    last = await ledger_service.get_account_statement(async_db_session, account.id, page=3, page_size=2)
    assert len(last["transactions"]) == 1

    filtered = await ledger_service.get_account_statement(
        async_db_session, account.id, transaction_type="withdrawal"
    )
    assert filtered["total"] == 0
    assert filtered["total_pages"] == 0


@pytest.mark.asyncio
async def test_invariants_detect_inconsistency(async_db_session):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    await ledger_service.credit(async_db_session, account.id, 1000, NOW)
    # Alteração direta do saldo, sem lançamento correspondente
    await ledger_service.apply_balance_delta(async_db_session, account.id, balance_cents=500)
    await async_db_session.commit()

    violations = await ledger_service.check_account_invariants(async_db_session, account.id)
    assert violations


@pytest.mark.asyncio
async def test_deactivate_account(async_db_session):
    org = await create_organization(async_db_session)
    account = await ledger_service.get_or_create_tenant_account(async_db_session, org.id)
    await async_db_session.commit()

    account = await ledger_service.deactivate_account(async_db_session, account.id)
    assert account.is_active is False
