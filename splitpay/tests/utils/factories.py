# D:\splitpay\splitpay\tests\utils\factories.py

"""
factories.py

Funções para criar registros de teste: tenants, usuários, vendas, indicações,
gateways e contas com saldo disponível.

Todas fazem commit, para que os dados fiquem visíveis em outras sessões.
"""

import hashlib
import hmac
import json
import time
import uuid

from splitpay.config.settings import now_utc
from splitpay.models.database import Organization, User, Sale, AffiliateAttribution
from splitpay.models.enums import PaymentMethod, SaleStatus
from splitpay.models.finance_models import PaymentGatewayConfig, VirtualAccountBankData
from splitpay.services import ledger_service


async def create_organization(session, name="Loja Teste", owner_email="dono@loja.test"):
    organization = Organization(name=name, owner_email=owner_email)
    session.add(organization)
    await session.commit()
    await session.refresh(organization)
    return organization


async def create_user(session, role="user", organization_id=None, name=None):
    user = User(
        name=name or f"{role.capitalize()} Teste",
        email=f"{role}_{uuid.uuid4().hex[:8]}@test.com",
        role=role,
        organization_id=organization_id,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_sale(
    session,
    organization_id,
    total_cents=10000,
    payment_method=PaymentMethod.PIX,
    installments=1,
    status=SaleStatus.PENDING,
    delivery_payment_type=None,
    gateway_transaction_id=None,
):
    sale = Sale(
        organization_id=organization_id,
        total_cents=total_cents,
        payment_method=payment_method,
        installments=installments,
        status=status,
        delivery_payment_type=delivery_payment_type,
        gateway_transaction_id=gateway_transaction_id,
    )
    session.add(sale)
    await session.commit()
    await session.refresh(sale)
    return sale


async def create_attribution(session, sale_id, affiliate_user_id, commission_cents, commission_percentage=10.0):
    attribution = AffiliateAttribution(
        sale_id=sale_id,
        affiliate_user_id=affiliate_user_id,
        commission_cents=commission_cents,
        commission_percentage=commission_percentage,
    )
    session.add(attribution)
    await session.commit()
    return attribution


async def configure_gateway(session, gateway_name, webhook_secret, is_active=True):
    config = PaymentGatewayConfig(
        gateway_name=gateway_name,
        webhook_secret=webhook_secret,
        is_active=is_active,
    )
    session.add(config)
    await session.commit()
    return config


async def add_bank_data(session, account_id, pix_key="financeiro@loja.test"):
    bank_data = VirtualAccountBankData(
        virtual_account_id=account_id,
        pix_key=pix_key,
        pix_key_type="email",
        is_primary=True,
    )
    session.add(bank_data)
    await session.commit()
    return bank_data


async def funded_tenant_account(session, organization_id, amount_cents, with_bank_data=True):
    """
    Cria a conta do tenant com amount_cents já liberados e retorna o ID da conta.
    """
    account = await ledger_service.get_or_create_tenant_account(session, organization_id)
    now = now_utc()
    transaction = await ledger_service.credit(
        session, account.id, amount_cents, now,
        reference_id=f"seed:{uuid.uuid4().hex[:8]}", description="Saldo inicial"
    )
    await ledger_service.release_transaction(session, transaction.id, now)
    await session.commit()
    account_id = account.id
    if with_bank_data:
        await add_bank_data(session, account_id)
    return account_id


def pagarme_payload(sale_id, status="paid", transaction_id="tr_1001", amount=10000, method="pix"):
    return {
        "id": transaction_id,
        "object": "transaction",
        "current_status": status,
        "amount": amount,
        "payment_method": method,
        "metadata": {"sale_id": str(sale_id)},
    }


def pagarme_request(payload, secret):
    """Corpo e cabeçalhos de um postback Pagar.me assinado."""
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    return body, {"X-Hub-Signature": f"sha1={signature}"}


def stripe_request(payload, secret, timestamp=None):
    """Corpo e cabeçalhos de um evento Stripe assinado (esquema v1)."""
    body = json.dumps(payload)
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{body}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return body.encode("utf-8"), {"Stripe-Signature": f"t={timestamp},v1={signature}"}
