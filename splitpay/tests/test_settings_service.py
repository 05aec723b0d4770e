# D:\splitpay\splitpay\tests\test_settings_service.py

"""
test_settings_service.py

Testes das configurações financeiras da plataforma e das taxas por tenant.
"""

import pytest

from splitpay.models.database import TenantPaymentFees
from splitpay.models.enums import PaymentMethod
from splitpay.services.errors import InvalidSetting, PaymentMethodUnavailable
from splitpay.services.fee_service import get_fee_config, quote_fees
from splitpay.services.settings_service import (
    load_platform_settings, update_platform_setting, upsert_tenant_payment_fees
)
from splitpay.tests.utils.factories import create_organization


@pytest.mark.asyncio
async def test_defaults_without_stored_settings(async_db_session):
    settings = await load_platform_settings(async_db_session)

    assert settings.platform_fee_percentage == 5.0
    assert settings.platform_fee_fixed_cents == 0
    assert settings.withdrawal_fee_percentage == 2.5
    assert settings.withdrawal_fee_fixed_cents == 0


@pytest.mark.asyncio
async def test_update_platform_fees_is_partial(async_db_session):
    await update_platform_setting(async_db_session, "platform_fees", {"fee_fixed_cents": 99})
    setting = await update_platform_setting(async_db_session, "platform_fees", {"fee_percentage": 7})

    assert setting.setting_value == {"fee_percentage": 7.0, "fee_fixed_cents": 99}

    settings = await load_platform_settings(async_db_session)
    assert settings.platform_fee_percentage == 7.0
    assert settings.platform_fee_fixed_cents == 99
    assert settings.withdrawal_fee_percentage == 2.5


@pytest.mark.asyncio
@pytest.mark.parametrize("key,value", [
    ("unknown_key", {"fee_percentage": 1}),
    ("platform_fees", {"fee_percentage": 101}),
    ("platform_fees", {"fee_percentage": "muito"}),
    ("platform_fees", {"fee_fixed_cents": -1}),
    ("platform_fees", {"fee_fixed_cents": 1.5}),
    ("withdrawal_rules", {"minimum": 1000}),
    ("withdrawal_rules", [1, 2]),
])
async def test_invalid_platform_settings(async_db_session, key, value):
    with pytest.raises(InvalidSetting):
        await update_platform_setting(async_db_session, key, value)


@pytest.mark.asyncio
async def test_tenant_without_config_uses_defaults(async_db_session):
    org = await create_organization(async_db_session)

    assert await get_fee_config(async_db_session, org.id) is None
    fees = await quote_fees(async_db_session, org.id, "pix", 10000)
    assert fees.total_fee_cents == 150


@pytest.mark.asyncio
async def test_upsert_tenant_fees(async_db_session):
    org = await create_organization(async_db_session)

    fees = await upsert_tenant_payment_fees(async_db_session, org.id, {
        "pix_fee_percentage": 0.99,
        "boleto_enabled": False,
        "max_installments": 6,
    })

    assert fees.pix_fee_percentage == 0.99
    assert fees.card_fee_percentage == 4.99
    assert fees.boleto_enabled is False
    assert fees.max_installments == 6

    config = await get_fee_config(async_db_session, org.id)
    assert config.methods[PaymentMethod.PIX].percentage == 0.99
    assert config.max_installments == 6

    with pytest.raises(PaymentMethodUnavailable):
        await quote_fees(async_db_session, org.id, "boleto", 10000)

    # Segunda chamada atualiza o mesmo registro
    again = await upsert_tenant_payment_fees(async_db_session, org.id, {"installment_fees": {"2": 1.99}})
    assert again.id == fees.id
    assert again.installment_fees == {"2": 1.99}
    assert again.pix_fee_percentage == 0.99


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [
    {"pix_fee_percentage": -1},
    {"pix_enabled": "sim"},
    {"max_installments": 18},
    {"card_release_days": "amanhã"},
    {"installment_fees": [3.49]},
    {"crypto_fee_percentage": 1.0},
    {"pix_fee_fixed_cents": 1.7},
    {"boleto_release_days": True},
])
async def test_upsert_tenant_fees_invalid(async_db_session, data):
    org = await create_organization(async_db_session)

    with pytest.raises(InvalidSetting):
        await upsert_tenant_payment_fees(async_db_session, org.id, data)


@pytest.mark.asyncio
async def test_upsert_tenant_fees_unknown_tenant(async_db_session):
    with pytest.raises(InvalidSetting):
        await upsert_tenant_payment_fees(async_db_session, 777, {"pix_fee_percentage": 1.0})


@pytest.mark.asyncio
async def test_invalid_tenant_fees_keep_stored_values(async_db_session):
    org = await create_organization(async_db_session)
    fees = await upsert_tenant_payment_fees(async_db_session, org.id, {"pix_fee_percentage": 0.99})
    fees_id = fees.id

    with pytest.raises(InvalidSetting):
        await upsert_tenant_payment_fees(async_db_session, org.id, {
            "pix_fee_percentage": 2.5,
            "max_installments": 18,
        })

    assert not async_db_session.dirty
    assert not async_db_session.new

    stored = await async_db_session.get(TenantPaymentFees, fees_id, populate_existing=True)
    assert stored.pix_fee_percentage == 0.99
    assert stored.max_installments == 12


@pytest.mark.asyncio
async def test_integral_float_cents_are_accepted(async_db_session):
    org = await create_organization(async_db_session)

    fees = await upsert_tenant_payment_fees(async_db_session, org.id, {"pix_fee_fixed_cents": 50.0})

    assert fees.pix_fee_fixed_cents == 50
