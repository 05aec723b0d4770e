# D:\splitpay\splitpay\tests\test_fee_calculator.py

"""
test_fee_calculator.py

Testes do cálculo de taxas por meio de pagamento.

Testes:
    - Taxas padrão de PIX, cartão e boleto
    - Taxa adicional de parcelamento no cartão
    - Arredondamento meio para cima
    - Meios desabilitados, parcelas e valores inválidos
    - Conservação: net + total_fee == valor
"""

from decimal import Decimal

import pytest

from splitpay.models.enums import PaymentMethod
from splitpay.services.errors import (
    PaymentMethodUnavailable, InvalidInstallments, InvalidAmount
)
from splitpay.services.fee_calculator import (
    FeeConfig, MethodFee, compute_fees, round_half_up, percentage_of
)


def test_pix_default_fee():
    fees = compute_fees(None, PaymentMethod.PIX, 10000)

    assert fees.fee_percentage == 1.5
    assert fees.total_fee_cents == 150
    assert fees.net_amount_cents == 9850
    assert fees.release_days == 2


def test_boleto_default_fixed_fee():
    fees = compute_fees(None, "boleto", 10000)

    assert fees.total_fee_cents == 350
    assert fees.net_amount_cents == 9650


def test_boleto_fixed_fee_above_amount_is_not_clamped():
    fees = compute_fees(None, PaymentMethod.BOLETO, 100)

    assert fees.total_fee_cents == 350
    assert fees.net_amount_cents == -250


def test_card_single_installment_has_no_installment_fee():
    fees = compute_fees(None, PaymentMethod.CREDIT_CARD, 10000, 1)

    assert fees.installment_fee_percentage == 0.0
    assert fees.total_fee_cents == 499
    assert fees.release_days == 14


def test_card_installment_fee_is_added():
    fees = compute_fees(None, PaymentMethod.CREDIT_CARD, 10000, 3)

    # 4.99% + 4.29%
    assert fees.installment_fee_percentage == 4.29
    assert fees.total_fee_cents == 928
    assert fees.net_amount_cents == 9072


def test_card_twelve_installments():
    fees = compute_fees(None, PaymentMethod.CREDIT_CARD, 10000, 12)
    assert fees.total_fee_cents == 1398


def test_installments_ignored_outside_credit_card():
    fees = compute_fees(None, PaymentMethod.PIX, 10000, 6)
    assert fees.installment_fee_percentage == 0.0
    assert fees.total_fee_cents == 150


def test_round_half_up():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("0.5")) == 1
    assert round_half_up(Decimal("0.49")) == 0
    assert percentage_of(100, 1.5) == 2
    assert percentage_of(33, 1.5) == 0


def test_percentage_of_avoids_float_noise():
    # 4.99% de 5000 = 249.5 -> 250
    assert percentage_of(5000, 4.99) == 250


@pytest.mark.parametrize("installments", [0, 13, None])
def test_invalid_installments(installments):
    with pytest.raises(InvalidInstallments):
        compute_fees(None, PaymentMethod.CREDIT_CARD, 10000, installments)


def test_installments_limited_by_tenant_max():
    config = FeeConfig(methods=FeeConfig.default().methods, max_installments=6)

    compute_fees(config, PaymentMethod.CREDIT_CARD, 10000, 6)
    with pytest.raises(InvalidInstallments):
        compute_fees(config, PaymentMethod.CREDIT_CARD, 10000, 7)


def test_unknown_method():
    with pytest.raises(PaymentMethodUnavailable):
        compute_fees(None, "bitcoin", 10000)


def test_cash_has_no_fee_table():
    with pytest.raises(PaymentMethodUnavailable):
        compute_fees(None, PaymentMethod.CASH, 10000)


def test_disabled_method():
    methods = dict(FeeConfig.default().methods)
    methods[PaymentMethod.BOLETO] = MethodFee(0.0, 350, 2, enabled=False)
    config = FeeConfig(methods=methods)

    with pytest.raises(PaymentMethodUnavailable):
        compute_fees(config, PaymentMethod.BOLETO, 10000)


def test_negative_amount():
    with pytest.raises(InvalidAmount):
        compute_fees(None, PaymentMethod.PIX, -1)


def test_zero_amount_pays_only_fixed_fee():
    fees = compute_fees(None, PaymentMethod.BOLETO, 0)
    assert fees.total_fee_cents == 350


@pytest.mark.parametrize("method,installments", [
    (PaymentMethod.PIX, 1),
    (PaymentMethod.BOLETO, 1),
    (PaymentMethod.CREDIT_CARD, 1),
    (PaymentMethod.CREDIT_CARD, 7),
])
def test_fee_conservation(method, installments):
    for amount in (1, 33, 99, 1000, 12345, 999999):
        fees = compute_fees(None, method, amount, installments)
        assert fees.net_amount_cents + fees.total_fee_cents == amount


def test_custom_tenant_config():
    methods = dict(FeeConfig.default().methods)
    methods[PaymentMethod.PIX] = MethodFee(0.99, 10, 0)
    config = FeeConfig(methods=methods, installment_fees={2: 1.0})

    pix = compute_fees(config, PaymentMethod.PIX, 10000)
    assert pix.total_fee_cents == 109
    assert pix.release_days == 0

    card = compute_fees(config, PaymentMethod.CREDIT_CARD, 10000, 2)
    assert card.installment_fee_percentage == 1.0
    assert card.total_fee_cents == 599

    # Parcela sem entrada na tabela não tem taxa adicional
    card = compute_fees(config, PaymentMethod.CREDIT_CARD, 10000, 3)
    assert card.installment_fee_percentage == 0.0
