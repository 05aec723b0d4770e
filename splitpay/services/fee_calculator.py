# D:\splitpay\splitpay\services\fee_calculator.py
"""
fee_calculator.py

Cálculo puro das taxas de um meio de pagamento (sem acesso a banco de dados).

Regras de Negócio:
    - total_fee = arredonda(valor * (taxa% + taxa_parcelamento%) / 100) + taxa_fixa
    - net = valor - total_fee (pode ficar negativo em valores muito baixos; nunca é
      ajustado, para que net + total_fee == valor)
    - Taxa de parcelamento apenas para cartão de crédito com mais de uma parcela
    - Arredondamento ROUND_HALF_UP para centavos inteiros
    - Sem configuração do tenant, usa as taxas padrão da plataforma
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from splitpay.models.enums import PaymentMethod
from splitpay.services.errors import (
    PaymentMethodUnavailable, InvalidInstallments, InvalidAmount
)

DEFAULT_INSTALLMENT_FEES = {
    2: 3.49, 3: 4.29, 4: 4.99, 5: 5.49, 6: 5.99, 7: 6.49,
    8: 6.99, 9: 7.49, 10: 7.99, 11: 8.49, 12: 8.99,
}

DEFAULT_MAX_INSTALLMENTS = 12


@dataclass(frozen=True)
class MethodFee:
    percentage: float
    fixed_cents: int
    release_days: int
    enabled: bool = True


@dataclass(frozen=True)
class FeeConfig:
    """
    Configuração de taxas de um tenant.

    Attributes:
        methods (Dict[PaymentMethod, MethodFee]): Taxas por meio de pagamento.
        max_installments (int): Máximo de parcelas no cartão.
        installment_fees (Dict[int, float]): Percentual adicional por número de parcelas.
    """
    methods: Dict[PaymentMethod, MethodFee]
    max_installments: int = DEFAULT_MAX_INSTALLMENTS
    installment_fees: Dict[int, float] = field(default_factory=lambda: dict(DEFAULT_INSTALLMENT_FEES))

    @classmethod
    def default(cls) -> "FeeConfig":
        return cls(methods={
            PaymentMethod.PIX: MethodFee(1.5, 0, 2),
            PaymentMethod.CREDIT_CARD: MethodFee(4.99, 0, 14),
            PaymentMethod.BOLETO: MethodFee(0.0, 350, 2),
        })

    @classmethod
    def from_row(cls, row) -> "FeeConfig":
        """
        Constrói a configuração a partir de um registro TenantPaymentFees.

        Args:
            row (TenantPaymentFees): Registro de taxas do tenant.

        Returns:
            FeeConfig: Configuração imutável.
        """
        installment_fees = {int(k): float(v) for k, v in (row.installment_fees or {}).items()}
        return cls(
            methods={
                PaymentMethod.PIX: MethodFee(
                    row.pix_fee_percentage, row.pix_fee_fixed_cents,
                    row.pix_release_days, row.pix_enabled
                ),
                PaymentMethod.CREDIT_CARD: MethodFee(
                    row.card_fee_percentage, row.card_fee_fixed_cents,
                    row.card_release_days, row.card_enabled
                ),
                PaymentMethod.BOLETO: MethodFee(
                    row.boleto_fee_percentage, row.boleto_fee_fixed_cents,
                    row.boleto_release_days, row.boleto_enabled
                ),
            },
            max_installments=row.max_installments,
            installment_fees=installment_fees or dict(DEFAULT_INSTALLMENT_FEES),
        )


@dataclass(frozen=True)
class FeeBreakdown:
    fee_percentage: float
    fee_fixed_cents: int
    installment_fee_percentage: float
    total_fee_cents: int
    net_amount_cents: int
    release_days: int

    def to_dict(self) -> dict:
        return {
            "fee_percentage": self.fee_percentage,
            "fee_fixed_cents": self.fee_fixed_cents,
            "installment_fee_percentage": self.installment_fee_percentage,
            "total_fee_cents": self.total_fee_cents,
            "net_amount_cents": self.net_amount_cents,
            "release_days": self.release_days,
        }


def round_half_up(value: Decimal) -> int:
    """Arredonda para o centavo inteiro mais próximo (meio para cima)."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage_of(amount_cents: int, percentage: float) -> int:
    """
    Calcula um percentual de um valor em centavos.

    O percentual passa por str() antes do Decimal para evitar o ruído binário do
    float (4.99 -> Decimal('4.99') e não 4.9900000000000002131...).
    """
    return round_half_up(Decimal(amount_cents) * Decimal(str(percentage)) / Decimal(100))


def compute_fees(
    fee_config: Optional[FeeConfig],
    payment_method,
    amount_cents: int,
    installments: int = 1,
    enforce_availability: bool = True,
) -> FeeBreakdown:
    """
    Calcula as taxas de uma venda para um meio de pagamento.

    Args:
        fee_config (Optional[FeeConfig]): Configuração do tenant (None usa o padrão).
        payment_method (PaymentMethod | str): Meio de pagamento.
        amount_cents (int): Valor total em centavos.
        installments (int): Número de parcelas (apenas cartão).
        enforce_availability (bool): Recusa meio desabilitado e parcelas acima do
            máximo do tenant. A liquidação de vendas já pagas usa False.

    Returns:
        FeeBreakdown: Detalhamento das taxas.

    Raises:
        PaymentMethodUnavailable: Meio desconhecido ou desabilitado.
        InvalidInstallments: Parcelas fora do intervalo permitido.
        InvalidAmount: Valor negativo.
    """
    config = fee_config or FeeConfig.default()

    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise PaymentMethodUnavailable(f"Meio de pagamento desconhecido: {payment_method}")

    method_fee = config.methods.get(method)
    if method_fee is None:
        raise PaymentMethodUnavailable(f"Meio de pagamento indisponível: {method.value}")

    if amount_cents is None or amount_cents < 0:
        raise InvalidAmount("O valor não pode ser negativo")

    if enforce_availability:
        if not method_fee.enabled:
            raise PaymentMethodUnavailable(f"Meio de pagamento indisponível: {method.value}")
        if installments is None or installments < 1 or installments > config.max_installments:
            raise InvalidInstallments(
                f"Parcelas devem estar entre 1 e {config.max_installments}"
            )
    else:
        installments = max(installments or 1, 1)

    installment_pct = 0.0
    if method == PaymentMethod.CREDIT_CARD and installments > 1:
        installment_pct = float(config.installment_fees.get(installments, 0.0))

    total_pct = Decimal(str(method_fee.percentage)) + Decimal(str(installment_pct))
    total_fee = round_half_up(Decimal(amount_cents) * total_pct / Decimal(100)) + method_fee.fixed_cents

    return FeeBreakdown(
        fee_percentage=method_fee.percentage,
        fee_fixed_cents=method_fee.fixed_cents,
        installment_fee_percentage=installment_pct,
        total_fee_cents=total_fee,
        net_amount_cents=amount_cents - total_fee,
        release_days=method_fee.release_days,
    )
