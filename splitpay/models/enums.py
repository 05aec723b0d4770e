# D:\splitpay\splitpay\models\enums.py
"""
enums.py

Enumerações fechadas usadas pelos modelos e serviços financeiros.

Todas herdam de str para que possam ser comparadas diretamente com os valores
recebidos em JSON e gravadas no banco pelo seu valor textual.
"""

import enum


class PaymentMethod(str, enum.Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    BOLETO = "boleto"
    CASH = "cash"


class SaleStatus(str, enum.Enum):
    PENDING = "pending"
    PAYMENT_CONFIRMED = "payment_confirmed"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    PAID = "paid"
    REFUSED = "refused"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PENDING_REFUND = "pending_refund"
    CHARGEDBACK = "chargedback"


class AccountType(str, enum.Enum):
    TENANT = "tenant"
    AFFILIATE = "affiliate"
    COPRODUCER = "coproducer"


class SplitType(str, enum.Enum):
    """
    Beneficiário de uma divisão de venda.

    PLATFORM é apenas registro contábil: não possui conta virtual nem transação.
    """
    TENANT = "tenant"
    AFFILIATE = "affiliate"
    PLATFORM = "platform"


class TransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    FEE = "fee"
    WITHDRAWAL = "withdrawal"
    REFUND = "refund"
    CHARGEBACK = "chargeback"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    RELEASED = "released"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ConfirmationType(str, enum.Enum):
    RECEIPT = "receipt"
    HANDOVER = "handover"
    FINAL_VERIFICATION = "final_verification"


def enum_values(enum_class):
    """Lista os valores (e não os nomes) de uma enumeração para colunas SQLAlchemy."""
    return [member.value for member in enum_class]
