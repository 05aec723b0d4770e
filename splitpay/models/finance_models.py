# D:\splitpay\splitpay\models\finance_models.py
"""
finance_models.py

Módulo que define os modelos de dados (ORM) do fluxo de liquidação de vendas:
contas virtuais, extrato, divisões de venda, saques e integração com gateways.

Funcionalidades principais:
    - Saldo por beneficiário (tenant, afiliado, coprodutor) em contas virtuais
    - Extrato de transações com agenda de liberação (pendente -> liberado)
    - Registro imutável da divisão de cada venda entre os beneficiários
    - Solicitações de saque com revisão manual
    - Configuração de gateways e registro de eventos de webhook já processados

Regras de Negócio:
    - Valores monetários sempre em centavos (inteiros)
    - balance_cents nunca fica negativo
    - Cada venda possui no máximo uma divisão por tipo de beneficiário
    - Cada evento de gateway é processado no máximo uma vez
    - reference_id é único por conta, impedindo lançamentos duplicados

Dependências:
    - SQLAlchemy para ORM
    - splitpay.models.database para a base declarativa e modelos centrais
"""

import json
from sqlalchemy import (
    Column, Integer, String, Float, Enum, DateTime, ForeignKey, Boolean, Text,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from splitpay.config.settings import now_utc
from splitpay.models.database import Base
from splitpay.models.enums import (
    AccountType, SplitType, TransactionType, TransactionStatus,
    WithdrawalStatus, PaymentMethod, PaymentStatus, enum_values
)


class VirtualAccount(Base):
    """
    Conta virtual de um beneficiário.

    Contas de tenant pertencem a uma organização; contas de afiliado e coprodutor
    pertencem a um usuário. São criadas no primeiro crédito e nunca excluídas,
    apenas desativadas. Os saldos só são alterados por expressões SQL
    (coluna = coluna + valor), nunca por leitura seguida de escrita.

    Attributes:
        balance_cents (int): Saldo disponível para saque.
        pending_balance_cents (int): Saldo aguardando a data de liberação.
        total_received_cents (int): Total histórico creditado.
        total_withdrawn_cents (int): Total histórico sacado (saques concluídos).
        is_active (bool): Contas inativas não aceitam saques.
    """
    __tablename__ = 'virtual_accounts'
    __table_args__ = (
        CheckConstraint('balance_cents >= 0', name='ck_virtual_accounts_balance_non_negative'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_type = Column(
        Enum(AccountType, name='account_types', values_callable=enum_values),
        nullable=False
    )
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    # 'tenant:<organization_id>' ou '<tipo>:<user_id>'; garante uma conta por beneficiário
    owner_key = Column(String(100), nullable=False, unique=True)
    holder_name = Column(String(255), nullable=True)
    holder_email = Column(String(255), nullable=True)
    balance_cents = Column(Integer, nullable=False, default=0)
    pending_balance_cents = Column(Integer, nullable=False, default=0)
    total_received_cents = Column(Integer, nullable=False, default=0)
    total_withdrawn_cents = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    bank_data = relationship("VirtualAccountBankData", back_populates="account")
    transactions = relationship("VirtualTransaction", back_populates="account")
    withdrawals = relationship("WithdrawalRequest", back_populates="account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_type": self.account_type.value,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "holder_name": self.holder_name,
            "holder_email": self.holder_email,
            "balance_cents": self.balance_cents,
            "pending_balance_cents": self.pending_balance_cents,
            "total_received_cents": self.total_received_cents,
            "total_withdrawn_cents": self.total_withdrawn_cents,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class VirtualAccountBankData(Base):
    """
    Dados bancários (ou chave PIX) de uma conta virtual.

    Apenas um registro por conta é marcado como is_primary; é ele que vai para o
    snapshot de cada saque.
    """
    __tablename__ = 'virtual_account_bank_data'

    id = Column(Integer, primary_key=True, autoincrement=True)
    virtual_account_id = Column(Integer, ForeignKey('virtual_accounts.id'), nullable=False, index=True)
    bank_code = Column(String(10), nullable=True)
    bank_name = Column(String(100), nullable=True)
    agency = Column(String(20), nullable=True)
    account_number = Column(String(30), nullable=True)
    account_holder = Column(String(255), nullable=True)
    document = Column(String(20), nullable=True)
    pix_key = Column(String(255), nullable=True)
    pix_key_type = Column(String(20), nullable=True)
    is_primary = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    account = relationship("VirtualAccount", back_populates="bank_data")

    def to_dict(self) -> dict:
        return {
            "bank_code": self.bank_code,
            "bank_name": self.bank_name,
            "agency": self.agency,
            "account_number": self.account_number,
            "account_holder": self.account_holder,
            "document": self.document,
            "pix_key": self.pix_key,
            "pix_key_type": self.pix_key_type,
        }


class VirtualTransaction(Base):
    """
    Lançamento no extrato de uma conta virtual.

    amount_cents é o efeito líquido no saldo (positivo para créditos, negativo para
    saques, estornos e chargebacks).

    Attributes:
        transaction_type (str): credit, debit, fee, withdrawal, refund ou chargeback.
        status (str): pending, released, completed ou cancelled.
        release_at (datetime): Quando um crédito pendente pode ser liberado.
        released_at (datetime): Quando foi efetivamente liberado.
        reference_id (str): Chave de idempotência, única por conta.
    """
    __tablename__ = 'virtual_transactions'
    __table_args__ = (
        UniqueConstraint('virtual_account_id', 'reference_id', name='uq_virtual_transactions_reference'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    virtual_account_id = Column(Integer, ForeignKey('virtual_accounts.id'), nullable=False, index=True)
    transaction_type = Column(
        Enum(TransactionType, name='virtual_transaction_types', values_callable=enum_values),
        nullable=False
    )
    amount_cents = Column(Integer, nullable=False)
    fee_cents = Column(Integer, nullable=False, default=0)
    net_amount_cents = Column(Integer, nullable=False)
    status = Column(
        Enum(TransactionStatus, name='virtual_transaction_status', values_callable=enum_values),
        nullable=False,
        default=TransactionStatus.PENDING
    )
    release_at = Column(DateTime, nullable=True, index=True)
    released_at = Column(DateTime, nullable=True)
    reference_id = Column(String(100), nullable=True)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=True, index=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=now_utc)

    account = relationship("VirtualAccount", back_populates="transactions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "virtual_account_id": self.virtual_account_id,
            "transaction_type": self.transaction_type.value,
            "amount_cents": self.amount_cents,
            "fee_cents": self.fee_cents,
            "net_amount_cents": self.net_amount_cents,
            "status": self.status.value,
            "release_at": self.release_at.isoformat() if self.release_at else None,
            "released_at": self.released_at.isoformat() if self.released_at else None,
            "reference_id": self.reference_id,
            "sale_id": self.sale_id,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SaleSplit(Base):
    """
    Parcela de uma venda destinada a um beneficiário. Imutável após a criação.

    A divisão da plataforma não tem conta virtual (virtual_account_id nulo) e serve
    apenas como registro contábil da receita da plataforma.
    """
    __tablename__ = 'sale_splits'
    __table_args__ = (
        UniqueConstraint('sale_id', 'split_type', name='uq_sale_splits_sale_type'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=False, index=True)
    split_type = Column(
        Enum(SplitType, name='split_types', values_callable=enum_values),
        nullable=False
    )
    virtual_account_id = Column(Integer, ForeignKey('virtual_accounts.id'), nullable=True)
    gross_amount_cents = Column(Integer, nullable=False)
    fee_cents = Column(Integer, nullable=False, default=0)
    net_amount_cents = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=True)
    transaction_id = Column(Integer, ForeignKey('virtual_transactions.id'), nullable=True)
    created_at = Column(DateTime, default=now_utc)

    sale = relationship("Sale", back_populates="splits")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "split_type": self.split_type.value,
            "virtual_account_id": self.virtual_account_id,
            "gross_amount_cents": self.gross_amount_cents,
            "fee_cents": self.fee_cents,
            "net_amount_cents": self.net_amount_cents,
            "percentage": self.percentage,
            "transaction_id": self.transaction_id,
        }


class WithdrawalRequest(Base):
    """
    Solicitação de saque de uma conta virtual.

    O valor solicitado é reservado (debitado de balance_cents) na criação; bank_data
    guarda uma cópia dos dados bancários no momento da solicitação.

    Attributes:
        amount_cents (int): Valor solicitado.
        fee_cents (int): Taxa de saque.
        net_amount_cents (int): Valor a transferir (amount - fee).
        status (str): pending, approved, processing, completed ou rejected.
        transaction_id (int): Lançamento 'withdrawal' que reservou o valor.
    """
    __tablename__ = 'withdrawal_requests'

    id = Column(Integer, primary_key=True, autoincrement=True)
    virtual_account_id = Column(Integer, ForeignKey('virtual_accounts.id'), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    fee_cents = Column(Integer, nullable=False, default=0)
    net_amount_cents = Column(Integer, nullable=False)
    _bank_data = Column("bank_data", Text, nullable=True)
    status = Column(
        Enum(WithdrawalStatus, name='withdrawal_status', values_callable=enum_values),
        nullable=False,
        default=WithdrawalStatus.PENDING
    )
    requested_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    reviewed_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    transfer_proof_url = Column(String(500), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    transaction_id = Column(Integer, ForeignKey('virtual_transactions.id'), nullable=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    account = relationship("VirtualAccount", back_populates="withdrawals")

    @property
    def bank_data(self) -> dict:
        if self._bank_data:
            return json.loads(self._bank_data)
        return {}

    @bank_data.setter
    def bank_data(self, value: dict):
        self._bank_data = json.dumps(value) if value is not None else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "virtual_account_id": self.virtual_account_id,
            "amount_cents": self.amount_cents,
            "fee_cents": self.fee_cents,
            "net_amount_cents": self.net_amount_cents,
            "bank_data": self.bank_data,
            "status": self.status.value,
            "requested_by": self.requested_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "rejection_reason": self.rejection_reason,
            "transfer_proof_url": self.transfer_proof_url,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "transaction_id": self.transaction_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PaymentGatewayConfig(Base):
    """
    Configuração de um gateway de pagamento.

    Attributes:
        gateway_name (str): Nome do gateway ('pagarme', 'stripe', 'asaas').
        api_key (str): Chave de API do gateway.
        webhook_secret (str): Segredo usado para verificar a assinatura dos webhooks.
        is_active (bool): Gateways inativos têm seus webhooks ignorados.
    """
    __tablename__ = 'payment_gateway_configs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    gateway_name = Column(String(50), nullable=False, unique=True)
    api_key = Column(String(255), nullable=True)
    webhook_secret = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    _configuration = Column("configuration", Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    @property
    def configuration(self) -> dict:
        if self._configuration:
            return json.loads(self._configuration)
        return {}

    @configuration.setter
    def configuration(self, value: dict):
        self._configuration = json.dumps(value) if value is not None else None

    def to_dict(self) -> dict:
        # Segredos nunca são expostos
        return {
            "id": self.id,
            "gateway_name": self.gateway_name,
            "is_active": self.is_active,
            "has_api_key": bool(self.api_key),
            "has_webhook_secret": bool(self.webhook_secret),
            "configuration": self.configuration,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ProcessedGatewayEvent(Base):
    """
    Registro de um evento de gateway já aplicado.

    A chave única (gateway, gateway_transaction_id, event_status) faz com que uma
    reentrega do mesmo evento falhe na inserção e seja tratada como duplicada.
    """
    __tablename__ = 'processed_gateway_events'
    __table_args__ = (
        UniqueConstraint(
            'gateway', 'gateway_transaction_id', 'event_status',
            name='uq_processed_gateway_events_key'
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    gateway = Column(String(50), nullable=False)
    gateway_transaction_id = Column(String(255), nullable=False)
    event_status = Column(String(50), nullable=False)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=True)
    created_at = Column(DateTime, default=now_utc)


class PaymentAttempt(Base):
    """
    Registro de cada callback de gateway aceito, com o payload original.
    """
    __tablename__ = 'payment_attempts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=False, index=True)
    gateway = Column(String(50), nullable=False)
    payment_method = Column(
        Enum(PaymentMethod, name='attempt_payment_methods', values_callable=enum_values),
        nullable=True
    )
    amount_cents = Column(Integer, nullable=True)
    status = Column(
        Enum(PaymentStatus, name='attempt_payment_status', values_callable=enum_values),
        nullable=False
    )
    gateway_transaction_id = Column(String(255), nullable=True)
    _response_data = Column("response_data", Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)

    @property
    def response_data(self) -> dict:
        if self._response_data:
            return json.loads(self._response_data)
        return {}

    @response_data.setter
    def response_data(self, value: dict):
        self._response_data = json.dumps(value, default=str) if value is not None else None
