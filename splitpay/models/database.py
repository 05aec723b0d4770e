# D:\splitpay\splitpay\models\database.py
"""
database.py

Este módulo define os modelos de dados (ORM) centrais usando SQLAlchemy e os métodos
para criação e interação com o banco de dados de forma assíncrona.

Classes:
    Organization: Representa um tenant (loja) da plataforma.
    User: Representa um usuário autenticado pelo serviço de identidade.
    Sale: Representa uma venda (pedido) de um tenant.
    SaleChangeLog: Histórico append-only de alterações em vendas.
    AffiliateAttribution: Indicação de afiliado vinculada a uma venda.
    CashPaymentConfirmation: Confirmação de recebimento de pagamento em dinheiro.
    PlatformSetting: Configuração global chave/valor em JSON.
    TenantPaymentFees: Configuração de taxas por meio de pagamento de um tenant.

Functions:
    create_database(db_url: str) -> None:
        Cria o schema do banco de dados assíncrono, se não existir.

    get_async_engine(db_url: str):
        Retorna o motor assíncrono configurado para o banco de dados.

    get_session_maker(engine):
        Retorna o criador de sessões assíncronas para o banco de dados.
"""

import json
from sqlalchemy import (
    Column, Integer, String, Text, Float, Enum, DateTime, ForeignKey, Boolean, event
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker
)

from splitpay.config.settings import now_utc
from splitpay.models.enums import (
    PaymentMethod, SaleStatus, PaymentStatus, ConfirmationType, enum_values
)

Base = declarative_base()


class Organization(Base):
    """
    Representa um tenant (loja) da plataforma.

    Attributes:
        id (int): ID único do tenant.
        name (str): Nome do tenant.
        owner_email (str): E-mail do responsável, usado na conta virtual.
        created_at (datetime): Data de criação do registro.
    """
    __tablename__ = 'organizations'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=now_utc)

    users = relationship("User", back_populates="organization")
    sales = relationship("Sale", back_populates="organization")


class User(Base):
    """
    Representa um usuário no sistema.

    O cadastro e a autenticação acontecem no provedor de identidade; este serviço
    apenas referencia o usuário em revisões, confirmações e contas de afiliado.

    Attributes:
        id (int): ID único do usuário.
        name (str): Nome do usuário.
        email (str): Email do usuário, único.
        role (Enum): Papel do usuário (admin, manager, affiliate, user).
        organization_id (int): Tenant ao qual o usuário pertence (se houver).
        active (bool): Indica se o usuário está ativo no sistema.
    """
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(Enum('admin', 'manager', 'affiliate', 'user', name='user_roles'), nullable=False)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=True)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=now_utc)

    organization = relationship("Organization", back_populates="users")


class Sale(Base):
    """
    Representa uma venda de um tenant.

    Criada quando o checkout é concluído; alterada pelo webhook de pagamento
    (payment_status) e pelos fluxos de entrega/conferência de dinheiro (status,
    delivery_confirmed_by/at). Nunca é excluída; o histórico fica em SaleChangeLog.

    Attributes:
        id (int): ID único da venda.
        organization_id (int): Tenant dono da venda.
        total_cents (int): Valor total em centavos.
        payment_method (str): Meio de pagamento (pix, credit_card, boleto, cash).
        installments (int): Número de parcelas (cartão).
        status (str): Status da venda.
        payment_status (str): Status do pagamento no gateway.
        delivery_payment_type (str): Forma de pagamento na entrega ('cash', etc).
        delivery_confirmed_by (int): Usuário que confirmou a entrega.
        delivery_confirmed_at (datetime): Data da confirmação de entrega.
        gateway_transaction_id (str): ID da transação no gateway.
    """
    __tablename__ = 'sales'
    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False)
    total_cents = Column(Integer, nullable=False)
    payment_method = Column(
        Enum(PaymentMethod, name='payment_methods', values_callable=enum_values),
        nullable=False
    )
    installments = Column(Integer, nullable=False, default=1)
    status = Column(
        Enum(SaleStatus, name='sale_status', values_callable=enum_values),
        nullable=False,
        default=SaleStatus.PENDING
    )
    payment_status = Column(
        Enum(PaymentStatus, name='sale_payment_status', values_callable=enum_values),
        nullable=False,
        default=PaymentStatus.PENDING
    )
    delivery_payment_type = Column(String(50), nullable=True)
    delivery_confirmed_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    delivery_confirmed_at = Column(DateTime, nullable=True)
    gateway_transaction_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    organization = relationship("Organization", back_populates="sales")
    changes = relationship("SaleChangeLog", back_populates="sale", order_by="SaleChangeLog.id")
    confirmations = relationship(
        "CashPaymentConfirmation", back_populates="sale", order_by="CashPaymentConfirmation.id"
    )
    attribution = relationship("AffiliateAttribution", uselist=False, back_populates="sale")
    splits = relationship("SaleSplit", back_populates="sale")


class SaleChangeLog(Base):
    """
    Registro append-only de alterações de uma venda.

    Attributes:
        sale_id (int): Venda alterada.
        change_type (str): Tipo da alteração ('payment_status', 'status', 'cash_confirmation', ...).
        field_name (str): Campo alterado, quando aplicável.
        old_value (str): Valor anterior.
        new_value (str): Novo valor.
        changed_by (int): Usuário responsável (None para webhooks).
        source (str): Origem da alteração ('webhook:pagarme', 'cash_verification', ...).
    """
    __tablename__ = 'sale_changes_log'
    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=False, index=True)
    change_type = Column(String(50), nullable=False)
    field_name = Column(String(50), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    source = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=now_utc)

    sale = relationship("Sale", back_populates="changes")


class AffiliateAttribution(Base):
    """
    Indicação de afiliado vinculada a uma venda no checkout.

    A comissão já chega calculada (commission_cents); a liquidação apenas a credita.

    Attributes:
        sale_id (int): Venda indicada (única).
        affiliate_user_id (int): Usuário afiliado que receberá a comissão.
        commission_percentage (float): Percentual de comissão aplicado.
        commission_cents (int): Valor da comissão em centavos.
    """
    __tablename__ = 'affiliate_attributions'
    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=False, unique=True)
    affiliate_user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    commission_percentage = Column(Float, nullable=False, default=0.0)
    commission_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=now_utc)

    sale = relationship("Sale", back_populates="attribution")
    affiliate_user = relationship("User")


class CashPaymentConfirmation(Base):
    """
    Confirmação append-only de um pagamento recebido em dinheiro.

    Várias confirmações se acumulam por venda (recebimento pelo entregador, repasse,
    conferência final). Nenhuma é alterada ou excluída.

    Attributes:
        sale_id (int): Venda confirmada.
        confirmation_type (str): 'receipt', 'handover' ou 'final_verification'.
        confirmed_by (int): Usuário que registrou a confirmação.
        amount_cents (int): Valor conferido, opcional.
        notes (str): Observações, opcional.
    """
    __tablename__ = 'cash_payment_confirmations'
    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey('sales.id'), nullable=False, index=True)
    confirmation_type = Column(
        Enum(ConfirmationType, name='confirmation_types', values_callable=enum_values),
        nullable=False
    )
    confirmed_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    amount_cents = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)

    sale = relationship("Sale", back_populates="confirmations")
    user = relationship("User")


class PlatformSetting(Base):
    """
    Configuração global da plataforma no formato chave/valor (JSON).

    Chaves usadas por este serviço: 'platform_fees' e 'withdrawal_rules'.
    """
    __tablename__ = 'platform_settings'
    id = Column(Integer, primary_key=True, autoincrement=True)
    setting_key = Column(String(100), nullable=False, unique=True)
    _setting_value = Column("setting_value", Text, nullable=False, default="{}")
    updated_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    @property
    def setting_value(self) -> dict:
        """
        Desserializa o valor da configuração do formato JSON.

        Returns:
            dict: Valor da configuração
        """
        if self._setting_value:
            return json.loads(self._setting_value)
        return {}

    @setting_value.setter
    def setting_value(self, value: dict):
        self._setting_value = json.dumps(value or {})


class TenantPaymentFees(Base):
    """
    Taxas cobradas de um tenant por meio de pagamento.

    Attributes:
        organization_id (int): Tenant (único).
        pix_fee_percentage / pix_fee_fixed_cents / pix_release_days / pix_enabled: Taxas do PIX.
        card_fee_percentage / card_fee_fixed_cents / card_release_days / card_enabled: Taxas do cartão.
        boleto_fee_percentage / boleto_fee_fixed_cents / boleto_release_days / boleto_enabled: Taxas do boleto.
        max_installments (int): Máximo de parcelas no cartão.
        installment_fees (dict): Percentual adicional por número de parcelas ({"2": 3.49, ...}).
    """
    __tablename__ = 'tenant_payment_fees'
    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, unique=True)
    pix_fee_percentage = Column(Float, nullable=False, default=1.5)
    pix_fee_fixed_cents = Column(Integer, nullable=False, default=0)
    pix_release_days = Column(Integer, nullable=False, default=2)
    pix_enabled = Column(Boolean, nullable=False, default=True)
    card_fee_percentage = Column(Float, nullable=False, default=4.99)
    card_fee_fixed_cents = Column(Integer, nullable=False, default=0)
    card_release_days = Column(Integer, nullable=False, default=14)
    card_enabled = Column(Boolean, nullable=False, default=True)
    boleto_fee_percentage = Column(Float, nullable=False, default=0.0)
    boleto_fee_fixed_cents = Column(Integer, nullable=False, default=350)
    boleto_release_days = Column(Integer, nullable=False, default=2)
    boleto_enabled = Column(Boolean, nullable=False, default=True)
    max_installments = Column(Integer, nullable=False, default=12)
    _installment_fees = Column("installment_fees", Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    @property
    def installment_fees(self) -> dict:
        if self._installment_fees:
            return json.loads(self._installment_fees)
        return {}

    @installment_fees.setter
    def installment_fees(self, value: dict):
        self._installment_fees = json.dumps(value) if value is not None else None


def get_async_engine(db_url: str):
    """
    Retorna o motor assíncrono configurado para o banco de dados.

    Args:
        db_url (str): URL de conexão com o banco de dados.

    No SQLite as transações começam com BEGIN IMMEDIATE: escritores concorrentes
    aguardam o lock em vez de falharem ao promover um lock de leitura.

    Returns:
        AsyncEngine: Motor assíncrono do SQLAlchemy.
    """
    engine = create_async_engine(db_url, echo=False)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def get_session_maker(engine):
    """
    Retorna o criador de sessões assíncronas para o banco de dados.

    Args:
        engine (AsyncEngine): Motor assíncrono do banco de dados.

    Returns:
        async_sessionmaker: Criador de sessões assíncronas.
    """
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def create_database(db_url: str) -> None:
    """
    Cria o schema do banco de dados assíncrono, se não existir.

    Args:
        db_url (str): URL de conexão com o banco de dados.
    """
    engine = get_async_engine(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


# Registra os modelos financeiros no mesmo metadata (relacionamentos por nome).
from splitpay.models import finance_models  # noqa: E402,F401
