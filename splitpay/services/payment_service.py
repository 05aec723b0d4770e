# D:\splitpay\splitpay\services\payment_service.py
"""
payment_service.py

Receptor de webhooks de pagamento: valida a origem, normaliza o evento, atualiza
a venda e dispara a liquidação ou a reversão dos créditos.

Funcionalidades principais:
    - Detecção do gateway (rota ou formato do payload) e verificação de assinatura
    - Atualização de payment_status/status da venda com histórico
    - Liquidação da venda quando o pagamento é confirmado
    - Reversão dos créditos em estornos e chargebacks
    - Idempotência: cada evento (gateway, transação, status) é aplicado uma vez

Regras de Negócio:
    - Todas as escritas de um webhook acontecem em uma única transação
    - Reentregas do mesmo evento não têm efeito e são respondidas como duplicadas
    - Falha na liquidação desfaz todo o processamento (o gateway reenviará)
    - Status desconhecido, venda inexistente ou gateway não reconhecido são ignorados
    - Eventos fora de ordem (ex.: 'paid' após 'refunded', 'pending' após 'paid')
      ficam registrados como tentativa, sem alterar a venda
    - Apenas a chave do evento processado caracteriza duplicidade; qualquer outra
      violação de integridade desfaz o processamento

Dependências:
    - SQLAlchemy para persistência de dados
    - splitpay.services.payment para os adaptadores de gateway
    - splitpay.services.split_service e ledger_service para a liquidação
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from splitpay.config import settings as app_settings
from splitpay.config.settings import now_utc
from splitpay.models.database import Sale, SaleChangeLog
from splitpay.models.enums import PaymentStatus, SaleStatus, TransactionType
from splitpay.models.finance_models import (
    PaymentGatewayConfig, ProcessedGatewayEvent, PaymentAttempt
)
from splitpay.services import ledger_service
from splitpay.services.errors import InvalidWebhookSignature, UnsupportedGateway
from splitpay.services.payment.gateway_factory import PaymentGatewayFactory
from splitpay.services.payment.gateway_interface import PaymentGatewayInterface, PaymentEvent
from splitpay.services.settings_service import load_platform_settings
from splitpay.services.split_service import settle_sale

logger = logging.getLogger(__name__)

SALE_STATUS_BY_PAYMENT = {
    PaymentStatus.PAID: SaleStatus.PAYMENT_CONFIRMED,
    PaymentStatus.REFUSED: SaleStatus.CANCELLED,
    PaymentStatus.CANCELLED: SaleStatus.CANCELLED,
    PaymentStatus.REFUNDED: SaleStatus.CANCELLED,
    PaymentStatus.CHARGEDBACK: SaleStatus.CANCELLED,
}

_REVERSALS = {PaymentStatus.PENDING_REFUND, PaymentStatus.REFUNDED, PaymentStatus.CHARGEDBACK}

# Status de pagamento aceitos a partir do status atual da venda
ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: set(PaymentStatus),
    PaymentStatus.ANALYZING: set(PaymentStatus),
    PaymentStatus.PAID: {PaymentStatus.PAID} | _REVERSALS,
    PaymentStatus.PENDING_REFUND: _REVERSALS,
    PaymentStatus.REFUSED: {PaymentStatus.REFUSED},
    PaymentStatus.CANCELLED: {PaymentStatus.CANCELLED},
    PaymentStatus.REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.CHARGEDBACK: {PaymentStatus.CHARGEDBACK},
}

REVERSAL_KIND = {
    PaymentStatus.REFUNDED: TransactionType.REFUND,
    PaymentStatus.CHARGEDBACK: TransactionType.CHARGEBACK,
}


class InvalidWebhookPayload(ValueError):
    """Corpo do webhook não é um JSON válido."""


@dataclass
class WebhookResult:
    """
    Resultado do processamento de um webhook.

    Attributes:
        processed (bool): O evento alterou o estado do sistema.
        duplicate (bool): O evento já havia sido processado.
        message (str): Descrição do resultado.
        details (dict): Dados adicionais (venda, status, divisão).
    """
    processed: bool = False
    duplicate: bool = False
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {"received": True, "processed": self.processed, "message": self.message}
        if self.duplicate:
            data["duplicate"] = True
        data.update(self.details)
        return data


class PaymentService:
    """
    Serviço de processamento de webhooks de pagamento.

    Args:
        session (AsyncSession): Sessão do banco de dados usada em todo o processamento.
        signature_required (Optional[bool]): Recusa webhooks de gateways sem segredo
            configurado. Padrão: WEBHOOK_SIGNATURE_REQUIRED.
    """

    def __init__(self, session: AsyncSession, signature_required: Optional[bool] = None):
        self.session = session
        if signature_required is None:
            signature_required = app_settings.WEBHOOK_SIGNATURE_REQUIRED
        self.signature_required = signature_required

    async def get_gateway_config(self, gateway_name: str) -> Optional[PaymentGatewayConfig]:
        result = await self.session.execute(
            select(PaymentGatewayConfig).where(PaymentGatewayConfig.gateway_name == gateway_name)
        )
        return result.scalar_one_or_none()

    async def create_or_update_gateway_config(
        self,
        gateway_name: str,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        is_active: bool = True,
        configuration: Optional[Dict[str, Any]] = None
    ) -> PaymentGatewayConfig:
        """
        Cria ou atualiza a configuração de um gateway.

        Campos omitidos (None) mantêm o valor atual.

        Raises:
            UnsupportedGateway: Gateway sem adaptador registrado.
        """
        gateway = PaymentGatewayFactory.get_gateway(gateway_name)

        config = await self.get_gateway_config(gateway.name)
        if config is None:
            config = PaymentGatewayConfig(gateway_name=gateway.name)
            self.session.add(config)

        if api_key is not None:
            config.api_key = api_key
        if webhook_secret is not None:
            config.webhook_secret = webhook_secret
        if configuration is not None:
            config.configuration = configuration
        config.is_active = bool(is_active)

        await self.session.commit()
        await self.session.refresh(config)
        logger.info("Gateway %s configurado (ativo=%s)", gateway.name, config.is_active)
        return config

    async def list_gateway_configs(self):
        result = await self.session.execute(
            select(PaymentGatewayConfig).order_by(PaymentGatewayConfig.gateway_name)
        )
        return list(result.scalars().all())

    async def _verify(self, gateway: PaymentGatewayInterface, raw_body: bytes, headers: Mapping[str, str]) -> None:
        config = await self.get_gateway_config(gateway.name)
        if config is not None and not config.is_active:
            raise UnsupportedGateway(f"Gateway {gateway.name} inativo")
        secret = config.webhook_secret if config else None

        if not secret:
            if self.signature_required:
                raise InvalidWebhookSignature(
                    f"Gateway {gateway.name} sem segredo de webhook configurado"
                )
            logger.warning("Webhook %s aceito sem verificação de assinatura", gateway.name)
            return

        if not gateway.verify_signature(raw_body, headers, secret):
            raise InvalidWebhookSignature(f"Assinatura inválida no webhook {gateway.name}")

    async def _find_sale(self, event: PaymentEvent) -> Optional[Sale]:
        if event.sale_id is not None:
            return await self.session.get(Sale, event.sale_id)
        if event.gateway_transaction_id:
            result = await self.session.execute(
                select(Sale).where(Sale.gateway_transaction_id == event.gateway_transaction_id)
            )
            return result.scalars().first()
        return None

    async def process_webhook(
        self,
        gateway_name: Optional[str],
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> WebhookResult:
        """
        Processa um webhook de gateway de pagamento.

        Args:
            gateway_name (Optional[str]): Gateway informado na rota; None para detectar
                pelo formato do payload.
            raw_body (bytes): Corpo original da requisição (usado na assinatura).
            headers (Mapping[str, str]): Cabeçalhos da requisição.

        Returns:
            WebhookResult: Resultado do processamento.

        Raises:
            InvalidWebhookPayload: Corpo não é JSON.
            InvalidWebhookSignature: Assinatura ausente ou inválida.
            UnsupportedGateway: Gateway da rota desconhecido ou payload não reconhecido.
            Exception: Qualquer falha na atualização/liquidação (transação desfeita).
        """
        try:
            payload = json.loads(raw_body or b"")
        except (ValueError, UnicodeDecodeError):
            raise InvalidWebhookPayload("Corpo do webhook não é um JSON válido")
        if not isinstance(payload, dict):
            raise InvalidWebhookPayload("Corpo do webhook deve ser um objeto JSON")

        if gateway_name:
            gateway = PaymentGatewayFactory.get_gateway(gateway_name)
        else:
            gateway = PaymentGatewayFactory.detect_gateway(payload)
            if gateway is None:
                raise UnsupportedGateway("Formato de webhook não reconhecido")

        await self._verify(gateway, raw_body, headers)

        event = gateway.parse_event(payload)
        logger.info(
            "Webhook %s recebido: transação=%s status=%s venda=%s",
            gateway.name, event.gateway_transaction_id, event.raw_status, event.sale_id
        )

        if event.status is None:
            logger.warning("Webhook %s com status desconhecido ignorado: %s", gateway.name, event.raw_status)
            return WebhookResult(message=f"Status ignorado: {event.raw_status}")

        if not event.gateway_transaction_id:
            logger.warning("Webhook %s sem ID de transação ignorado", gateway.name)
            return WebhookResult(message="Webhook sem ID de transação")

        sale = await self._find_sale(event)
        if sale is None:
            logger.warning(
                "Webhook %s para venda inexistente ignorado (venda=%s, transação=%s)",
                gateway.name, event.sale_id, event.gateway_transaction_id
            )
            return WebhookResult(message="Venda não encontrada")

        sale_id = sale.id
        current_status = sale.payment_status or PaymentStatus.PENDING

        # A chave única faz a reentrega falhar aqui, antes de qualquer efeito
        try:
            self.session.add(ProcessedGatewayEvent(
                gateway=event.gateway,
                gateway_transaction_id=event.gateway_transaction_id,
                event_status=event.status.value,
                sale_id=sale_id,
            ))
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                "Webhook duplicado ignorado: %s/%s/%s",
                gateway.name, event.gateway_transaction_id, event.status.value
            )
            return WebhookResult(duplicate=True, message="Evento já processado")

        try:
            if event.status not in ALLOWED_TRANSITIONS[current_status]:
                self._add_attempt(sale, event)
                await self.session.commit()
                logger.warning(
                    "Webhook %s ignorado: transição %s -> %s não permitida (venda %s)",
                    gateway.name, current_status.value, event.status.value, sale_id
                )
                return WebhookResult(
                    message=f"Transição {current_status.value} -> {event.status.value} ignorada",
                    details={
                        "sale_id": sale_id,
                        "payment_status": current_status.value,
                        "ignored_status": event.status.value,
                    },
                )

            details = await self._apply_event(sale, event)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(
                "Falha ao processar webhook %s da venda %s", gateway.name, sale_id
            )
            raise

        return WebhookResult(processed=True, message="Webhook processado", details=details)

    def _add_attempt(self, sale: Sale, event: PaymentEvent) -> None:
        attempt = PaymentAttempt(
            sale_id=sale.id,
            gateway=event.gateway,
            payment_method=event.payment_method or sale.payment_method,
            amount_cents=event.amount_cents if event.amount_cents is not None else sale.total_cents,
            status=event.status,
            gateway_transaction_id=event.gateway_transaction_id,
        )
        attempt.response_data = event.payload
        self.session.add(attempt)

    async def _apply_event(self, sale: Sale, event: PaymentEvent) -> Dict[str, Any]:
        session = self.session
        now = now_utc()
        source = f"webhook:{event.gateway}"

        old_payment_status = sale.payment_status
        if old_payment_status != event.status:
            sale.payment_status = event.status
            session.add(SaleChangeLog(
                sale_id=sale.id,
                change_type="payment_status",
                field_name="payment_status",
                old_value=old_payment_status.value if old_payment_status else None,
                new_value=event.status.value,
                source=source,
            ))

        new_sale_status = SALE_STATUS_BY_PAYMENT.get(event.status)
        # Confirmação de pagamento não faz voltar uma venda já despachada ou entregue
        if new_sale_status == SaleStatus.PAYMENT_CONFIRMED and sale.status != SaleStatus.PENDING:
            new_sale_status = None
        if new_sale_status is not None and sale.status != new_sale_status:
            session.add(SaleChangeLog(
                sale_id=sale.id,
                change_type="status",
                field_name="status",
                old_value=sale.status.value if sale.status else None,
                new_value=new_sale_status.value,
                source=source,
            ))
            sale.status = new_sale_status

        if not sale.gateway_transaction_id:
            sale.gateway_transaction_id = event.gateway_transaction_id
        sale.updated_at = now

        self._add_attempt(sale, event)

        details = {"sale_id": sale.id, "payment_status": event.status.value, "sale_status": sale.status.value}

        if event.status == PaymentStatus.PAID:
            platform_settings = await load_platform_settings(session)
            plan = await settle_sale(session, sale, platform_settings, now)
            details["settled"] = plan is not None
            if plan is not None:
                details["split"] = plan.to_dict()
        elif event.status in REVERSAL_KIND:
            summary = await ledger_service.reverse_sale_credits(session, sale.id, REVERSAL_KIND[event.status])
            details["reversal"] = summary

        await session.flush()
        return details
