# D:\splitpay\splitpay\services\payment\asaas_gateway.py

"""
asaas_gateway.py

Adaptador de webhooks do Asaas.

Formato esperado:
    {"event": "PAYMENT_RECEIVED",
     "payment": {"id": "pay_123", "value": 100.0, "billingType": "PIX",
                 "externalReference": "42"}}

O Asaas não assina o corpo; envia o token configurado no cabeçalho
asaas-access-token, que deve ser igual ao segredo do webhook.
"""

import hmac
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional

from splitpay.models.enums import PaymentStatus, PaymentMethod
from splitpay.services.fee_calculator import round_half_up
from .gateway_interface import PaymentGatewayInterface, PaymentEvent, parse_sale_id

EVENT_STATUS_MAP = {
    "PAYMENT_CREATED": PaymentStatus.PENDING,
    "PAYMENT_AWAITING_RISK_ANALYSIS": PaymentStatus.ANALYZING,
    "PAYMENT_APPROVED_BY_RISK_ANALYSIS": PaymentStatus.PENDING,
    "PAYMENT_REPROVED_BY_RISK_ANALYSIS": PaymentStatus.REFUSED,
    "PAYMENT_CREDIT_CARD_CAPTURE_REFUSED": PaymentStatus.REFUSED,
    "PAYMENT_CONFIRMED": PaymentStatus.PAID,
    "PAYMENT_RECEIVED": PaymentStatus.PAID,
    "PAYMENT_DELETED": PaymentStatus.CANCELLED,
    "PAYMENT_REFUND_IN_PROGRESS": PaymentStatus.PENDING_REFUND,
    "PAYMENT_REFUNDED": PaymentStatus.REFUNDED,
    "PAYMENT_CHARGEBACK_REQUESTED": PaymentStatus.CHARGEDBACK,
}

METHOD_MAP = {
    "PIX": PaymentMethod.PIX,
    "CREDIT_CARD": PaymentMethod.CREDIT_CARD,
    "BOLETO": PaymentMethod.BOLETO,
}

TOKEN_HEADER = "asaas-access-token"


def _to_cents(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return round_half_up(Decimal(str(value)) * 100)
    except InvalidOperation:
        return None


class AsaasGateway(PaymentGatewayInterface):
    """
    Adaptador do Asaas.
    """

    name = "asaas"

    def matches(self, payload: Dict) -> bool:
        event = payload.get("event")
        return isinstance(payload.get("payment"), dict) and isinstance(event, str) and event.startswith("PAYMENT_")

    def parse_event(self, payload: Dict) -> PaymentEvent:
        event = payload.get("event")
        if not isinstance(event, str):
            event = None
        payment = payload.get("payment")
        if not isinstance(payment, dict):
            payment = {}
        billing_type = payment.get("billingType")
        payment_id = payment.get("id")
        return PaymentEvent(
            gateway=self.name,
            gateway_transaction_id=payment_id if isinstance(payment_id, str) else None,
            raw_status=event,
            status=EVENT_STATUS_MAP.get(event),
            sale_id=parse_sale_id(payment.get("externalReference")),
            amount_cents=_to_cents(payment.get("value")),
            payment_method=METHOD_MAP.get(billing_type) if isinstance(billing_type, str) else None,
            payload=payload,
        )

    def verify_signature(self, raw_body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        token = headers.get(TOKEN_HEADER) or ""
        return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))
