# D:\splitpay\splitpay\services\payment\stripe_gateway.py

"""
stripe_gateway.py

Adaptador de webhooks do Stripe.

Eventos tratados:
    - payment_intent.succeeded / payment_failed / canceled / processing / requires_action
    - charge.refunded
    - charge.dispute.created

O ID da transação é sempre o do PaymentIntent, inclusive em eventos de charge,
para que todos os eventos de um pagamento se refiram à mesma transação. A
assinatura (cabeçalho Stripe-Signature) é verificada com
stripe.Webhook.construct_event.
"""

import logging
from typing import Dict, Mapping

import stripe

from splitpay.models.enums import PaymentStatus, PaymentMethod
from .gateway_interface import PaymentGatewayInterface, PaymentEvent, parse_sale_id

logger = logging.getLogger(__name__)

EVENT_STATUS_MAP = {
    "payment_intent.succeeded": PaymentStatus.PAID,
    "payment_intent.payment_failed": PaymentStatus.REFUSED,
    "payment_intent.canceled": PaymentStatus.CANCELLED,
    "payment_intent.processing": PaymentStatus.PENDING,
    "payment_intent.requires_action": PaymentStatus.PENDING,
    "charge.refunded": PaymentStatus.REFUNDED,
    "charge.dispute.created": PaymentStatus.CHARGEDBACK,
}

METHOD_MAP = {
    "card": PaymentMethod.CREDIT_CARD,
    "pix": PaymentMethod.PIX,
    "boleto": PaymentMethod.BOLETO,
}

SIGNATURE_HEADER = "Stripe-Signature"


class StripeGateway(PaymentGatewayInterface):
    """
    Adaptador do Stripe.
    """

    name = "stripe"

    def matches(self, payload: Dict) -> bool:
        event_type = payload.get("type")
        return (
            payload.get("object") == "event"
            or (isinstance(event_type, str) and event_type.startswith(("payment_intent.", "charge.")))
        )

    def parse_event(self, payload: Dict) -> PaymentEvent:
        event_type = payload.get("type")
        if not isinstance(event_type, str):
            event_type = ""
        data = payload.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            obj = {}
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        if obj.get("object") == "payment_intent" or event_type.startswith("payment_intent."):
            transaction_id = obj.get("id")
        else:
            transaction_id = obj.get("payment_intent") or obj.get("charge") or obj.get("id")
        if not isinstance(transaction_id, str):
            transaction_id = None

        method = None
        method_types = obj.get("payment_method_types")
        if isinstance(method_types, list) and method_types and isinstance(method_types[0], str):
            method = METHOD_MAP.get(method_types[0])

        amount = obj.get("amount")
        return PaymentEvent(
            gateway=self.name,
            gateway_transaction_id=transaction_id,
            raw_status=event_type,
            status=EVENT_STATUS_MAP.get(event_type),
            sale_id=parse_sale_id(metadata.get("sale_id")),
            amount_cents=amount if isinstance(amount, int) and not isinstance(amount, bool) else None,
            payment_method=method,
            payload=payload,
        )

    def verify_signature(self, raw_body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        signature = headers.get(SIGNATURE_HEADER)
        if not signature:
            return False
        try:
            stripe.Webhook.construct_event(raw_body.decode("utf-8"), signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Assinatura Stripe inválida: %s", e)
            return False
        except ValueError:
            return False
        return True
