# D:\splitpay\splitpay\services\payment\pagarme_gateway.py

"""
pagarme_gateway.py

Adaptador de webhooks do Pagar.me.

Formato esperado (postback de transação):
    {"id": "...", "current_status": "paid", "amount": 10000,
     "payment_method": "pix", "metadata": {"sale_id": "42"}}

Também aceita o envelope {"object": "transaction", "transaction": {...}}.

A assinatura vem no cabeçalho X-Hub-Signature no formato 'sha1=<hex>', um
HMAC-SHA1 do corpo bruto usando o segredo do webhook.
"""

import hashlib
import hmac
from typing import Dict, Mapping

from splitpay.models.enums import PaymentStatus, PaymentMethod
from .gateway_interface import PaymentGatewayInterface, PaymentEvent, parse_sale_id

STATUS_MAP = {
    "paid": PaymentStatus.PAID,
    "refused": PaymentStatus.REFUSED,
    "refunded": PaymentStatus.REFUNDED,
    "chargedback": PaymentStatus.CHARGEDBACK,
    "pending_refund": PaymentStatus.PENDING_REFUND,
    "waiting_payment": PaymentStatus.PENDING,
    "processing": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PENDING,
    "analyzing": PaymentStatus.ANALYZING,
    "pending_review": PaymentStatus.ANALYZING,
    "canceled": PaymentStatus.CANCELLED,
    "cancelled": PaymentStatus.CANCELLED,
}

METHOD_MAP = {
    "pix": PaymentMethod.PIX,
    "credit_card": PaymentMethod.CREDIT_CARD,
    "boleto": PaymentMethod.BOLETO,
}

SIGNATURE_HEADER = "X-Hub-Signature"


class PagarmeGateway(PaymentGatewayInterface):
    """
    Adaptador do Pagar.me.
    """

    name = "pagarme"

    def _transaction(self, payload: Dict) -> Dict:
        if isinstance(payload.get("transaction"), dict):
            return payload["transaction"]
        return payload

    def matches(self, payload: Dict) -> bool:
        transaction = self._transaction(payload)
        return "current_status" in transaction

    def parse_event(self, payload: Dict) -> PaymentEvent:
        transaction = self._transaction(payload)
        raw_status = transaction.get("current_status") or transaction.get("status")
        if not isinstance(raw_status, str):
            raw_status = None
        metadata = transaction.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        amount = transaction.get("amount")
        transaction_id = transaction.get("id")
        method = transaction.get("payment_method")

        return PaymentEvent(
            gateway=self.name,
            gateway_transaction_id=str(transaction_id) if isinstance(transaction_id, (str, int)) else None,
            raw_status=raw_status,
            status=STATUS_MAP.get(raw_status),
            sale_id=parse_sale_id(metadata.get("sale_id")),
            amount_cents=amount if isinstance(amount, int) and not isinstance(amount, bool) else None,
            payment_method=METHOD_MAP.get(method) if isinstance(method, str) else None,
            payload=payload,
        )

    def verify_signature(self, raw_body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        received = headers.get(SIGNATURE_HEADER) or ""
        if not received.startswith("sha1="):
            return False
        expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha1).hexdigest()
        return hmac.compare_digest(received[len("sha1="):], expected)
