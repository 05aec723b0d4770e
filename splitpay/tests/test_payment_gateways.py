# D:\splitpay\splitpay\tests\test_payment_gateways.py

"""
test_payment_gateways.py

Testes dos adaptadores de webhook (Pagar.me, Stripe e Asaas) e da factory.

Testes:
    - Normalização de status e extração da venda
    - Verificação de assinaturas
    - Seleção e detecção automática do gateway
"""

import pytest

from splitpay.models.enums import PaymentStatus, PaymentMethod
from splitpay.services.errors import UnsupportedGateway
from splitpay.services.payment.asaas_gateway import AsaasGateway
from splitpay.services.payment.gateway_factory import PaymentGatewayFactory
from splitpay.services.payment.gateway_interface import PaymentGatewayInterface, parse_sale_id
from splitpay.services.payment.pagarme_gateway import PagarmeGateway
from splitpay.services.payment.stripe_gateway import StripeGateway
from splitpay.tests.utils.factories import pagarme_payload, pagarme_request, stripe_request


def stripe_event(event_type, obj):
    return {"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}}


def asaas_event(event, payment_id="pay_9", value=100.0, reference="42"):
    return {
        "event": event,
        "payment": {"id": payment_id, "value": value, "billingType": "PIX", "externalReference": reference},
    }


@pytest.mark.parametrize("value,expected", [("42", 42), (42, 42), (" 7 ", 7), ("abc", None), (None, None), (True, None)])
def test_parse_sale_id(value, expected):
    assert parse_sale_id(value) == expected


# Pagar.me

@pytest.mark.parametrize("raw,expected", [
    ("paid", PaymentStatus.PAID),
    ("refused", PaymentStatus.REFUSED),
    ("refunded", PaymentStatus.REFUNDED),
    ("chargedback", PaymentStatus.CHARGEDBACK),
    ("waiting_payment", PaymentStatus.PENDING),
    ("canceled", PaymentStatus.CANCELLED),
    ("something_new", None),
])
def test_pagarme_status_mapping(raw, expected):
    event = PagarmeGateway().parse_event(pagarme_payload(42, status=raw))
    assert event.status == expected
    assert event.raw_status == raw


def test_pagarme_parse_event():
    event = PagarmeGateway().parse_event(pagarme_payload(42, transaction_id=987, amount=10000, method="credit_card"))

    assert event.gateway == "pagarme"
    assert event.gateway_transaction_id == "987"
    assert event.sale_id == 42
    assert event.amount_cents == 10000
    assert event.payment_method == PaymentMethod.CREDIT_CARD


def test_pagarme_transaction_envelope():
    payload = {"object": "transaction", "transaction": pagarme_payload(5)}
    gateway = PagarmeGateway()

    assert gateway.matches(payload)
    assert gateway.parse_event(payload).sale_id == 5


@pytest.mark.parametrize("overrides", [
    {"metadata": ["42"]},
    {"metadata": "sale_id=42"},
    {"current_status": ["paid"]},
    {"current_status": {"value": "paid"}},
    {"id": {"tr": 1}, "amount": "10000", "payment_method": ["pix"]},
])
def test_pagarme_malformed_fields_are_ignored(overrides):
    payload = pagarme_payload(42)
    payload.update(overrides)

    event = PagarmeGateway().parse_event(payload)

    assert event.gateway == "pagarme"
    if "metadata" in overrides:
        assert event.sale_id is None
    if "current_status" in overrides:
        assert event.raw_status is None
        assert event.status is None
    if "id" in overrides:
        assert event.gateway_transaction_id is None
        assert event.amount_cents is None
        assert event.payment_method is None


def test_pagarme_signature():
    gateway = PagarmeGateway()
    body, headers = pagarme_request(pagarme_payload(1), "segredo")

    assert gateway.verify_signature(body, headers, "segredo")
    assert not gateway.verify_signature(body, headers, "outro")
    assert not gateway.verify_signature(body + b" ", headers, "segredo")
    assert not gateway.verify_signature(body, {}, "segredo")
    assert not gateway.verify_signature(body, {"X-Hub-Signature": "md5=abc"}, "segredo")


# Stripe

def test_stripe_payment_intent_succeeded():
    payload = stripe_event("payment_intent.succeeded", {
        "id": "pi_123", "object": "payment_intent", "amount": 10000,
        "payment_method_types": ["card"], "metadata": {"sale_id": "42"},
    })
    event = StripeGateway().parse_event(payload)

    assert event.status == PaymentStatus.PAID
    assert event.gateway_transaction_id == "pi_123"
    assert event.sale_id == 42
    assert event.payment_method == PaymentMethod.CREDIT_CARD


def test_stripe_charge_events_use_payment_intent_id():
    refunded = StripeGateway().parse_event(stripe_event("charge.refunded", {
        "id": "ch_1", "object": "charge", "payment_intent": "pi_123", "metadata": {"sale_id": "42"},
    }))
    dispute = StripeGateway().parse_event(stripe_event("charge.dispute.created", {
        "id": "dp_1", "object": "dispute", "payment_intent": "pi_123", "charge": "ch_1",
    }))

    assert refunded.status == PaymentStatus.REFUNDED
    assert refunded.gateway_transaction_id == "pi_123"
    assert dispute.status == PaymentStatus.CHARGEDBACK
    assert dispute.gateway_transaction_id == "pi_123"
    assert dispute.sale_id is None


def test_stripe_unknown_event_type():
    event = StripeGateway().parse_event(stripe_event("customer.created", {"id": "cus_1", "object": "customer"}))
    assert event.status is None


@pytest.mark.parametrize("payload", [
    {"type": "payment_intent.succeeded", "data": []},
    {"type": "payment_intent.succeeded", "data": {"object": "pi_1"}},
    {"type": ["payment_intent.succeeded"], "data": {"object": {"id": "pi_1"}}},
    {"type": "payment_intent.succeeded", "data": {"object": {
        "id": 7, "metadata": ["42"], "payment_method_types": "card", "amount": True,
    }}},
])
def test_stripe_malformed_payload(payload):
    event = StripeGateway().parse_event(payload)

    assert event.sale_id is None
    assert event.payment_method is None
    assert event.amount_cents is None
    assert event.gateway_transaction_id in (None, "pi_1")


def test_stripe_signature():
    gateway = StripeGateway()
    payload = stripe_event("payment_intent.succeeded", {"id": "pi_1", "object": "payment_intent"})
    body, headers = stripe_request(payload, "whsec_test")

    assert gateway.verify_signature(body, headers, "whsec_test")
    assert not gateway.verify_signature(body, headers, "whsec_outro")
    assert not gateway.verify_signature(body, {}, "whsec_test")
    assert not gateway.verify_signature(body, {"Stripe-Signature": "t=1,v1=abc"}, "whsec_test")


def test_stripe_signature_too_old():
    gateway = StripeGateway()
    payload = stripe_event("payment_intent.succeeded", {"id": "pi_1", "object": "payment_intent"})
    body, headers = stripe_request(payload, "whsec_test", timestamp=1_000_000)

    assert not gateway.verify_signature(body, headers, "whsec_test")


# Asaas

@pytest.mark.parametrize("raw,expected", [
    ("PAYMENT_CONFIRMED", PaymentStatus.PAID),
    ("PAYMENT_RECEIVED", PaymentStatus.PAID),
    ("PAYMENT_REFUNDED", PaymentStatus.REFUNDED),
    ("PAYMENT_CHARGEBACK_REQUESTED", PaymentStatus.CHARGEDBACK),
    ("PAYMENT_OVERDUE", None),
])
def test_asaas_status_mapping(raw, expected):
    assert AsaasGateway().parse_event(asaas_event(raw)).status == expected


def test_asaas_value_in_reais_is_converted_to_cents():
    event = AsaasGateway().parse_event(asaas_event("PAYMENT_RECEIVED", value=129.9))

    assert event.amount_cents == 12990
    assert event.sale_id == 42
    assert event.gateway_transaction_id == "pay_9"
    assert event.payment_method == PaymentMethod.PIX


@pytest.mark.parametrize("payload", [
    {"event": "PAYMENT_RECEIVED", "payment": ["pay_9"]},
    {"event": ["PAYMENT_RECEIVED"], "payment": {"id": "pay_9"}},
    {"event": "PAYMENT_RECEIVED", "payment": {"id": 9, "billingType": ["PIX"], "value": [1]}},
])
def test_asaas_malformed_payload(payload):
    event = AsaasGateway().parse_event(payload)

    assert event.sale_id is None
    assert event.payment_method is None
    assert event.amount_cents is None
    if not isinstance(payload["event"], str):
        assert event.status is None
    if not isinstance(payload["payment"], dict) or not isinstance(payload["payment"].get("id"), str):
        assert event.gateway_transaction_id is None


def test_asaas_access_token():
    gateway = AsaasGateway()

    assert gateway.verify_signature(b"{}", {"asaas-access-token": "tok"}, "tok")
    assert not gateway.verify_signature(b"{}", {"asaas-access-token": "x"}, "tok")
    assert not gateway.verify_signature(b"{}", {}, "tok")


# Factory

def test_factory_get_gateway():
    assert isinstance(PaymentGatewayFactory.get_gateway("pagarme"), PagarmeGateway)
    assert isinstance(PaymentGatewayFactory.get_gateway("Stripe"), StripeGateway)
    assert isinstance(PaymentGatewayFactory.get_gateway("asaas"), AsaasGateway)

    with pytest.raises(UnsupportedGateway):
        PaymentGatewayFactory.get_gateway("paypal")


def test_factory_detects_gateway_from_payload():
    assert PaymentGatewayFactory.detect_gateway(pagarme_payload(1)).name == "pagarme"
    assert PaymentGatewayFactory.detect_gateway(stripe_event("charge.refunded", {})).name == "stripe"
    assert PaymentGatewayFactory.detect_gateway(asaas_event("PAYMENT_RECEIVED")).name == "asaas"
    assert PaymentGatewayFactory.detect_gateway({"hello": "world"}) is None


def test_factory_register_gateway():
    class FakeGateway(PaymentGatewayInterface):
        name = "fake"

        def matches(self, payload):
            return False

        def parse_event(self, payload):
            return None

        def verify_signature(self, raw_body, headers, secret):
            return True

    original = PaymentGatewayFactory.get_supported_gateways()
    try:
        PaymentGatewayFactory.register_gateway("Fake", FakeGateway)
        assert isinstance(PaymentGatewayFactory.get_gateway("fake"), FakeGateway)
    finally:
        PaymentGatewayFactory._GATEWAYS = original

    with pytest.raises(TypeError):
        PaymentGatewayFactory.register_gateway("invalid", object)
