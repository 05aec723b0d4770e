# D:\splitpay\splitpay\services\payment\gateway_interface.py

"""
gateway_interface.py

Módulo que define a interface base para todos os adaptadores de webhook de gateways
de pagamento. Esta interface funciona como um contrato que todas as implementações
específicas de gateway devem seguir, traduzindo o formato de cada provedor em um
PaymentEvent comum.

Classes:
    PaymentEvent: Evento de pagamento normalizado.
    PaymentGatewayInterface: Interface abstrata base para gateways de pagamento.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Any

from splitpay.models.enums import PaymentStatus, PaymentMethod


@dataclass(frozen=True)
class PaymentEvent:
    """
    Evento de pagamento extraído de um webhook.

    Attributes:
        gateway (str): Nome do gateway de origem.
        gateway_transaction_id (str): ID da transação no gateway.
        raw_status (str): Status no vocabulário do gateway.
        status (Optional[PaymentStatus]): Status normalizado (None se desconhecido).
        sale_id (Optional[int]): Venda referenciada nos metadados.
        amount_cents (Optional[int]): Valor informado pelo gateway.
        payment_method (Optional[PaymentMethod]): Meio de pagamento informado.
    """
    gateway: str
    gateway_transaction_id: Optional[str]
    raw_status: Optional[str]
    status: Optional[PaymentStatus]
    sale_id: Optional[int] = None
    amount_cents: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def parse_sale_id(value) -> Optional[int]:
    """Converte o sale_id dos metadados (str ou int) em inteiro, se possível."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class PaymentGatewayInterface(ABC):
    """
    Interface abstrata base para adaptadores de webhook de gateway de pagamento.

    Cada gateway (Pagar.me, Stripe, Asaas) deve implementar esta interface para
    garantir compatibilidade com o receptor de webhooks.
    """

    name: str = ""

    @abstractmethod
    def matches(self, payload: Dict) -> bool:
        """
        Indica se o payload tem o formato deste gateway (detecção automática).

        Args:
            payload (Dict): Corpo do webhook já decodificado.

        Returns:
            bool: True se o payload pertence a este gateway.
        """
        pass

    @abstractmethod
    def parse_event(self, payload: Dict) -> PaymentEvent:
        """
        Extrai o evento de pagamento normalizado do payload.

        Args:
            payload (Dict): Corpo do webhook já decodificado.

        Returns:
            PaymentEvent: Evento normalizado (status None quando não reconhecido).
        """
        pass

    @abstractmethod
    def verify_signature(self, raw_body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        """
        Verifica a autenticidade do webhook.

        Args:
            raw_body (bytes): Corpo original da requisição.
            headers (Mapping[str, str]): Cabeçalhos da requisição.
            secret (str): Segredo configurado para o gateway.

        Returns:
            bool: True se a assinatura é válida.
        """
        pass
