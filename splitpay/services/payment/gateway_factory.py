# D:\splitpay\splitpay\services\payment\gateway_factory.py

"""
gateway_factory.py

Este módulo fornece uma factory para selecionar o adaptador de webhook apropriado,
com base no nome do gateway informado na rota ou no formato do payload.

Classes:
    PaymentGatewayFactory: Factory para criação de instâncias de gateway de pagamento.
"""

from typing import Dict, Optional

from splitpay.services.errors import UnsupportedGateway
from .gateway_interface import PaymentGatewayInterface
from .pagarme_gateway import PagarmeGateway
from .stripe_gateway import StripeGateway
from .asaas_gateway import AsaasGateway


class PaymentGatewayFactory:
    """
    Factory para criar instâncias de adaptadores de gateway de pagamento.

    A ordem do registro define a prioridade da detecção automática.
    """

    # Registra os gateways suportados
    _GATEWAYS = {
        "pagarme": PagarmeGateway,
        "stripe": StripeGateway,
        "asaas": AsaasGateway,
    }

    @classmethod
    def get_gateway(cls, gateway_name: str) -> PaymentGatewayInterface:
        """
        Retorna uma instância de gateway de pagamento com base no nome.

        Args:
            gateway_name (str): Nome do gateway ('pagarme', 'stripe', 'asaas').

        Returns:
            PaymentGatewayInterface: Instância do gateway.

        Raises:
            UnsupportedGateway: Se o gateway solicitado não for suportado.
        """
        gateway_class = cls._GATEWAYS.get((gateway_name or "").lower())

        if not gateway_class:
            raise UnsupportedGateway(f"Gateway não suportado: {gateway_name}")

        return gateway_class()

    @classmethod
    def detect_gateway(cls, payload: Dict) -> Optional[PaymentGatewayInterface]:
        """
        Identifica o gateway pelo formato do payload.

        Args:
            payload (Dict): Corpo do webhook já decodificado.

        Returns:
            Optional[PaymentGatewayInterface]: Gateway reconhecido ou None.
        """
        for gateway_class in cls._GATEWAYS.values():
            gateway = gateway_class()
            if gateway.matches(payload):
                return gateway
        return None

    @classmethod
    def register_gateway(cls, gateway_name: str, gateway_class: type) -> None:
        """
        Registra um novo tipo de gateway na factory.

        Args:
            gateway_name (str): Nome do gateway a ser registrado.
            gateway_class (type): Classe que implementa PaymentGatewayInterface.

        Raises:
            TypeError: Se a classe fornecida não implementar PaymentGatewayInterface.
        """
        if not issubclass(gateway_class, PaymentGatewayInterface):
            raise TypeError(
                f"A classe {gateway_class.__name__} deve implementar PaymentGatewayInterface"
            )

        cls._GATEWAYS[gateway_name.lower()] = gateway_class

    @classmethod
    def get_supported_gateways(cls) -> Dict[str, type]:
        """
        Retorna um dicionário com todos os gateways suportados.
        """
        return dict(cls._GATEWAYS)
