# D:\splitpay\splitpay\services\auth_service.py

"""
auth_service.py

Este módulo contém a classe AuthService, responsável pela verificação dos tokens JWT
emitidos pelo serviço de identidade da plataforma.

O login e a emissão de tokens para usuários finais acontecem fora deste serviço;
generate_jwt_token existe para integrações entre serviços e para os testes.

Classes:
    AuthService: Emissão e verificação de tokens JWT.
"""

import jwt
from datetime import timedelta
from typing import Optional

from splitpay.config.settings import (
    JWT_SECRET_KEY, JWT_ALGORITHM, JWT_EXPIRATION_MINUTES, now_utc
)

VALID_ROLES = ("admin", "manager", "affiliate", "user")


class AuthService:
    """
    Serviço de tokens.

    Métodos:
        generate_jwt_token: Gera um token JWT para um usuário.
        verify_jwt_token: Decodifica e valida um token JWT.
    """

    @staticmethod
    def generate_jwt_token(
        user_id: int,
        role: str,
        organization_id: Optional[int] = None,
        expires_minutes: Optional[int] = None
    ) -> str:
        """
        Gera um token JWT contendo o usuário, o papel e o tenant.

        Args:
            user_id (int): ID do usuário.
            role (str): Papel do usuário (admin, manager, affiliate, user).
            organization_id (Optional[int]): Tenant do usuário.
            expires_minutes (Optional[int]): Validade; padrão JWT_EXPIRATION_MINUTES.

        Returns:
            str: Token JWT gerado.
        """
        minutes = JWT_EXPIRATION_MINUTES if expires_minutes is None else expires_minutes
        payload = {
            "sub": str(user_id),
            "role": role,
            "exp": now_utc() + timedelta(minutes=minutes),
        }
        if organization_id is not None:
            payload["organization_id"] = organization_id
        return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    @staticmethod
    def verify_jwt_token(token: str) -> dict:
        """
        Decodifica e valida um token JWT.

        Args:
            token (str): Token JWT a ser validado.

        Returns:
            dict: Payload decodificado do token.

        Raises:
            ValueError: Se o token for inválido, expirado ou com papel desconhecido.
        """
        try:
            payload = jwt.decode(
                token,
                JWT_SECRET_KEY,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": True}
            )
        except jwt.ExpiredSignatureError:
            raise ValueError("Token expirado.")
        except jwt.InvalidTokenError:
            raise ValueError("Token inválido.")

        if payload.get("role") not in VALID_ROLES:
            raise ValueError("Token inválido.")
        return payload
