# D:\splitpay\splitpay\services\settings_service.py
"""
settings_service.py

Leitura e atualização das configurações financeiras da plataforma e das taxas
por tenant.

As configurações globais ficam na tabela platform_settings (chave/valor JSON) e são
lidas uma vez por operação em um snapshot imutável, para que todos os cálculos
de uma mesma liquidação usem os mesmos valores.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitpay.models.database import PlatformSetting, TenantPaymentFees, Organization
from splitpay.services.errors import InvalidSetting

logger = logging.getLogger(__name__)

PLATFORM_FEES_KEY = "platform_fees"
WITHDRAWAL_RULES_KEY = "withdrawal_rules"

DEFAULT_SETTINGS = {
    PLATFORM_FEES_KEY: {"fee_percentage": 5.0, "fee_fixed_cents": 0},
    WITHDRAWAL_RULES_KEY: {"fee_percentage": 2.5, "fee_fixed_cents": 0},
}


@dataclass(frozen=True)
class PlatformSettingsSnapshot:
    platform_fee_percentage: float = 5.0
    platform_fee_fixed_cents: int = 0
    withdrawal_fee_percentage: float = 2.5
    withdrawal_fee_fixed_cents: int = 0


async def load_platform_settings(session: AsyncSession) -> PlatformSettingsSnapshot:
    """
    Lê as configurações financeiras da plataforma.

    Chaves ausentes assumem os valores padrão.

    Args:
        session (AsyncSession): Sessão do banco de dados.

    Returns:
        PlatformSettingsSnapshot: Snapshot imutável das configurações.
    """
    result = await session.execute(
        select(PlatformSetting).where(PlatformSetting.setting_key.in_(list(DEFAULT_SETTINGS)))
    )
    stored = {row.setting_key: row.setting_value for row in result.scalars().all()}

    fees = {**DEFAULT_SETTINGS[PLATFORM_FEES_KEY], **stored.get(PLATFORM_FEES_KEY, {})}
    withdrawal = {**DEFAULT_SETTINGS[WITHDRAWAL_RULES_KEY], **stored.get(WITHDRAWAL_RULES_KEY, {})}

    return PlatformSettingsSnapshot(
        platform_fee_percentage=float(fees["fee_percentage"]),
        platform_fee_fixed_cents=int(fees["fee_fixed_cents"]),
        withdrawal_fee_percentage=float(withdrawal["fee_percentage"]),
        withdrawal_fee_fixed_cents=int(withdrawal["fee_fixed_cents"]),
    )


def _validate_fee_setting(value: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise InvalidSetting("O valor da configuração deve ser um objeto")

    unknown = set(value) - {"fee_percentage", "fee_fixed_cents"}
    if unknown:
        raise InvalidSetting(f"Campos desconhecidos: {', '.join(sorted(unknown))}")

    cleaned = {}
    if "fee_percentage" in value:
        try:
            pct = float(value["fee_percentage"])
        except (TypeError, ValueError):
            raise InvalidSetting("fee_percentage deve ser numérico")
        if pct < 0 or pct > 100:
            raise InvalidSetting("fee_percentage deve estar entre 0 e 100")
        cleaned["fee_percentage"] = pct
    if "fee_fixed_cents" in value:
        fixed = value["fee_fixed_cents"]
        if not isinstance(fixed, int) or isinstance(fixed, bool) or fixed < 0:
            raise InvalidSetting("fee_fixed_cents deve ser um inteiro não negativo")
        cleaned["fee_fixed_cents"] = fixed
    return cleaned


async def update_platform_setting(
    session: AsyncSession,
    key: str,
    value: Dict[str, Any],
    updated_by: int = None
) -> PlatformSetting:
    """
    Atualiza (ou cria) uma configuração financeira da plataforma.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        key (str): 'platform_fees' ou 'withdrawal_rules'.
        value (dict): Novo valor parcial; campos omitidos mantêm o valor atual.
        updated_by (int): Administrador responsável.

    Returns:
        PlatformSetting: Registro atualizado.

    Raises:
        InvalidSetting: Chave desconhecida ou valor inválido.
    """
    if key not in DEFAULT_SETTINGS:
        raise InvalidSetting(f"Configuração desconhecida: {key}")

    cleaned = _validate_fee_setting(value)

    result = await session.execute(select(PlatformSetting).where(PlatformSetting.setting_key == key))
    setting = result.scalar_one_or_none()
    if setting is None:
        setting = PlatformSetting(setting_key=key)
        setting.setting_value = {**DEFAULT_SETTINGS[key], **cleaned}
        session.add(setting)
    else:
        setting.setting_value = {**DEFAULT_SETTINGS[key], **setting.setting_value, **cleaned}
    setting.updated_by = updated_by

    await session.commit()
    await session.refresh(setting)
    logger.info("Configuração %s atualizada por %s: %s", key, updated_by, setting.setting_value)
    return setting


_TENANT_FEE_FIELDS = {
    "pix_fee_percentage": float, "pix_fee_fixed_cents": int, "pix_release_days": int, "pix_enabled": bool,
    "card_fee_percentage": float, "card_fee_fixed_cents": int, "card_release_days": int, "card_enabled": bool,
    "boleto_fee_percentage": float, "boleto_fee_fixed_cents": int, "boleto_release_days": int,
    "boleto_enabled": bool, "max_installments": int,
}


async def upsert_tenant_payment_fees(
    session: AsyncSession,
    organization_id: int,
    data: Dict[str, Any]
) -> TenantPaymentFees:
    """
    Cria ou atualiza a configuração de taxas de um tenant.

    Args:
        session (AsyncSession): Sessão do banco de dados.
        organization_id (int): ID do tenant.
        data (dict): Campos a atualizar (ver TenantPaymentFees) e, opcionalmente,
            'installment_fees' no formato {"2": 3.49, ...}.

    Returns:
        TenantPaymentFees: Registro atualizado.

    Raises:
        InvalidSetting: Tenant inexistente ou campos inválidos.
    """
    organization = await session.get(Organization, organization_id)
    if organization is None:
        raise InvalidSetting(f"Tenant {organization_id} não encontrado")

    unknown = set(data) - set(_TENANT_FEE_FIELDS) - {"installment_fees"}
    if unknown:
        raise InvalidSetting(f"Campos desconhecidos: {', '.join(sorted(unknown))}")

    # Valida tudo antes de alterar o registro
    changes = {}
    for field_name, field_type in _TENANT_FEE_FIELDS.items():
        if field_name in data:
            changes[field_name] = _convert_fee_field(field_name, field_type, data[field_name])

    if "max_installments" in changes and not 1 <= changes["max_installments"] <= 12:
        raise InvalidSetting("max_installments deve estar entre 1 e 12")

    if "installment_fees" in data:
        table = data["installment_fees"]
        if not isinstance(table, dict):
            raise InvalidSetting("installment_fees deve ser um objeto")
        try:
            changes["installment_fees"] = {str(int(k)): float(v) for k, v in table.items()}
        except (TypeError, ValueError):
            raise InvalidSetting("installment_fees inválido")

    result = await session.execute(
        select(TenantPaymentFees).where(TenantPaymentFees.organization_id == organization_id)
    )
    fees = result.scalar_one_or_none()
    if fees is None:
        fees = TenantPaymentFees(organization_id=organization_id)
        session.add(fees)

    for field_name, value in changes.items():
        setattr(fees, field_name, value)

    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(fees)
    logger.info("Taxas do tenant %s atualizadas", organization_id)
    return fees


def _convert_fee_field(field_name: str, field_type: type, raw: Any):
    """Converte um campo de taxa do tenant, recusando tipos ambíguos."""
    if field_type is bool:
        if not isinstance(raw, bool):
            raise InvalidSetting(f"{field_name} deve ser booleano")
        return raw

    if isinstance(raw, bool):
        raise InvalidSetting(f"{field_name} inválido")

    if field_type is int:
        # int(1.7) truncaria para 1
        if isinstance(raw, float) and not raw.is_integer():
            raise InvalidSetting(f"{field_name} deve ser inteiro")

    try:
        converted = field_type(raw)
    except (TypeError, ValueError):
        raise InvalidSetting(f"{field_name} inválido")
    if converted < 0:
        raise InvalidSetting(f"{field_name} não pode ser negativo")
    return converted
