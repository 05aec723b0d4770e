# D:\splitpay\splitpay\services\errors.py
"""
errors.py

Exceções de domínio do fluxo financeiro.

Cada exceção carrega um código estável (usado pelos clientes da API) e o status
HTTP correspondente, traduzidos pelas views em respostas JSON.
"""


class FinanceError(Exception):
    """Erro base das operações financeiras."""

    code = "finance_error"
    status = 400

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class InsufficientBalance(FinanceError):
    """Saldo disponível insuficiente."""
    code = "insufficient_balance"


class MissingBankData(FinanceError):
    """Conta sem dados bancários principais cadastrados."""
    code = "missing_bank_data"


class AccountNotFound(FinanceError):
    """Conta virtual não encontrada."""
    code = "account_not_found"
    status = 404


class AccountInactive(FinanceError):
    """Conta virtual inativa."""
    code = "account_inactive"


class InvalidAmount(FinanceError):
    """Valor inválido."""
    code = "invalid_amount"


class WithdrawalNotFound(FinanceError):
    """Solicitação de saque não encontrada."""
    code = "withdrawal_not_found"
    status = 404


class InvalidWithdrawalTransition(FinanceError):
    """Transição de status de saque não permitida."""
    code = "invalid_withdrawal_transition"
    status = 409


class SaleNotFound(FinanceError):
    """Venda não encontrada."""
    code = "sale_not_found"
    status = 404


class NotCashSale(FinanceError):
    """A venda não é um pagamento em dinheiro."""
    code = "not_cash_sale"


class InvalidConfirmationType(FinanceError):
    """Tipo de confirmação inválido."""
    code = "invalid_confirmation_type"


class InvalidDeliveryStatus(FinanceError):
    """Status de entrega inválido."""
    code = "invalid_delivery_status"


class PaymentMethodUnavailable(FinanceError):
    """Meio de pagamento indisponível."""
    code = "payment_method_unavailable"


class InvalidInstallments(FinanceError):
    """Número de parcelas inválido."""
    code = "invalid_installments"


class InvalidWebhookSignature(FinanceError):
    """Assinatura do webhook inválida."""
    code = "invalid_signature"
    status = 401


class UnsupportedGateway(FinanceError):
    """Gateway de pagamento não suportado."""
    code = "unsupported_gateway"


class InvalidSetting(FinanceError):
    """Configuração desconhecida ou com valor inválido."""
    code = "invalid_setting"
