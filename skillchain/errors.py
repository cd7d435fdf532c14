from enum import Enum


class SkillChainError(Exception):
    pass


class PaymentFailure(str, Enum):
    signature_reused = "signature_reused"
    transaction_not_found = "transaction_not_found"
    transaction_failed = "transaction_failed"
    wrong_payer = "wrong_payer"
    treasury_not_in_transaction = "treasury_not_in_transaction"
    insufficient_amount = "insufficient_amount"


class PaymentRejected(SkillChainError):
    def __init__(self, reason: PaymentFailure, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class NotFound(SkillChainError):
    pass


class AlreadySettled(SkillChainError):
    pass


class WalletMismatch(SkillChainError):
    pass


class PersistenceError(SkillChainError):
    pass


class ChainUnavailable(SkillChainError):
    pass


class InvalidWallet(SkillChainError):
    pass
