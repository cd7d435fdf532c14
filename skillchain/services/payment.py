"""On-chain test-fee verification with single-use payment signatures."""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import LAMPORTS_PER_SOL, Settings
from ..errors import PaymentFailure, PaymentRejected
from ..models import PaymentSignature
from .chain import SolanaRPC, static_account_keys

logger = logging.getLogger(__name__)


def build_payment_requirements(settings: Settings) -> dict:
    """What the client must pay before a test is generated."""
    return {
        "amount": settings.test_price_sol,
        "lamports": settings.test_price_lamports,
        "currency": "SOL",
        "payTo": settings.treasury_wallet,
    }


def _fetch_transaction(signature: str, settings: Settings) -> Optional[dict]:
    """Look up a confirmed transaction. Separated for easy mocking."""
    rpc = SolanaRPC(settings.solana_rpc_url, timeout=settings.rpc_timeout)
    return rpc.get_transaction(signature)


def is_signature_used(db: Session, signature: str) -> bool:
    return db.query(PaymentSignature).filter(PaymentSignature.signature == signature).first() is not None


def treasury_delta(transaction: dict, treasury: str) -> Optional[int]:
    """Lamports the treasury gained in this transaction, or None if it is not a party to it."""
    keys = static_account_keys(transaction)
    try:
        idx = keys.index(treasury)
    except ValueError:
        return None
    meta = transaction.get("meta") or {}
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    if idx >= len(pre) or idx >= len(post):
        return None
    return post[idx] - pre[idx]


def check_transaction(transaction: Optional[dict], expected_payer: str, settings: Settings) -> int:
    """Validate a fetched transaction. Returns the lamports paid to the treasury."""
    if not transaction:
        raise PaymentRejected(PaymentFailure.transaction_not_found)

    meta = transaction.get("meta") or {}
    if meta.get("err") is not None:
        raise PaymentRejected(PaymentFailure.transaction_failed, str(meta["err"]))

    keys = static_account_keys(transaction)
    payer = keys[0] if keys else None
    if payer != expected_payer:
        raise PaymentRejected(
            PaymentFailure.wrong_payer, f"expected {expected_payer}, got {payer}"
        )

    delta = treasury_delta(transaction, settings.treasury_wallet)
    if delta is None:
        raise PaymentRejected(PaymentFailure.treasury_not_in_transaction)
    if not settings.payment_sufficient(delta):
        raise PaymentRejected(
            PaymentFailure.insufficient_amount,
            f"expected at least {settings.min_payment_lamports:.0f} lamports, got {delta}",
        )
    return delta


def verify_payment(db: Session, signature: str, expected_payer: str, settings: Settings) -> PaymentSignature:
    """Verify a test-fee payment and mark its signature used.

    Raises PaymentRejected on any failed check; nothing is written in that case.
    May raise ChainUnavailable if the RPC node cannot be reached.
    """
    if is_signature_used(db, signature):
        logger.warning("Payment signature already used: %s", signature)
        raise PaymentRejected(PaymentFailure.signature_reused)

    try:
        lamports = check_transaction(_fetch_transaction(signature, settings), expected_payer, settings)
    except PaymentRejected as e:
        logger.warning("Payment rejected for %s: %s", signature, e)
        raise

    record = PaymentSignature(signature=signature, wallet_address=expected_payer, lamports=lamports)
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request recorded the same signature first
        db.rollback()
        logger.warning("Payment signature lost recording race: %s", signature)
        raise PaymentRejected(PaymentFailure.signature_reused)

    logger.info(
        "Payment verified: signature=%s payer=%s amount=%.4f SOL",
        signature, expected_payer, lamports / LAMPORTS_PER_SOL,
    )
    return record
