"""Test submission settlement: grade, record, certify, aggregate.

Commit order is fixed: TestResult, then Certificate, then UserStats. Each step
commits on its own so a failure never leaves counters ahead of recorded work.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import AlreadySettled, NotFound, PersistenceError, WalletMismatch
from ..models import Certificate, Test, TestResult, UserStats
from .minting import MintOutcome, MintPolicy
from .scoring import grade

logger = logging.getLogger(__name__)


@dataclass
class SettlementOutcome:
    result: TestResult
    certificate: Optional[Certificate] = None
    warnings: list[str] = field(default_factory=list)


def get_or_create_stats(db: Session, wallet: str) -> UserStats:
    """Return the wallet's stats row, inserting a zeroed one on first sight."""
    stats = db.query(UserStats).filter(UserStats.wallet_address == wallet).first()
    if stats:
        return stats
    stats = UserStats(wallet_address=wallet, total_tests=0, total_certificates=0, total_sol_earned_milli=0)
    db.add(stats)
    try:
        db.commit()
    except IntegrityError:
        # created concurrently by another request
        db.rollback()
        return db.query(UserStats).filter(UserStats.wallet_address == wallet).one()
    db.refresh(stats)
    return stats


def apply_result_to_stats(db: Session, result: TestResult) -> Optional[UserStats]:
    """Fold one settled result into the wallet's running totals, exactly once.

    The result's `stats_applied` flag flips in the same transaction as the
    counters, so whichever caller claims it first does the update. Returns
    None if the result was already counted.
    """
    test_id = result.test_id
    wallet = result.wallet_address
    passed = result.passed
    reward = result.sol_reward_milli if passed else 0
    get_or_create_stats(db, wallet)

    claimed = (
        db.query(TestResult)
        .filter(TestResult.test_id == test_id, TestResult.stats_applied.is_(False))
        .update({TestResult.stats_applied: True}, synchronize_session=False)
    )
    if claimed != 1:
        db.rollback()
        logger.info("Stats for %s already include %s", wallet, test_id)
        return None

    # fresh locked read right before the write
    stats = (
        db.query(UserStats)
        .filter(UserStats.wallet_address == wallet)
        .with_for_update()
        .populate_existing()
        .one()
    )
    stats.total_tests += 1
    if passed:
        stats.total_certificates += 1
        stats.total_sol_earned_milli += reward
    db.commit()
    db.refresh(stats)
    logger.info(
        "Updated stats for %s: tests=%d certificates=%d success_rate=%d%%",
        wallet, stats.total_tests, stats.total_certificates, stats.success_rate,
    )
    return stats


def record_certificate(db: Session, result: TestResult, outcome: MintOutcome) -> Certificate:
    cert = Certificate(
        test_id=result.test_id,
        wallet_address=result.wallet_address,
        topic=result.topic,
        level=result.level,
        score=result.score,
        nft_mint=outcome.mint,
        nft_metadata_uri=outcome.metadata_uri,
        mint_status=outcome.status,
    )
    db.add(cert)
    db.commit()
    db.refresh(cert)
    return cert


def submit_test(
    db: Session,
    test_id: str,
    wallet: str,
    answers: Sequence[Optional[int]],
    settings: Settings,
    mint_policy: MintPolicy,
) -> SettlementOutcome:
    test = db.query(Test).filter(Test.id == test_id).first()
    if not test:
        raise NotFound(f"test {test_id} not found")
    if test.wallet_address != wallet:
        raise WalletMismatch("test belongs to a different wallet")
    if db.query(TestResult).filter(TestResult.test_id == test_id).first():
        raise AlreadySettled(f"test {test_id} already submitted")

    result = grade(test, wallet, answers, settings.level_table, settings.points_per_question)
    db.add(result)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AlreadySettled(f"test {test_id} already submitted") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"failed to record result for {test_id}") from e
    db.refresh(result)
    logger.info("Recorded result for %s: score=%d level=%s passed=%s",
                test_id, result.score, result.level.value, result.passed)

    outcome = SettlementOutcome(result=result)

    if result.passed:
        mint = mint_policy.issue(wallet, result.topic, result.level.value, result.score)
        if mint.degraded:
            outcome.warnings.append(f"certificate NFT pending: {mint.error}")
        try:
            outcome.certificate = record_certificate(db, result, mint)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Certificate not recorded for %s, stats left for reconciliation: %s", test_id, e)
            outcome.warnings.append("certificate not recorded; it will be issued by reconciliation")
            return outcome

    try:
        apply_result_to_stats(db, result)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Stats not updated for %s after %s: %s", wallet, test_id, e)
        outcome.warnings.append("stats update deferred to reconciliation")

    return outcome
