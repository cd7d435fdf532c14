"""Out-of-band repair of settlements that completed in a degraded state.

Only results older than the grace window are touched, so a submission that is
still being settled is never repaired underneath itself. Every repair claims
its row with a conditional write before acting, so two reconcilers running at
once never mint or count the same pass twice.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Certificate, MintStatus, TestResult
from .minting import MintOutcome, MintPolicy
from .settlement import apply_result_to_stats

logger = logging.getLogger(__name__)


def grace_cutoff(grace_minutes: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=grace_minutes)


def _finish_mint(db: Session, cert: Certificate, outcome: MintOutcome) -> None:
    cert.nft_mint = outcome.mint
    cert.nft_metadata_uri = outcome.metadata_uri
    cert.mint_status = outcome.status
    cert.mint_claimed_at = None
    db.commit()


def issue_missing_certificates(db: Session, mint_policy: MintPolicy, cutoff: datetime) -> int:
    """Create certificates for passing results whose certificate write was lost."""
    missing = (
        db.query(TestResult)
        .outerjoin(Certificate, Certificate.test_id == TestResult.test_id)
        .filter(
            TestResult.passed.is_(True),
            Certificate.id.is_(None),
            TestResult.completed_at < cutoff,
        )
        .all()
    )
    issued = 0
    for result in missing:
        # the unique test_id makes this insert the claim
        cert = Certificate(
            test_id=result.test_id,
            wallet_address=result.wallet_address,
            topic=result.topic,
            level=result.level,
            score=result.score,
            mint_status=MintStatus.minting,
            mint_claimed_at=datetime.now(timezone.utc),
        )
        db.add(cert)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Reconcile: certificate for %s claimed elsewhere", result.test_id)
            continue

        outcome = mint_policy.issue(cert.wallet_address, cert.topic, cert.level.value, cert.score)
        try:
            _finish_mint(db, cert, outcome)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Reconcile: certificate for %s left claimed: %s", result.test_id, e)
            continue
        issued += 1
    return issued


def retry_placeholder_mints(db: Session, mint_policy: MintPolicy, cutoff: datetime) -> int:
    """Replace placeholder token identifiers with real mints where possible.

    Also resumes claims abandoned before the cutoff, e.g. by a crashed worker.
    """
    stale_claim = and_(
        Certificate.mint_status == MintStatus.minting,
        Certificate.mint_claimed_at < cutoff,
    )
    if mint_policy.remote is not None:
        claimable = or_(Certificate.mint_status == MintStatus.placeholder, stale_claim)
    else:
        claimable = stale_claim

    candidates = [row.id for row in db.query(Certificate.id).filter(claimable).all()]
    minted = 0
    for cert_id in candidates:
        claimed = (
            db.query(Certificate)
            .filter(Certificate.id == cert_id, claimable)
            .update(
                {Certificate.mint_status: MintStatus.minting,
                 Certificate.mint_claimed_at: datetime.now(timezone.utc)},
                synchronize_session=False,
            )
        )
        db.commit()
        if claimed != 1:
            continue

        cert = db.query(Certificate).filter(Certificate.id == cert_id).populate_existing().one()
        if cert.nft_mint is None:
            # abandoned before any token was issued
            outcome = mint_policy.issue(cert.wallet_address, cert.topic, cert.level.value, cert.score)
        else:
            outcome = mint_policy.retry_remote(cert.wallet_address, cert.topic, cert.level.value, cert.score)
        if outcome is None:
            cert.mint_status = MintStatus.placeholder
            cert.mint_claimed_at = None
            db.commit()
            continue

        _finish_mint(db, cert, outcome)
        if outcome.status == MintStatus.minted:
            minted += 1
            logger.info("Reconcile: certificate %s minted as %s", cert.id, outcome.mint)
    return minted


def apply_pending_stats(db: Session, cutoff: datetime) -> int:
    """Fold results whose stats update was lost into UserStats.

    A passing result waits until its certificate exists so counters never run
    ahead of issued certificates.
    """
    pending = (
        db.query(TestResult)
        .outerjoin(Certificate, Certificate.test_id == TestResult.test_id)
        .filter(
            TestResult.stats_applied.is_(False),
            TestResult.completed_at < cutoff,
            or_(TestResult.passed.is_(False), Certificate.id.isnot(None)),
        )
        .all()
    )
    applied = 0
    for result in pending:
        try:
            if apply_result_to_stats(db, result) is not None:
                applied += 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Reconcile: stats for %s still failing: %s", result.test_id, e)
    return applied


def reconcile_all(db: Session, mint_policy: MintPolicy, grace_minutes: int) -> dict:
    cutoff = grace_cutoff(grace_minutes)
    issued = issue_missing_certificates(db, mint_policy, cutoff)
    minted = retry_placeholder_mints(db, mint_policy, cutoff)
    stats_applied = apply_pending_stats(db, cutoff)
    return {"certificates_issued": issued, "mints_completed": minted, "stats_applied": stats_applied}
