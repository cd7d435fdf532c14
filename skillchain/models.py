import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import Column, String, Text, Integer, BigInteger, DateTime, Enum, ForeignKey, Boolean
from .database import Base


class SkillLevel(str, PyEnum):
    senior = "Senior"
    middle = "Middle"
    junior = "Junior"
    failed = "Failed"


class MintStatus(str, PyEnum):
    minted = "minted"
    placeholder = "placeholder"
    # claimed by a reconciler that is minting it right now
    minting = "minting"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def compute_success_rate(total_tests: int, total_certificates: int) -> int:
    """Percentage of attempts that earned a certificate, rounded half-up."""
    if total_tests <= 0:
        return 0
    return (200 * total_certificates + total_tests) // (2 * total_tests)


class Test(Base):
    __tablename__ = "tests"
    __test__ = False

    id = Column(String, primary_key=True)
    wallet_address = Column(String, nullable=False, index=True)
    topic = Column(String, nullable=False)
    main_category = Column(String, nullable=False)
    narrow_category = Column(String, nullable=False)
    specific_category = Column(String, nullable=False)
    questions = Column(Text, nullable=False)  # JSON list, correct answers included
    payment_signature = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class TestResult(Base):
    __tablename__ = "test_results"
    __test__ = False

    # one result per test; the primary key rejects a second settlement
    test_id = Column(String, ForeignKey("tests.id"), primary_key=True)
    wallet_address = Column(String, nullable=False, index=True)
    topic = Column(String, nullable=False)
    score = Column(Integer, nullable=False)
    level = Column(Enum(SkillLevel), nullable=False)
    correct_answers = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    sol_reward_milli = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    # set in the same transaction that folds the result into UserStats
    stats_applied = Column(Boolean, nullable=False, default=False)


class Certificate(Base):
    __tablename__ = "certificates"

    id = Column(String, primary_key=True, default=_uuid)
    test_id = Column(String, ForeignKey("test_results.test_id"), unique=True, nullable=True)
    wallet_address = Column(String, nullable=False, index=True)
    topic = Column(String, nullable=False)
    level = Column(Enum(SkillLevel), nullable=False)
    score = Column(Integer, nullable=False)
    nft_mint = Column(String, nullable=True)
    nft_metadata_uri = Column(String, nullable=True)
    mint_status = Column(Enum(MintStatus), nullable=False, default=MintStatus.minted)
    mint_claimed_at = Column(DateTime(timezone=True), nullable=True)
    earned_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class UserStats(Base):
    __tablename__ = "user_stats"

    wallet_address = Column(String, primary_key=True)
    total_tests = Column(Integer, nullable=False, default=0)
    total_certificates = Column(Integer, nullable=False, default=0)
    total_sol_earned_milli = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    @property
    def success_rate(self) -> int:
        return compute_success_rate(self.total_tests or 0, self.total_certificates or 0)


class PaymentSignature(Base):
    __tablename__ = "payment_signatures"

    signature = Column(String, primary_key=True)
    wallet_address = Column(String, nullable=False)
    lamports = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
