import json
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Annotated
from pydantic import BaseModel, Field, model_validator, field_validator, PlainSerializer


def _utc_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat().replace('+00:00', 'Z')


UTCDatetime = Annotated[datetime, PlainSerializer(_utc_iso, return_type=str)]
from .models import SkillLevel, MintStatus


def milli_to_sol(milli: int) -> float:
    return round((milli or 0) / 1000, 3)


# --- Questions / tests ---

class Question(BaseModel):
    id: str
    question: str
    options: List[str]
    correct_answer: int
    points: int = 10

    @model_validator(mode="after")
    def answer_in_range(self) -> "Question":
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError("correct_answer must index one of the options")
        return self


class QuestionPublic(BaseModel):
    id: str
    question: str
    options: List[str]
    points: int = 10


class TestCreate(BaseModel):
    wallet_address: str
    main_category: str
    narrow_category: str
    specific_category: str
    payment_signature: str

    @field_validator('wallet_address', 'main_category', 'narrow_category',
                     'specific_category', 'payment_signature')
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class TestOut(BaseModel):
    id: str
    wallet_address: str
    topic: str
    main_category: str
    narrow_category: str
    specific_category: str
    questions: List[QuestionPublic] = []
    created_at: UTCDatetime

    @model_validator(mode='before')
    @classmethod
    def strip_answers(cls, values):
        # ORM rows store questions as JSON text including correct answers
        if isinstance(values, dict):
            raw = values.get('questions')
            if isinstance(raw, str):
                values = {**values, 'questions': json.loads(raw)}
            return values
        raw = getattr(values, 'questions', None)
        parsed = json.loads(raw) if isinstance(raw, str) else (raw or [])
        return {
            'id': values.id,
            'wallet_address': values.wallet_address,
            'topic': values.topic,
            'main_category': values.main_category,
            'narrow_category': values.narrow_category,
            'specific_category': values.specific_category,
            'questions': [
                {k: q[k] for k in ('id', 'question', 'options', 'points') if k in q}
                for q in parsed
            ],
            'created_at': values.created_at,
        }


class TestCreated(BaseModel):
    test: TestOut
    payment_required: bool = True
    amount: float


class SubmissionCreate(BaseModel):
    wallet_address: str
    answers: List[Optional[int]]


class CertificateOut(BaseModel):
    id: str
    wallet_address: str
    topic: str
    level: SkillLevel
    score: int
    nft_mint: Optional[str] = None
    nft_metadata_uri: Optional[str] = None
    mint_status: MintStatus
    earned_at: UTCDatetime

    model_config = {"from_attributes": True}


class TestResultOut(BaseModel):
    test_id: str
    wallet_address: str
    topic: str
    score: int
    level: SkillLevel
    correct_answers: int
    total_questions: int
    total_points: int
    sol_reward: float
    passed: bool
    completed_at: UTCDatetime
    certificate: Optional[CertificateOut] = None
    warnings: List[str] = []

    @classmethod
    def from_model(cls, result, certificate=None, warnings=None) -> "TestResultOut":
        return cls(
            test_id=result.test_id,
            wallet_address=result.wallet_address,
            topic=result.topic,
            score=result.score,
            level=result.level,
            correct_answers=result.correct_answers,
            total_questions=result.total_questions,
            total_points=result.total_points,
            sol_reward=milli_to_sol(result.sol_reward_milli),
            passed=result.passed,
            completed_at=result.completed_at,
            certificate=CertificateOut.model_validate(certificate) if certificate else None,
            warnings=warnings or [],
        )


class UserStatsOut(BaseModel):
    wallet_address: str
    total_tests: int = 0
    total_certificates: int = 0
    success_rate: int = 0
    total_sol_earned: float = 0.0
    certificates: List[CertificateOut] = []

    @classmethod
    def from_model(cls, stats, certificates=()) -> "UserStatsOut":
        return cls(
            wallet_address=stats.wallet_address,
            total_tests=stats.total_tests,
            total_certificates=stats.total_certificates,
            success_rate=stats.success_rate,
            total_sol_earned=milli_to_sol(stats.total_sol_earned_milli),
            certificates=[CertificateOut.model_validate(c) for c in certificates],
        )


# --- Categories ---

class CategoriesRequest(BaseModel):
    level: int = Field(ge=1, le=3)
    parent_category: Optional[str] = None

    @model_validator(mode="after")
    def parent_required_below_top(self) -> "CategoriesRequest":
        if self.level > 1 and not self.parent_category:
            raise ValueError("parent_category is required for levels 2 and 3")
        return self


class CategoriesOut(BaseModel):
    categories: List[str]


# --- On-chain views ---

class AccountStatus(str, Enum):
    decoded = "decoded"
    undecodable = "undecodable"
    not_found = "not_found"


class OnChainSkillRecord(BaseModel):
    skill_id: str
    level: SkillLevel
    score: int
    nft_mint: str
    earned_at: UTCDatetime
    validator: str


class OnChainProfile(BaseModel):
    owner: str
    skill_score: int
    weighted_skill_score: int = 0
    total_tests: int
    total_certificates: int
    total_sol_earned: float
    success_rate: int
    skills: List[OnChainSkillRecord] = []
    created_at: Optional[UTCDatetime] = None


class ProfileLookup(BaseModel):
    status: AccountStatus
    address: str
    profile: Optional[OnChainProfile] = None


class SkillRegistryInfo(BaseModel):
    authority: str
    total_validators: int
    total_certificates: int
    total_users: int
    skill_token_mint: str
    treasury: str


class RegistryLookup(BaseModel):
    status: AccountStatus
    address: str
    registry: Optional[SkillRegistryInfo] = None


class ChainProfileOut(BaseModel):
    exists: bool
    status: AccountStatus
    pda: str
    profile: Optional[OnChainProfile] = None
    message: str


class ChainRegistryOut(BaseModel):
    exists: bool
    status: AccountStatus
    pda: str
    program_id: str
    registry: Optional[SkillRegistryInfo] = None


class VerifySkillRequest(BaseModel):
    wallet_address: str
    skill_id: str
    min_score: Optional[int] = Field(default=None, ge=0, le=100)


class SkillVerification(BaseModel):
    verified: bool
    status: AccountStatus
    skill: Optional[OnChainSkillRecord] = None
    message: str


# --- Pool / DAO ---

class DaoStatsOut(BaseModel):
    total_validators: int
    total_certificates: int
    total_users: int
    reward_distribution: dict[str, int]
    revenue_streams: dict[str, int]


class SkillPoolStatsOut(BaseModel):
    pool_balance_sol: float
    revenue: dict[str, float]
    rewards_total_sol: float
    active_users: int
    total_tests: int
    total_certificates: int
    revenue_percentages: dict[str, int]
    reward_percentages: dict[str, int]
