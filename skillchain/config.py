"""Process-wide settings, read once from the environment."""
import json
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from .models import SkillLevel

LAMPORTS_PER_SOL = 1_000_000_000
MILLI_PER_SOL = 1000

DEFAULT_TREASURY_WALLET = "9B5XszUGdMaxCZ7uSQhPzdks5ZQSmWxrmzCSvtJ6Ns6g"
DEFAULT_PROGRAM_ID = "SkiLLcHaiNPRoGraM11111111111111111111111111"
DEFAULT_SKILL_TOKEN_MINT = "SKiLLToKeN111111111111111111111111111111111"


class LevelRule(BaseModel):
    """One row of the grading table. `reward` is in SOL."""
    threshold: int
    level: SkillLevel
    reward: float

    model_config = {"frozen": True}

    @property
    def reward_milli(self) -> int:
        return int(round(self.reward * MILLI_PER_SOL))


DEFAULT_LEVEL_TABLE = (
    LevelRule(threshold=90, level=SkillLevel.senior, reward=0.15),
    LevelRule(threshold=80, level=SkillLevel.middle, reward=0.12),
    LevelRule(threshold=70, level=SkillLevel.junior, reward=0.10),
)

# failed tests / ads / partnerships / other, in percent
DEFAULT_REVENUE_SPLIT = {"failedTests": 45, "ads": 30, "partnerships": 15, "other": 10}


class Settings(BaseModel):
    solana_rpc_url: str = "https://api.devnet.solana.com"
    treasury_wallet: str = DEFAULT_TREASURY_WALLET
    test_price_sol: float = 0.15
    payment_tolerance_bps: int = 9500
    program_id: str = DEFAULT_PROGRAM_ID
    skill_token_mint: str = DEFAULT_SKILL_TOKEN_MINT
    authority_wallet: str = "System"
    mint_service_url: str = ""
    mint_max_attempts: int = 1
    mint_timeout: float = 30.0
    rpc_timeout: float = 15.0
    reconcile_interval_minutes: int = 10
    # results younger than this are still being settled and are left alone
    reconcile_grace_minutes: int = 15
    level_table: tuple[LevelRule, ...] = DEFAULT_LEVEL_TABLE
    revenue_split: dict[str, int] = DEFAULT_REVENUE_SPLIT
    question_count: int = 10
    points_per_question: int = 10
    question_llm_provider: str = "openai"
    question_llm_model: str = ""
    question_llm_base_url: str = ""

    model_config = {"frozen": True}

    @field_validator("level_table")
    @classmethod
    def order_descending(cls, v: tuple[LevelRule, ...]) -> tuple[LevelRule, ...]:
        if not v:
            raise ValueError("level_table must have at least one passing level")
        return tuple(sorted(v, key=lambda r: r.threshold, reverse=True))

    @field_validator("revenue_split")
    @classmethod
    def failed_tests_share_present(cls, v: dict[str, int]) -> dict[str, int]:
        # the other streams are scaled from failed-test revenue
        if v.get("failedTests", 0) <= 0:
            raise ValueError("revenue_split needs a positive failedTests share")
        return v

    @model_validator(mode="after")
    def grace_outlasts_minting(self) -> "Settings":
        if self.reconcile_grace_minutes * 60 <= self.mint_timeout * self.mint_max_attempts:
            raise ValueError("reconcile_grace_minutes must exceed the worst-case mint duration")
        return self

    @property
    def test_price_lamports(self) -> int:
        return int(round(self.test_price_sol * LAMPORTS_PER_SOL))

    @property
    def min_payment_lamports(self) -> float:
        return self.test_price_lamports * self.payment_tolerance_bps / 10_000

    def payment_sufficient(self, lamports: int) -> bool:
        # integer comparison so the tolerance boundary is exact
        return lamports * 10_000 >= self.test_price_lamports * self.payment_tolerance_bps

    @classmethod
    def from_env(cls, env: Optional[dict] = None) -> "Settings":
        env = os.environ if env is None else env
        values: dict = {}
        mapping = {
            "SOLANA_RPC_URL": "solana_rpc_url",
            "TREASURY_WALLET": "treasury_wallet",
            "TEST_PRICE_SOL": "test_price_sol",
            "PAYMENT_TOLERANCE_BPS": "payment_tolerance_bps",
            "SKILLCHAIN_PROGRAM_ID": "program_id",
            "SKILL_TOKEN_MINT": "skill_token_mint",
            "AUTHORITY_WALLET": "authority_wallet",
            "MINT_SERVICE_URL": "mint_service_url",
            "MINT_MAX_ATTEMPTS": "mint_max_attempts",
            "MINT_TIMEOUT": "mint_timeout",
            "RPC_TIMEOUT": "rpc_timeout",
            "RECONCILE_INTERVAL_MINUTES": "reconcile_interval_minutes",
            "RECONCILE_GRACE_MINUTES": "reconcile_grace_minutes",
            "QUESTION_LLM_PROVIDER": "question_llm_provider",
            "QUESTION_LLM_MODEL": "question_llm_model",
            "QUESTION_LLM_BASE_URL": "question_llm_base_url",
        }
        for key, field in mapping.items():
            if env.get(key):
                values[field] = env[key]
        if env.get("LEVEL_TABLE"):
            values["level_table"] = tuple(LevelRule(**r) for r in json.loads(env["LEVEL_TABLE"]))
        if env.get("REVENUE_SPLIT"):
            values["revenue_split"] = json.loads(env["REVENUE_SPLIT"])
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
