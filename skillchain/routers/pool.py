from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import case, func
from sqlalchemy.orm import Session
from ..config import Settings, get_settings
from ..database import get_db
from ..deps import get_chain_adapter, get_question_source
from ..models import UserStats
from ..schemas import CategoriesOut, CategoriesRequest, DaoStatsOut, SkillPoolStatsOut
from ..services.chain_profile import ChainProfileAdapter
from ..services.questions import QuestionSource

router = APIRouter(tags=["pool"])


def reward_percentages(settings: Settings) -> dict[str, int]:
    """Display percentages derived from the grading table, never set separately."""
    return {rule.level.value.lower(): int(round(rule.reward * 100)) for rule in settings.level_table}


@router.post("/categories", response_model=CategoriesOut)
def get_categories(data: CategoriesRequest, source: QuestionSource = Depends(get_question_source)):
    return CategoriesOut(categories=source.generate_categories(data.level, data.parent_category))


@router.get("/dao/stats", response_model=DaoStatsOut)
def get_dao_stats(
    adapter: ChainProfileAdapter = Depends(get_chain_adapter),
    settings: Settings = Depends(get_settings),
):
    lookup = adapter.get_registry()
    if lookup is None:
        raise HTTPException(status_code=503, detail="Solana RPC unavailable")
    registry = lookup.registry
    return DaoStatsOut(
        total_validators=registry.total_validators if registry else 0,
        total_certificates=registry.total_certificates if registry else 0,
        total_users=registry.total_users if registry else 0,
        reward_distribution=reward_percentages(settings),
        revenue_streams=dict(settings.revenue_split),
    )


@router.get("/skillpool/stats", response_model=SkillPoolStatsOut)
def get_skillpool_stats(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    total_tests, total_certs, total_milli, active = db.query(
        func.coalesce(func.sum(UserStats.total_tests), 0),
        func.coalesce(func.sum(UserStats.total_certificates), 0),
        func.coalesce(func.sum(UserStats.total_sol_earned_milli), 0),
        func.coalesce(func.sum(case((UserStats.total_tests > 0, 1), else_=0)), 0),
    ).one()

    split = settings.revenue_split
    failed_share = split["failedTests"]
    failed_revenue = (int(total_tests) - int(total_certs)) * settings.test_price_sol
    # other streams are estimated in proportion to failed-test revenue
    revenue = {
        stream: round(failed_revenue * pct / failed_share, 3)
        for stream, pct in split.items()
    }
    revenue["total"] = round(sum(revenue.values()), 3)
    rewards = int(total_milli) / 1000

    return SkillPoolStatsOut(
        pool_balance_sol=round(revenue["total"] - rewards, 3),
        revenue=revenue,
        rewards_total_sol=round(rewards, 3),
        active_users=int(active),
        total_tests=int(total_tests),
        total_certificates=int(total_certs),
        revenue_percentages=dict(split),
        reward_percentages=reward_percentages(settings),
    )
