from fastapi import Depends
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .services.chain_profile import ChainProfileAdapter
from .services.minting import MintPolicy, build_mint_policy
from .services.questions import LLMQuestionSource, QuestionSource


def get_mint_policy(settings: Settings = Depends(get_settings)) -> MintPolicy:
    return build_mint_policy(settings)


def get_question_source(settings: Settings = Depends(get_settings)) -> QuestionSource:
    return LLMQuestionSource(settings)


def get_chain_adapter(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> ChainProfileAdapter:
    return ChainProfileAdapter(db, settings)
