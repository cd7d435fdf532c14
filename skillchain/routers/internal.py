from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ..config import Settings, get_settings
from ..database import get_db
from ..deps import get_mint_policy
from ..services.minting import MintPolicy
from ..services.reconcile import reconcile_all

router = APIRouter(prefix="/internal", tags=["internal"])


@router.post("/reconcile")
def trigger_reconcile(
    db: Session = Depends(get_db),
    mint_policy: MintPolicy = Depends(get_mint_policy),
    settings: Settings = Depends(get_settings),
):
    return reconcile_all(db, mint_policy, settings.reconcile_grace_minutes)
