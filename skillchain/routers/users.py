from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ..database import get_db
from ..models import Certificate
from ..schemas import CertificateOut, UserStatsOut
from ..services.settlement import get_or_create_stats

router = APIRouter(prefix="/users", tags=["users"])


def _certificates(db: Session, wallet: str) -> list[Certificate]:
    return (
        db.query(Certificate)
        .filter(Certificate.wallet_address == wallet)
        .order_by(Certificate.earned_at.desc())
        .all()
    )


@router.get("/{wallet}/stats", response_model=UserStatsOut)
def get_user_stats(wallet: str, db: Session = Depends(get_db)):
    stats = get_or_create_stats(db, wallet)
    return UserStatsOut.from_model(stats, _certificates(db, wallet))


@router.get("/{wallet}/certificates", response_model=List[CertificateOut])
def list_certificates(wallet: str, db: Session = Depends(get_db)):
    return _certificates(db, wallet)
