import json
import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from ..config import Settings, get_settings
from ..database import get_db
from ..deps import get_mint_policy, get_question_source
from ..errors import (
    AlreadySettled, ChainUnavailable, NotFound, PaymentRejected, PersistenceError, WalletMismatch,
)
from ..models import Test
from ..schemas import SubmissionCreate, TestCreate, TestCreated, TestOut, TestResultOut
from ..services.minting import MintPolicy
from ..services.payment import build_payment_requirements, verify_payment
from ..services.questions import QuestionSource
from ..services.settlement import submit_test

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tests", tags=["tests"])


@router.post("", response_model=TestCreated, status_code=201)
def create_test(
    data: TestCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    source: QuestionSource = Depends(get_question_source),
):
    try:
        verify_payment(db, data.payment_signature, data.wallet_address, settings)
    except PaymentRejected as e:
        reqs = build_payment_requirements(settings)
        reqs["reason"] = e.reason.value
        reqs["error"] = (
            f"Payment verification failed ({e.reason.value}). Please ensure you have "
            f"completed the {settings.test_price_sol} SOL payment transaction."
        )
        return JSONResponse(status_code=402, content=reqs)
    except ChainUnavailable:
        raise HTTPException(status_code=503, detail="Solana RPC unavailable, try again shortly")

    # the payment is now recorded; a generation failure leaves it spent
    questions = source.generate_questions(
        data.main_category, data.narrow_category, data.specific_category
    )
    test = Test(
        id=f"{data.wallet_address}-{uuid.uuid4()}",
        wallet_address=data.wallet_address,
        topic=f"{data.main_category} > {data.narrow_category} > {data.specific_category}",
        main_category=data.main_category,
        narrow_category=data.narrow_category,
        specific_category=data.specific_category,
        questions=json.dumps([q.model_dump() for q in questions], ensure_ascii=False),
        payment_signature=data.payment_signature,
    )
    db.add(test)
    db.commit()
    db.refresh(test)
    logger.info("Test created: %s (%s)", test.id, test.topic)
    return TestCreated(test=TestOut.model_validate(test), amount=settings.test_price_sol)


@router.get("/{test_id}", response_model=TestOut)
def get_test(test_id: str, db: Session = Depends(get_db)):
    test = db.query(Test).filter(Test.id == test_id).first()
    if not test:
        raise HTTPException(status_code=404, detail="Test not found")
    return TestOut.model_validate(test)


@router.post("/{test_id}/submit", response_model=TestResultOut)
def submit(
    test_id: str,
    data: SubmissionCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mint_policy: MintPolicy = Depends(get_mint_policy),
):
    try:
        outcome = submit_test(db, test_id, data.wallet_address, data.answers, settings, mint_policy)
    except NotFound:
        raise HTTPException(status_code=404, detail="Test not found")
    except WalletMismatch:
        raise HTTPException(status_code=403, detail="Test was paid for by a different wallet")
    except AlreadySettled:
        raise HTTPException(status_code=409, detail="Test already submitted")
    except PersistenceError as e:
        logger.error("Submission failed for %s: %s", test_id, e)
        raise HTTPException(status_code=500, detail="Failed to record test result")
    return TestResultOut.from_model(outcome.result, outcome.certificate, outcome.warnings)
