import json
import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from skillchain.config import Settings

TREASURY = "So11111111111111111111111111111111111111112"
WALLET = "Vote111111111111111111111111111111111111111"
OTHER_WALLET = "Stake11111111111111111111111111111111111111"

TEST_SETTINGS = Settings(treasury_wallet=TREASURY)

CORRECT = [0, 1, 2, 3, 0, 1, 2, 3, 1, 1]


def make_questions(correct=CORRECT) -> list[dict]:
    return [
        {
            "id": f"q{i + 1}",
            "question": f"Question {i + 1}?",
            "options": ["A", "B", "C", "D"],
            "correct_answer": answer,
            "points": 10,
        }
        for i, answer in enumerate(correct)
    ]


def make_test(db, test_id="t1", wallet=WALLET, correct=CORRECT):
    from skillchain.models import Test
    test = Test(
        id=test_id,
        wallet_address=wallet,
        topic="Engineering > Backend > Python",
        main_category="Engineering",
        narrow_category="Backend",
        specific_category="Python",
        questions=json.dumps(make_questions(correct)),
    )
    db.add(test)
    db.commit()
    return test


def make_transaction(payer=WALLET, treasury=TREASURY, paid=150_000_000, err=None) -> dict:
    """A getTransaction result where `payer` sends `paid` lamports to the treasury."""
    return {
        "slot": 1,
        "meta": {
            "err": err,
            "fee": 5000,
            "preBalances": [1_000_000_000, 2_000_000, 1],
            "postBalances": [1_000_000_000 - paid - 5000, 2_000_000 + paid, 1],
        },
        "transaction": {
            "message": {"accountKeys": [payer, treasury, "11111111111111111111111111111111"]},
            "signatures": ["sig"],
        },
    }


class FakeQuestionSource:
    def __init__(self, correct=CORRECT):
        self.correct = correct
        self.calls = []

    def generate_questions(self, main, narrow, specific):
        from skillchain.schemas import Question
        self.calls.append((main, narrow, specific))
        return [Question(**q) for q in make_questions(self.correct)]

    def generate_categories(self, level, parent=None):
        return ["Engineering", "Design"] if level == 1 else [f"{parent} A", f"{parent} B"]


@pytest.fixture
def settings():
    return TEST_SETTINGS


@pytest.fixture
def db_session():
    from skillchain.database import Base
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine)
    db = Session()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def _app_client(source, rpc):
    from fastapi import Depends
    from skillchain.config import get_settings
    from skillchain.database import Base, get_db
    from skillchain.deps import get_chain_adapter, get_mint_policy, get_question_source
    from skillchain.services.chain_profile import ChainProfileAdapter
    from skillchain.main import app
    from skillchain.services.minting import MintPolicy, PlaceholderMinter

    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=test_engine)
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

    def override_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    app.dependency_overrides[get_question_source] = lambda: source
    app.dependency_overrides[get_mint_policy] = lambda: MintPolicy(None, PlaceholderMinter())
    app.dependency_overrides[get_chain_adapter] = \
        lambda db=Depends(get_db): ChainProfileAdapter(db, TEST_SETTINGS, rpc=rpc)
    return app, test_engine, TestSession


@pytest.fixture
def question_source():
    return FakeQuestionSource()


@pytest.fixture
def chain_rpc():
    """Solana RPC stand-in; by default no on-chain accounts exist."""
    rpc = MagicMock()
    rpc.get_account_info.return_value = None
    return rpc


@pytest.fixture
def client(question_source, chain_rpc):
    from skillchain.database import Base
    app, engine, _ = _app_client(question_source, chain_rpc)

    # Prevent lifespan from touching the real DB or starting scheduler
    with patch("skillchain.main.create_scheduler", return_value=MagicMock()), \
         patch("skillchain.main.run_migrations"):
        with TestClient(app) as c:
            yield c

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client_with_db(question_source, chain_rpc):
    """Yields (TestClient, db_session) sharing the same in-memory engine."""
    from skillchain.database import Base
    app, engine, TestSession = _app_client(question_source, chain_rpc)

    with patch("skillchain.main.create_scheduler", return_value=MagicMock()), \
         patch("skillchain.main.run_migrations"):
        with TestClient(app) as c:
            db = TestSession()
            try:
                yield c, db
            finally:
                db.close()

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
