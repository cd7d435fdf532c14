from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from skillchain.errors import AlreadySettled, NotFound, PersistenceError, WalletMismatch
from skillchain.models import Certificate, MintStatus, SkillLevel, TestResult, UserStats
from skillchain.services.minting import MintPolicy, MintResult, PlaceholderMinter
from skillchain.services.settlement import apply_result_to_stats, get_or_create_stats, submit_test
from tests.conftest import CORRECT, OTHER_WALLET, TEST_SETTINGS, WALLET, make_test

NINE_RIGHT = [0, 1, 2, 3, 0, 1, 2, 3, 0, 1]
ALL_WRONG = [(c + 1) % 4 for c in CORRECT]


def _policy(ok=True):
    remote = MagicMock()
    if ok:
        remote.mint.return_value = MintResult(ok=True, mint="NFT-REAL", metadata_uri="https://arweave.net/real")
    else:
        remote.mint.return_value = MintResult(ok=False, error="minter down")
    return MintPolicy(remote, PlaceholderMinter())


def test_example_settlement_updates_stats(db_session):
    make_test(db_session)
    db_session.add(UserStats(wallet_address=WALLET, total_tests=2, total_certificates=1,
                             total_sol_earned_milli=100))
    db_session.commit()

    outcome = submit_test(db_session, "t1", WALLET, NINE_RIGHT, TEST_SETTINGS, _policy())

    assert outcome.result.score == 90
    assert outcome.result.level == SkillLevel.senior
    assert outcome.result.sol_reward_milli == 150
    assert outcome.certificate.nft_mint == "NFT-REAL"
    assert outcome.certificate.mint_status == MintStatus.minted
    assert outcome.warnings == []

    stats = db_session.query(UserStats).filter_by(wallet_address=WALLET).one()
    assert stats.total_tests == 3
    assert stats.total_certificates == 2
    assert stats.success_rate == 67
    assert stats.total_sol_earned_milli == 250


def test_failed_result_has_no_certificate(db_session):
    make_test(db_session)
    policy = _policy()
    outcome = submit_test(db_session, "t1", WALLET, ALL_WRONG, TEST_SETTINGS, policy)

    assert outcome.result.passed is False
    assert outcome.certificate is None
    policy.remote.mint.assert_not_called()
    assert db_session.query(Certificate).count() == 0
    stats = db_session.query(UserStats).filter_by(wallet_address=WALLET).one()
    assert (stats.total_tests, stats.total_certificates, stats.success_rate) == (1, 0, 0)
    assert stats.total_sol_earned_milli == 0


def test_certificate_matches_result(db_session):
    make_test(db_session)
    outcome = submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, _policy())
    cert = db_session.query(Certificate).one()
    result = db_session.query(TestResult).one()
    assert cert.test_id == result.test_id
    assert (cert.wallet_address, cert.topic, cert.level, cert.score) == \
        (result.wallet_address, result.topic, result.level, result.score)
    assert outcome.result.score == 100


def test_unknown_test_not_found(db_session):
    with pytest.raises(NotFound):
        submit_test(db_session, "missing", WALLET, CORRECT, TEST_SETTINGS, _policy())


def test_other_wallet_cannot_submit(db_session):
    make_test(db_session)
    with pytest.raises(WalletMismatch):
        submit_test(db_session, "t1", OTHER_WALLET, CORRECT, TEST_SETTINGS, _policy())
    assert db_session.query(TestResult).count() == 0


def test_resubmission_rejected_without_double_count(db_session):
    make_test(db_session)
    submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, _policy())
    with pytest.raises(AlreadySettled):
        submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, _policy())
    stats = db_session.query(UserStats).filter_by(wallet_address=WALLET).one()
    assert stats.total_tests == 1
    assert db_session.query(Certificate).count() == 1


def test_mint_outage_keeps_the_pass(db_session):
    make_test(db_session)
    outcome = submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, _policy(ok=False))
    assert outcome.result.passed is True
    assert outcome.certificate.mint_status == MintStatus.placeholder
    assert outcome.certificate.nft_mint.startswith("MOCK-")
    assert any("pending" in w for w in outcome.warnings)
    stats = db_session.query(UserStats).filter_by(wallet_address=WALLET).one()
    assert stats.total_certificates == 1


def test_result_write_failure_is_fatal(db_session):
    make_test(db_session)
    policy = _policy()
    with patch.object(db_session, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk"))):
        with pytest.raises(PersistenceError):
            submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, policy)
    policy.remote.mint.assert_not_called()


def test_certificate_write_failure_skips_stats(db_session):
    make_test(db_session)
    with patch("skillchain.services.settlement.record_certificate",
               side_effect=OperationalError("INSERT", {}, Exception("disk"))):
        outcome = submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, _policy())
    assert outcome.certificate is None
    assert outcome.warnings
    assert db_session.query(TestResult).count() == 1
    assert db_session.query(UserStats).filter_by(wallet_address=WALLET).first() is None


def test_stats_write_failure_returns_warning(db_session):
    make_test(db_session)
    with patch("skillchain.services.settlement.apply_result_to_stats",
               side_effect=OperationalError("UPDATE", {}, Exception("locked"))):
        outcome = submit_test(db_session, "t1", WALLET, CORRECT, TEST_SETTINGS, _policy())
    assert outcome.certificate is not None
    assert "stats update deferred to reconciliation" in outcome.warnings


def test_success_rate_tracks_counters_over_sequence(db_session):
    outcomes = [CORRECT, ALL_WRONG, NINE_RIGHT, ALL_WRONG, ALL_WRONG, CORRECT, ALL_WRONG, ALL_WRONG]
    for i, answers in enumerate(outcomes):
        make_test(db_session, test_id=f"t{i}")
        submit_test(db_session, f"t{i}", WALLET, answers, TEST_SETTINGS, _policy())
        stats = db_session.query(UserStats).filter_by(wallet_address=WALLET).one()
        expected = int(100 * stats.total_certificates / stats.total_tests + 0.5)
        assert stats.success_rate == expected
    assert stats.total_tests == 8
    assert stats.total_certificates == 3
    # 3/8 = 37.5 rounds up
    assert stats.success_rate == 38


def test_get_or_create_stats_is_lazy(db_session):
    stats = get_or_create_stats(db_session, "fresh")
    assert (stats.total_tests, stats.total_certificates, stats.total_sol_earned_milli) == (0, 0, 0)
    assert get_or_create_stats(db_session, "fresh") is not None
    assert db_session.query(UserStats).count() == 1


def test_apply_result_reads_fresh_row(db_session):
    make_test(db_session)
    result = TestResult(test_id="t1", wallet_address=WALLET, topic="x", score=70,
                        level=SkillLevel.junior, correct_answers=7, total_questions=10,
                        total_points=100, sol_reward_milli=100, passed=True)
    db_session.add(result)
    db_session.add(UserStats(wallet_address=WALLET, total_tests=0, total_certificates=0,
                             total_sol_earned_milli=0))
    db_session.commit()
    # another writer bumps the row behind the ORM's back
    db_session.execute(UserStats.__table__.update().values(total_tests=5, total_certificates=4))
    stats = apply_result_to_stats(db_session, result)
    assert stats.total_tests == 6
    assert stats.total_certificates == 5
