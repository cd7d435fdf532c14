from unittest.mock import MagicMock, patch

import httpx

from skillchain.config import Settings
from skillchain.models import MintStatus
from skillchain.services.minting import (
    MintPolicy, MintResult, PlaceholderMinter, RemoteMinter, build_mint_policy,
)


def _remote(*results):
    remote = MagicMock()
    remote.mint.side_effect = list(results)
    return remote


def test_policy_uses_remote_result():
    policy = MintPolicy(_remote(MintResult(ok=True, mint="NFT1", metadata_uri="ar://1")), PlaceholderMinter())
    outcome = policy.issue("w", "topic", "Senior", 90)
    assert outcome.mint == "NFT1"
    assert outcome.status == MintStatus.minted
    assert outcome.degraded is False


def test_policy_falls_back_after_attempts():
    remote = _remote(MintResult(ok=False, error="boom"), MintResult(ok=False, error="boom again"))
    policy = MintPolicy(remote, PlaceholderMinter(), max_attempts=2)
    outcome = policy.issue("w", "topic", "Junior", 70)
    assert remote.mint.call_count == 2
    assert outcome.degraded is True
    assert outcome.mint.startswith("MOCK-")
    assert outcome.metadata_uri.startswith("https://arweave.net/")
    assert outcome.error == "boom again"


def test_policy_retries_until_success():
    remote = _remote(MintResult(ok=False, error="x"), MintResult(ok=True, mint="NFT2", metadata_uri="u"))
    outcome = MintPolicy(remote, PlaceholderMinter(), max_attempts=3).issue("w", "t", "Middle", 80)
    assert outcome.mint == "NFT2"
    assert remote.mint.call_count == 2


def test_policy_without_remote_is_placeholder():
    outcome = MintPolicy(None, PlaceholderMinter()).issue("w", "t", "Middle", 80)
    assert outcome.status == MintStatus.placeholder
    assert "no mint service" in outcome.error


def test_placeholder_ids_are_unique():
    minter = PlaceholderMinter()
    a = minter.mint("w", "t", "Junior", 70)
    b = minter.mint("w", "t", "Junior", 70)
    assert a.mint != b.mint


def test_retry_remote_returns_none_on_failure():
    policy = MintPolicy(_remote(MintResult(ok=False, error="down")), PlaceholderMinter())
    assert policy.retry_remote("w", "t", "Senior", 100) is None
    assert MintPolicy(None, PlaceholderMinter()).retry_remote("w", "t", "Senior", 100) is None


def test_remote_minter_success():
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"mint": "NFT9", "metadataUri": "https://arweave.net/abc"}
    with patch("skillchain.services.minting.httpx.post", return_value=resp) as post:
        result = RemoteMinter("http://minter/").mint("w", "t", "Senior", 90)
    assert result.ok is True
    assert result.mint == "NFT9"
    assert post.call_args.args[0] == "http://minter/mint"
    assert post.call_args.kwargs["json"]["level"] == "Senior"


def test_remote_minter_http_error_status():
    with patch("skillchain.services.minting.httpx.post", return_value=MagicMock(status_code=503)):
        result = RemoteMinter("http://minter").mint("w", "t", "Senior", 90)
    assert result.ok is False
    assert "503" in result.error


def test_remote_minter_timeout():
    with patch("skillchain.services.minting.httpx.post", side_effect=httpx.ReadTimeout("slow")):
        result = RemoteMinter("http://minter").mint("w", "t", "Senior", 90)
    assert result.ok is False
    assert result.error == "mint service timeout"


def test_remote_minter_incomplete_payload():
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"mint": "NFT9"}
    with patch("skillchain.services.minting.httpx.post", return_value=resp):
        result = RemoteMinter("http://minter").mint("w", "t", "Senior", 90)
    assert result.ok is False


def test_build_mint_policy_from_settings():
    assert build_mint_policy(Settings()).remote is None
    policy = build_mint_policy(Settings(mint_service_url="http://minter", mint_max_attempts=3))
    assert isinstance(policy.remote, RemoteMinter)
    assert policy.max_attempts == 3
