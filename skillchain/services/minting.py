"""Certificate NFT minting with a local placeholder fallback.

The remote minter never raises for service failures; it reports them in its
result so the fallback decision lives in MintPolicy and can be tested alone.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from ..config import Settings
from ..models import MintStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintResult:
    ok: bool
    mint: Optional[str] = None
    metadata_uri: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MintOutcome:
    mint: str
    metadata_uri: str
    status: MintStatus
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status == MintStatus.placeholder


class Minter(Protocol):
    def mint(self, wallet: str, topic: str, level: str, score: int) -> MintResult: ...


class RemoteMinter:
    """Calls the external minting service over HTTP."""

    def __init__(self, url: str, timeout: float = 30.0):
        self.url = url.rstrip("/")
        self.timeout = timeout

    def mint(self, wallet: str, topic: str, level: str, score: int) -> MintResult:
        try:
            resp = httpx.post(
                f"{self.url}/mint",
                json={"walletAddress": wallet, "topic": topic, "level": level, "score": score},
                timeout=self.timeout,
            )
            if resp.status_code != 200:
                return MintResult(ok=False, error=f"mint service HTTP {resp.status_code}")
            data = resp.json()
        except httpx.TimeoutException:
            return MintResult(ok=False, error="mint service timeout")
        except (httpx.HTTPError, ValueError) as e:
            return MintResult(ok=False, error=str(e))
        mint = data.get("mint")
        uri = data.get("metadataUri")
        if not mint or not uri:
            return MintResult(ok=False, error="mint service returned incomplete data")
        return MintResult(ok=True, mint=mint, metadata_uri=uri)


class PlaceholderMinter:
    """Produces local token identifiers that can be reconciled later."""

    def mint(self, wallet: str, topic: str, level: str, score: int) -> MintResult:
        return MintResult(
            ok=True,
            mint=f"MOCK-{uuid.uuid4().hex[:8]}",
            metadata_uri=f"https://arweave.net/{uuid.uuid4()}",
        )


class MintPolicy:
    """Try the remote minter up to max_attempts, then fall back to a placeholder."""

    def __init__(self, remote: Optional[Minter], fallback: Minter, max_attempts: int = 1):
        self.remote = remote
        self.fallback = fallback
        self.max_attempts = max(1, max_attempts)

    def issue(self, wallet: str, topic: str, level: str, score: int) -> MintOutcome:
        error = "no mint service configured"
        if self.remote is not None:
            for attempt in range(1, self.max_attempts + 1):
                result = self.remote.mint(wallet, topic, level, score)
                if result.ok:
                    return MintOutcome(result.mint, result.metadata_uri, MintStatus.minted)
                error = result.error or "unknown mint failure"
                logger.warning("Mint attempt %d/%d failed for %s: %s",
                               attempt, self.max_attempts, wallet, error)

        placeholder = self.fallback.mint(wallet, topic, level, score)
        logger.warning("Mint degraded to placeholder %s for %s (%s)", placeholder.mint, wallet, error)
        return MintOutcome(placeholder.mint, placeholder.metadata_uri, MintStatus.placeholder, error)

    def retry_remote(self, wallet: str, topic: str, level: str, score: int) -> Optional[MintOutcome]:
        """Single remote attempt with no fallback, for reconciliation."""
        if self.remote is None:
            return None
        result = self.remote.mint(wallet, topic, level, score)
        if not result.ok:
            return None
        return MintOutcome(result.mint, result.metadata_uri, MintStatus.minted)


def build_mint_policy(settings: Settings) -> MintPolicy:
    remote = RemoteMinter(settings.mint_service_url, settings.mint_timeout) if settings.mint_service_url else None
    return MintPolicy(remote, PlaceholderMinter(), settings.mint_max_attempts)
