"""On-chain profile and registry views with a database-derived fallback.

The program's account layout is not published yet, so a genuine account can
be located but not decoded. Every lookup reports which case it hit.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import ChainUnavailable
from ..models import Certificate, UserStats
from ..schemas import (
    AccountStatus, OnChainProfile, OnChainSkillRecord, ProfileLookup,
    RegistryLookup, SkillRegistryInfo, SkillVerification,
)
from .chain import SolanaRPC, skill_registry_address, user_profile_address
from .scoring import weighted_skill_score
from .settlement import get_or_create_stats

logger = logging.getLogger(__name__)


class ChainProfileAdapter:
    def __init__(self, db: Session, settings: Settings, rpc: Optional[SolanaRPC] = None):
        self.db = db
        self.settings = settings
        self.rpc = rpc or SolanaRPC(settings.solana_rpc_url, timeout=settings.rpc_timeout)

    def _account_exists(self, address: str) -> bool:
        account = self.rpc.get_account_info(address)
        return bool(account and account.get("data"))

    def _certificates(self, wallet: str) -> list[Certificate]:
        return (
            self.db.query(Certificate)
            .filter(Certificate.wallet_address == wallet)
            .order_by(Certificate.earned_at.asc())
            .all()
        )

    def simulate_profile(self, wallet: str) -> OnChainProfile:
        stats = get_or_create_stats(self.db, wallet)
        certs = self._certificates(wallet)
        skills = [
            OnChainSkillRecord(
                skill_id=c.topic,
                level=c.level,
                score=c.score,
                nft_mint=c.nft_mint or "MOCK",
                earned_at=c.earned_at,
                validator=self.settings.authority_wallet,
            )
            for c in certs
        ]
        return OnChainProfile(
            owner=wallet,
            skill_score=len(certs) * 100,
            weighted_skill_score=weighted_skill_score([s.model_dump() for s in skills]),
            total_tests=stats.total_tests,
            total_certificates=stats.total_certificates,
            total_sol_earned=stats.total_sol_earned_milli / 1000,
            success_rate=stats.success_rate,
            skills=skills,
            created_at=certs[0].earned_at if certs else None,
        )

    def get_profile(self, wallet: str) -> Optional[ProfileLookup]:
        """Look up a wallet's profile. None if the chain cannot be queried."""
        address = user_profile_address(wallet, self.settings.program_id)
        try:
            found = self._account_exists(address)
        except ChainUnavailable as e:
            logger.error("Profile lookup for %s failed: %s", wallet, e)
            return None

        if found:
            logger.warning("On-chain profile %s exists but its layout cannot be decoded", address)
            return ProfileLookup(status=AccountStatus.undecodable, address=address, profile=None)

        logger.info("No on-chain profile for %s, simulating from database", wallet)
        return ProfileLookup(
            status=AccountStatus.not_found, address=address, profile=self.simulate_profile(wallet)
        )

    def profile_exists(self, wallet: str) -> bool:
        address = user_profile_address(wallet, self.settings.program_id)
        try:
            if self._account_exists(address):
                return True
        except ChainUnavailable as e:
            logger.error("Profile existence check for %s failed: %s", wallet, e)
        count = (
            self.db.query(func.count(Certificate.id))
            .filter(Certificate.wallet_address == wallet)
            .scalar()
        ) or 0
        return count > 0

    def simulate_registry(self) -> SkillRegistryInfo:
        total_certs, total_users = self.db.query(
            func.coalesce(func.sum(UserStats.total_certificates), 0),
            func.count(UserStats.wallet_address),
        ).one()
        return SkillRegistryInfo(
            authority=self.settings.authority_wallet,
            total_validators=1,
            total_certificates=int(total_certs),
            total_users=int(total_users),
            skill_token_mint=self.settings.skill_token_mint,
            treasury=self.settings.treasury_wallet,
        )

    def get_registry(self) -> Optional[RegistryLookup]:
        address = skill_registry_address(self.settings.program_id)
        try:
            found = self._account_exists(address)
        except ChainUnavailable as e:
            logger.error("Registry lookup failed: %s", e)
            return None

        if found:
            logger.warning("On-chain registry %s exists but its layout cannot be decoded", address)
            return RegistryLookup(status=AccountStatus.undecodable, address=address, registry=None)

        return RegistryLookup(
            status=AccountStatus.not_found, address=address, registry=self.simulate_registry()
        )


def verify_skill(adapter: ChainProfileAdapter, wallet: str, skill_id: str,
                 min_score: Optional[int] = None) -> SkillVerification:
    lookup = adapter.get_profile(wallet)
    if lookup is None:
        raise ChainUnavailable("profile lookup failed")
    if lookup.status == AccountStatus.undecodable:
        return SkillVerification(
            verified=False, status=lookup.status,
            message="On-chain profile found but it cannot be decoded yet",
        )
    if not lookup.profile or not lookup.profile.skills:
        return SkillVerification(verified=False, status=lookup.status, message="User has no skill records")

    matching = [s for s in lookup.profile.skills if s.skill_id == skill_id]
    if not matching:
        return SkillVerification(verified=False, status=lookup.status, message="User does not have this skill")

    best = max(matching, key=lambda s: s.score)
    if min_score is not None and best.score < min_score:
        return SkillVerification(
            verified=False, status=lookup.status, skill=best,
            message=f"Skill score {best.score} is below required {min_score}",
        )
    return SkillVerification(verified=True, status=lookup.status, skill=best,
                             message="Skill verified successfully")
