from fastapi import APIRouter, Depends, HTTPException
from ..config import Settings, get_settings
from ..deps import get_chain_adapter
from ..errors import ChainUnavailable, InvalidWallet
from ..schemas import (
    AccountStatus, ChainProfileOut, ChainRegistryOut, SkillVerification, VerifySkillRequest,
)
from ..services.chain_profile import ChainProfileAdapter, verify_skill

router = APIRouter(prefix="/chain", tags=["chain"])

_PROFILE_MESSAGES = {
    AccountStatus.decoded: "On-chain profile found",
    AccountStatus.undecodable: "On-chain profile found but its data cannot be decoded yet",
    AccountStatus.not_found: "No on-chain profile yet; showing a view derived from issued certificates",
}


@router.get("/profile/{wallet}", response_model=ChainProfileOut)
def get_profile(wallet: str, adapter: ChainProfileAdapter = Depends(get_chain_adapter)):
    try:
        lookup = adapter.get_profile(wallet)
        if lookup is None:
            raise HTTPException(status_code=503, detail="Solana RPC unavailable")
        exists = adapter.profile_exists(wallet)
    except InvalidWallet as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ChainProfileOut(
        exists=exists,
        status=lookup.status,
        pda=lookup.address,
        profile=lookup.profile,
        message=_PROFILE_MESSAGES[lookup.status],
    )


@router.get("/registry", response_model=ChainRegistryOut)
def get_registry(
    adapter: ChainProfileAdapter = Depends(get_chain_adapter),
    settings: Settings = Depends(get_settings),
):
    lookup = adapter.get_registry()
    if lookup is None:
        raise HTTPException(status_code=503, detail="Solana RPC unavailable")
    return ChainRegistryOut(
        exists=lookup.status != AccountStatus.not_found,
        status=lookup.status,
        pda=lookup.address,
        program_id=settings.program_id,
        registry=lookup.registry,
    )


@router.post("/verify-skill", response_model=SkillVerification)
def verify_user_skill(data: VerifySkillRequest, adapter: ChainProfileAdapter = Depends(get_chain_adapter)):
    try:
        return verify_skill(adapter, data.wallet_address, data.skill_id, data.min_score)
    except InvalidWallet as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ChainUnavailable:
        raise HTTPException(status_code=503, detail="Solana RPC unavailable")
