"""Read-only Solana JSON-RPC access and program-derived address helpers."""
import itertools
import logging
from typing import Optional

import httpx
from solders.pubkey import Pubkey

from ..errors import ChainUnavailable, InvalidWallet

logger = logging.getLogger(__name__)

USER_PROFILE_SEED = b"user_profile"
SKILL_REGISTRY_SEED = b"skill_registry"


class SolanaRPC:
    """Minimal JSON-RPC client. Only the two read calls this service needs."""

    def __init__(self, url: str, timeout: float = 15.0):
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)

    def _call(self, method: str, params: list):
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = httpx.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            logger.error("RPC %s failed: %s", method, e)
            raise ChainUnavailable(f"{method}: {e}") from e
        if body.get("error"):
            logger.error("RPC %s returned error: %s", method, body["error"])
            raise ChainUnavailable(f"{method}: {body['error']}")
        return body.get("result")

    def get_transaction(self, signature: str) -> Optional[dict]:
        """Fetch a confirmed transaction, or None if the cluster has no record of it."""
        return self._call("getTransaction", [
            signature,
            {"encoding": "json", "commitment": "confirmed", "maxSupportedTransactionVersion": 0},
        ])

    def get_account_info(self, address: str) -> Optional[dict]:
        result = self._call("getAccountInfo", [
            address, {"encoding": "base64", "commitment": "confirmed"},
        ])
        if not result:
            return None
        return result.get("value")


def parse_pubkey(address: str) -> Pubkey:
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidWallet(f"not a valid public key: {address}") from e


def user_profile_address(wallet: str, program_id: str) -> str:
    pda, _bump = Pubkey.find_program_address(
        [USER_PROFILE_SEED, bytes(parse_pubkey(wallet))], parse_pubkey(program_id)
    )
    return str(pda)


def skill_registry_address(program_id: str) -> str:
    pda, _bump = Pubkey.find_program_address([SKILL_REGISTRY_SEED], parse_pubkey(program_id))
    return str(pda)


def static_account_keys(transaction: dict) -> list[str]:
    """Account keys embedded in the message itself (excludes lookup-table loads)."""
    message = (transaction.get("transaction") or {}).get("message") or {}
    keys = message.get("accountKeys") or []
    # jsonParsed encoding returns objects instead of strings
    return [k["pubkey"] if isinstance(k, dict) else k for k in keys]
