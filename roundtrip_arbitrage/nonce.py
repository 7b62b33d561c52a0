"""
Durable nonce account cache.

A single background task polls the nonce account and swaps in an immutable
snapshot. Readers call :meth:`NonceCache.get`, which never blocks.
"""

import asyncio
import logging
import struct
import time
from dataclasses import dataclass
from typing import Optional

from solders.hash import Hash
from solders.pubkey import Pubkey

from .exceptions import NetworkError, ValidationError

logger = logging.getLogger(__name__)

# Nonce account layout: version u32, state u32, authority [32], blockhash [32], fee u64
NONCE_ACCOUNT_SIZE = 80
NONCE_STATE_INITIALIZED = 1


@dataclass(frozen=True)
class NonceSnapshot:
    blockhash: Hash
    authority: Pubkey
    fetched_at: float


def decode_nonce_account(data: bytes) -> NonceSnapshot:
    """
    Decode an initialized nonce account.

    Raises:
        ValidationError: If the data is too short or the nonce is uninitialized
    """
    if len(data) < NONCE_ACCOUNT_SIZE:
        raise ValidationError(f"Nonce account data too short: {len(data)} bytes")

    _version, state = struct.unpack_from("<II", data, 0)
    if state != NONCE_STATE_INITIALIZED:
        raise ValidationError(f"Nonce account is not initialized (state={state})")

    return NonceSnapshot(
        blockhash=Hash(bytes(data[40:72])),
        authority=Pubkey(bytes(data[8:40])),
        fetched_at=time.time(),
    )


class NonceCache:
    """Background-refreshed durable nonce state."""

    def __init__(self, rpc, nonce_account: str, refresh_ms: int = 400):
        self.rpc = rpc
        self.nonce_account = nonce_account
        self.refresh_seconds = refresh_ms / 1000.0
        self._snapshot: Optional[NonceSnapshot] = None

    def get(self) -> Optional[NonceSnapshot]:
        """Latest snapshot, or None before the first successful load."""
        return self._snapshot

    async def refresh(self) -> Optional[NonceSnapshot]:
        """Load once; errors are logged and the previous snapshot is kept."""
        try:
            data = await self.rpc.get_account_data(self.nonce_account)
            if data is None:
                raise ValidationError(f"Nonce account {self.nonce_account} not found")
            snapshot = decode_nonce_account(data)
        except (NetworkError, ValidationError) as e:
            logger.warning(f"Nonce refresh failed: {e}")
            return None

        previous = self._snapshot
        self._snapshot = snapshot
        if previous is None or previous.blockhash != snapshot.blockhash:
            logger.debug(f"Nonce blockhash now {snapshot.blockhash}")
        return snapshot

    async def run(self) -> None:
        """Refresh forever; cancel the task to stop."""
        logger.info(f"Starting nonce refresh for {self.nonce_account} every {self.refresh_seconds * 1000:.0f} ms")
        while True:
            await self.refresh()
            await asyncio.sleep(self.refresh_seconds)
