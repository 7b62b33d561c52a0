"""
Multi-channel transaction submission.

A :class:`SubmissionPlan` is broadcast concurrently through every configured
relay channel (and optionally the standard node), or through the standard
node alone when no relay is configured. Each channel gets the same retry
budget and reuses its signed payload across retries; the plan succeeds when
any channel succeeds.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import aiohttp
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from .constants import LAMPORTS_PER_SOL
from .cost_model import FeeModel
from .exceptions import NetworkError, SubmissionError
from .relays import RelayChannel, RpcFallbackChannel
from .trade_builder import BuiltTrade, sign_transaction, transaction_id

logger = logging.getLogger(__name__)


@dataclass
class SubmissionPlan:
    """Everything needed to sign and send one opportunity; consumed at most once."""

    advance_nonce_instruction: Instruction
    instructions: Tuple[Instruction, ...]
    signers: Tuple[Keypair, ...]
    blockhash: Hash
    lookup_tables: Tuple[AddressLookupTableAccount, ...]
    tip_sol: float
    compute_units: int
    priority_fee: int
    retry_count: int
    channels: Tuple[RelayChannel, ...] = ()
    _consumed: bool = field(default=False, init=False, repr=False)

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def payer(self) -> Pubkey:
        return self.signers[0].pubkey()

    def consume(self) -> None:
        if self._consumed:
            raise SubmissionError("Submission plan was already submitted")
        self._consumed = True


def plan_from_trade(
    trade: BuiltTrade,
    signers: Sequence[Keypair],
    fee_model: FeeModel,
    channels: Sequence[RelayChannel],
    retry_count: int,
) -> SubmissionPlan:
    return SubmissionPlan(
        advance_nonce_instruction=trade.advance_nonce_instruction,
        instructions=trade.swap_instructions,
        signers=tuple(signers),
        blockhash=trade.blockhash,
        lookup_tables=trade.lookup_tables,
        tip_sol=trade.opportunity.relay_fee_sol,
        compute_units=fee_model.compute_units,
        priority_fee=fee_model.priority_fee,
        retry_count=retry_count,
        channels=tuple(channels),
    )


def build_payload(plan: SubmissionPlan, channel: RelayChannel, blockhash: Hash) -> VersionedTransaction:
    """
    Signed v0 transaction for one channel.

    Layout: advance nonce, compute unit limit, compute unit price, swap
    instructions, then a tip transfer when the channel has a tip account and
    the tip is positive.
    """
    payer = plan.payer
    instructions: List[Instruction] = [
        plan.advance_nonce_instruction,
        set_compute_unit_limit(plan.compute_units),
        set_compute_unit_price(plan.priority_fee),
        *plan.instructions,
    ]

    tip_lamports = int(plan.tip_sol * LAMPORTS_PER_SOL)
    if tip_lamports > 0 and channel.tip_account:
        instructions.append(
            transfer(
                TransferParams(
                    from_pubkey=payer,
                    to_pubkey=Pubkey.from_string(channel.tip_account),
                    lamports=tip_lamports,
                )
            )
        )

    return sign_transaction(payer, instructions, plan.lookup_tables, blockhash, plan.signers)


@dataclass(frozen=True)
class ChannelOutcome:
    channel: str
    success: bool
    attempts: int
    signature: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SubmissionResult:
    """Per-channel outcomes of a plan in which at least one channel succeeded."""

    outcomes: Tuple[ChannelOutcome, ...]

    @property
    def successful(self) -> Tuple[ChannelOutcome, ...]:
        return tuple(o for o in self.outcomes if o.success)

    @property
    def signature(self) -> Optional[str]:
        successful = self.successful
        return successful[0].signature if successful else None

    @property
    def channels(self) -> str:
        return ", ".join(o.channel for o in self.successful)


class SubmissionRouter:
    """
    Broadcasts submission plans.

    Args:
        fallback: Standard-node channel used when no relay is configured
        nonce_cache: Optional cache consulted for a fresh blockhash before sending
        include_fallback: Also send through ``fallback`` when relays are configured
        metrics: Optional :class:`ArbitrageMetrics`
        timeout_seconds: aiohttp total timeout per request
    """

    def __init__(
        self,
        fallback: RpcFallbackChannel,
        nonce_cache=None,
        include_fallback: bool = False,
        metrics=None,
        timeout_seconds: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.fallback = fallback
        self.nonce_cache = nonce_cache
        self.include_fallback = include_fallback
        self.metrics = metrics
        self._timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def targets_for(self, plan: SubmissionPlan) -> List[RelayChannel]:
        if not plan.channels:
            return [self.fallback]
        targets = list(plan.channels)
        if self.include_fallback:
            targets.append(self.fallback)
        return targets

    def _current_blockhash(self, plan: SubmissionPlan) -> Hash:
        if self.nonce_cache is not None:
            snapshot = self.nonce_cache.get()
            if snapshot is not None:
                return snapshot.blockhash
        return plan.blockhash

    async def _send_with_retries(
        self, channel: RelayChannel, plan: SubmissionPlan, blockhash: Hash
    ) -> ChannelOutcome:
        try:
            tx = build_payload(plan, channel, blockhash)
            raw_tx = bytes(tx)
            expected_signature = transaction_id(tx)
        except Exception as e:
            logger.error(f"[{channel.name}] failed to assemble payload: {e}")
            return ChannelOutcome(channel=channel.name, success=False, attempts=0, error=str(e))

        max_attempts = 1 + max(0, plan.retry_count)
        last_error: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            try:
                signature = await channel.send(self._session, raw_tx)
            except NetworkError as e:
                last_error = str(e)
                logger.warning(f"[{channel.name}] attempt {attempt}/{max_attempts} failed: {e}")
            except Exception as e:
                last_error = str(e)
                logger.error(
                    f"[{channel.name}] attempt {attempt}/{max_attempts} raised unexpectedly: {e}",
                    exc_info=True,
                )
            else:
                if self.metrics is not None:
                    self.metrics.record_submission(channel.name, True)
                logger.info(f"[{channel.name}] accepted {signature or expected_signature} (attempt {attempt})")
                return ChannelOutcome(
                    channel=channel.name,
                    success=True,
                    attempts=attempt,
                    signature=signature or expected_signature,
                )

            if self.metrics is not None:
                self.metrics.record_submission(channel.name, False)

        return ChannelOutcome(
            channel=channel.name,
            success=False,
            attempts=max_attempts,
            error=last_error,
        )

    async def submit(self, plan: SubmissionPlan) -> SubmissionResult:
        """
        Broadcast ``plan`` through its channels.

        Raises:
            SubmissionError: If the plan was already submitted, or every channel
                exhausted its retries (``outcomes`` lists each channel)
        """
        plan.consume()
        if self._session is None:
            await self.connect()

        blockhash = self._current_blockhash(plan)
        targets = self.targets_for(plan)

        outcomes = await asyncio.gather(
            *(self._send_with_retries(channel, plan, blockhash) for channel in targets)
        )

        if not any(o.success for o in outcomes):
            raise SubmissionError(
                f"All {len(outcomes)} submission channels failed",
                outcomes=list(outcomes),
                details={"channels": [o.channel for o in outcomes]},
            )

        return SubmissionResult(outcomes=tuple(outcomes))
