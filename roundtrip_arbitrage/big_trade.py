"""
Large-flow detection on streamed ledger transactions.

A streamed transaction becomes a :class:`BigTradeEvent` when one of the
watched assets moved by more than its configured threshold, at least one
other asset moved too, and the transaction invoked a recognized DEX program.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import LAMPORTS_PER_SOL, RECOGNIZED_PROGRAMS, SOL_MINT, lookup_token, token_symbol
from .utils import format_log_timestamp

logger = logging.getLogger(__name__)

# Native changes below this are rent, tips or fees rather than a swap leg
NATIVE_DUST_LAMPORTS = 10_000_000


@dataclass(frozen=True)
class BalanceDelta:
    mint: str
    pre: float
    post: float
    delta: float


@dataclass(frozen=True)
class BigTradeEvent:
    """A large flow in a watched asset, with the mother's policy knobs attached."""

    tx_id: str
    mother_mint: str
    symbol: str
    decimals: int
    balance_deltas: Tuple[BalanceDelta, ...]
    timestamp: float
    programs: Tuple[str, ...]
    program_ids: Tuple[str, ...]
    target_tokens: Tuple[str, ...]
    amount_range: Tuple[float, float]
    steps: int
    min_profit: float
    extended_amount_range: Optional[Tuple[float, float]] = None

    @property
    def mother_delta(self) -> float:
        return sum(abs(d.delta) for d in self.balance_deltas if d.mint == self.mother_mint)


def unwrap_transaction_update(message: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize a stream message into ``{signature, slot, transaction, meta}``.

    Returns None for anything that is not a transaction notification
    (subscription acks, pings, account updates).
    """
    if not isinstance(message, dict) or message.get("method") != "transactionNotification":
        return None

    result = (message.get("params") or {}).get("result") or {}
    wrapper = result.get("transaction") or {}
    transaction = wrapper.get("transaction")
    meta = wrapper.get("meta")
    if not isinstance(transaction, dict) or not isinstance(meta, dict):
        return None

    signature = result.get("signature")
    if not signature:
        signatures = transaction.get("signatures") or []
        signature = signatures[0] if signatures else ""

    return {
        "signature": signature,
        "slot": result.get("slot"),
        "transaction": transaction,
        "meta": meta,
    }


def _account_keys(transaction: Dict[str, Any]) -> List[str]:
    keys = (transaction.get("message") or {}).get("accountKeys") or []
    return [k.get("pubkey", "") if isinstance(k, dict) else str(k) for k in keys]


def _program_id(instruction: Dict[str, Any], account_keys: List[str]) -> Optional[str]:
    if instruction.get("programId"):
        return instruction["programId"]
    index = instruction.get("programIdIndex")
    if isinstance(index, int) and 0 <= index < len(account_keys):
        return account_keys[index]
    return None


def invoked_programs(transaction: Dict[str, Any], meta: Dict[str, Any]) -> List[str]:
    """Program ids of top-level and inner instructions, first occurrence order."""
    account_keys = _account_keys(transaction)
    instructions = list((transaction.get("message") or {}).get("instructions") or [])
    for inner in meta.get("innerInstructions") or []:
        instructions.extend(inner.get("instructions") or [])

    programs: List[str] = []
    for instruction in instructions:
        program_id = _program_id(instruction, account_keys)
        if program_id and program_id not in programs:
            programs.append(program_id)
    return programs


def _ui_amount(entry: Dict[str, Any]) -> Tuple[float, int]:
    token_amount = entry.get("uiTokenAmount") or {}
    decimals = int(token_amount.get("decimals") or 0)
    ui_amount = token_amount.get("uiAmount")
    if ui_amount is None:
        ui_amount = int(token_amount.get("amount") or 0) / (10 ** decimals)
    return float(ui_amount), decimals


def _native_lamport_change(meta: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    """Fee payer lamports before and after, fee excluded; None below the dust level."""
    pre_balances = meta.get("preBalances") or []
    post_balances = meta.get("postBalances") or []
    if not pre_balances or not post_balances:
        return None
    pre = int(pre_balances[0])
    post = int(post_balances[0]) + int(meta.get("fee") or 0)
    if abs(post - pre) < NATIVE_DUST_LAMPORTS:
        return None
    return pre, post


def token_balance_deltas(
    transaction: Dict[str, Any], meta: Dict[str, Any]
) -> Tuple[List[BalanceDelta], Dict[str, int]]:
    """
    Per-mint balance change of the fee payer's token accounts.

    Entries without owner information are counted as well. Accounts present
    only on one side are treated as zero on the other. The fee payer's native
    lamport change, with the transaction fee added back, is folded into the
    wrapped SOL mint.

    Returns:
        Tuple of (deltas in first-seen mint order, observed decimals per mint)
    """
    account_keys = _account_keys(transaction)
    fee_payer = account_keys[0] if account_keys else None

    pre_totals: Dict[str, float] = {}
    post_totals: Dict[str, float] = {}
    decimals: Dict[str, int] = {}
    order: List[str] = []

    for totals, entries in (
        (pre_totals, meta.get("preTokenBalances") or []),
        (post_totals, meta.get("postTokenBalances") or []),
    ):
        for entry in entries:
            owner = entry.get("owner")
            if owner and fee_payer and owner != fee_payer:
                continue
            mint = entry.get("mint")
            if not mint:
                continue
            amount, mint_decimals = _ui_amount(entry)
            totals[mint] = totals.get(mint, 0.0) + amount
            decimals.setdefault(mint, mint_decimals)
            if mint not in order:
                order.append(mint)

    native = _native_lamport_change(meta)
    if native is not None:
        pre_lamports, post_lamports = native
        pre_totals[SOL_MINT] = pre_totals.get(SOL_MINT, 0.0) + pre_lamports / LAMPORTS_PER_SOL
        post_totals[SOL_MINT] = post_totals.get(SOL_MINT, 0.0) + post_lamports / LAMPORTS_PER_SOL
        decimals.setdefault(SOL_MINT, 9)
        if SOL_MINT not in order:
            order.append(SOL_MINT)

    deltas = []
    for mint in order:
        pre = pre_totals.get(mint, 0.0)
        post = post_totals.get(mint, 0.0)
        deltas.append(BalanceDelta(mint=mint, pre=pre, post=post, delta=post - pre))
    return deltas, decimals


def extract_big_trade(update: Dict[str, Any], watch_tokens: Mapping[str, Any]) -> Optional[BigTradeEvent]:
    """
    Turn a normalized transaction update into a BigTradeEvent.

    Args:
        update: Output of :func:`unwrap_transaction_update`
        watch_tokens: Watched mint -> :class:`WatchToken`

    Returns:
        The event, or None when the transaction failed, no watched asset
        cleared its threshold, nothing else changed, or no recognized program
        was invoked
    """
    transaction = update["transaction"]
    meta = update["meta"]
    if meta.get("err") is not None:
        return None

    deltas, observed_decimals = token_balance_deltas(transaction, meta)

    mother: Optional[BalanceDelta] = None
    best_ratio = -1.0
    for change in deltas:
        token = watch_tokens.get(change.mint)
        if token is None or abs(change.delta) <= token.flow_threshold:
            continue
        ratio = abs(change.delta) / token.flow_threshold if token.flow_threshold > 0 else float("inf")
        if ratio > best_ratio:
            mother, best_ratio = change, ratio

    if mother is None:
        return None

    targets = tuple(c.mint for c in deltas if c.mint != mother.mint and c.delta != 0)
    if not targets:
        return None

    program_ids = invoked_programs(transaction, meta)
    recognized = [p for p in program_ids if p in RECOGNIZED_PROGRAMS]
    if not recognized:
        return None

    token = watch_tokens[mother.mint]
    meta_info = lookup_token(mother.mint)
    if meta_info is not None:
        symbol, decimals = meta_info.symbol, meta_info.decimals
    else:
        symbol, decimals = "UNKNOWN", observed_decimals.get(mother.mint, 6)

    return BigTradeEvent(
        tx_id=update.get("signature") or "",
        mother_mint=mother.mint,
        symbol=symbol,
        decimals=decimals,
        balance_deltas=tuple(deltas),
        timestamp=time.time(),
        programs=tuple(RECOGNIZED_PROGRAMS[p] for p in recognized),
        program_ids=tuple(program_ids),
        target_tokens=targets,
        amount_range=token.amount_range,
        steps=token.steps,
        min_profit=token.min_profit,
        extended_amount_range=token.extended_amount_range,
    )


def format_discovery_block(event: BigTradeEvent) -> str:
    change_lines = [
        f"    {token_symbol(c.mint)}  delta: {c.delta:+.6f}  pre: {c.pre:.6f}  post: {c.post:.6f}"
        for c in event.balance_deltas
    ]
    lines = [
        f"[{format_log_timestamp()}] [BIG_TRADE_DISCOVERED]",
        f"  tx_id:     {event.tx_id}",
        f"  mother:    {event.symbol} ({event.mother_mint})",
        f"  min_profit: {event.min_profit:.6f}",
        "  changes:",
        *change_lines,
        f"  programs:  {', '.join(event.programs)}",
    ]
    return "\n".join(lines)


class BigTradeTrigger:
    """
    Stream message handler that feeds large flows into the pipeline.

    Args:
        pipeline: :class:`ArbitragePipeline`
        watch_tokens: Watched mint -> :class:`WatchToken`
        audit: Optional big-trade audit sink
        metrics: Optional :class:`ArbitrageMetrics`
    """

    def __init__(self, pipeline, watch_tokens: Mapping[str, Any], audit=None, metrics=None):
        self.pipeline = pipeline
        self.watch_tokens = dict(watch_tokens)
        self.audit = audit
        self.metrics = metrics

    async def handle(self, message: Any):
        """Process one stream message; returns the cycle outcome or None."""
        update = unwrap_transaction_update(message)
        if update is None:
            if self.metrics is not None:
                self.metrics.record_stream_message("other")
            return None

        if self.metrics is not None:
            self.metrics.record_stream_message("transaction")

        event = extract_big_trade(update, self.watch_tokens)
        if event is None:
            return None

        logger.info(
            f"Big trade {event.tx_id[:12]}: {event.symbol} delta={event.mother_delta:.6f} "
            f"programs=[{', '.join(event.programs)}] targets={len(event.target_tokens)}"
        )
        if self.audit is not None:
            self.audit.emit(format_discovery_block(event))
        if self.metrics is not None:
            self.metrics.record_big_trade(event.symbol)

        return await self.pipeline.run_event(event)
