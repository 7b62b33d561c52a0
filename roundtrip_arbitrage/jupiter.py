"""
Jupiter aggregator HTTP client.

Provides single-leg quotes, two-leg round-trip quotes and the instruction
set for a merged round-trip route (``/swap-instructions``).
"""

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .constants import SOL_MINT, USDC_MINT, QuoteMode
from .exceptions import NetworkError, QuoteFetchError, ValidationError
from .utils import elapsed_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapInstructions:
    """Instruction set returned for a merged round-trip route."""

    setup_instructions: Tuple[Instruction, ...]
    swap_instruction: Instruction
    lookup_table_addresses: Tuple[str, ...]

    @property
    def instructions(self) -> List[Instruction]:
        return [*self.setup_instructions, self.swap_instruction]


@dataclass(frozen=True)
class QuoteTiming:
    quote_ms: float
    swap_build_ms: float

    @property
    def total_ms(self) -> float:
        return self.quote_ms + self.swap_build_ms


def instruction_from_json(payload: Dict[str, Any]) -> Instruction:
    """
    Convert an API instruction object into a solders Instruction.

    Raises:
        ValidationError: If a required field is missing or malformed
    """
    try:
        accounts = [
            AccountMeta(
                pubkey=Pubkey.from_string(account["pubkey"]),
                is_signer=bool(account["isSigner"]),
                is_writable=bool(account["isWritable"]),
            )
            for account in payload.get("accounts", [])
        ]
        return Instruction(
            program_id=Pubkey.from_string(payload["programId"]),
            data=base64.b64decode(payload.get("data", "")),
            accounts=accounts,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed instruction payload: {e}", details={"payload": payload})


def merge_round_trip(leg1: Dict[str, Any], leg2: Dict[str, Any], min_out_raw: int) -> Dict[str, Any]:
    """
    Merge two legs into one quote that starts and ends in the mother asset.

    ``otherAmountThreshold`` carries the minimum acceptable output so the
    swap program reverts unless the round trip clears it.
    """
    merged = dict(leg1)
    merged["outputMint"] = leg2["outputMint"]
    merged["outAmount"] = leg2["outAmount"]
    merged["otherAmountThreshold"] = str(min_out_raw)
    merged["routePlan"] = list(leg1.get("routePlan", [])) + list(leg2.get("routePlan", []))
    merged["priceImpactPct"] = "0"
    merged["slippageBps"] = 0
    return merged


class JupiterClient:
    """
    Quoting and instruction-building collaborator.

    Args:
        base_url: API root, e.g. ``https://lite-api.jup.ag/swap/v1``
        api_key: Optional API key sent as ``x-api-key``
        slippage_bps: Slippage passed to every quote
        max_accounts: Account budget for size-aware quotes
        timeout_seconds: Total aiohttp timeout per request
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        slippage_bps: int = 50,
        max_accounts: int = 64,
        timeout_seconds: float = 8.0,
        user_public_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.slippage_bps = slippage_bps
        self.max_accounts = max_accounts
        self.user_public_key = user_public_key
        self._timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            headers = {"x-api-key": self.api_key} if self.api_key else None
            self._session = aiohttp.ClientSession(timeout=timeout, headers=headers)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _quote_params(self, input_mint: str, output_mint: str, amount: int, mode: QuoteMode) -> Dict[str, str]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(self.slippage_bps),
        }
        if mode is QuoteMode.SIZE_AWARE:
            # Large sizes need the full route search
            params["restrictIntermediateTokens"] = "false"
            params["maxAccounts"] = str(self.max_accounts)
        else:
            params["restrictIntermediateTokens"] = "true"
        return params

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        mode: QuoteMode = QuoteMode.REGULAR,
    ) -> Dict[str, Any]:
        """
        Fetch one quote.

        Raises:
            QuoteFetchError: On transport failure, error status or a response
                without ``outAmount``
        """
        if self._session is None:
            await self.connect()

        endpoint = f"{self.base_url}/quote"
        params = self._quote_params(input_mint, output_mint, amount, mode)

        try:
            async with self._session.get(endpoint, params=params) as response:
                status = response.status
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    raise QuoteFetchError(
                        f"Quote returned a non-JSON body: status={status}",
                        input_mint=input_mint,
                        output_mint=output_mint,
                        amount=amount,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise QuoteFetchError(
                f"Quote request failed: {e}",
                input_mint=input_mint,
                output_mint=output_mint,
                amount=amount,
            )

        if status >= 400:
            raise QuoteFetchError(
                f"Quote failed: status={status}",
                input_mint=input_mint,
                output_mint=output_mint,
                amount=amount,
                details={"status": status, "body": data},
            )

        if not isinstance(data, dict) or "outAmount" not in data:
            raise QuoteFetchError(
                f"Unexpected quote response: {data}",
                input_mint=input_mint,
                output_mint=output_mint,
                amount=amount,
            )

        return data

    async def quote_round_trip(
        self,
        input_mint: str,
        target_mint: str,
        amount: int,
        mode: QuoteMode = QuoteMode.REGULAR,
    ) -> Tuple[int, int, Dict[str, Any], Dict[str, Any]]:
        """
        Quote mother -> target for ``amount`` and target -> mother for the first leg's output.

        Returns:
            Tuple of (in_amount, out_amount, leg1, leg2) in mother raw units
        """
        leg1 = await self.quote(input_mint, target_mint, amount, mode)
        intermediate = int(leg1["outAmount"])
        if intermediate <= 0:
            raise QuoteFetchError(
                "First leg produced no output",
                input_mint=input_mint,
                output_mint=target_mint,
                amount=amount,
            )
        leg2 = await self.quote(target_mint, input_mint, intermediate, mode)
        return int(leg1.get("inAmount", amount)), int(leg2["outAmount"]), leg1, leg2

    async def build_swap_instructions(
        self,
        leg1: Dict[str, Any],
        leg2: Dict[str, Any],
        min_out_raw: int,
        user_public_key: Optional[str] = None,
    ) -> SwapInstructions:
        """
        Build the instruction set for a merged round trip.

        Raises:
            NetworkError: On transport failure or error status
            ValidationError: If the response lacks a swap instruction
        """
        if self._session is None:
            await self.connect()

        payer = user_public_key or self.user_public_key
        if not payer:
            raise ValidationError("A user public key is required to build swap instructions")

        endpoint = f"{self.base_url}/swap-instructions"
        body = {
            "quoteResponse": merge_round_trip(leg1, leg2, min_out_raw),
            "userPublicKey": str(payer),
            "wrapAndUnwrapSol": True,
            "useSharedAccounts": False,
            "dynamicComputeUnitLimit": False,
            "skipUserAccountsRpcCalls": True,
        }

        try:
            async with self._session.post(endpoint, json=body) as response:
                status = response.status
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    raise NetworkError(
                        f"swap-instructions returned a non-JSON body: status={status}",
                        endpoint=endpoint,
                        status_code=status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"swap-instructions request failed: {e}", endpoint=endpoint)

        if status >= 400:
            raise NetworkError(
                f"swap-instructions failed: status={status}",
                endpoint=endpoint,
                status_code=status,
                details={"body": data},
            )

        if not isinstance(data, dict) or data.get("error") or "swapInstruction" not in data:
            raise ValidationError(f"Unexpected swap-instructions response: {data}")

        return SwapInstructions(
            setup_instructions=tuple(
                instruction_from_json(ix) for ix in data.get("setupInstructions") or []
            ),
            swap_instruction=instruction_from_json(data["swapInstruction"]),
            lookup_table_addresses=tuple(data.get("addressLookupTableAddresses") or []),
        )

    async def measure_quote_timing(self, amount: int = 100_000_000) -> QuoteTiming:
        """Time one SOL/USDC round-trip quote and one instruction build."""
        start = time.perf_counter()
        _in_amount, out_amount, leg1, leg2 = await self.quote_round_trip(SOL_MINT, USDC_MINT, amount)
        quote_ms = elapsed_ms(start)

        start = time.perf_counter()
        await self.build_swap_instructions(leg1, leg2, out_amount)
        swap_build_ms = elapsed_ms(start)

        return QuoteTiming(quote_ms=quote_ms, swap_build_ms=swap_build_ms)
