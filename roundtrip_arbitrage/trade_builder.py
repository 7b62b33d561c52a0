"""
Transaction assembly for a selected opportunity.

Fetches the merged round-trip instruction set, anchors it to the durable
nonce and signs it once to learn the transaction id before submission.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import AdvanceNonceAccountParams, advance_nonce_account
from solders.transaction import VersionedTransaction

from .evaluator import Opportunity
from .exceptions import BuildError, NetworkError, ValidationError

logger = logging.getLogger(__name__)


def build_advance_nonce_instruction(nonce_account: Pubkey, authority: Pubkey) -> Instruction:
    return advance_nonce_account(
        AdvanceNonceAccountParams(nonce_pubkey=nonce_account, authorized_pubkey=authority)
    )


def sign_transaction(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    lookup_tables: Sequence[AddressLookupTableAccount],
    blockhash: Hash,
    signers: Sequence[Keypair],
) -> VersionedTransaction:
    """Compile a v0 message against the lookup tables and sign it."""
    message = MessageV0.try_compile(payer, list(instructions), list(lookup_tables), blockhash)
    return VersionedTransaction(message, list(signers))


def transaction_id(tx: VersionedTransaction) -> str:
    return str(tx.signatures[0])


@dataclass(frozen=True)
class BuiltTrade:
    """Assembled, nonce-anchored instruction set for one opportunity."""

    opportunity: Opportunity
    advance_nonce_instruction: Instruction
    swap_instructions: Tuple[Instruction, ...]
    lookup_tables: Tuple[AddressLookupTableAccount, ...]
    blockhash: Hash
    tx_id: str
    min_out_raw: int


class TradeBuilder:
    """
    Turns an opportunity into a signed, nonce-anchored transaction.

    Args:
        swap_api: Instruction-building collaborator (``build_swap_instructions``)
        lookup_tables: Collaborator exposing ``fetch_lookup_tables(addresses)``
        nonce_cache: Collaborator exposing ``get()`` returning a nonce snapshot or None
        payer: Signer keypair, also the nonce authority
        nonce_account: Durable nonce account address
        extra_signers: Additional signers, if any
    """

    def __init__(
        self,
        swap_api,
        lookup_tables,
        nonce_cache,
        payer: Keypair,
        nonce_account: str,
        extra_signers: Optional[Sequence[Keypair]] = None,
    ):
        self.swap_api = swap_api
        self.lookup_tables = lookup_tables
        self.nonce_cache = nonce_cache
        self.payer = payer
        self.nonce_account = Pubkey.from_string(str(nonce_account))
        self.signers: List[Keypair] = [payer, *(extra_signers or [])]

    async def build(self, opportunity: Opportunity, min_profit_raw: int) -> BuiltTrade:
        """
        Assemble the transaction for ``opportunity``.

        The swap program enforces ``in_amount + min_profit_raw`` as the
        minimum round-trip output.

        Raises:
            BuildError: No viable route, no nonce state yet, or a collaborator failure
        """
        quote = opportunity.quote
        min_out_raw = quote.in_amount + min_profit_raw
        payer_pubkey = self.payer.pubkey()

        try:
            swap = await self.swap_api.build_swap_instructions(
                quote.leg1, quote.leg2, min_out_raw, str(payer_pubkey)
            )
        except (NetworkError, ValidationError) as e:
            raise BuildError(f"Failed to build swap instructions: {e}", details=e.details)

        snapshot = self.nonce_cache.get()
        if snapshot is None:
            raise BuildError("Nonce state not loaded yet")

        try:
            tables = await self.lookup_tables.fetch_lookup_tables(list(swap.lookup_table_addresses))
        except NetworkError as e:
            raise BuildError(f"Failed to fetch lookup tables: {e}", details=e.details)

        advance_ix = build_advance_nonce_instruction(self.nonce_account, payer_pubkey)
        swap_instructions = tuple(swap.instructions)

        try:
            tx = sign_transaction(
                payer_pubkey,
                [advance_ix, *swap_instructions],
                tables,
                snapshot.blockhash,
                self.signers,
            )
        except Exception as e:
            raise BuildError(f"Failed to compile transaction: {e}")

        tx_id = transaction_id(tx)
        logger.debug(
            f"Built trade {tx_id}: {len(swap_instructions)} swap instructions, "
            f"{len(tables)} lookup tables, min_out={min_out_raw}"
        )

        return BuiltTrade(
            opportunity=opportunity,
            advance_nonce_instruction=advance_ix,
            swap_instructions=swap_instructions,
            lookup_tables=tuple(tables),
            blockhash=snapshot.blockhash,
            tx_id=tx_id,
            min_out_raw=min_out_raw,
        )
