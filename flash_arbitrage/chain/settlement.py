"""
Signed-transaction client for the settlement contract.

Builds executeArbitrage calls, signs them with a local account and broadcasts
them through a Web3 provider. Web3's HTTP provider is synchronous, so every
RPC round trip runs in a worker thread to keep the event loop responsive.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.logs import DISCARD

from ..exceptions import SettlementError, SubmissionError
from ..opportunity_math import from_base_units, to_base_units
from ..types import Confirmation, ExecutionRequest, SubmissionReceipt
from .abis import ARBITRAGE_ABI

logger = logging.getLogger(__name__)

# one empty calldata blob per venue; routing is resolved by the contract
EMPTY_SWAP_DATA = b""

# submissions whose receipt was never requested are dropped oldest first
MAX_TRACKED_SUBMISSIONS = 256


class Web3SettlementClient:
    """SettlementClient backed by a deployed flash-arbitrage contract."""

    def __init__(
        self,
        web3: Web3,
        contract_address: str,
        account: LocalAccount,
        venue_routers: Mapping[str, str],
        quote_asset: str,
        token_decimals: Optional[Mapping[str, int]] = None,
        chain_id: Optional[int] = None,
        receipt_timeout_sec: float = 120.0,
    ):
        """
        Args:
            web3: Connected Web3 instance
            contract_address: Settlement contract address
            account: Signing identity
            venue_routers: Venue name -> router address
            quote_asset: Counter asset passed as tokenB
            token_decimals: Token symbol -> decimals; 18 when missing
            chain_id: Chain id for replay protection; read from the node if None
            receipt_timeout_sec: How long to wait for a receipt
        """
        self.web3 = web3
        self.account = account
        self.contract = web3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=ARBITRAGE_ABI
        )
        self.venue_routers = {
            venue: Web3.to_checksum_address(router)
            for venue, router in venue_routers.items()
        }
        self.quote_asset = Web3.to_checksum_address(quote_asset)
        self.token_decimals = dict(token_decimals or {})
        self.chain_id = chain_id
        self.receipt_timeout_sec = receipt_timeout_sec
        self._submitted_decimals: Dict[str, int] = {}

    def _decimals(self, token: str) -> int:
        return self.token_decimals.get(token, 18)

    def _routers_for(self, request: ExecutionRequest) -> List[str]:
        missing = [v for v in request.venues if v not in self.venue_routers]
        if missing:
            raise SubmissionError(
                f"No router configured for venue(s): {', '.join(missing)}",
                opportunity_id=request.opportunity_id,
            )
        return [self.venue_routers[v] for v in request.venues]

    def _tx_params(self, gas: int, gas_price_wei: int) -> Dict[str, Any]:
        return {
            "from": self.account.address,
            "gas": gas,
            "gasPrice": gas_price_wei,
            "nonce": self.web3.eth.get_transaction_count(self.account.address, "pending"),
            "chainId": self.chain_id or self.web3.eth.chain_id,
        }

    def _sign_and_send(self, tx: Dict[str, Any]) -> str:
        signed = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return self.web3.to_hex(tx_hash)

    def _submit_sync(self, request: ExecutionRequest) -> str:
        decimals = self._decimals(request.token)
        asset = Web3.to_checksum_address(request.asset)
        amount = to_base_units(request.amount, decimals)
        params = (
            asset,
            self.quote_asset,
            amount,
            self._routers_for(request),
            [EMPTY_SWAP_DATA for _ in request.venues],
            to_base_units(max(request.min_profit, Decimal("0")), decimals),
        )
        tx = self.contract.functions.executeArbitrage(
            asset, amount, params
        ).build_transaction(self._tx_params(request.gas_limit, request.gas_price_wei))
        return self._sign_and_send(tx)

    async def submit(self, request: ExecutionRequest, actor: str) -> SubmissionReceipt:
        """Sign and broadcast; raises SubmissionError if no hash was obtained."""
        if actor.lower() != self.account.address.lower():
            raise SubmissionError(
                f"Actor {actor} does not match signer {self.account.address}",
                opportunity_id=request.opportunity_id,
            )
        try:
            tx_hash = await asyncio.to_thread(self._submit_sync, request)
        except SubmissionError:
            raise
        except (Web3Exception, ValueError, OSError) as e:
            raise SubmissionError(
                f"Failed to submit executeArbitrage: {e}",
                opportunity_id=request.opportunity_id,
            ) from e

        self._submitted_decimals[tx_hash] = self._decimals(request.token)
        while len(self._submitted_decimals) > MAX_TRACKED_SUBMISSIONS:
            del self._submitted_decimals[next(iter(self._submitted_decimals))]
        logger.info(
            f"TX_BROADCAST: {{'opportunity_id': '{request.opportunity_id}', "
            f"'tx_hash': '{tx_hash}', 'venues': {list(request.venues)}}}"
        )
        return SubmissionReceipt(tx_ref=tx_hash, accepted=True)

    def _reported_profit(self, receipt, token_decimals: int) -> Optional[Decimal]:
        events = self.contract.events.ArbitrageExecuted().process_receipt(
            receipt, errors=DISCARD
        )
        if not events:
            return None
        return from_base_units(events[-1]["args"]["profit"], token_decimals)

    async def await_confirmation(self, tx_ref: str) -> Confirmation:
        """Wait for the receipt; raises SettlementError on timeout or RPC failure."""
        # profit is denominated in the flash-loan asset of the submission
        decimals = self._submitted_decimals.pop(tx_ref, 18)
        try:
            receipt = await asyncio.to_thread(
                self.web3.eth.wait_for_transaction_receipt,
                tx_ref,
                timeout=self.receipt_timeout_sec,
            )
        except TimeExhausted as e:
            raise SettlementError(
                f"No receipt for {tx_ref} after {self.receipt_timeout_sec}s",
                tx_ref=tx_ref,
            ) from e
        except (Web3Exception, ValueError, OSError) as e:
            raise SettlementError(
                f"Failed to fetch receipt for {tx_ref}: {e}", tx_ref=tx_ref
            ) from e

        succeeded = receipt["status"] == 1
        profit = self._reported_profit(receipt, decimals) if succeeded else None
        return Confirmation(
            tx_ref=tx_ref,
            succeeded=succeeded,
            gas_used=int(receipt["gasUsed"]),
            effective_gas_price_wei=int(receipt.get("effectiveGasPrice") or 0),
            block_number=receipt.get("blockNumber"),
            profit=profit,
        )

    # === CONTRACT ADMINISTRATION ===

    async def get_balance(self, token_address: str, decimals: int = 18) -> Decimal:
        """Contract-held balance of a token, in token units."""
        raw = await asyncio.to_thread(
            self.contract.functions.getBalance(
                Web3.to_checksum_address(token_address)
            ).call
        )
        return from_base_units(raw, decimals)

    async def _send_admin(self, fn_name: str, fn, gas: int = 150_000) -> str:
        def send() -> str:
            tx = fn.build_transaction(self._tx_params(gas, self.web3.eth.gas_price))
            tx_hash = self._sign_and_send(tx)
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout_sec
            )
            if receipt["status"] != 1:
                raise SettlementError(f"{fn_name} reverted", tx_ref=tx_hash)
            return tx_hash

        try:
            tx_hash = await asyncio.to_thread(send)
        except SettlementError:
            raise
        except (Web3Exception, ValueError, OSError) as e:
            raise SettlementError(f"{fn_name} failed: {e}") from e
        logger.info(f"ADMIN_TX: {{'call': '{fn_name}', 'tx_hash': '{tx_hash}'}}")
        return tx_hash

    async def withdraw_profits(
        self, token_address: str, amount: Decimal, decimals: int = 18
    ) -> str:
        fn = self.contract.functions.withdrawProfits(
            Web3.to_checksum_address(token_address), to_base_units(amount, decimals)
        )
        return await self._send_admin("withdrawProfits", fn)

    async def pause(self) -> str:
        return await self._send_admin("pause", self.contract.functions.pause())

    async def unpause(self) -> str:
        return await self._send_admin("unpause", self.contract.functions.unpause())
