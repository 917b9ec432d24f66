"""Monad (EVM) chain adapter backed by the shares trading contract."""

from typing import Any, ClassVar, Dict, List, Optional

import aiohttp
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, ProviderConnectionError

from app.lib.logger import configure_logger
from app.lib.utils import is_hex_address, normalize_address

from .base import ChainAdapter, retry_on_unreachable
from .errors import ChainUnreachableError, InvalidAddressError, UnknownSubjectError
from .models import ShareBalance, TradeBatch, TradeEvent

logger = configure_logger(__name__)

SIGNATURE_LENGTH = 65

SHARES_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "", "type": "address"},
            {"internalType": "address", "name": "", "type": "address"},
        ],
        "name": "sharesBalance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "", "type": "address"}],
        "name": "sharesSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "name": "trader", "type": "address"},
            {"indexed": False, "name": "subject", "type": "address"},
            {"indexed": False, "name": "isBuy", "type": "bool"},
            {"indexed": False, "name": "shareAmount", "type": "uint256"},
            {"indexed": False, "name": "ethAmount", "type": "uint256"},
            {"indexed": False, "name": "protocolEthAmount", "type": "uint256"},
            {"indexed": False, "name": "subjectEthAmount", "type": "uint256"},
            {"indexed": False, "name": "supply", "type": "uint256"},
        ],
        "name": "Trade",
        "type": "event",
    },
]

# Transport failures reported as ChainUnreachableError
_TRANSPORT_ERRORS = (aiohttp.ClientError, ProviderConnectionError, OSError)


class MonadChainAdapter(ChainAdapter):
    """EVM adapter: personal_sign recovery and live share balances over JSON-RPC."""

    chain_type: ClassVar[str] = "monad"

    def __init__(
        self,
        rpc_url: str,
        shares_contract: str,
        timeout_seconds: float = 8.0,
        retry_delay: float = 0.5,
        block_batch_size: int = 100,
        w3: Optional[AsyncWeb3] = None,
        contract: Any = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, retry_delay=retry_delay)
        self.block_batch_size = block_batch_size
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": timeout_seconds}
            )
        )
        if contract is None:
            contract = self.w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(shares_contract),
                abi=SHARES_ABI,
            )
        self.contract = contract
        logger.info(
            "Monad adapter initialized",
            extra={"rpc_url": rpc_url, "contract": shares_contract},
        )

    def verify_signature(
        self, message: str, signature: str, claimed_address: str
    ) -> bool:
        if not is_hex_address(claimed_address, length=20):
            return False
        try:
            raw = signature[2:] if signature.lower().startswith("0x") else signature
            signature_bytes = bytes.fromhex(raw)
            if len(signature_bytes) != SIGNATURE_LENGTH:
                logger.debug(
                    "Rejected signature with wrong length",
                    extra={"length": len(signature_bytes)},
                )
                return False
            recovered = Account.recover_message(
                encode_defunct(text=message), signature=signature_bytes
            )
        except Exception as e:
            # eth_keys raises a mix of ValueError, BadSignature and TypeError
            logger.debug("Signature recovery failed", extra={"error": str(e)})
            return False
        return normalize_address(recovered) == normalize_address(claimed_address)

    def _checksum(self, address: str) -> str:
        if not is_hex_address(address, length=20):
            raise InvalidAddressError(f"Not an EVM address: {address!r}")
        return AsyncWeb3.to_checksum_address("0x" + normalize_address(address))

    async def _call(self, awaitable, operation: str) -> Any:
        try:
            return await self._with_timeout(awaitable, operation)
        except ContractLogicError as e:
            raise UnknownSubjectError(f"{operation} reverted: {e}") from e
        except _TRANSPORT_ERRORS as e:
            raise ChainUnreachableError(f"{operation} failed: {e}") from e

    async def _current_block(self) -> int:
        return int(await self._call(self.w3.eth.block_number, "eth_blockNumber"))

    @retry_on_unreachable
    async def get_share_balance(
        self, user_address: str, subject_address: str
    ) -> ShareBalance:
        user = self._checksum(user_address)
        subject = self._checksum(subject_address)

        supply = await self._call(
            self.contract.functions.sharesSupply(subject).call(), "sharesSupply"
        )
        if int(supply) == 0:
            raise UnknownSubjectError(f"No share market for subject {subject}")

        amount = await self._call(
            self.contract.functions.sharesBalance(subject, user).call(),
            "sharesBalance",
        )
        logger.debug(
            "Fetched monad share balance",
            extra={"user": user, "subject": subject, "shares_amount": int(amount)},
        )
        return ShareBalance(
            user_address=normalize_address(user),
            subject_address=normalize_address(subject),
            chain_type=self.chain_type,
            shares_amount=int(amount),
        )

    @retry_on_unreachable
    async def fetch_trades(
        self, last_synced_block: int, metadata: Optional[str] = None
    ) -> TradeBatch:
        current_block = await self._current_block()
        from_block = last_synced_block + 1
        if from_block > current_block:
            return TradeBatch(last_synced_block=last_synced_block, metadata=metadata)

        to_block = min(last_synced_block + self.block_batch_size, current_block)
        logs = await self._call(
            self.contract.events.Trade.get_logs(
                from_block=from_block, to_block=to_block
            ),
            "eth_getLogs",
        )

        events = []
        for log in logs:
            args = log["args"]
            events.append(
                TradeEvent(
                    trader=normalize_address(args["trader"]),
                    subject=normalize_address(args["subject"]),
                    is_buy=bool(args["isBuy"]),
                    share_amount=int(args["shareAmount"]),
                )
            )

        logger.info(
            "Fetched monad trade logs",
            extra={
                "from_block": from_block,
                "to_block": to_block,
                "event_count": len(events),
            },
        )
        return TradeBatch(
            events=events,
            last_synced_block=to_block,
            metadata=metadata,
            has_more=to_block < current_block,
        )
