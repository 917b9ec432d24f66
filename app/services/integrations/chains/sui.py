"""Sui chain adapter.

Signatures follow Sui's personal-message scheme: the wallet signs
blake2b-256(intent || bcs(message)) and serializes `flag || signature || pubkey`
as base64. Share balances come from the indexed `trades` table, which the trade
sync job keeps current from `shares_trading::Trade` events.
"""

import base64
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Optional, Tuple

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from app.backend.abstract import AbstractBackend
from app.backend.models import TradeFilter
from app.lib.logger import configure_logger
from app.lib.utils import is_hex_address, normalize_address

from .base import ChainAdapter, retry_on_unreachable
from .errors import (
    ChainUnreachableError,
    InvalidAddressError,
    StaleIndexError,
    UnknownSubjectError,
)
from .models import ShareBalance, TradeBatch, TradeEvent

logger = configure_logger(__name__)

# IntentScope::PersonalMessage, IntentVersion::V0, AppId::Sui
PERSONAL_MESSAGE_INTENT = bytes([3, 0, 0])

ED25519_FLAG = 0x00
SECP256K1_FLAG = 0x01
SECP256R1_FLAG = 0x02

# flag -> public key length in bytes
_PUBLIC_KEY_LENGTHS: Dict[int, int] = {
    ED25519_FLAG: 32,
    SECP256K1_FLAG: 33,
    SECP256R1_FLAG: 33,
}
_ECDSA_CURVES = {
    SECP256K1_FLAG: ec.SECP256K1,
    SECP256R1_FLAG: ec.SECP256R1,
}
SIGNATURE_LENGTH = 64
ZERO_DIGEST = "0" * 64


def _uleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def personal_message_digest(message: bytes) -> bytes:
    """Digest a wallet signs for `signPersonalMessage(message)`."""
    payload = PERSONAL_MESSAGE_INTENT + _uleb128(len(message)) + message
    return hashlib.blake2b(payload, digest_size=32).digest()


def derive_address(flag: int, public_key: bytes) -> str:
    """Sui address (storage form) of a public key under the given scheme flag."""
    return hashlib.blake2b(bytes([flag]) + public_key, digest_size=32).hexdigest()


def _split_serialized_signature(signature: str) -> Optional[Tuple[int, bytes, bytes]]:
    try:
        raw = base64.b64decode(signature, validate=True)
    except (ValueError, TypeError):
        return None
    if not raw:
        return None
    flag = raw[0]
    key_length = _PUBLIC_KEY_LENGTHS.get(flag)
    if key_length is None or len(raw) != 1 + SIGNATURE_LENGTH + key_length:
        return None
    return flag, raw[1 : 1 + SIGNATURE_LENGTH], raw[1 + SIGNATURE_LENGTH :]


def _parse_cursor(metadata: Optional[str]) -> Optional[Dict[str, Any]]:
    """Turn stored sync metadata back into a suix_queryEvents cursor."""
    if not metadata:
        return None
    value = metadata.strip()
    if value.startswith("{"):
        try:
            cursor = json.loads(value)
        except json.JSONDecodeError:
            cursor = None
        if isinstance(cursor, dict) and "txDigest" in cursor and "eventSeq" in cursor:
            return cursor
        logger.warning("Ignoring malformed sui cursor", extra={"metadata": metadata})
        return None
    # Bare event sequence numbers are accepted for cursors written by hand
    return {"txDigest": ZERO_DIGEST, "eventSeq": value}


class SuiChainAdapter(ChainAdapter):
    chain_type: ClassVar[str] = "sui"

    def __init__(
        self,
        rpc_url: str,
        package_id: str,
        backend: AbstractBackend,
        timeout_seconds: float = 8.0,
        retry_delay: float = 0.5,
        event_page_size: int = 100,
        max_sync_lag_seconds: int = 600,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, retry_delay=retry_delay)
        self.rpc_url = rpc_url
        self.package_id = package_id
        self.backend = backend
        self.event_page_size = event_page_size
        self.max_sync_lag_seconds = max_sync_lag_seconds
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        logger.info(
            "Sui adapter initialized",
            extra={"rpc_url": rpc_url, "package_id": package_id},
        )

    @property
    def event_type(self) -> str:
        return f"{self.package_id}::shares_trading::Trade"

    def verify_signature(
        self, message: str, signature: str, claimed_address: str
    ) -> bool:
        if not is_hex_address(claimed_address, length=32):
            return False
        parts = _split_serialized_signature(signature or "")
        if parts is None:
            logger.debug("Rejected malformed sui signature")
            return False
        flag, raw_signature, public_key = parts

        if derive_address(flag, public_key) != normalize_address(claimed_address):
            return False

        digest = personal_message_digest(message.encode("utf-8"))
        try:
            if flag == ED25519_FLAG:
                Ed25519PublicKey.from_public_bytes(public_key).verify(
                    raw_signature, digest
                )
            else:
                key = ec.EllipticCurvePublicKey.from_encoded_point(
                    _ECDSA_CURVES[flag](), public_key
                )
                r = int.from_bytes(raw_signature[:32], "big")
                s = int.from_bytes(raw_signature[32:], "big")
                key.verify(
                    encode_dss_signature(r, s), digest, ec.ECDSA(hashes.SHA256())
                )
        except (InvalidSignature, ValueError) as e:
            logger.debug(
                "Sui signature verification failed",
                extra={"flag": flag, "error": str(e) or type(e).__name__},
            )
            return False
        return True

    def _ensure_index_fresh(self) -> None:
        status = self.backend.get_sync_status(self.chain_type)
        if status is None:
            raise StaleIndexError("Sui trades have never been synced")
        if not self.max_sync_lag_seconds:
            return
        updated_at = status.updated_at
        if updated_at is None:
            raise StaleIndexError("Sui sync status has no timestamp")
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        lag = (self._clock() - updated_at).total_seconds()
        if lag > self.max_sync_lag_seconds:
            raise StaleIndexError(
                f"Sui trade index is {int(lag)}s behind (max {self.max_sync_lag_seconds}s)"
            )

    async def get_share_balance(
        self, user_address: str, subject_address: str
    ) -> ShareBalance:
        for address in (user_address, subject_address):
            if not is_hex_address(address, length=32):
                raise InvalidAddressError(f"Not a Sui address: {address!r}")
        user = normalize_address(user_address)
        subject = normalize_address(subject_address)

        self._ensure_index_fresh()

        holding = self.backend.get_trade(user, subject, self.chain_type)
        if holding is None:
            known = self.backend.list_trades(
                TradeFilter(subject=subject, chain_type=self.chain_type)
            )
            if not known:
                raise UnknownSubjectError(f"No trades indexed for subject {subject}")
            amount = 0
        else:
            amount = holding.share_amount

        return ShareBalance(
            user_address=user,
            subject_address=subject,
            chain_type=self.chain_type,
            shares_amount=amount,
        )

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            response = await self._with_timeout(
                self.client.post(self.rpc_url, json=payload), method
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise ChainUnreachableError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise ChainUnreachableError(f"{method} returned invalid JSON") from e

        if body.get("error"):
            raise ChainUnreachableError(f"{method} returned error: {body['error']}")
        if "result" not in body:
            raise ChainUnreachableError(f"{method} returned no result")
        return body["result"]

    @retry_on_unreachable
    async def fetch_trades(
        self, last_synced_block: int, metadata: Optional[str] = None
    ) -> TradeBatch:
        cursor = _parse_cursor(metadata)
        page = await self._rpc(
            "suix_queryEvents",
            [{"MoveEventType": self.event_type}, cursor, self.event_page_size, False],
        )

        events = []
        last_timestamp = last_synced_block
        for item in page.get("data") or []:
            parsed = item.get("parsedJson") or {}
            try:
                events.append(
                    TradeEvent(
                        trader=normalize_address(parsed["trader"]),
                        subject=normalize_address(parsed["subject"]),
                        is_buy=bool(parsed["is_buy"]),
                        share_amount=int(parsed["amount"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping malformed sui trade event",
                    extra={"event_id": item.get("id"), "error": str(e)},
                )
                continue
            if item.get("timestampMs"):
                last_timestamp = max(last_timestamp, int(item["timestampMs"]))

        next_cursor = page.get("nextCursor")
        new_metadata = json.dumps(next_cursor) if next_cursor else metadata

        logger.info(
            "Fetched sui trade events",
            extra={
                "event_count": len(events),
                "has_next_page": bool(page.get("hasNextPage")),
            },
        )
        return TradeBatch(
            events=events,
            last_synced_block=last_timestamp,
            metadata=new_metadata,
            has_more=bool(page.get("hasNextPage")),
        )

    async def close(self) -> None:
        await self.client.aclose()
