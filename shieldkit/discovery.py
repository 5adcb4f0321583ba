"""
Account discovery by trial decryption.

Every pool operation publishes a `NewAccount` event carrying the new
commitment, its tree index and the account envelope. Envelopes carry no
owner tag, so the only way to find one's own account is to try to decrypt
them: each foreign envelope fails to open (DecryptionFailure), and that
failure is the normal case, not an error.

`discover` scans from the most recent event backwards and stops at the first
envelope that opens; `history` returns every account that opens, newest first.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

import msgspec

from shieldkit.account import Account, DecryptResult
from shieldkit.crypto.envelope import KeyLike, encryption_public_key
from shieldkit.crypto.field import parse_hex, to_int
from shieldkit.errors import EncodingError
from shieldkit.logging import get_logger

log = get_logger(__name__)


class NewAccountEvent(msgspec.Struct, frozen=True):
    """One `NewAccount(commitment, index, encryptedAccount)` log entry."""

    index: int
    commitment: int
    encrypted_account: bytes
    block_number: int = 0
    tx_hash: bytes = b""

    @classmethod
    def from_log(cls, entry: Mapping[str, Any]) -> "NewAccountEvent":
        """
        Build from a web3-style event dict (`returnValues` + `blockNumber` +
        `transactionHash`) or from a flat dict with the same field names.
        """
        values = entry.get("returnValues") or entry.get("args") or entry
        try:
            encrypted = values["encryptedAccount"] if "encryptedAccount" in values else values["encrypted_account"]
            tx = entry.get("transactionHash", entry.get("tx_hash", b""))
            return cls(
                index=int(to_int(values["index"])),
                commitment=to_int(values["commitment"]),
                encrypted_account=parse_hex(encrypted) if isinstance(encrypted, str) else bytes(encrypted),
                block_number=int(to_int(entry.get("blockNumber", entry.get("block_number", 0)))),
                tx_hash=parse_hex(tx) if isinstance(tx, str) else bytes(tx or b""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise EncodingError("malformed NewAccount event").with_cause(e) from e

    @property
    def recency(self) -> tuple:
        return (self.block_number, self.index)


def by_recency(events: Iterable[NewAccountEvent]) -> List[NewAccountEvent]:
    """Newest first: block number, then tree index, descending."""
    return sorted(events, key=lambda e: e.recency, reverse=True)


class AccountDiscovery:
    def __init__(
        self,
        private_key: KeyLike,
        verify_commitment: bool = False,
    ) -> None:
        # validates the key once so a bad key is not mistaken for "no account"
        encryption_public_key(private_key)
        self._key = private_key
        self.verify_commitment = verify_commitment

    def _open(self, event: NewAccountEvent) -> DecryptResult:
        res = Account.try_decrypt(self._key, event.encrypted_account, event.index)
        if res and self.verify_commitment and res.account.commitment != event.commitment:
            log.debug("decrypted account does not match commitment", extra={"index": event.index})
            return DecryptResult(ok=False)
        return res

    def discover(self, events: Iterable[NewAccountEvent]) -> Optional[Account]:
        """Most recent account addressed to this key, or None."""
        tried = 0
        for event in by_recency(events):
            tried += 1
            res = self._open(event)
            if res:
                log.info("account found", extra={"index": event.index, "tried": tried})
                return res.account
        log.info("no account found", extra={"tried": tried})
        return None

    def history(self, events: Iterable[NewAccountEvent]) -> List[Account]:
        """Every account addressed to this key, newest first."""
        found = [res.account for res in map(self._open, by_recency(events)) if res]
        log.info("account history scanned", extra={"found": len(found)})
        return found


def discover_account(
    private_key: KeyLike,
    events: Iterable[NewAccountEvent],
    verify_commitment: bool = False,
) -> Optional[Account]:
    return AccountDiscovery(private_key, verify_commitment).discover(events)


def discover_account_history(
    private_key: KeyLike,
    events: Iterable[NewAccountEvent],
    verify_commitment: bool = False,
) -> List[Account]:
    return AccountDiscovery(private_key, verify_commitment).history(events)


__all__ = [
    "NewAccountEvent",
    "AccountDiscovery",
    "by_recency",
    "discover_account",
    "discover_account_history",
]
