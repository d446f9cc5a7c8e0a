"""Audit trail anchoring — commits the event log digest to Ethereum.

The digest covers the first N events of the log in order: each event
hash is folded into a running SHA-256, so changing, dropping or
reordering any covered event changes the digest. Anchoring embeds the
digest in the data field of a 0-ETH self-send transaction. Nothing runs
on-chain; the chain is only a timestamped witness.

Anchor records are kept in a JSONL file next to the event log so a
later run can check that the log still matches what was anchored.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from seatledger.persistence.event_log import EventLog


logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111


@dataclass(frozen=True)
class AnchorRecord:
    """A confirmed anchor of the first ``event_count`` events."""
    event_count: int
    digest: str
    tx_hash: str
    block_number: int
    chain_id: int
    timestamp_utc: str
    explorer_url: str


def event_log_digest(log: EventLog, event_count: Optional[int] = None) -> str:
    """SHA-256 hex digest over the hashes of the first event_count events."""
    events = log.events()
    if event_count is None:
        event_count = len(events)
    if event_count > len(events):
        raise ValueError(
            f"Log holds {len(events)} events, cannot digest {event_count}"
        )
    running = hashlib.sha256(b"seatledger-audit")
    for event in events[:event_count]:
        running = hashlib.sha256(running.digest() + event.event_hash.encode("utf-8"))
    return running.hexdigest()


def anchor_to_chain(
    digest: str,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
    gas: int = 30_000,
    gas_price_gwei: str = "2",
) -> tuple[str, int]:
    """Send the digest in a self-send transaction and wait for one confirmation.

    Returns (tx_hash, block_number).
    """
    from web3 import HTTPProvider, Web3
    from eth_account import Account

    w3 = Web3(HTTPProvider(rpc_url))
    acct = Account.from_key(private_key)

    tx = {
        "to": acct.address,
        "value": 0,
        "gas": gas,
        "gasPrice": w3.to_wei(gas_price_gwei, "gwei"),
        "nonce": w3.eth.get_transaction_count(acct.address),
        "chainId": chain_id,
        "data": bytes.fromhex(digest),
    }
    signed = acct.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info("Sent anchor tx %s", tx_hash.hex())

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
    logger.info("Anchor confirmed in block %s", receipt.blockNumber)
    return tx_hash.hex(), receipt.blockNumber


def anchor_event_log(
    log: EventLog,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
) -> AnchorRecord:
    """Anchor the whole event log as it stands now."""
    count = log.count
    digest = event_log_digest(log, count)
    tx_hash, block_number = anchor_to_chain(digest, rpc_url, private_key, chain_id)
    explorer = "https://sepolia.etherscan.io" if chain_id == SEPOLIA_CHAIN_ID else ""
    return AnchorRecord(
        event_count=count,
        digest=digest,
        tx_hash=tx_hash,
        block_number=block_number,
        chain_id=chain_id,
        timestamp_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        explorer_url=f"{explorer}/tx/{tx_hash}" if explorer else "",
    )


class AnchorLog:
    """Append-only JSONL file of anchor records."""

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path

    def append(self, record: AnchorRecord) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(record), sort_keys=True) + "\n")

    def records(self) -> list[AnchorRecord]:
        if not self._path.exists():
            return []
        with self._path.open("r", encoding="utf-8") as f:
            return [AnchorRecord(**json.loads(line)) for line in f if line.strip()]

    def verify(self, log: EventLog) -> list[str]:
        """Return one error per anchor the event log no longer matches."""
        errors: list[str] = []
        for record in self.records():
            if record.event_count > log.count:
                errors.append(
                    f"Anchor {record.tx_hash} covers {record.event_count} events, "
                    f"log holds {log.count}"
                )
                continue
            actual = event_log_digest(log, record.event_count)
            if actual != record.digest:
                errors.append(
                    f"Anchor {record.tx_hash} digest {record.digest} != current {actual}"
                )
        return errors
