# lock_snapshot.py
# Commit to a decoded lock array (per-record leaves folded into one root) and
# render records as CSV / JSON rows.

import os, csv, json
from typing import Dict, Iterable, List, Optional, Sequence
from web3 import Web3

from lock_decoder import LockRecord

CSV_FIELDS = ["index", "slot", "status", "owner", "start_time", "amount", "error"]

def lock_leaf(chain_id: int, address: str, block_number: int, record: LockRecord) -> bytes:
    owner = bytes.fromhex(record.owner[2:]) if record.owner else b"\x00" * 20
    payload = (
        chain_id.to_bytes(8, "big") +
        bytes.fromhex(address[2:]) +
        record.index.to_bytes(32, "big") +
        record.slot.to_bytes(32, "big") +
        block_number.to_bytes(8, "big") +
        owner +
        (record.start_time or 0).to_bytes(32, "big") +
        (record.amount or 0).to_bytes(32, "big")
    )
    return Web3.keccak(payload)

def pair_root(a: bytes, b: bytes) -> bytes:
    x, y = (a, b) if a < b else (b, a)
    return Web3.keccak(x + y)

def snapshot_root(leaves: Sequence[bytes]) -> bytes:
    if not leaves:
        return Web3.keccak(b"")
    level = [bytes(l) for l in leaves]
    while len(level) > 1:
        nxt = [pair_root(level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2:
            nxt.append(level[-1])  # odd leaf promoted
        level = nxt
    return level[0]

def record_row(record: LockRecord) -> Dict[str, str]:
    # 256-bit integers as decimal strings; JSON consumers lose precision on numbers
    return {
        "index": str(record.index),
        "slot": hex(record.slot),
        "status": record.status,
        "owner": record.owner or "",
        "start_time": "" if record.start_time is None else str(record.start_time),
        "amount": "" if record.amount is None else str(record.amount),
        "error": record.error or "",
    }

def write_csv(records: Iterable[LockRecord], path: str, header: bool = True) -> int:
    tmp = path + ".tmp"
    n = 0
    with open(tmp, "w", newline="") as f:
        w = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        if header:
            w.writeheader()
        for r in records:
            w.writerow(record_row(r)); n += 1
    os.replace(tmp, path)
    return n

def write_json(records: List[LockRecord], path: str, meta: Optional[Dict] = None, compact: bool = False) -> None:
    doc = dict(meta or {})
    doc["locks"] = [record_row(r) for r in records]
    tmp = path + ".tmp"
    with open(tmp, "w") as f:
        json.dump(
            doc,
            f,
            indent=None if compact else 2,
            separators=(",", ":") if compact else None,
            sort_keys=True,
        )
    os.replace(tmp, path)
