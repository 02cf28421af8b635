# read_locks.py
# Read a contract's `Lock[] locks` array straight from storage (no ABI): array length
# at the header slot, elements at keccak(header_slot) + i*width, packed fields decoded.

import os, sys, time, argparse
from typing import List, Optional
from dotenv import find_dotenv, load_dotenv
from web3 import Web3

from slot_math import array_base_slot, parse_slot, slot_hex, to_hex
from lock_decoder import (
    DEFAULT_HEADER_SLOT, STATUS_EMPTY, STATUS_OK,
    ArrayLengthError, DecodeTimeout, HeaderUnreadable, LockRecord, LockSchema, SchemaError,
    decode_lock_array, read_array_length,
)
from storage_accessor import RpcUnavailable, SnapshotAccessor, Web3StorageAccessor, endpoints_from_env
from lock_snapshot import lock_leaf, snapshot_root, write_csv, write_json

def checksum(addr: str) -> str:
    if not addr:
        print("❌ Contract address required (argument or CONTRACT_ADDRESS env)."); sys.exit(2)
    if not Web3.is_address(addr):
        print("❌ Invalid Ethereum address."); sys.exit(2)
    return Web3.to_checksum_address(addr)

def describe(record: LockRecord) -> str:
    if record.status == STATUS_OK:
        return (f"✅ locks[{record.index}]: user:{record.owner}, "
                f"startTime:{record.start_time}, amount:{record.amount}")
    if record.status == STATUS_EMPTY:
        return f"⚠️  locks[{record.index}]: No data (slot {hex(record.slot)})"
    return f"❌ locks[{record.index}]: read failed at slot {hex(record.slot)}: {record.error}"

def open_accessor(args):
    if args.replay:
        try:
            acc = SnapshotAccessor.from_json(args.replay)
        except (OSError, ValueError) as e:
            print(f"❌ Cannot load slot dump {args.replay}: {e}"); sys.exit(2)
        print(f"📂 Replaying storage from {args.replay} ({len(acc.words)} slots)")
        return acc, acc.block_number()

    try:
        acc = Web3StorageAccessor(
            endpoints=args.rpc or endpoints_from_env(),
            timeout=args.rpc_timeout,
            block=args.block,
            max_workers=args.workers,
        )
    except ValueError as e:
        print(f"❌ {e} (set --rpc, RPC_URLS or RPC_URL)."); sys.exit(2)
    for url in acc.endpoints:
        print(f"🔄 RPC candidate: {url[:30]}...")
    try:
        tip = acc.connect()
    except RpcUnavailable as e:
        print(f"❌ {e}"); sys.exit(1)
    print(f"✅ Connected! Current block: {tip}")
    print(f"🌐 Using RPC: {acc.endpoint}")
    if args.block is not None and args.block > tip:
        print(f"⚠️ --block {args.block} > tip {tip}; clamping."); acc.block = tip
    return acc, acc.block if acc.block is not None else tip

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Decode a Lock[] array directly from contract storage slots.")
    ap.add_argument("address", nargs="?", help="Contract address (default: CONTRACT_ADDRESS env)")
    ap.add_argument("--rpc", action="append", help="RPC URL; repeat for fallback order (default: RPC_URLS / RPC_URL env)")
    ap.add_argument("--header-slot", default=str(DEFAULT_HEADER_SLOT), help="Slot holding the array length (decimal or 0xHEX)")
    ap.add_argument("--width", type=int, default=2, help="Storage words per struct element (default 2)")
    ap.add_argument("--max", type=int, dest="max_elements", help="Decode at most N elements (default: all)")
    ap.add_argument("--block", type=int, help="Pin reads to this block (default: latest)")
    ap.add_argument("--timeout", type=float, help="Overall decode timeout in seconds")
    ap.add_argument("--rpc-timeout", type=float, default=10, help="Per-request RPC timeout (default 10s)")
    ap.add_argument("--workers", type=int, default=8, help="Concurrent slot reads (default 8)")
    ap.add_argument("--replay", help="Read storage from a JSON slot dump instead of RPC")
    ap.add_argument("--csv", help="Write decoded locks to CSV (path)")
    ap.add_argument("--json", help="Write decoded locks to JSON (path)")
    ap.add_argument("--compact", action="store_true", help="Write compact JSON without indentation")
    ap.add_argument("--root", action="store_true", help="Print a commitment root over the decoded locks")
    args = ap.parse_args(argv)

    # CONTRACT_ADDRESS / RPC_URLS may come from a .env in the working directory
    load_dotenv(find_dotenv(usecwd=True))
    address = checksum(args.address or os.getenv("CONTRACT_ADDRESS", ""))
    try:
        header_slot = parse_slot(args.header_slot)
    except ValueError as e:
        print(f"❌ {e}"); sys.exit(2)
    if args.max_elements is not None and args.max_elements < 0:
        print("❌ --max must be ≥ 0."); sys.exit(2)
    try:
        schema = LockSchema(word_width=args.width).validate()
    except SchemaError as e:
        print(f"❌ Layout mismatch: {e}"); sys.exit(2)

    print("🚀 Starting storage reading...")
    print(f"📄 Contract: {address}")
    accessor, block = open_accessor(args)

    print("🔍 Checking contract code...")
    try:
        code = accessor.get_code(address)
    except RpcUnavailable as e:
        print(f"❌ {e}"); sys.exit(1)
    print(f"📦 Contract code length: {len(code)}")
    if not code:
        print("❌ Contract does not exist at this address"); sys.exit(1)

    t0 = time.monotonic()
    print(f"📖 Reading array length from slot {hex(header_slot)}...")
    try:
        length = read_array_length(accessor, address, header_slot)
    except HeaderUnreadable as e:
        print(f"❌ {e}"); sys.exit(1)
    except ArrayLengthError as e:
        print(f"❌ {e}"); sys.exit(2)
    print(f"📊 Array length: {length}")
    if length == 0:
        print("ℹ️ Array is empty")
        return 0

    print(f"📍 Array storage starts at: {slot_hex(array_base_slot(header_slot))}")
    print("📚 Reading lock elements...")
    try:
        records = decode_lock_array(
            accessor, address, header_slot,
            max_elements=args.max_elements, schema=schema, timeout=args.timeout,
            length=length,
        )
    except (HeaderUnreadable, DecodeTimeout) as e:
        print(f"❌ {e}"); sys.exit(1)
    except ArrayLengthError as e:
        print(f"❌ {e}"); sys.exit(2)

    for r in records:
        print(describe(r))
    if args.max_elements is not None and len(records) < length:
        print(f"ℹ️ Showing {len(records)} of {length} locks (--max).")

    found = sum(1 for r in records if r.has_data)
    print(f"\n🔢 Decoded {found}/{len(records)} locks with data")

    if args.root:
        try:
            chain_id = accessor.chain_id()
        except RpcUnavailable as e:
            print(f"❌ {e}"); sys.exit(1)
        leaves = [lock_leaf(chain_id, address, block, r) for r in records]
        print(f"🌳 Snapshot root (chainId {chain_id}, block {block}): {to_hex(snapshot_root(leaves))}")

    if args.csv:
        n = write_csv(records, args.csv)
        print(f"📝 Wrote {n} rows → {args.csv}")
    if args.json:
        meta = {"address": address, "header_slot": hex(header_slot), "length": str(length), "block": block}
        write_json(records, args.json, meta=meta, compact=args.compact)
        print(f"📝 Wrote {len(records)} locks → {args.json}")

    print(f"⏱️ Elapsed: {time.monotonic() - t0:.2f}s")
    print("🎉 Storage reading completed!")
    return 0

if __name__ == "__main__":
    sys.exit(main())
