import csv
import json

from web3 import Web3

from lock_decoder import STATUS_EMPTY, LockRecord
from lock_snapshot import lock_leaf, pair_root, record_row, snapshot_root, write_csv, write_json

ADDR = "0x00000000000000000000000000000000000000C0"
OK = LockRecord(index=0, slot=10, owner=Web3.to_checksum_address("0x" + "ab" * 20), start_time=1, amount=2**200)
EMPTY = LockRecord(index=1, slot=12, status=STATUS_EMPTY)


def test_pair_root_is_order_independent():
    a, b = Web3.keccak(b"a"), Web3.keccak(b"b")
    assert pair_root(a, b) == pair_root(b, a)


def test_snapshot_root_shapes():
    leaves = [Web3.keccak(bytes([i])) for i in range(3)]
    assert snapshot_root([]) == Web3.keccak(b"")
    assert snapshot_root(leaves[:1]) == leaves[0]
    assert snapshot_root(leaves) == pair_root(pair_root(leaves[0], leaves[1]), leaves[2])


def test_leaf_binds_record_contents():
    base = lock_leaf(1, ADDR, 100, OK)
    assert base == lock_leaf(1, ADDR, 100, OK)
    assert base != lock_leaf(1, ADDR, 101, OK)
    assert base != lock_leaf(5, ADDR, 100, OK)
    assert lock_leaf(1, ADDR, 100, EMPTY) != base


def test_record_row_keeps_big_ints_exact():
    row = record_row(OK)
    assert row["amount"] == str(2**200)
    assert row["slot"] == "0xa"
    assert record_row(EMPTY)["owner"] == ""
    assert record_row(EMPTY)["status"] == "empty"


def test_write_csv_and_json(tmp_path):
    csv_path = tmp_path / "locks.csv"
    assert write_csv([OK, EMPTY], str(csv_path)) == 2
    rows = list(csv.DictReader(csv_path.open(newline="")))
    assert [r["status"] for r in rows] == ["ok", "empty"]

    json_path = tmp_path / "locks.json"
    write_json([OK], str(json_path), meta={"address": ADDR}, compact=True)
    doc = json.loads(json_path.read_text())
    assert doc["address"] == ADDR
    assert int(doc["locks"][0]["amount"]) == 2**200
    assert not (tmp_path / "locks.json.tmp").exists()
