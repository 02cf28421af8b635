# slot_math.py
# Storage slot arithmetic for Solidity dynamic arrays: parse slots, 32-byte encode,
# derive the keccak array base and per-element slot indices.

from typing import Tuple
from web3 import Web3

SLOT_SPACE = 2**256
WORD_BYTES = 32
ZERO_WORD = b"\x00" * WORD_BYTES

def parse_slot(s: str) -> int:
    """Parse a slot given as decimal or 0xHEX; raises ValueError when out of [0, 2^256)."""
    try:
        v = int(s.strip(), 0)  # decimal or 0xHEX
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid slot: {s!r} (use decimal or 0xHEX)")
    if v < 0 or v >= SLOT_SPACE:
        raise ValueError(f"Slot out of range [0, 2^256): {s}")
    return v

def to_bytes32(value: int) -> bytes:
    return (value % SLOT_SPACE).to_bytes(WORD_BYTES, "big")

def array_base_slot(header_slot: int) -> int:
    """
    First data slot of a dynamic array whose length lives at `header_slot`:
    keccak256(abi.encode(header_slot)) read back as a uint256.
    """
    return int.from_bytes(Web3.keccak(to_bytes32(header_slot)), "big")

def element_slot(base: int, index: int, width: int) -> int:
    return (base + index * width) % SLOT_SPACE

def element_slots(base: int, index: int, width: int) -> Tuple[int, ...]:
    first = element_slot(base, index, width)
    return tuple((first + k) % SLOT_SPACE for k in range(width))

def word_to_int(word: bytes) -> int:
    return int.from_bytes(word, "big")

def is_empty_word(word) -> bool:
    # None covers "absent"; unset storage reads back as all zeros
    return word is None or not any(word)

def pad_word(word: bytes) -> bytes:
    if len(word) > WORD_BYTES:
        raise ValueError(f"Storage word longer than 32 bytes ({len(word)})")
    return bytes(word).rjust(WORD_BYTES, b"\x00")

def to_hex(b: bytes) -> str:
    return "0x" + bytes(b).hex()

def slot_hex(slot: int) -> str:
    return to_hex(to_bytes32(slot))
