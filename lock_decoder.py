# lock_decoder.py
# Rebuild a `Lock[] locks` dynamic array straight from raw storage words:
# length at the header slot, elements at keccak(header_slot) + i * width,
# each element packed as [user (160) | startTime (96)] then [amount (256)].

import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from web3 import Web3

from slot_math import (
    array_base_slot, element_slots, is_empty_word, word_to_int,
)

ADDRESS_BITS = 160
MAX_ARRAY_LENGTH = 2**64 - 1
DEFAULT_HEADER_SLOT = 0
DEFAULT_WORKERS = 8

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_UNREADABLE = "unreadable"


class LockDecodeError(Exception):
    pass


class HeaderUnreadable(LockDecodeError):
    """The length slot could not be read, so the array size is unknown."""

    def __init__(self, header_slot: int, cause: BaseException):
        super().__init__(f"Header slot {hex(header_slot)} unreadable: {cause}")
        self.header_slot = header_slot


class ArrayLengthError(LockDecodeError):
    pass


class DecodeTimeout(LockDecodeError):
    pass


class SchemaError(LockDecodeError, ValueError):
    pass


LOCK_FIELDS = ("owner", "start_time", "amount")


@dataclass(frozen=True)
class LockSchema:
    """
    Packed layout of one array element: a tuple of storage words, each a tuple
    of (field, bits) packed from the low bits upward.
    """
    words: Tuple[Tuple[Tuple[str, int], ...], ...] = (
        (("owner", ADDRESS_BITS), ("start_time", 256 - ADDRESS_BITS)),
        (("amount", 256),),
    )
    word_width: int = 2

    def validate(self) -> "LockSchema":
        if self.word_width < 1:
            raise SchemaError(f"Struct word width must be >= 1, got {self.word_width}")
        names = [f for w in self.words for f, _ in w]
        if sorted(names) != sorted(LOCK_FIELDS):
            raise SchemaError(f"Layout must place each of {', '.join(LOCK_FIELDS)} exactly once, got {names}")
        for n, word in enumerate(self.words):
            if any(b < 1 for _, b in word):
                raise SchemaError(f"Layout word {n} has a field narrower than 1 bit")
            bits = sum(b for _, b in word)
            if bits > 256:
                raise SchemaError(f"Layout word {n} packs {bits} bits (> 256)")
        if dict(f for w in self.words for f in w)["owner"] != ADDRESS_BITS:
            raise SchemaError(f"owner must be {ADDRESS_BITS} bits wide")
        if self.word_width != len(self.words):
            raise SchemaError(
                f"Struct word width {self.word_width} does not match packed layout "
                f"({len(self.words)} words: "
                + " | ".join(",".join(f for f, _ in w) for w in self.words) + ")"
            )
        return self

    def unpack(self, words: Sequence[bytes]) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for word, layout in zip(words, self.words):
            v = word_to_int(word)
            for name, bits in layout:
                out[name] = v & ((1 << bits) - 1)
                v >>= bits
        return out


DEFAULT_SCHEMA = LockSchema()


@dataclass(frozen=True)
class LockRecord:
    index: int
    slot: int
    owner: Optional[str] = None
    start_time: Optional[int] = None
    amount: Optional[int] = None
    status: str = STATUS_OK
    error: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.status == STATUS_OK


def format_address(value: int) -> str:
    return Web3.to_checksum_address("0x" + value.to_bytes(20, "big").hex())


def decode_lock_words(index: int, slot: int, words: Sequence[Optional[bytes]],
                      schema: LockSchema = DEFAULT_SCHEMA) -> LockRecord:
    if len(words) != schema.word_width or any(is_empty_word(w) for w in words):
        return LockRecord(index=index, slot=slot, status=STATUS_EMPTY)
    fields = schema.unpack(words)
    return LockRecord(
        index=index,
        slot=slot,
        owner=format_address(fields["owner"]),
        start_time=fields["start_time"],
        amount=fields["amount"],
    )


def decode_lock_word(index: int, slot: int, word1: Optional[bytes], word2: Optional[bytes]) -> LockRecord:
    return decode_lock_words(index, slot, (word1, word2))


def _read_element(accessor, address: str, index: int, slots: Sequence[int], schema: LockSchema) -> LockRecord:
    try:
        words = [accessor.read(address, s) for s in slots]
    except (ValueError, TypeError):
        # bad arguments, not a transport failure
        raise
    except Exception as e:
        return LockRecord(index=index, slot=slots[0], status=STATUS_UNREADABLE, error=str(e) or type(e).__name__)
    return decode_lock_words(index, slots[0], words, schema)


def read_array_length(accessor, address: str, header_slot: int = DEFAULT_HEADER_SLOT) -> int:
    try:
        word = accessor.read(address, header_slot)
    except (ValueError, TypeError):
        raise
    except Exception as e:
        raise HeaderUnreadable(header_slot, e) from e
    if is_empty_word(word):
        return 0
    n = word_to_int(word)
    if n > MAX_ARRAY_LENGTH:
        raise ArrayLengthError(f"Header slot {hex(header_slot)} holds {hex(n)}, not an array length")
    return n


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


def decode_lock_array(
    accessor,
    contract_address: str,
    header_slot: int = DEFAULT_HEADER_SLOT,
    max_elements: Optional[int] = None,
    schema: LockSchema = DEFAULT_SCHEMA,
    timeout: Optional[float] = None,
    length: Optional[int] = None,
) -> List[LockRecord]:
    """
    Decode the lock array of `contract_address` using only raw slot reads.

    The caller must have checked that the address carries code; storage of an
    EOA reads as zeros and decodes to an empty array.
    `length` skips the header read when the caller already holds the count.
    Raises HeaderUnreadable if the length slot cannot be read, DecodeTimeout if
    `timeout` seconds (header read included) pass before every element is read.
    Per-element failures come back as records with status "empty" or "unreadable".
    """
    schema.validate()
    if max_elements is not None and max_elements < 0:
        raise ValueError(f"max_elements must be >= 0, got {max_elements}")
    deadline = None if timeout is None else time.monotonic() + timeout

    workers = max(1, int(getattr(accessor, "max_workers", DEFAULT_WORKERS) or 1))
    if max_elements is not None:
        workers = min(workers, max(1, max_elements))
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lock-read")
    try:
        if length is None:
            header = pool.submit(read_array_length, accessor, contract_address, header_slot)
            done, _ = wait([header], timeout=_remaining(deadline))
            if not done:
                raise DecodeTimeout(f"Header slot {hex(header_slot)} not read within {timeout}s")
            length = header.result()
        count = length if max_elements is None else min(length, max_elements)
        if count == 0:
            return []

        base = array_base_slot(header_slot)
        futures = [
            pool.submit(_read_element, accessor, contract_address, i,
                        element_slots(base, i, schema.word_width), schema)
            for i in range(count)
        ]
        done, pending = wait(futures, timeout=_remaining(deadline))
        if pending:
            raise DecodeTimeout(f"{len(pending)}/{count} elements still pending after {timeout}s")
        # index order, not completion order
        return [f.result() for f in futures]
    except BaseException:
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    finally:
        pool.shutdown(wait=False)
