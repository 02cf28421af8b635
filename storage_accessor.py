# storage_accessor.py
# Raw storage accessors consumed by lock_decoder: a web3 HTTP client that walks an
# ordered endpoint list on failure, and an offline accessor replaying a JSON slot dump.

import os, json, threading
from typing import Callable, Dict, List, Optional, Sequence
from web3 import Web3

from slot_math import pad_word, parse_slot

DEFAULT_ENDPOINTS = [
    "https://eth-sepolia.g.alchemy.com/v2/demo",
    "https://1rpc.io/sepolia",
    "https://sepolia.drpc.org",
    "https://rpc.sepolia.org",
]

class RpcUnavailable(RuntimeError):
    pass

def endpoints_from_env() -> List[str]:
    raw = os.getenv("RPC_URLS", "").strip()
    if raw:
        return [u.strip() for u in raw.split(",") if u.strip()]
    single = os.getenv("RPC_URL", "").strip()
    if single:
        return [single]
    return list(DEFAULT_ENDPOINTS)

def http_web3(url: str, timeout: float) -> Web3:
    return Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))

class Web3StorageAccessor:
    """
    Storage reads against the first healthy endpoint; a failing call moves on to
    the next endpoints in order, each tried once per call.
    """

    def __init__(
        self,
        endpoints: Optional[Sequence[str]] = None,
        timeout: float = 10,
        block: Optional[int] = None,
        max_workers: int = 8,
        provider_factory: Optional[Callable[[str, float], Web3]] = None,
    ):
        self.endpoints = list(endpoints) if endpoints else endpoints_from_env()
        if not self.endpoints:
            raise ValueError("At least one RPC endpoint is required")
        self.timeout = timeout
        self.block = block
        self.max_workers = max_workers
        self._factory = provider_factory or http_web3
        self._clients: Dict[int, Web3] = {}
        self._active = 0
        self._lock = threading.Lock()

    @property
    def endpoint(self) -> str:
        return self.endpoints[self._active]

    def _client(self, i: int) -> Web3:
        with self._lock:
            if i not in self._clients:
                self._clients[i] = self._factory(self.endpoints[i], self.timeout)
            return self._clients[i]

    def connect(self) -> int:
        """Probe endpoints in order; keep the first that answers. Returns its tip block."""
        errors = []
        for i, url in enumerate(self.endpoints):
            try:
                tip = self._client(i).eth.block_number
            except Exception as e:
                errors.append(f"{url}: {e}")
                with self._lock:
                    self._clients.pop(i, None)
                continue
            with self._lock:
                self._active = i
            return tip
        raise RpcUnavailable("All RPC endpoints failed: " + "; ".join(errors))

    def _call(self, fn: Callable[[Web3], object]):
        with self._lock:
            start = self._active
        last: Optional[Exception] = None
        for k in range(len(self.endpoints)):
            i = (start + k) % len(self.endpoints)
            try:
                result = fn(self._client(i))
            except (ValueError, TypeError):
                # caller error (e.g. InvalidAddress); another endpoint won't fix it
                raise
            except Exception as e:
                last = e
                continue
            if i != start:
                with self._lock:
                    self._active = i
            return result
        raise RpcUnavailable(f"All RPC endpoints failed; last error: {last}") from last

    def _block_id(self):
        return self.block if self.block is not None else "latest"

    def read(self, address: str, slot: int) -> Optional[bytes]:
        word = self._call(lambda w3: w3.eth.get_storage_at(address, slot, block_identifier=self._block_id()))
        if word is None:
            return None
        return pad_word(bytes(word))

    def get_code(self, address: str) -> bytes:
        return bytes(self._call(lambda w3: w3.eth.get_code(address, block_identifier=self._block_id())))

    def block_number(self) -> int:
        return self._call(lambda w3: w3.eth.block_number)

    def chain_id(self) -> int:
        return self._call(lambda w3: w3.eth.chain_id)

class SnapshotAccessor:
    """Replays storage from memory; slots absent from the dump read as None."""

    max_workers = 4

    def __init__(self, words: Dict[int, bytes], code: bytes = b"\x01", chain: int = 0, block: int = 0):
        self.words = {int(k): pad_word(v) for k, v in words.items()}
        self.code = code
        self.chain = chain
        self.block = block

    @classmethod
    def from_json(cls, path: str) -> "SnapshotAccessor":
        """
        Accepts either a bare {"0x0": "0x..", ...} mapping or
        {"slots": {...}, "code": "0x..", "chain_id": 1, "block": 123}.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("Slot dump must be a JSON object")
        meta = data if "slots" in data else {"slots": data}
        if not isinstance(meta["slots"], dict):
            raise ValueError("'slots' must map slot -> 0x word")
        words = {parse_slot(k): bytes.fromhex(_strip0x(v)) for k, v in meta["slots"].items()}
        return cls(
            words,
            code=bytes.fromhex(_strip0x(meta.get("code", "0x01"))),
            chain=int(meta.get("chain_id", 0)),
            block=int(meta.get("block", 0)),
        )

    def read(self, address: str, slot: int) -> Optional[bytes]:
        return self.words.get(slot)

    def get_code(self, address: str) -> bytes:
        return self.code

    def block_number(self) -> int:
        return self.block

    def chain_id(self) -> int:
        return self.chain

def _strip0x(s: str) -> str:
    s = str(s).strip()
    s = s[2:] if s.lower().startswith("0x") else s
    return s if len(s) % 2 == 0 else "0" + s
