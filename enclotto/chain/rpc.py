"""JSON-RPC client that reads draw entropy from an Ethereum-compatible node."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockEntropy:
    """Public block values used as draw inputs."""

    number: int
    timestamp: int
    entropy: int


def _hex_to_int(value: Any, field: str) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise RuntimeError(f"Block field '{field}' is not a hex quantity: {value!r}")
    return int(value, 16)


class BlockEntropyClient:
    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        url = rpc_url or os.getenv("ETH_RPC_URL")
        if not url:
            raise ValueError("Environment variable 'ETH_RPC_URL' is not set")
        self.rpc_url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._next_id = 1

    def close(self) -> None:
        self.session.close()

    def _post(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id,
            "method": method,
            "params": params,
        }
        self._next_id += 1
        r = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        r.raise_for_status()
        data: Dict[str, Any] = r.json()
        if "error" in data:
            raise RuntimeError(f"RPC error: {data['error']}")
        return data.get("result")

    def get_block(self, block: Union[int, str] = "latest") -> Dict[str, Any]:
        """Return the raw block object for ``block`` (a number or a tag)."""
        tag = hex(block) if isinstance(block, int) else block
        result = self._post("eth_getBlockByNumber", [tag, False])
        if not result:
            raise RuntimeError(f"Block {block!r} not found")
        return result

    def block_entropy(self, block: Union[int, str] = "latest") -> BlockEntropy:
        """Return the draw inputs exposed by ``block``.

        Post-merge blocks report ``difficulty`` as zero and carry the beacon
        randomness in ``mixHash`` (``prevRandao``), so that value is
        preferred whenever difficulty is zero.
        """
        raw = self.get_block(block)
        number = _hex_to_int(raw.get("number"), "number")
        timestamp = _hex_to_int(raw.get("timestamp"), "timestamp")
        difficulty = _hex_to_int(raw.get("difficulty", "0x0"), "difficulty")
        if difficulty:
            entropy = difficulty
        else:
            entropy = _hex_to_int(
                raw.get("prevRandao") or raw.get("mixHash"), "mixHash"
            )
        logger.debug("Fetched entropy from block %d", number)
        return BlockEntropy(number=number, timestamp=timestamp, entropy=entropy)


__all__ = ["BlockEntropy", "BlockEntropyClient"]
