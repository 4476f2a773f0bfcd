from collections.abc import Mapping
from typing import Any
from hexbytes import HexBytes
from web3 import Web3

def to_json_safe(obj: Any) -> Any:
    """
    Recursively convert a web3 receipt (AttributeDict / HexBytes / nested logs)
    into plain JSON-serializable primitives.

    - HexBytes, bytes -> "0x..." str
    - Mapping (AttributeDict included) -> {str(k): to_json_safe(v)}
    - list/tuple -> [to_json_safe(v), ...]
    - everything else -> unchanged if natively serializable, else str(obj)
    """
    if isinstance(obj, HexBytes):
        return Web3.to_hex(obj)
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    if isinstance(obj, Mapping):
        return {str(k): to_json_safe(v) for (k, v) in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]
    return str(obj)
