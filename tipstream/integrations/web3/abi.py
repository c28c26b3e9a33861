"""Event ABI of the social tipping contract.

Auto-tip events carry ``autoTipId``, the per-post index the contract
assigns when a delegation is enabled. ``"<postId>-<autoTipId>"`` is the
delegation id used by the projection.
"""

from typing import Any


def _event(name: str, *inputs: tuple[str, str, bool]) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [
            {"name": field, "type": abi_type, "indexed": indexed}
            for field, abi_type, indexed in inputs
        ],
    }


TIPPING_EVENTS_ABI: list[dict[str, Any]] = [
    _event(
        "PostCreated",
        ("postId", "uint256", True),
        ("creator", "address", True),
        ("content", "string", False),
        ("timestamp", "uint256", False),
    ),
    _event(
        "TipSent",
        ("postId", "uint256", True),
        ("tipper", "address", True),
        ("creator", "address", True),
        ("amount", "uint256", False),
    ),
    _event(
        "AutoTipEnabled",
        ("postId", "uint256", True),
        ("tipper", "address", True),
        ("autoTipId", "uint256", False),
        ("threshold", "uint256", False),
        ("amount", "uint256", False),
    ),
    _event(
        "AutoTipRevoked",
        ("postId", "uint256", True),
        ("tipper", "address", True),
        ("autoTipId", "uint256", False),
    ),
    _event(
        "AutoTipExecuted",
        ("postId", "uint256", True),
        ("tipper", "address", True),
        ("creator", "address", True),
        ("autoTipId", "uint256", False),
        ("amount", "uint256", False),
    ),
]

EVENT_NAMES: tuple[str, ...] = tuple(entry["name"] for entry in TIPPING_EVENTS_ABI)


def delegation_id(post_id: int, auto_tip_id: int) -> str:
    """Stable id of an auto-tip delegation."""
    return f"{post_id}-{auto_tip_id}"
