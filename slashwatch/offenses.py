"""
Slashwatch Offense Feed

Reads the offenses a node has observed but that have not been slashed yet,
via the node admin JSON-RPC API (``nodeAdmin_getSlashOffenses``).
"""

from typing import Any, List, Optional, Union

from eth_utils import is_address, to_checksum_address

from .exceptions import RPCResponseError
from .logger import get_logger
from .rpc import EthRpcClient
from .types import Offense, OffenseType

logger = get_logger(__name__)


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def parse_offense(raw: dict) -> Offense:
    """Convert one raw offense object into an Offense."""
    validator = raw.get("validator", "")
    if is_address(validator):
        validator = to_checksum_address(validator)
    return Offense(
        validator=validator,
        offense_type=OffenseType.parse(raw.get("offenseType")),
        amount=_to_int(raw.get("amount")) or 0,
        epoch=_to_int(raw.get("epoch")),
        block_number=_to_int(raw.get("blockNumber")),
        round=_to_int(raw.get("round")),
    )


class NodeAdminClient:
    """Client for a node's admin JSON-RPC endpoint."""

    def __init__(self, rpc: EthRpcClient):
        self.rpc = rpc

    async def get_slash_offenses(self, round_number: Union[int, str] = "all") -> List[Offense]:
        """
        Args:
            round_number: A round, ``"current"`` or ``"all"``

        Raises:
            RPCError: The node could not be queried
        """
        result = await self.rpc.request("nodeAdmin_getSlashOffenses", [str(round_number)])
        if result is None:
            return []
        if not isinstance(result, list):
            raise RPCResponseError("nodeAdmin_getSlashOffenses", -32603, f"malformed result {result!r}")

        offenses = []
        for raw in result:
            try:
                offenses.append(parse_offense(raw))
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed offense {raw!r}: {e}")
        return offenses

    async def aclose(self) -> None:
        await self.rpc.aclose()
