"""
Slashwatch Batch Call Aggregator

Groups independent read-only contract calls into a single Multicall3
``aggregate3`` round trip. Every call is sent with ``allowFailure`` so one
reverting call never sinks the batch; results come back in input order.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from .constants import MULTICALL3_ADDRESS
from .contracts import ContractFunction, Multicall3
from .exceptions import CallDecodeError, CallError, CallFailedError, RPCResponseError
from .logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Call:
    """A read-only call to a contract function."""
    target: str
    function: ContractFunction
    args: Tuple[Any, ...] = ()

    def encode(self) -> bytes:
        return self.function.encode_call(self.args)


@dataclass(frozen=True)
class CallResult:
    """
    Outcome of one call inside a batch.

    Attributes:
        success: Whether a decoded value is available
        value: Decoded return value when successful
        error: CallFailedError or CallDecodeError otherwise
    """
    success: bool
    value: Any = None
    error: Optional[CallError] = None

    def unwrap(self) -> Any:
        """Return the decoded value or raise the recorded error."""
        if not self.success:
            raise self.error
        return self.value


def create_call(target: str, function: ContractFunction, *args: Any) -> Call:
    """Helper to create a call object."""
    return Call(target=target, function=function, args=tuple(args))


class MulticallAggregator:
    """
    Executes batches of calls through Multicall3.

    There is no retry here; the caller owns the retry policy.
    """

    def __init__(self, rpc, address: str = MULTICALL3_ADDRESS):
        self.rpc = rpc
        self.address = to_checksum_address(address)
        self.round_trips = 0

    async def aggregate(self, calls: Sequence[Call]) -> List[CallResult]:
        """
        Execute ``calls`` in one round trip.

        Args:
            calls: Calls to execute

        Returns:
            One CallResult per call, in the same order

        Raises:
            RPCError: The aggregate call itself failed
        """
        if not calls:
            return []

        encoded = [
            (to_checksum_address(call.target), True, call.encode())
            for call in calls
        ]
        data = Multicall3.AGGREGATE3.encode_call([encoded])

        self.round_trips += 1
        raw = await self.rpc.eth_call(self.address, data)
        try:
            results = Multicall3.AGGREGATE3.decode_output(raw)
        except DecodingError as exc:
            raise RPCResponseError("eth_call", -32603, f"undecodable aggregate3 result: {exc}") from exc

        if len(results) != len(calls):
            raise RPCResponseError(
                "eth_call", -32603,
                f"aggregate3 returned {len(results)} results for {len(calls)} calls",
            )

        decoded: List[CallResult] = []
        for index, (call, (success, return_data)) in enumerate(zip(calls, results)):
            if not success:
                decoded.append(CallResult(False, error=CallFailedError(index, call.function.name)))
                continue
            try:
                value = call.function.decode_output(return_data)
            except (DecodingError, ValueError) as exc:
                decoded.append(CallResult(False, error=CallDecodeError(index, call.function.name, str(exc))))
                continue
            decoded.append(CallResult(True, value=value))

        failures = sum(1 for r in decoded if not r.success)
        if failures:
            logger.debug(f"Multicall: {failures}/{len(calls)} calls failed")
        return decoded
