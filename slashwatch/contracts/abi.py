"""
Slashwatch Contract ABI

Minimal ABI descriptions of the contracts the monitor reads, plus the
selector/encode/decode helpers that turn them into eth_call payloads.
"""

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, is_hex_address, to_checksum_address


def checksum_values(value: Any) -> Any:
    """Recursively checksum every address in a decoded ABI value."""
    if isinstance(value, str) and is_hex_address(value):
        return to_checksum_address(value)
    if isinstance(value, (list, tuple)):
        return tuple(checksum_values(v) for v in value)
    return value


@dataclass(frozen=True)
class ContractFunction:
    """
    A view function of a contract.

    Attributes:
        name: Solidity function name
        inputs: ABI type strings of the arguments
        outputs: ABI type strings of the return values
    """
    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ('uint256',)

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, args: Sequence[Any] = ()) -> bytes:
        """
        Encode call data (selector + ABI-encoded arguments).

        Args:
            args: Function arguments, in declaration order

        Returns:
            Encoded call data
        """
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.signature} takes {len(self.inputs)} arguments, got {len(args)}"
            )
        if not self.inputs:
            return self.selector
        return self.selector + encode(list(self.inputs), list(args))

    def decode_output(self, data: bytes) -> Any:
        """
        Decode return data.

        Single-output functions decode to the bare value, multi-output
        functions to a tuple. Addresses come back checksummed.
        """
        values = checksum_values(decode(list(self.outputs), data))
        if len(self.outputs) == 1:
            return values[0]
        return values


class TallySlashingProposer:
    """Round-based slash voting contract."""
    GET_CURRENT_ROUND = ContractFunction('getCurrentRound')
    # (isExecuted, readyToExecute, voteCount)
    GET_ROUND = ContractFunction('getRound', ('uint256',), ('bool', 'bool', 'uint256'))
    GET_SLASH_TARGET_COMMITTEES = ContractFunction(
        'getSlashTargetCommittees', ('uint256',), ('address[][]',)
    )
    GET_TALLY = ContractFunction(
        'getTally', ('uint256', 'address[][]'), ('(address,uint256)[]',)
    )
    GET_PAYLOAD_ADDRESS = ContractFunction(
        'getPayloadAddress', ('uint256', '(address,uint256)[]'), ('address',)
    )
    QUORUM = ContractFunction('QUORUM')
    ROUND_SIZE = ContractFunction('ROUND_SIZE')
    ROUND_SIZE_IN_EPOCHS = ContractFunction('ROUND_SIZE_IN_EPOCHS')
    EXECUTION_DELAY_IN_ROUNDS = ContractFunction('EXECUTION_DELAY_IN_ROUNDS')
    LIFETIME_IN_ROUNDS = ContractFunction('LIFETIME_IN_ROUNDS')
    SLASH_OFFSET_IN_ROUNDS = ContractFunction('SLASH_OFFSET_IN_ROUNDS')
    COMMITTEE_SIZE = ContractFunction('COMMITTEE_SIZE')


class Slasher:
    """Slash executor holding the veto list and the global toggle."""
    VETOED_PAYLOADS = ContractFunction('vetoedPayloads', ('address',), ('bool',))
    IS_SLASHING_ENABLED = ContractFunction('isSlashingEnabled', (), ('bool',))
    SLASHING_DISABLED_UNTIL = ContractFunction('slashingDisabledUntil')
    SLASHING_DISABLE_DURATION = ContractFunction('SLASHING_DISABLE_DURATION')


class Rollup:
    """Rollup contract providing slot and epoch timing."""
    GET_CURRENT_SLOT = ContractFunction('getCurrentSlot')
    GET_CURRENT_EPOCH = ContractFunction('getCurrentEpoch')
    GET_SLOT_DURATION = ContractFunction('getSlotDuration')
    GET_EPOCH_DURATION = ContractFunction('getEpochDuration')


class Multicall3:
    AGGREGATE3 = ContractFunction(
        'aggregate3', ('(address,bool,bytes)[]',), ('(bool,bytes)[]',)
    )
