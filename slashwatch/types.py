"""
Slashwatch Types

Core data types for rounds, slash actions and detections.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple


class RoundStatus(Enum):
    """Position of a slashing round in its lifecycle."""
    VOTING = "voting"                  # Quorum not reached
    QUORUM_REACHED = "quorum-reached"  # Quorum reached, waiting for execution delay
    IN_VETO_WINDOW = "in-veto-window"  # First cycle the round is executable
    EXECUTABLE = "executable"          # Executable and within lifetime
    EXECUTED = "executed"              # Executed on-chain, terminal
    EXPIRED = "expired"                # Past lifetime without execution

    @property
    def is_actionable(self) -> bool:
        """True while a veto can still prevent execution."""
        return self in ACTIONABLE_STATUSES


ACTIONABLE_STATUSES = frozenset({
    RoundStatus.QUORUM_REACHED,
    RoundStatus.IN_VETO_WINDOW,
    RoundStatus.EXECUTABLE,
})


class OffenseType(IntEnum):
    """Offense codes reported by the node admin API."""
    UNKNOWN = 0
    DATA_WITHHOLDING = 1
    VALID_EPOCH_PRUNED = 2
    INACTIVITY = 3
    BROADCASTED_INVALID_BLOCK_PROPOSAL = 4
    PROPOSED_INSUFFICIENT_ATTESTATIONS = 5
    PROPOSED_INCORRECT_ATTESTATIONS = 6
    ATTESTED_DESCENDANT_OF_INVALID = 7

    @classmethod
    def parse(cls, value: Any) -> "OffenseType":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UNKNOWN


@dataclass(frozen=True)
class ProtocolParameters:
    """
    Slashing protocol constants.

    Attributes:
        round_size: Slots per round
        round_size_in_epochs: Epochs per round
        execution_delay_rounds: Rounds between the end of voting and execution
        lifetime_rounds: Rounds after voting during which execution is valid
        slash_offset_rounds: Distance between a round and the round it slashes
        quorum: Votes required for a round to be executable
        committee_size: Validators per epoch committee
        slot_duration: Seconds per slot
        epoch_duration: Slots per epoch
    """
    round_size: int
    round_size_in_epochs: int
    execution_delay_rounds: int
    lifetime_rounds: int
    slash_offset_rounds: int
    quorum: int
    committee_size: int
    slot_duration: int
    epoch_duration: int

    def to_dict(self) -> dict:
        return {
            'round_size': self.round_size,
            'round_size_in_epochs': self.round_size_in_epochs,
            'execution_delay_rounds': self.execution_delay_rounds,
            'lifetime_rounds': self.lifetime_rounds,
            'slash_offset_rounds': self.slash_offset_rounds,
            'quorum': self.quorum,
            'committee_size': self.committee_size,
            'slot_duration': self.slot_duration,
            'epoch_duration': self.epoch_duration,
        }


@dataclass(frozen=True)
class RoundRecord:
    """On-chain vote tally state of a round."""
    round: int
    vote_count: int
    is_executed: bool


@dataclass(frozen=True)
class SlashAction:
    """A single slash: validator and amount in wei."""
    validator: str
    amount: int

    def as_abi(self) -> Tuple[str, int]:
        return (self.validator, self.amount)

    def to_dict(self) -> dict:
        return {'validator': self.validator, 'amount': str(self.amount)}


@dataclass(frozen=True)
class RoundDetail:
    """Slashing payload of a round that reached quorum or was executed."""
    committees: Tuple[Tuple[str, ...], ...]
    slash_actions: Tuple[SlashAction, ...]
    payload_address: str
    is_vetoed: bool

    @property
    def total_slash_amount(self) -> int:
        return sum(action.amount for action in self.slash_actions)

    @property
    def affected_validator_count(self) -> int:
        return len(self.slash_actions)


@dataclass(frozen=True)
class ChainPosition:
    """Current position of the chain. Fetched fresh every cycle."""
    current_round: int
    current_slot: int
    current_epoch: int
    is_slashing_enabled: bool
    slashing_disabled_until: int
    slashing_disable_duration: int

    def to_dict(self) -> dict:
        return {
            'current_round': self.current_round,
            'current_slot': self.current_slot,
            'current_epoch': self.current_epoch,
            'is_slashing_enabled': self.is_slashing_enabled,
            'slashing_disabled_until': self.slashing_disabled_until,
            'slashing_disable_duration': self.slashing_disable_duration,
        }


@dataclass(frozen=True)
class DetectedSlashing:
    """
    A round surfaced to operators.

    Detail fields are populated once the round reached quorum or was executed.
    Timing fields are populated for rounds that are not executed.
    """
    round: int
    status: RoundStatus
    vote_count: int
    is_executed: bool
    is_vetoed: bool = False
    committees: Optional[Tuple[Tuple[str, ...], ...]] = None
    slash_actions: Optional[Tuple[SlashAction, ...]] = None
    payload_address: Optional[str] = None
    slot_when_executable: Optional[int] = None
    slot_when_expires: Optional[int] = None
    seconds_until_executable: Optional[int] = None
    seconds_until_expires: Optional[int] = None
    target_epochs: Tuple[int, ...] = ()

    @property
    def has_detail(self) -> bool:
        return self.slash_actions is not None

    @property
    def total_slash_amount(self) -> Optional[int]:
        if self.slash_actions is None:
            return None
        return sum(action.amount for action in self.slash_actions)

    @property
    def affected_validator_count(self) -> Optional[int]:
        if self.slash_actions is None:
            return None
        return len(self.slash_actions)

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            'round': self.round,
            'status': self.status.value,
            'vote_count': self.vote_count,
            'is_executed': self.is_executed,
            'is_vetoed': self.is_vetoed,
            'target_epochs': list(self.target_epochs),
        }
        if self.slash_actions is not None:
            data['committees'] = [list(c) for c in (self.committees or ())]
            data['slash_actions'] = [a.to_dict() for a in self.slash_actions]
            data['payload_address'] = self.payload_address
            data['total_slash_amount'] = str(self.total_slash_amount)
            data['affected_validator_count'] = self.affected_validator_count
        if self.slot_when_executable is not None:
            data['slot_when_executable'] = self.slot_when_executable
            data['slot_when_expires'] = self.slot_when_expires
            data['seconds_until_executable'] = self.seconds_until_executable
            data['seconds_until_expires'] = self.seconds_until_expires
        return data


@dataclass(frozen=True)
class SlashingStats:
    """Aggregates over the detections of one cycle."""
    current_round: int = 0
    total_rounds_monitored: int = 0
    active_slashings: int = 0
    vetoed_payloads: int = 0
    executed_rounds: int = 0
    total_validators_slashed: int = 0
    total_slash_amount: int = 0

    @classmethod
    def from_detections(cls, current_round: int, detections: List[DetectedSlashing]) -> "SlashingStats":
        return cls(
            current_round=current_round,
            total_rounds_monitored=len(detections),
            active_slashings=sum(1 for d in detections if d.status.is_actionable),
            vetoed_payloads=sum(1 for d in detections if d.is_vetoed),
            executed_rounds=sum(1 for d in detections if d.is_executed),
            total_validators_slashed=sum(d.affected_validator_count or 0 for d in detections),
            total_slash_amount=sum(d.total_slash_amount or 0 for d in detections),
        )

    def to_dict(self) -> dict:
        return {
            'current_round': self.current_round,
            'total_rounds_monitored': self.total_rounds_monitored,
            'active_slashings': self.active_slashings,
            'vetoed_payloads': self.vetoed_payloads,
            'executed_rounds': self.executed_rounds,
            'total_validators_slashed': self.total_validators_slashed,
            'total_slash_amount': str(self.total_slash_amount),
        }


@dataclass(frozen=True)
class Offense:
    """Offense observed by a node, pending inclusion in a slashing round."""
    validator: str
    offense_type: OffenseType
    amount: int
    epoch: Optional[int] = None
    block_number: Optional[int] = None
    round: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'validator': self.validator,
            'offense_type': self.offense_type.name.lower(),
            'amount': str(self.amount),
            'epoch': self.epoch,
            'block_number': self.block_number,
            'round': self.round,
        }
