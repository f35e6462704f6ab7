"""
Slashwatch Detail Pipeline

Builds RoundDetail records for many rounds at once. Each stage depends on
the output of the previous one, so the stages run sequentially, but every
stage is a single batch over all rounds still alive:

    committees -> tally -> payload address -> veto status

A round that fails at a stage is dropped from the later stages. A round
whose tally is empty never reaches the payload stage.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .logger import get_logger
from .types import RoundDetail

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetailRequest:
    """A round to build detail for, as last read from the chain."""
    round: int
    vote_count: int
    is_executed: bool


@dataclass
class PipelineResult:
    """
    Attributes:
        details: Built details keyed by round
        empty_rounds: Rounds whose tally contained no slash actions
        failed: Errors keyed by round, for rounds dropped at any stage
    """
    details: Dict[int, RoundDetail] = field(default_factory=dict)
    empty_rounds: List[int] = field(default_factory=list)
    failed: Dict[int, Exception] = field(default_factory=dict)


class DetailPipeline:
    """Runs the four detail stages against a SlashingStateReader."""

    def __init__(self, reader):
        self.reader = reader

    async def run(self, requests: Sequence[DetailRequest]) -> PipelineResult:
        result = PipelineResult()
        rounds = list(dict.fromkeys(req.round for req in requests))
        if not rounds:
            return result

        committees = await self.reader.batch_get_committees(rounds)
        result.failed.update(committees.errors)

        tallies = await self.reader.batch_get_tally(committees.values)
        result.failed.update(tallies.errors)

        with_actions = {}
        for round_number, actions in tallies.values.items():
            if actions:
                with_actions[round_number] = actions
            else:
                result.empty_rounds.append(round_number)

        payloads = await self.reader.batch_get_payload_address(with_actions)
        result.failed.update(payloads.errors)

        vetoes = await self.reader.batch_is_payload_vetoed(payloads.values)
        result.failed.update(vetoes.errors)

        for round_number, is_vetoed in vetoes.values.items():
            result.details[round_number] = RoundDetail(
                committees=committees.values[round_number],
                slash_actions=tallies.values[round_number],
                payload_address=payloads.values[round_number],
                is_vetoed=is_vetoed,
            )

        for round_number, error in result.failed.items():
            logger.warning(f"Round {round_number}: detail unavailable: {error}")
        logger.debug(
            f"Detail pipeline: {len(result.details)} built, "
            f"{len(result.empty_rounds)} empty, {len(result.failed)} failed"
        )
        return result
