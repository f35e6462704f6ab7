"""
Slashwatch Contracts Module

ABI descriptions of the tally slashing proposer, slasher, rollup and
Multicall3 contracts.
"""

from .abi import (
    ContractFunction,
    TallySlashingProposer,
    Slasher,
    Rollup,
    Multicall3,
    checksum_values,
)

__all__ = [
    "ContractFunction",
    "TallySlashingProposer",
    "Slasher",
    "Rollup",
    "Multicall3",
    "checksum_values",
]
