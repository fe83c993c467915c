"""Placement engine: cost function, move generators and annealing optimizer."""

from .cost import CostBreakdown, CostWeights, evaluate, trace_beam_alignment
from .moves import CandidateMove, MoveConfig, MoveGenerator, MoveType
from .annealer import (
    AnnealingParams,
    BeamLayoutOptimizer,
    CompletionSummary,
    FinishReason,
    OptimizerConfig,
    OptimizerState,
    ProgressInfo,
    Snapshot,
    get_adaptive_params,
)

__all__ = [
    "CostBreakdown",
    "CostWeights",
    "evaluate",
    "trace_beam_alignment",
    "CandidateMove",
    "MoveConfig",
    "MoveGenerator",
    "MoveType",
    "AnnealingParams",
    "BeamLayoutOptimizer",
    "CompletionSummary",
    "FinishReason",
    "OptimizerConfig",
    "OptimizerState",
    "ProgressInfo",
    "Snapshot",
    "get_adaptive_params",
]
