"""
Simulated Annealing Layout Optimizer

Searches for a compact, well-balanced arrangement of optical components
while keeping every beam on its physically expected path. Moves come from
placement.moves (stretch, rotate, translate-chain, random translate), are
pre-filtered geometrically and then scored with the pure cost function
against an id -> pose overlay. Only accepted moves touch live components.

The run is a small state machine (idle -> running <-> paused -> finished)
advanced in batches by step(). A host either calls step() itself (a tight
loop in tests and the CLI, via run()) or hands the optimizer a scheduler
callable so that each batch re-arms the next one, as an interactive UI
would with a timer or frame callback.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..layout.abstraction import Component, LayoutState
from .cost import CostBreakdown, CostWeights, evaluate
from .moves import CandidateMove, MoveConfig, MoveGenerator

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass
class AnnealingParams:
    """Annealing schedule."""
    initial_temp: float = 100.0
    final_temp: float = 0.1  # run ends once the temperature drops below this
    cooling_rate: float = 0.99  # temperature multiplier per cooling step
    iterations_per_temp: int = 20
    max_iterations: int = 10000
    initial_step_size: float = 50.0  # layout units
    min_step_size: float = 1.0
    early_stop_iterations: int = 1000  # iterations without a new best


def get_adaptive_params(movable_count: int) -> AnnealingParams:
    """Scale the schedule to the number of movable components.

    Larger problems get more iterations (capped), longer plateaus, slower
    cooling and more patience before stopping early. Zero or one movable
    components get the floor values.
    """
    movable_count = max(0, movable_count)
    return AnnealingParams(
        max_iterations=min(max(500, movable_count * 300), 5000),
        iterations_per_temp=max(10, movable_count * 5),
        cooling_rate=0.98 if movable_count <= 5 else 0.99,
        early_stop_iterations=max(200, movable_count * 100),
    )


class OptimizerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


class FinishReason(Enum):
    MAX_ITERATIONS = "maxIterations"
    EARLY_STOP = "earlyStop"


@dataclass
class OptimizerConfig:
    """Configuration for BeamLayoutOptimizer."""
    moves: MoveConfig = field(default_factory=MoveConfig)
    batch_size: int = 200  # iterations per step()
    snapshot_interval: int = 10
    step_callback_interval: int = 400  # on_step fires when iteration % this == 0
    params: Optional[AnnealingParams] = None  # None -> get_adaptive_params()
    seed: Optional[int] = None


@dataclass(frozen=True)
class Snapshot:
    """Immutable record of the search state at one iteration."""
    iteration: int
    cost: float
    cost_breakdown: CostBreakdown
    positions: Mapping[str, Point]
    angles: Mapping[str, float]


@dataclass
class ProgressInfo:
    """Per-batch progress report."""
    progress: float  # iteration / max_iterations
    iteration: int
    max_iterations: int
    temperature: float
    current_cost: float
    best_cost: float
    initial_cost: float
    improvement: float  # percent
    step_size: float
    accept_rate: float  # percent
    cost_breakdown: CostBreakdown
    iterations_since_improvement: int


@dataclass
class CompletionSummary:
    """Outcome of a finished run."""
    reason: FinishReason
    iterations: int
    max_iterations: int
    initial_cost: float
    best_cost: float
    improvement_percent: float
    cost_breakdown: CostBreakdown


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


class BeamLayoutOptimizer:
    """
    Simulated annealing over component positions and angles.

    Usage:
        optimizer = BeamLayoutOptimizer(OptimizerConfig(seed=1))
        optimizer.initialize(layout, CostWeights())
        summary = optimizer.run()

    The optimizer is the only writer of component poses while a run is
    active. pause() and stop() leave components at the last accepted
    move; finish() writes the best state back.
    """

    def __init__(self, config: Optional[OptimizerConfig] = None,
                 rng: Optional[random.Random] = None,
                 scheduler: Optional[Callable[[Callable[[], None]], Any]] = None,
                 cancel_scheduled: Optional[Callable[[Any], None]] = None):
        self.config = config or OptimizerConfig()
        self.rng = rng or random.Random(self.config.seed)
        self.scheduler = scheduler
        self.cancel_scheduled = cancel_scheduled
        self._pending = None

        # Host callbacks
        self.on_progress: Optional[Callable[[ProgressInfo], None]] = None
        self.on_step: Optional[Callable[[Mapping[str, Point]], None]] = None
        self.on_complete: Optional[Callable[[CompletionSummary], None]] = None

        self.state = OptimizerState.IDLE
        self.layout: Optional[LayoutState] = None
        self.weights = CostWeights()
        self.params = AnnealingParams()
        self.moves: Optional[MoveGenerator] = None

        self.movable_ids: List[str] = []
        self.angle_movable_ids: List[str] = []

        self.original_positions: Dict[str, Point] = {}
        self.original_angles: Dict[str, float] = {}
        self.current_positions: Dict[str, Point] = {}
        self.current_angles: Dict[str, float] = {}
        self.best_positions: Dict[str, Point] = {}
        self.best_angles: Dict[str, float] = {}

        self.temperature = 0.0
        self.step_size = 0.0
        self.iteration = 0
        self.iterations_since_improvement = 0
        self.accepted_moves = 0
        self.rejected_moves = 0

        self.initial_cost = 0.0
        self.current_cost = 0.0
        self.best_cost = 0.0
        self.cost_breakdown = CostBreakdown()
        self.best_breakdown = CostBreakdown()

        self.snapshots: List[Snapshot] = []
        self.summary: Optional[CompletionSummary] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, layout: LayoutState, weights: Optional[CostWeights] = None):
        """Capture the baseline: original poses, movability, initial cost.

        Resets every counter and the snapshot list; iteration 0 is recorded
        as the pre-optimization layout.
        """
        self.layout = layout
        self.weights = weights or CostWeights()

        self.movable_ids = layout.movable_ids
        self.angle_movable_ids = layout.angle_movable_ids
        self.params = self.config.params or get_adaptive_params(len(self.movable_ids))
        self.moves = MoveGenerator(layout, self.config.moves, self.rng)

        self.temperature = self.params.initial_temp
        self.step_size = self.params.initial_step_size
        self.iteration = 0
        self.iterations_since_improvement = 0
        self.accepted_moves = 0
        self.rejected_moves = 0

        self.original_positions = layout.positions()
        self.original_angles = layout.angles()
        self.current_positions = dict(self.original_positions)
        self.current_angles = dict(self.original_angles)
        self.best_positions = dict(self.original_positions)
        self.best_angles = dict(self.original_angles)

        breakdown = evaluate(layout, self.weights)
        self.cost_breakdown = breakdown
        self.best_breakdown = breakdown
        self.initial_cost = breakdown.total
        self.current_cost = breakdown.total
        self.best_cost = breakdown.total

        self.summary = None
        self.snapshots = [self._capture_snapshot(0)]

        logger.info("Initialized optimizer: %d movable, %d rotatable, initial cost %.3f",
                    len(self.movable_ids), len(self.angle_movable_ids), self.initial_cost)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("  Params: %s", self.params)
            logger.debug("  Initial breakdown: %s", breakdown.as_dict())

    def start(self, layout: Optional[LayoutState] = None,
              weights: Optional[CostWeights] = None):
        """Begin a run from Idle or Finished.

        Re-captures the baseline from the live layout (so a second run
        continues from the previous best), then schedules the first batch
        when a scheduler is configured.
        """
        if self.state not in (OptimizerState.IDLE, OptimizerState.FINISHED):
            return
        if layout is None:
            layout = self.layout
        if layout is None:
            raise RuntimeError("start() needs a layout; call initialize() first")

        self.initialize(layout, weights if weights is not None else self.weights)
        self.state = OptimizerState.RUNNING
        self._schedule_next()

    def pause(self):
        if self.state is OptimizerState.RUNNING:
            self.state = OptimizerState.PAUSED
            self._cancel_pending()

    def resume(self):
        if self.state is OptimizerState.PAUSED:
            self.state = OptimizerState.RUNNING
            self._schedule_next()

    def stop(self):
        """Abort the run. Components keep their last accepted poses."""
        self.state = OptimizerState.IDLE
        self._cancel_pending()

    def finish(self, reason: FinishReason = FinishReason.MAX_ITERATIONS) -> CompletionSummary:
        """End the run, write the best state back and report."""
        self.state = OptimizerState.FINISHED
        self._cancel_pending()

        if self.layout is not None:
            self.apply_positions(self.best_positions, self.layout.components)
            for comp_id, angle in self.best_angles.items():
                comp = self.layout.components.get(comp_id)
                if comp is not None:
                    comp.angle = angle

        self.summary = CompletionSummary(
            reason=reason,
            iterations=self.iteration,
            max_iterations=self.params.max_iterations,
            initial_cost=self.initial_cost,
            best_cost=self.best_cost,
            improvement_percent=self._improvement(),
            cost_breakdown=self.best_breakdown,
        )
        logger.info("Optimization finished (%s) after %d iterations: %.3f -> %.3f (%.1f%%)",
                    reason.value, self.iteration, self.initial_cost, self.best_cost,
                    self.summary.improvement_percent)

        if self.on_complete is not None:
            try:
                self.on_complete(self.summary)
            except Exception:
                logger.exception("Error in optimizer completion callback")
        return self.summary

    def run(self) -> Optional[CompletionSummary]:
        """Start (if needed) and drive batches until the run ends.

        Returns the completion summary, or None if a callback paused or
        stopped the run before it finished.
        """
        if self.state in (OptimizerState.IDLE, OptimizerState.FINISHED):
            self.start()
        elif self.state is OptimizerState.PAUSED:
            self.state = OptimizerState.RUNNING
        # This loop drives the batches; drop any tick a scheduler queued
        self._cancel_pending()

        while self.step():
            pass
        return self.summary

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def step(self, batch_size: Optional[int] = None) -> bool:
        """Run one batch of iterations.

        Returns:
            True while the run is still going (more batches wanted),
            False once it has finished or is not running.
        """
        if self.state is not OptimizerState.RUNNING:
            return False

        batch = batch_size if batch_size is not None else self.config.batch_size
        params = self.params
        for _ in range(batch):
            if (self.iteration >= params.max_iterations or
                    self.temperature < params.final_temp):
                self.finish(FinishReason.MAX_ITERATIONS)
                return False
            if self.iterations_since_improvement >= params.early_stop_iterations:
                self.finish(FinishReason.EARLY_STOP)
                return False

            self.perform_iteration()
            self.iteration += 1
            self.iterations_since_improvement += 1

            if self.iteration % self.config.snapshot_interval == 0:
                self.snapshots.append(self._capture_snapshot(self.iteration))

            if self.iteration % params.iterations_per_temp == 0:
                self.temperature *= params.cooling_rate
                self.step_size = max(params.min_step_size,
                                     self.step_size * params.cooling_rate)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Iter %d: T=%.3f step=%.2f cost=%.3f best=%.3f accept=%.1f%%",
                self.iteration, self.temperature, self.step_size,
                self.current_cost, self.best_cost, self.accept_rate,
            )

        try:
            if self.on_progress is not None:
                self.on_progress(self.get_progress())
            if (self.on_step is not None and
                    self.iteration % self.config.step_callback_interval == 0):
                self.on_step(MappingProxyType(self.best_positions))
        except Exception:
            logger.exception("Error in optimizer callback")

        return self.state is OptimizerState.RUNNING

    def _tick(self):
        self._pending = None
        if self.step():
            self._schedule_next()

    def _schedule_next(self):
        if self.scheduler is not None and self.state is OptimizerState.RUNNING:
            self._pending = self.scheduler(self._tick)

    def _cancel_pending(self):
        if self._pending is not None and self.cancel_scheduled is not None:
            self.cancel_scheduled(self._pending)
        self._pending = None

    # ------------------------------------------------------------------
    # Iterations
    # ------------------------------------------------------------------

    def perform_iteration(self):
        """Propose one move and run it through validation and acceptance."""
        if not self.movable_ids and not self.angle_movable_ids:
            return
        candidate = self.moves.propose(self.current_positions, self.current_angles,
                                       self.original_angles, self.step_size)
        if candidate is None or candidate.is_empty:
            return
        self.attempt_move(candidate)

    def attempt_move(self, candidate: CandidateMove) -> bool:
        """Validate, score and accept or reject a candidate.

        Returns True if the move was accepted. A candidate that fails the
        geometric pre-filter counts as rejected and is never scored.
        """
        valid = self.moves.validate(candidate, self.current_positions, self.current_angles)
        if valid is None:
            self.rejected_moves += 1
            return False

        breakdown = evaluate(self.layout, self.weights,
                             positions=valid.positions, angles=valid.angles)
        delta = breakdown.total - self.current_cost
        if delta < 0:
            accept = True
        elif self.temperature <= 0:
            accept = False
        else:
            accept = self.rng.random() < math.exp(-delta / self.temperature)

        if not accept:
            self.rejected_moves += 1
            return False

        self.accepted_moves += 1
        components = self.layout.components
        for comp_id, pos in valid.positions.items():
            self.current_positions[comp_id] = pos
            components[comp_id].position = pos
        for comp_id, angle in valid.angles.items():
            self.current_angles[comp_id] = angle
            components[comp_id].angle = angle
        self.current_cost = breakdown.total
        self.cost_breakdown = breakdown

        if breakdown.total < self.best_cost:
            self.best_cost = breakdown.total
            self.best_breakdown = breakdown
            self.best_positions = dict(self.current_positions)
            self.best_angles = dict(self.current_angles)
            self.iterations_since_improvement = 0
        return True

    # ------------------------------------------------------------------
    # Reporting and accessors
    # ------------------------------------------------------------------

    @property
    def accept_rate(self) -> float:
        decided = self.accepted_moves + self.rejected_moves
        if decided == 0:
            return 0.0
        return self.accepted_moves / decided * 100

    def _improvement(self) -> float:
        if self.initial_cost <= 0:
            return 0.0
        return (self.initial_cost - self.best_cost) / self.initial_cost * 100

    def get_progress(self) -> ProgressInfo:
        max_iterations = self.params.max_iterations
        return ProgressInfo(
            progress=self.iteration / max_iterations if max_iterations else 1.0,
            iteration=self.iteration,
            max_iterations=max_iterations,
            temperature=self.temperature,
            current_cost=self.current_cost,
            best_cost=self.best_cost,
            initial_cost=self.initial_cost,
            improvement=self._improvement(),
            step_size=self.step_size,
            accept_rate=self.accept_rate,
            cost_breakdown=self.cost_breakdown,
            iterations_since_improvement=self.iterations_since_improvement,
        )

    def _capture_snapshot(self, iteration: int) -> Snapshot:
        return Snapshot(
            iteration=iteration,
            cost=self.current_cost,
            cost_breakdown=self.cost_breakdown,
            positions=_freeze(self.current_positions),
            angles=_freeze(self.current_angles),
        )

    def get_original_positions(self) -> Dict[str, Point]:
        return dict(self.original_positions)

    def get_original_angles(self) -> Dict[str, float]:
        return dict(self.original_angles)

    def get_best_positions(self) -> Dict[str, Point]:
        return dict(self.best_positions)

    def get_best_angles(self) -> Dict[str, float]:
        return dict(self.best_angles)

    def get_snapshots(self) -> List[Snapshot]:
        return list(self.snapshots)

    def get_snapshot_at(self, index: int) -> Optional[Snapshot]:
        if 0 <= index < len(self.snapshots):
            return self.snapshots[index]
        return None

    def get_best_snapshot(self) -> Optional[Snapshot]:
        """Lowest-cost snapshot (earliest on ties), or None before initialize()."""
        if not self.snapshots:
            return None
        return min(self.snapshots, key=lambda snap: snap.cost)

    def apply_snapshot(self, snapshot: Optional[Snapshot],
                       components: Mapping[str, Component]):
        """Push a recorded state onto live components (unknown ids ignored)."""
        if snapshot is None:
            return
        self.apply_positions(snapshot.positions, components)
        for comp_id, angle in snapshot.angles.items():
            comp = components.get(comp_id)
            if comp is not None:
                comp.angle = angle

    def apply_positions(self, positions: Mapping[str, Point],
                        components: Mapping[str, Component]):
        for comp_id, pos in positions.items():
            comp = components.get(comp_id)
            if comp is not None:
                comp.position = pos
