"""Simulated annealing engine.

Problem-agnostic: callers supply an initial state, a neighbour function and an
energy function to MINIMIZE. Timetable generation is the main user, but the
engine knows nothing about timetables.

Schedule
--------
- geometric cooling from `t_start` to `t_end` over `steps` iterations
- Metropolis acceptance for uphill moves: exp(-dE/T)
- `reheats` extra passes, each restarting the schedule from the best state

Runs are deterministic for a fixed `seed`.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar


logger = logging.getLogger(__name__)

TState = TypeVar("TState")

NeighborFn = Callable[[TState, random.Random], TState]
EnergyFn = Callable[[TState], float]
# (step, temperature, current_energy, best_energy)
ProgressFn = Callable[[int, float, float, float], None]


@dataclass(frozen=True)
class AnnealConfig:
    """Annealing parameters.

    Attributes:
        steps: Iterations per pass.
        t_start: Initial temperature.
        t_end: Final temperature (must stay above zero).
        reheats: Extra passes restarting from the best state (0 disables).
        seed: RNG seed; None draws from system entropy.
        log_every: Emit a DEBUG progress line every N steps (0 disables).
    """

    steps: int = 40_000
    t_start: float = 5.0
    t_end: float = 0.05
    reheats: int = 1
    seed: Optional[int] = 42
    log_every: int = 10_000


@dataclass
class AnnealResult(Generic[TState]):
    best_state: TState
    best_energy: float
    best_step: int
    accepted_moves: int
    total_steps: int


def temperature_at(step: int, steps: int, t_start: float, t_end: float) -> float:
    if steps <= 1:
        return t_end
    frac = step / (steps - 1)
    return t_start * ((t_end / t_start) ** frac)


def acceptance_probability(delta_e: float, temperature: float) -> float:
    if delta_e <= 0:
        return 1.0
    if temperature <= 0:
        return 0.0
    return math.exp(-delta_e / temperature)


def anneal(
    initial_state: TState,
    neighbor: NeighborFn,
    energy: EnergyFn,
    config: AnnealConfig = AnnealConfig(),
    callback: Optional[ProgressFn] = None,
) -> AnnealResult:
    """Minimize `energy` starting from `initial_state`."""

    if config.t_end <= 0 or config.t_start <= 0:
        raise ValueError("Annealing temperatures must be positive")

    rng = random.Random(config.seed)

    current = initial_state
    current_e = energy(current)
    best, best_e, best_step = current, current_e, 0
    accepted = 0
    step_offset = 0
    ran = 0

    for pass_idx in range(config.reheats + 1):
        if pass_idx > 0:
            current, current_e = best, best_e
            logger.debug("Reheat %d from energy %.2f", pass_idx, best_e)

        for step in range(config.steps):
            global_step = step_offset + step
            ran += 1
            t = temperature_at(step, config.steps, config.t_start, config.t_end)
            cand = neighbor(current, rng)
            cand_e = energy(cand)

            if rng.random() < acceptance_probability(cand_e - current_e, t):
                current, current_e = cand, cand_e
                accepted += 1
                if current_e < best_e:
                    best, best_e, best_step = current, current_e, global_step

            if callback is not None:
                callback(global_step, t, current_e, best_e)
            if config.log_every and global_step % config.log_every == 0:
                logger.debug("step=%d T=%.4f E=%.2f best=%.2f", global_step, t, current_e, best_e)

            if best_e <= 0:
                break
        step_offset += config.steps
        if best_e <= 0:
            break

    logger.info("Annealing finished: best energy %.2f at step %d (%d accepted)", best_e, best_step, accepted)
    return AnnealResult(
        best_state=best,
        best_energy=best_e,
        best_step=best_step,
        accepted_moves=accepted,
        total_steps=ran,
    )
