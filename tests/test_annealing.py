import math
import random
import sys
from pathlib import Path

import pytest

# Ensure project root is on PYTHONPATH when tests are run via `pytest`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from optimizer.annealing import AnnealConfig, acceptance_probability, anneal, temperature_at


def _neighbor(x: int, rng: random.Random) -> int:
    return x + (1 if rng.random() < 0.5 else -1)


def _energy(x: int) -> float:
    return float((x - 3) ** 2)


def test_anneal_finds_low_value_on_quadratic():
    # Minimize f(x) = (x-3)^2 over integers with neighbor moves +/- 1.
    result = anneal(
        initial_state=50,
        neighbor=_neighbor,
        energy=_energy,
        config=AnnealConfig(steps=2000, t_start=5.0, t_end=0.01, reheats=1, seed=1),
    )

    assert result.best_energy == 0.0
    assert result.best_state == 3
    # stops as soon as a zero-energy state is found
    assert result.total_steps < 4000


def test_anneal_is_deterministic_for_a_seed():
    cfg = AnnealConfig(steps=300, seed=7)
    a = anneal(initial_state=40, neighbor=_neighbor, energy=_energy, config=cfg)
    b = anneal(initial_state=40, neighbor=_neighbor, energy=_energy, config=cfg)
    assert (a.best_state, a.best_step, a.accepted_moves) == (b.best_state, b.best_step, b.accepted_moves)


def test_anneal_reports_progress_and_counts_all_passes():
    seen = []

    def energy(x: int) -> float:
        # never reaches zero, so every pass runs to the end
        return float((x - 3) ** 2) + 1.0

    result = anneal(
        initial_state=10,
        neighbor=_neighbor,
        energy=energy,
        config=AnnealConfig(steps=50, reheats=2, seed=3, log_every=0),
        callback=lambda step, t, cur, best: seen.append((step, t, cur, best)),
    )

    assert result.total_steps == 150
    assert len(seen) == 150
    assert seen[-1][0] == 149
    assert all(best <= cur for _s, _t, cur, best in seen)


def test_anneal_rejects_non_positive_temperatures():
    with pytest.raises(ValueError):
        anneal(initial_state=0, neighbor=_neighbor, energy=_energy, config=AnnealConfig(t_end=0.0))


def test_temperature_schedule_endpoints():
    assert temperature_at(0, 100, 5.0, 0.05) == pytest.approx(5.0)
    assert temperature_at(99, 100, 5.0, 0.05) == pytest.approx(0.05)
    assert temperature_at(0, 1, 5.0, 0.05) == 0.05


def test_metropolis_acceptance():
    assert acceptance_probability(-1.0, 1.0) == 1.0
    assert acceptance_probability(1.0, 0.0) == 0.0
    assert acceptance_probability(2.0, 1.0) == pytest.approx(math.exp(-2.0))
