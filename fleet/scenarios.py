"""
Per-vehicle driving scenarios and the speeds they produce.

Each tick the current scenario assigns a speed drawn uniformly from its
range, then rolls its transitions:

    normal_driving  30-60 km/h   10% -> overspeeding
    overspeeding    70-90 km/h   20% -> normal_driving, then 2% -> accident
    accident        0 km/h       absorbing until reset from outside
    stationary      0 km/h       30% -> normal_driving

A transition takes effect in the tick that rolls it: speed and status are
redrawn from the new scenario. The accident roll is independent of the
recovery roll and overrides it.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .telemetry import Scenario, VehicleState, VehicleStatus

SPEED_RANGES: Dict[Scenario, Tuple[float, float]] = {
    Scenario.NORMAL_DRIVING: (30.0, 60.0),
    Scenario.OVERSPEEDING: (70.0, 90.0),
    Scenario.ACCIDENT: (0.0, 0.0),
    Scenario.STATIONARY: (0.0, 0.0),
}

STATUS_BY_SCENARIO: Dict[Scenario, VehicleStatus] = {
    Scenario.NORMAL_DRIVING: VehicleStatus.NORMAL,
    Scenario.STATIONARY: VehicleStatus.NORMAL,
    Scenario.OVERSPEEDING: VehicleStatus.OVERSPEEDING,
    Scenario.ACCIDENT: VehicleStatus.ACCIDENT,
}

OVERSPEED_CHANCE = 0.10
RECOVER_CHANCE = 0.20
ACCIDENT_CHANCE = 0.02
RESUME_CHANCE = 0.30


@dataclass(frozen=True)
class ScenarioOutcome:
    scenario: Scenario
    speed_kmh: float
    status: VehicleStatus


class ScenarioGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def _speed_for(self, scenario: Scenario) -> float:
        low, high = SPEED_RANGES[scenario]
        if high <= 0:
            return 0.0
        return round(self.rng.uniform(low, high), 1)

    def _outcome(self, scenario: Scenario) -> ScenarioOutcome:
        return ScenarioOutcome(scenario, self._speed_for(scenario), STATUS_BY_SCENARIO[scenario])

    def next(self, scenario: Scenario) -> ScenarioOutcome:
        outcome = self._outcome(scenario)

        if scenario == Scenario.NORMAL_DRIVING:
            if self.rng.random() < OVERSPEED_CHANCE:
                outcome = self._outcome(Scenario.OVERSPEEDING)
        elif scenario == Scenario.OVERSPEEDING:
            if self.rng.random() < RECOVER_CHANCE:
                outcome = self._outcome(Scenario.NORMAL_DRIVING)
            if self.rng.random() < ACCIDENT_CHANCE:
                outcome = self._outcome(Scenario.ACCIDENT)
        elif scenario == Scenario.STATIONARY:
            if self.rng.random() < RESUME_CHANCE:
                outcome = self._outcome(Scenario.NORMAL_DRIVING)

        return outcome

    def apply(self, state: VehicleState) -> ScenarioOutcome:
        outcome = self.next(state.scenario)
        state.scenario = outcome.scenario
        state.speed_kmh = outcome.speed_kmh
        state.status = outcome.status
        return outcome

    @staticmethod
    def reset(state: VehicleState, scenario: Scenario = Scenario.NORMAL_DRIVING) -> None:
        """Force a scenario, the only way out of an accident."""
        state.scenario = scenario
        state.status = STATUS_BY_SCENARIO[scenario]
        if SPEED_RANGES[scenario][1] <= 0:
            state.speed_kmh = 0.0
