from dataclasses import replace
from typing import Dict, List

from phenomena.scenario import Scenario


_SCENARIOS: Dict[str, Scenario] = dict()


def register(scenario: Scenario) -> Scenario:
    if scenario.key in _SCENARIOS:
        raise ValueError(f"Scenario {scenario.key} already registered")

    if scenario.description:
        scenario = replace(scenario, description=scenario.description.strip())

    scenario.validate()
    _SCENARIOS[scenario.key] = scenario
    return scenario


def resolve(key: str) -> Scenario:
    scenario = _SCENARIOS.get(key, None)
    if scenario is None:
        raise ValueError(f"Unknown scenario: {key}.")

    return scenario


def get_registered() -> List[str]:
    return list(_SCENARIOS.keys())
