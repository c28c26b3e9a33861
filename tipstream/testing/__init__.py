from .core import Expectation, Result, Scenario, StateMatches
from .scenario import GENESIS, ProjectionScenario, as_chain_event

__all__ = [
    "GENESIS",
    "Expectation",
    "ProjectionScenario",
    "Result",
    "Scenario",
    "StateMatches",
    "as_chain_event",
]
