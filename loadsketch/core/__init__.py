from .results import SimulationConfig, SimulationResult
from .simulation_engine import run_simulation, run_topology, simulate

__all__ = [
    "SimulationConfig",
    "SimulationResult",
    "run_simulation",
    "run_topology",
    "simulate",
]
