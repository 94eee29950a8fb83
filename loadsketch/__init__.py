import logging

from .core.results import SimulationConfig, SimulationResult
from .core.simulation_engine import run_simulation
from .logging_config import configure_from_env, disable_logging, enable_console_logging, set_level

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "SimulationConfig",
    "SimulationResult",
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "run_simulation",
    "set_level",
]
