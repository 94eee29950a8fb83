from .topology import Topology, build_topology
from .validator import validate_graph

__all__ = ["Topology", "build_topology", "validate_graph"]
