from typing import TYPE_CHECKING

import networkx as nx
from networkx import generate_network_text

if TYPE_CHECKING:  # pragma: no cover
    from .task import Task


class TaskGraph:
    """
    Forward adjacency view over a task collection: each task id maps to the ids of
    the tasks that depend on it.
    """

    def __init__(self, *, nodes: dict[str, "Task"], edges: dict[str, list[str]]) -> None:
        self.nodes = nodes
        self.edges = edges

    @property
    def digraph(self) -> nx.DiGraph:
        digraph = nx.DiGraph()
        digraph.add_nodes_from(self.nodes)

        for task_id, dependents in self.edges.items():
            for dependent_id in dependents:
                if dependent_id in self.nodes:
                    digraph.add_edge(task_id, dependent_id)

        return digraph

    def find_cycles(self, among: "set[str] | None" = None) -> list[tuple[str, ...]]:
        digraph = self.digraph
        if among is not None:
            digraph = digraph.subgraph(among)

        return sorted((tuple(cycle) for cycle in nx.simple_cycles(digraph)), key=len)

    def __str__(self) -> str:
        return "\n".join(generate_network_text(self.digraph, vertical_chains=True))
