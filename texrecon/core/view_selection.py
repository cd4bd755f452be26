"""
View selection — assign one source view to every face.

The assignment minimizes a Markov-Random-Field energy over the adjacency
graph:

    E(L) = Σ_f  cost(f, L_f)  +  w · Σ_(f,g adjacent)  [L_f ≠ L_g]

where cost comes from DataCosts and the second (Potts) term discourages
seams between neighboring faces. Faces no view sees keep label 0.

The optimizer is a pluggable capability: anything with the signature
`optimize(graph, data_costs, settings) -> None` that writes labels into
the graph can be passed to view_selection(). The default, icm_optimize(),
is a deterministic iterated-conditional-modes solver: it starts from the
best per-face view and sweeps the faces in index order, moving each face
to the label with the lowest local energy, until a sweep changes nothing.
"""

import logging
from typing import Callable

from texrecon.core.data_costs import DataCosts
from texrecon.core.graph import Graph
from texrecon.core.settings import (
    MAX_VIEW_SELECTION_ITERATIONS,
    SMOOTHNESS_WEIGHT,
    Settings,
    SmoothnessTerm,
)

logger = logging.getLogger(__name__)

Optimizer = Callable[[Graph, DataCosts, Settings], None]


def _potts(l1: int, l2: int) -> float:
    return 0.0 if l1 == l2 else 1.0


SMOOTHNESS_TERMS = {
    SmoothnessTerm.POTTS: _potts,
}


def icm_optimize(graph: Graph, data_costs: DataCosts, settings: Settings,
                 smoothness_weight: float = SMOOTHNESS_WEIGHT,
                 max_iterations: int = MAX_VIEW_SELECTION_ITERATIONS) -> None:
    """Iterated conditional modes over the Potts MRF; writes labels into `graph`."""
    smoothness = SMOOTHNESS_TERMS[settings.smoothness_term]
    num_nodes = graph.num_nodes()

    # Initial labeling: the cheapest view per face, ties to the lower view.
    for node in range(num_nodes):
        costs = data_costs.face_costs(node)
        if costs:
            view = min(costs, key=lambda v: (costs[v], v))
            graph.set_label(node, view + 1)
        else:
            graph.set_label(node, 0)

    for iteration in range(max_iterations):
        changed = 0
        for node in range(num_nodes):
            costs = data_costs.face_costs(node)
            if not costs:
                continue

            neighbor_labels = [graph.get_label(n) for n in graph.get_adj_nodes(node)]
            current = graph.get_label(node)

            def energy(label):
                pairwise = sum(smoothness(label, nl) for nl in neighbor_labels)
                return costs[label - 1] + smoothness_weight * pairwise

            best = current
            best_energy = energy(current)
            for view in sorted(costs):
                label = view + 1
                e = energy(label)
                if e < best_energy - 1e-12:
                    best, best_energy = label, e

            if best != current:
                graph.set_label(node, best)
                changed += 1

        logger.debug("ICM sweep %d: %d labels changed", iteration + 1, changed)
        if changed == 0:
            break


def view_selection(data_costs: DataCosts, graph: Graph, settings: Settings,
                   optimizer: Optimizer | None = None) -> None:
    """
    Label every face of `graph` with its source view (label = view + 1).

    Args:
        data_costs: Costs for every (face, view) pair that can be textured.
        graph:      Adjacency graph; labels are overwritten in place.
        settings:   Selects the smoothness term.
        optimizer:  Optional replacement for the default ICM solver.
    """
    if data_costs.num_faces != graph.num_nodes():
        raise ValueError(
            f"Data costs cover {data_costs.num_faces} faces, graph has {graph.num_nodes()}"
        )

    (optimizer or icm_optimize)(graph, data_costs, settings)

    labels = graph.get_labels()
    logger.info(
        "View selection: %d of %d faces labeled, %d distinct views used",
        int((labels > 0).sum()), len(labels), len(set(labels[labels > 0].tolist())),
    )
