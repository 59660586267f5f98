"""Dependency graph over the steps of a template."""

from typing import List, Set

import networkx as nx

from ..exceptions import ConfigurationError
from ..models.template import MigrationTemplate


def build_step_graph(template: MigrationTemplate) -> nx.DiGraph:
    """Graph with an edge from each dependency to the step that needs it."""
    graph = nx.DiGraph()
    for step in template.etl_steps:
        graph.add_node(step.step_name)
    for step in template.etl_steps:
        for dependency in step.dependencies:
            graph.add_edge(dependency, step.step_name)
    return graph


def check_execution_order(template: MigrationTemplate) -> None:
    """
    Verify that the execution order is a topological order of the steps.

    Raises:
        ConfigurationError: On a dependency cycle, a dependency on an unknown
            step, an order naming unknown or repeated steps, or a step that
            runs before one of its dependencies
    """
    step_names = {s.step_name for s in template.etl_steps}

    for step in template.etl_steps:
        unknown = sorted(step.dependencies - step_names)
        if unknown:
            raise ConfigurationError(
                f"Step '{step.step_name}' depends on unknown step(s): {', '.join(unknown)}"
            )

    graph = build_step_graph(template)
    try:
        cycle_edges = list(nx.find_cycle(graph))
    except nx.NetworkXNoCycle:
        cycle_edges = []
    if cycle_edges:
        cycle = [u for u, v in cycle_edges]
        raise ConfigurationError(f"Dependency cycle in template '{template.id}': {' -> '.join(cycle)}")

    order = list(template.execution_order)
    unknown = [name for name in order if name not in step_names]
    if unknown:
        raise ConfigurationError(f"Execution order names unknown step(s): {', '.join(unknown)}")
    if len(set(order)) != len(order):
        raise ConfigurationError(f"Execution order of '{template.id}' repeats a step")
    missing = sorted(step_names - set(order))
    if missing:
        raise ConfigurationError(f"Execution order omits step(s): {', '.join(missing)}")

    position = {name: i for i, name in enumerate(order)}
    for step in template.etl_steps:
        for dependency in sorted(step.dependencies):
            if position[dependency] > position[step.step_name]:
                raise ConfigurationError(
                    f"Step '{step.step_name}' runs before its dependency '{dependency}'"
                )


def transitive_dependents(template: MigrationTemplate, step_name: str) -> Set[str]:
    """All steps that directly or indirectly depend on the given step."""
    graph = build_step_graph(template)
    if not graph.has_node(step_name):
        return set()
    return set(nx.descendants(graph, step_name))


def topological_order(template: MigrationTemplate) -> List[str]:
    """A valid execution order derived from the declared dependencies."""
    return list(nx.topological_sort(build_step_graph(template)))
