"""Tests for the plugin dependency graph."""

from __future__ import annotations

import pytest

from fluxguard.foundation.errors import PluginCircularDependencyError
from fluxguard.plugins import DependencyGraph


@pytest.fixture
def chain() -> DependencyGraph:
    """c depends on b depends on a."""
    graph = DependencyGraph()
    graph.add_node("a")
    graph.add_node("b", ["a"])
    graph.add_node("c", ["b"])
    return graph


# ═════════════════════════════════════════════════════════════════════════════
# Load Order
# ═════════════════════════════════════════════════════════════════════════════


def test_load_order_follows_dependencies(chain: DependencyGraph) -> None:
    assert chain.get_load_order() == ["a", "b", "c"]


def test_load_order_ties_broken_by_name() -> None:
    graph = DependencyGraph()
    for name in ("zeta", "alpha", "mid"):
        graph.add_node(name)
    graph.add_node("app", ["zeta", "alpha"])
    assert graph.get_load_order() == ["alpha", "mid", "zeta", "app"]


def test_load_order_reports_cyclic_nodes() -> None:
    graph = DependencyGraph()
    graph.add_node("root")
    graph.add_node("a", ["b"])
    graph.add_node("b", ["a"])
    graph.add_node("tail", ["a"])

    with pytest.raises(PluginCircularDependencyError) as exc_info:
        graph.get_load_order()
    assert exc_info.value.nodes == ("a", "b", "tail")


def test_edges_only_between_present_nodes() -> None:
    """A declared dependency that is absent contributes no edge."""
    graph = DependencyGraph()
    graph.add_node("billing", ["auth"])
    assert graph.get_dependencies("billing") == []
    assert graph.in_degree("billing") == 0

    graph.add_node("auth")
    assert graph.get_dependencies("billing") == ["auth"]
    assert graph.get_load_order() == ["auth", "billing"]


def test_remove_and_restore_node(chain: DependencyGraph) -> None:
    assert chain.remove_node("a") is True
    assert chain.remove_node("a") is False
    assert chain.get_dependencies("b") == []
    assert "a" not in chain

    chain.add_node("a")
    assert chain.get_dependents("a") == ["b"]
    assert chain.get_load_order() == ["a", "b", "c"]


# ═════════════════════════════════════════════════════════════════════════════
# Cycles
# ═════════════════════════════════════════════════════════════════════════════


def test_find_cycle_closed_path() -> None:
    graph = DependencyGraph()
    graph.add_node("a", ["b"])
    graph.add_node("b", ["a"])
    assert graph.find_cycle("b") == ["b", "a", "b"]
    assert graph.has_circular_dependency() is True


def test_self_dependency_is_a_cycle() -> None:
    graph = DependencyGraph()
    graph.add_node("x", ["x"])
    assert graph.find_cycle("x") == ["x", "x"]


def test_diamond_is_not_a_cycle() -> None:
    """Reaching a finished node twice is not a cycle."""
    graph = DependencyGraph()
    graph.add_node("base")
    graph.add_node("left", ["base"])
    graph.add_node("right", ["base"])
    graph.add_node("top", ["left", "right"])
    assert graph.find_cycle() is None
    assert graph.has_circular_dependency("top") is False
    assert graph.get_load_order() == ["base", "left", "right", "top"]


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def test_transitive_queries(chain: DependencyGraph) -> None:
    assert chain.get_all_dependencies("c") == ["b", "a"]
    assert chain.get_all_dependents("a") == ["b", "c"]
    assert chain.is_dependent_on("c", "a") is True
    assert chain.is_dependent_on("a", "c") is False


def test_dependency_path(chain: DependencyGraph) -> None:
    assert chain.get_dependency_path("c", "a") == ["c", "b", "a"]
    assert chain.get_dependency_path("a", "c") is None
    assert chain.get_dependency_path("c", "missing") is None


def test_stats(chain: DependencyGraph) -> None:
    stats = chain.get_stats()
    assert stats.total_plugins == 3
    assert stats.total_dependencies == 2
    assert stats.cyclic_dependencies is False
    assert stats.root_plugins == ["a"]
    assert stats.leaf_plugins == ["c"]
    assert stats.load_order == ["a", "b", "c"]


def test_size_and_clear(chain: DependencyGraph) -> None:
    assert chain.size == len(chain) == 3
    assert chain.has_node("b")
    chain.clear()
    assert chain.size == 0


def test_to_dot() -> None:
    graph = DependencyGraph()
    graph.add_node("auth")
    graph.add_node("billing", ["auth"])
    assert graph.to_dot() == "\n".join([
        "digraph PluginDependencies {",
        "  rankdir=TB;",
        "  node [shape=box];",
        '  "auth";',
        '  "billing";',
        '  "auth" -> "billing";',
        "}",
    ])
