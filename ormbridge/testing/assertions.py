"""
ormbridge Testing - Graph Assertion Helpers.

Rich, descriptive assertions over service graphs: constructor
arguments, method-call positions and alias targets.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from ..di.definitions import MethodCall, ServiceNode
from ..di.graph import ServiceGraph

_sentinel = object()


class GraphAssertions:
    """
    Mixin class providing service-graph assertion methods.

    Designed to be mixed into test classes, but can also be used
    standalone::

        asserts = GraphAssertions()
        asserts.assert_alias_target(graph, "database_connection", "ormbridge.dbal.default_connection")
    """

    # ------------------------------------------------------------------
    # Node assertions
    # ------------------------------------------------------------------

    def assert_has_node(self, graph: ServiceGraph, service_id: str, msg: str = ""):
        """Assert a node (not an alias) is registered."""
        assert graph.has_node(service_id), (
            f"Service {service_id!r} is not defined. "
            f"Similar: {graph._candidates(service_id)}. {msg}"
        )

    def assert_no_node(self, graph: ServiceGraph, service_id: str, msg: str = ""):
        assert not graph.has_node(service_id), f"Service {service_id!r} should not be defined. {msg}"

    def assert_constructor_arguments(self, node: ServiceNode, args: Sequence[Any], msg: str = ""):
        """Assert the exact constructor argument list."""
        assert list(node.args) == list(args), (
            f"Unexpected constructor arguments for {node.id!r}.\n"
            f"Expected: {list(args)!r}\nActual:   {list(node.args)!r}. {msg}"
        )

    # ------------------------------------------------------------------
    # Method call assertions
    # ------------------------------------------------------------------

    def assert_method_call_at(
        self,
        position: int,
        node: ServiceNode,
        name: str,
        args: Optional[Sequence[Any]] = None,
        msg: str = "",
    ):
        """Assert the call at ``position`` has the given name (and args)."""
        calls = node.method_calls
        assert position < len(calls), (
            f"{node.id!r} has {len(calls)} method call(s), none at position {position}. {msg}"
        )
        call = calls[position]
        assert call.name == name, (
            f"Method call at position {position} of {node.id!r} is {call.name!r}, expected {name!r}. {msg}"
        )
        if args is not None:
            assert list(call.args) == list(args), (
                f"Unexpected arguments for {name!r} at position {position} of {node.id!r}.\n"
                f"Expected: {list(args)!r}\nActual:   {list(call.args)!r}. {msg}"
            )

    def assert_method_call_once(
        self,
        node: ServiceNode,
        name: str,
        args: Optional[Sequence[Any]] = None,
        msg: str = "",
    ) -> MethodCall:
        """Assert exactly one call with this name exists (optionally with these args)."""
        calls = node.calls_named(name)
        assert len(calls) == 1, (
            f"Expected method {name!r} to be called once on {node.id!r}, "
            f"found {len(calls)} call(s). {msg}"
        )
        if args is not None:
            assert list(calls[0].args) == list(args), (
                f"Unexpected arguments for {name!r} on {node.id!r}.\n"
                f"Expected: {list(args)!r}\nActual:   {list(calls[0].args)!r}. {msg}"
            )
        return calls[0]

    def assert_method_call_order(self, node: ServiceNode, names: Sequence[str], msg: str = ""):
        """Assert the method call names, in order."""
        actual = [call.name for call in node.method_calls]
        assert actual == list(names), (
            f"Unexpected method calls on {node.id!r}.\nExpected: {list(names)}\nActual:   {actual}. {msg}"
        )

    # ------------------------------------------------------------------
    # Alias & parameter assertions
    # ------------------------------------------------------------------

    def assert_alias_target(
        self,
        graph: ServiceGraph,
        alias_id: str,
        target: str,
        public: Any = _sentinel,
        msg: str = "",
    ):
        """Assert an alias exists and points at ``target``."""
        assert graph.has_alias(alias_id), f"Alias {alias_id!r} is not defined. {msg}"
        alias = graph.get_alias(alias_id)
        assert alias.target == target, (
            f"Alias {alias_id!r} points at {alias.target!r}, expected {target!r}. {msg}"
        )
        if public is not _sentinel:
            assert alias.public is public, (
                f"Alias {alias_id!r} public={alias.public}, expected {public}. {msg}"
            )

    def assert_parameter(self, graph: ServiceGraph, name: str, expected: Any = _sentinel, msg: str = ""):
        assert graph.has_parameter(name), f"Parameter {name!r} is not set. {msg}"
        if expected is not _sentinel:
            actual = graph.get_parameter(name)
            assert actual == expected, f"Parameter {name!r} is {actual!r}, expected {expected!r}. {msg}"
