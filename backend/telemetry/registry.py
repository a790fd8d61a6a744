"""
registry.py — Per-Node Status Registry
=======================================

Tracks every configured sensing node and derives its status from the
latest tick:

States:
    active   — Node reported a clean reading this tick.
    warning  — Node reported, but the reading had to be clamped.
    offline  — Node did not report within the tick deadline.

Status is recomputed from scratch every tick and never latched, so a node
recovers to ``active`` the first tick it reports again.
"""

import logging
from dataclasses import replace

from . import config
from .models import ACTIVE, OFFLINE, WARNING, Node, Reading

logger = logging.getLogger("telemetry.registry")


class NodeRegistry:
    """
    Fixed set of nodes, keyed by id, in registration order.

    Attributes:
        node_timeouts (int): Total node-ticks that ended without a reading.
        _nodes (dict[str, Node]): Current node records.
    """

    def __init__(self, nodes=None):
        """
        Args:
            nodes: Sequence of {"id", "location"} mappings.
                Defaults to config.DEFAULT_NODES.

        Raises:
            ConfigurationError: If the node configuration is invalid.
        """
        validated = config.validate_node_config(
            nodes if nodes is not None else config.DEFAULT_NODES
        )
        self._nodes = {
            node_id: Node(id=node_id, location=location)
            for node_id, location in validated
        }
        self.node_timeouts = 0
        logger.info(f"Node registry initialized with {len(self._nodes)} nodes")

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def node_ids(self) -> tuple:
        return tuple(self._nodes)

    def update_node(self, node_id: str, reading: Reading = None,
                    clamped: bool = False) -> Node:
        """
        Derive a node's status from this tick's reading (or its absence).

        Calling this twice with the same arguments leaves the same state.

        Args:
            node_id: Configured node id.
            reading: Reading received this tick, or None if the node did
                not report.
            clamped: True if the reading needed DataQuality clamping.

        Returns:
            The updated Node.

        Raises:
            KeyError: If node_id is not configured.
        """
        node = self._nodes[node_id]

        if reading is None:
            updated = replace(node, status=OFFLINE)
        else:
            updated = replace(
                node,
                status=WARNING if clamped else ACTIVE,
                flow_rate=reading.flow_rate,
                water_level=reading.water_level,
            )

        if updated.status != node.status:
            log = logger.warning if updated.status == OFFLINE else logger.info
            log(f"Node {node_id} ({node.location}): {node.status} -> {updated.status}")

        self._nodes[node_id] = updated
        return updated

    def apply_tick(self, readings: dict) -> list:
        """
        Update every configured node for one tick.

        Args:
            readings: Mapping node_id -> (Reading, clamped) for nodes that
                reported. Configured nodes missing from the mapping are
                marked offline.

        Returns:
            All nodes after the update, in registration order.
        """
        for node_id in self._nodes:
            entry = readings.get(node_id)
            if entry is None:
                self.node_timeouts += 1
                self.update_node(node_id, None)
            else:
                reading, clamped = entry
                self.update_node(node_id, reading, clamped)
        return self.list_nodes()

    def list_nodes(self) -> tuple:
        """Return all nodes in registration order."""
        return tuple(self._nodes.values())

    def get(self, node_id: str):
        return self._nodes.get(node_id)
