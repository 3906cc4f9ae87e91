"""
Graph Boundary Detector — finds the exterior building loop in cleaned segments.

Segments become an undirected planar graph (endpoints within snap tolerance
share a node). Closed faces are found by always taking the next edge with the
smallest positive turn from the incoming direction. The loop with the largest
enclosed area is the outer boundary; when no loop closes, the convex hull of
all nodes is used instead.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from scaffold_outline.config import LOOP_STEP_FACTOR, LOOP_STEP_MARGIN, MIN_LOOP_AREA
from scaffold_outline.models.geometry import (
    BoundaryLoop,
    GraphEdge,
    GraphNode,
    PlanarGraph,
    Segment,
)
from scaffold_outline.services.geometry_primitives import (
    convex_hull,
    distance,
    polygon_perimeter,
    signed_polygon_area,
)
from scaffold_outline.services.perf_monitor import timed

logger = logging.getLogger("scaffold-outline.boundary")

_TWO_PI = 2 * math.pi


class InsufficientGeometryError(ValueError):
    """
    Raised when the segment graph cannot describe a closed footprint.

    Carries the node and edge counts so callers can report how much geometry
    survived cleaning.
    """
    def __init__(self, node_count: int, edge_count: int, reason: str = ""):
        self.node_count = node_count
        self.edge_count = edge_count
        detail = reason or "Need at least 3 nodes and 3 edges"
        super().__init__(
            f"INSUFFICIENT_GEOMETRY: {detail} "
            f"(nodes={node_count}, edges={edge_count}). "
            f"The drawing may not contain a closed building outline."
        )


@dataclass
class BoundaryDetectionResult:
    outer_boundary: BoundaryLoop
    inner_loops: list[BoundaryLoop] = field(default_factory=list)
    graph: Optional[PlanarGraph] = None
    used_hull_fallback: bool = False

    @property
    def loops_found(self) -> int:
        if self.used_hull_fallback:
            return 0
        return 1 + len(self.inner_loops)


class BoundaryDetector:

    @timed
    def detect(self, segments: list[Segment], snap_tolerance: float = 5.0) -> BoundaryDetectionResult:
        """
        Detect the outer building boundary.

        Raises:
            InsufficientGeometryError: fewer than 3 nodes or 3 edges, or every
                node lies on one line.
        """
        graph = self.build_graph(segments, snap_tolerance)
        logger.info(f"Graph built: {len(graph.nodes)} nodes, {len(graph.edges)} edges")

        if len(graph.nodes) < 3 or len(graph.edges) < 3:
            raise InsufficientGeometryError(len(graph.nodes), len(graph.edges))

        loops = self.find_closed_loops(graph)
        logger.info(f"Found {len(loops)} closed loops")

        if not loops:
            logger.warning("No closed loops found, falling back to convex hull of all nodes")
            return BoundaryDetectionResult(
                outer_boundary=self._hull_loop(graph),
                graph=graph,
                used_hull_fallback=True,
            )

        loops.sort(key=lambda loop: loop.area, reverse=True)
        outer = loops[0]
        logger.info(
            f"Outer boundary: {len(outer.points)} points, area={outer.area:.1f}, "
            f"perimeter={outer.perimeter:.1f}"
        )
        return BoundaryDetectionResult(outer_boundary=outer, inner_loops=loops[1:], graph=graph)

    # ── Graph construction ───────────────────────────────────────────────────

    def build_graph(self, segments: list[Segment], tolerance: float) -> PlanarGraph:
        nodes: list[GraphNode] = []
        edges: list[GraphEdge] = []
        seen_pairs: set[tuple[int, int]] = set()

        def node_for(x: float, y: float) -> int:
            for node in nodes:
                if distance((node.x, node.y), (x, y)) <= tolerance:
                    return node.id
            nodes.append(GraphNode(id=len(nodes), x=x, y=y))
            return nodes[-1].id

        for seg in segments:
            n1 = node_for(seg.x1, seg.y1)
            n2 = node_for(seg.x2, seg.y2)
            if n1 == n2:
                continue
            pair = (min(n1, n2), max(n1, n2))
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)

            a, b = nodes[n1], nodes[n2]
            edge = GraphEdge(
                id=len(edges),
                node1=n1,
                node2=n2,
                length=distance((a.x, a.y), (b.x, b.y)),
                angle=math.atan2(b.y - a.y, b.x - a.x),
            )
            edges.append(edge)
            a.edges.append(edge.id)
            b.edges.append(edge.id)

        return PlanarGraph(nodes=nodes, edges=edges)

    # ── Face traversal ───────────────────────────────────────────────────────

    def find_closed_loops(self, graph: PlanarGraph) -> list[BoundaryLoop]:
        used: set[tuple[int, int]] = set()
        seen_cycles: set[frozenset] = set()
        loops: list[BoundaryLoop] = []
        max_steps = LOOP_STEP_FACTOR * len(graph.edges) + LOOP_STEP_MARGIN

        for edge in graph.edges:
            for start, first in ((edge.node1, edge.node2), (edge.node2, edge.node1)):
                if (start, first) in used:
                    continue
                walk = self._trace_face(graph, start, first, used, max_steps)
                if walk is None:
                    continue
                node_ids, directed = walk
                used.update(directed)

                # The two faces of a simple cycle share one undirected edge set
                cycle = frozenset(frozenset(step) for step in directed)
                if cycle in seen_cycles:
                    continue
                seen_cycles.add(cycle)
                loops.append(self._make_loop(graph, node_ids))
        return loops

    def _trace_face(
        self,
        graph: PlanarGraph,
        start: int,
        first: int,
        used: set[tuple[int, int]],
        max_steps: int,
    ) -> Optional[tuple[list[int], list[tuple[int, int]]]]:
        """Walk from ``start`` via ``first``; returns (node ids, directed edges) of a closed face."""
        path = [start]
        directed = [(start, first)]
        walked = {(start, first)}
        prev, current = start, first

        for _ in range(max_steps):
            if current == start:
                points = [(graph.nodes[n].x, graph.nodes[n].y) for n in path]
                if abs(signed_polygon_area(points)) > MIN_LOOP_AREA:
                    return path, directed
                return None

            path.append(current)
            nxt = self._next_node(graph, prev, current)
            if nxt is None:
                return None
            step = (current, nxt)
            if step in used or step in walked:
                return None
            directed.append(step)
            walked.add(step)
            prev, current = current, nxt

        logger.debug(f"Face walk from node {start} exceeded {max_steps} steps")
        return None

    def _next_node(self, graph: PlanarGraph, prev: int, current: int) -> Optional[int]:
        node = graph.nodes[current]
        back = graph.nodes[prev]
        in_angle = math.atan2(back.y - node.y, back.x - node.x)

        best, best_turn = None, math.inf
        for edge_id in node.edges:
            edge = graph.edges[edge_id]
            other = edge.node2 if edge.node1 == current else edge.node1
            if other == prev and len(node.edges) > 1:
                continue
            target = graph.nodes[other]
            out_angle = math.atan2(target.y - node.y, target.x - node.x)
            turn = out_angle - in_angle
            while turn <= 0:
                turn += _TWO_PI
            while turn > _TWO_PI:
                turn -= _TWO_PI
            if turn < best_turn:
                best, best_turn = other, turn
        return best

    # ── Loop records ─────────────────────────────────────────────────────────

    @staticmethod
    def _make_loop(graph: PlanarGraph, node_ids: list[int]) -> BoundaryLoop:
        points = [(graph.nodes[n].x, graph.nodes[n].y) for n in node_ids]
        signed = signed_polygon_area(points)
        return BoundaryLoop(
            points=points,
            area=abs(signed),
            perimeter=polygon_perimeter(points),
            signed_area=signed,
            node_ids=list(node_ids),
        )

    def _hull_loop(self, graph: PlanarGraph) -> BoundaryLoop:
        points = [(node.x, node.y) for node in graph.nodes]
        hull = convex_hull(points)
        if len(hull) < 3:
            raise InsufficientGeometryError(
                len(graph.nodes), len(graph.edges), reason="All nodes are collinear",
            )
        return self._make_loop(graph, [graph.nodes[i].id for i in hull])
