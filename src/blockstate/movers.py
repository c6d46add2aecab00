from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from collections import defaultdict

from blockstate.exceptions import InvalidOperation
from blockstate.property_maps import PropertyMap

if TYPE_CHECKING:
    from blockstate.block_state import BlockState

EdgeFilter = Callable[[int], bool]


class VertexMover:
    """
    Class to attach, detach and move vertices between blocks.
    When performing a change, it updates the block-pair weights, the block
    degree sums, the block weights and the block assignment, and keeps the
    optional edge groups and partition statistics of the state in sync.
    All aggregate changes go through the _BlockDataUpdater of the block data.
    """
    def __init__(self, state: "BlockState"):
        self.state = state

    # ------------------------------------------------------------------
    # single vertices
    # ------------------------------------------------------------------
    def remove_vertex(self, v: int, edge_filter: Optional[EdgeFilter] = None) -> None:
        """
        Detach v from its block. b[v] keeps the old block id.
        Edges for which edge_filter returns True are skipped.
        """
        st = self.state
        bd = st.block_data
        g = bd.graph_data
        upd = bd.block_updater
        eweight = st.eweight
        r = int(bd.b[v])

        self_weight = 0
        for e, u in g.out_edges(v):
            if edge_filter is not None and edge_filter(e):
                continue
            ew = eweight[e]
            if ew == 0:
                continue
            if u == v and not g.directed:
                self_weight += ew
                continue
            s = r if u == v else int(bd.b[u])
            upd._increment_edge_count(r, s, bd.bedge[e], -ew)

        if self_weight > 0:
            assert self_weight % 2 == 0, f"odd self-loop weight on vertex {v}"
            upd._increment_edge_count(r, r, bd.index.get(r, r), -(self_weight // 2))

        for e, u in g.in_edges(v):
            if (edge_filter is not None and edge_filter(e)) or u == v:
                continue
            ew = eweight[e]
            if ew == 0:
                continue
            s = int(bd.b[u])
            upd._increment_edge_count(s, r, bd.bedge[e], -ew)

        upd._increment_block_weight(r, -st.vweight[v])

        if st.proposer.egroups is not None:
            st.proposer.egroups.remove_vertex(v, r)
        if st.partition_stats is not None:
            st.partition_stats.change_vertex(
                v, r, st.vweight[v], st.degs.get(v, g, eweight, st.vweight), -1
            )

    def add_vertex(self, v: int, r: int, edge_filter: Optional[EdgeFilter] = None) -> None:
        """
        Attach v to block r, growing the block range if needed.
        """
        st = self.state
        bd = st.block_data
        g = bd.graph_data
        upd = bd.block_updater
        eweight = st.eweight

        bd.ensure_block(r, label=int(st.clabel[v]))
        if bd.bclabel[r] != st.clabel[v]:
            raise InvalidOperation(
                f"vertex {v} has label {st.clabel[v]} but block {r} has label {bd.bclabel[r]}"
            )

        self_weight = 0
        for e, u in g.out_edges(v):
            if edge_filter is not None and edge_filter(e):
                continue
            ew = eweight[e]
            if ew == 0:
                continue
            s = r if u == v else int(bd.b[u])
            h = bd.get_or_create_bedge(r, s)
            bd.bedge[e] = h
            if u == v and not g.directed:
                self_weight += ew
                continue
            upd._increment_edge_count(r, s, h, ew)

        if self_weight > 0:
            assert self_weight % 2 == 0, f"odd self-loop weight on vertex {v}"
            upd._increment_edge_count(r, r, bd.index.get(r, r), self_weight // 2)

        for e, u in g.in_edges(v):
            if (edge_filter is not None and edge_filter(e)) or u == v:
                continue
            ew = eweight[e]
            if ew == 0:
                continue
            s = int(bd.b[u])
            h = bd.get_or_create_bedge(s, r)
            bd.bedge[e] = h
            upd._increment_edge_count(s, r, h, ew)

        upd._increment_block_weight(r, st.vweight[v])
        bd.b[v] = r

        if st.proposer.egroups is not None:
            st.proposer.egroups.add_vertex(v, r)
        if st.partition_stats is not None:
            st.partition_stats.change_vertex(
                v, r, st.vweight[v], st.degs.get(v, g, eweight, st.vweight), +1
            )

    def move_vertex(self, v: int, nr: int) -> bool:
        """
        Move v to block nr. Returns False for a no-op move.
        """
        bd = self.state.block_data
        r = int(bd.b[v])
        if r == nr:
            return False
        bd.ensure_block(nr, label=int(bd.bclabel[r]))
        if bd.bclabel[r] != bd.bclabel[nr]:
            raise InvalidOperation(
                f"cannot move vertex {v} from block {r} (label {bd.bclabel[r]}) "
                f"to block {nr} (label {bd.bclabel[nr]})"
            )
        self.remove_vertex(v)
        self.add_vertex(v, nr)
        return True

    # ------------------------------------------------------------------
    # batches
    # ------------------------------------------------------------------
    def _internal_edges(self, vset: Iterable[int]) -> Set[int]:
        g = self.state.block_data.graph_data
        vset = set(vset)
        eset: Set[int] = set()
        for v in vset:
            for e, u in g.all_edges(v):
                if u in vset:
                    eset.add(e)
        return eset

    def remove_vertices(self, vs: Iterable[int]) -> None:
        """
        Detach a set of vertices. Edges among them are accounted once.
        """
        st = self.state
        bd = st.block_data
        g = bd.graph_data
        vset = list(dict.fromkeys(int(v) for v in vs))
        eset = self._internal_edges(vset)

        for v in vset:
            self.remove_vertex(v, edge_filter=eset.__contains__)

        for e in eset:
            ew = st.eweight[e]
            if ew == 0:
                continue
            r, s = int(bd.b[g.source(e)]), int(bd.b[g.target(e)])
            bd.block_updater._increment_edge_count(r, s, bd.bedge[e], -ew)

    def add_vertices(self, vs: Sequence[int], rs: Sequence[int]) -> None:
        """
        Attach vertices vs to blocks rs. Edges among them are accounted once.
        """
        if len(vs) != len(rs):
            raise InvalidOperation(f"got {len(vs)} vertices but {len(rs)} blocks")

        st = self.state
        bd = st.block_data
        g = bd.graph_data
        vmap: Dict[int, int] = {int(v): int(r) for v, r in zip(vs, rs)}
        eset = self._internal_edges(vmap.keys())

        for v, r in vmap.items():
            self.add_vertex(v, r, edge_filter=eset.__contains__)

        for e in eset:
            ew = st.eweight[e]
            if ew == 0:
                continue
            r, s = vmap[g.source(e)], vmap[g.target(e)]
            h = bd.get_or_create_bedge(r, s)
            bd.bedge[e] = h
            bd.block_updater._increment_edge_count(r, s, h, ew)

    # ------------------------------------------------------------------
    # merges
    # ------------------------------------------------------------------
    def merge_vertices(self, u: int, v: int, ec: Optional[PropertyMap] = None) -> None:
        """
        Merge vertex u into vertex v.

        u is first moved into v's block. Its edges are then re-attached to v,
        folding parallel edges with the same end point and edge label into a
        single edge of summed weight (ec holds optional edge labels). u is
        left with zero weight and no edges.
        """
        if u == v:
            return

        st = self.state
        if st.eweight.is_constant or st.vweight.is_constant:
            raise InvalidOperation("vertex merges require explicit vertex and edge weights")

        bd = st.block_data
        g = bd.graph_data
        eweight = st.eweight

        self.move_vertex(u, int(bd.b[v]))

        def label(e: int) -> int:
            return 0 if ec is None else ec[e]

        def merge_incidences(incidences_u: List[Tuple[int, int]],
                             incidences_v: Callable[[], List[Tuple[int, int]]],
                             halve_loops: bool,
                             skip_u: bool,
                             out: bool) -> None:
            ns_u: Dict[Tuple[int, int], List[int]] = defaultdict(list)
            for e, t in incidences_u:
                if skip_u and t == u:
                    continue
                ns_u[(t, label(e))].append(e)

            ns_v: Dict[Tuple[int, int], List[int]] = defaultdict(list)
            for e, t in incidences_v():
                ns_v[(t, label(e))].append(e)

            for (t, l), es in ns_u.items():
                w = sum(eweight[e] for e in es)
                if t == u:
                    t = v
                    if halve_loops:
                        assert w % 2 == 0, f"odd self-loop weight on vertex {u}"
                        w //= 2
                if (t, l) in ns_v:
                    e = ns_v[(t, l)][0]
                    eweight[e] += w
                else:
                    e = g.add_edge(v, t) if out else g.add_edge(t, v)
                    eweight[e] = w
                    if ec is not None:
                        ec[e] = l
                    ns_v[(t, l)].append(e)
                # a zero-weight edge of v has no handle yet
                if e not in bd.bedge and eweight[e] > 0:
                    for old in es:
                        if eweight[old] > 0 and old in bd.bedge:
                            bd.bedge[e] = bd.bedge[old]
                            break

        merge_incidences(list(g.out_edges(u)), lambda: list(g.out_edges(v)),
                         halve_loops=not g.directed, skip_u=False, out=True)
        if g.directed:
            merge_incidences(list(g.in_edges(u)), lambda: list(g.in_edges(v)),
                             halve_loops=False, skip_u=True, out=False)

        st.vweight[v] += st.vweight[u]
        st.vweight[u] = 0
        for e, _ in g.all_edges(u):
            eweight[e] = 0
        for e in g.clear_vertex(u):
            bd.bedge.pop(e, None)

        st.merge_map[u] = v
        st.degs.merge(u, v)
