"""Partial-order alignment consensus for duplicate groups.

Member sequences are threaded one at a time through a growing DAG of bases.
Each new sequence is aligned to the graph with affine gap scores, with free
gaps at both ends of the graph so truncated reads are not penalised, and
merged in: matches reuse nodes and add weight to edges, mismatches and
insertions add nodes, deletions add edges that skip nodes. The consensus is
the path of maximum cumulative edge weight through the graph.
"""

import heapq
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import edlib
import numpy as np

from .config import ScoringParams
from .types import ConsensusResult, DuplicateGroup, Read

NEG_INF = -(2 ** 30)
DTYPE = np.int32
START = -1

# traceback states
_MATCH, _INSERT, _DELETE = 0, 1, 2

Alignment = List[Tuple[Optional[int], Optional[int]]]


class Node:
    __slots__ = ('id', 'base', 'reads', 'out_edges', 'in_edges', 'starts', 'ends')

    def __init__(self, node_id: int, base: str):
        self.id = node_id
        self.base = base
        self.reads: List[int] = []
        self.out_edges: Dict[int, int] = {}  # target -> weight
        self.in_edges: Dict[int, int] = {}   # source -> weight
        self.starts = 0  # sequences whose first base is this node
        self.ends = 0    # sequences whose last base is this node


class AlignmentGraph:
    """DAG of bases addressed by stable integer node ids."""

    def __init__(self, scoring: Optional[ScoringParams] = None):
        self.scoring = scoring or ScoringParams()
        self.nodes: List[Node] = []
        self.sequence_count = 0
        self._order: Optional[List[int]] = None

    def _add_node(self, base: str) -> int:
        node = Node(len(self.nodes), base)
        self.nodes.append(node)
        self._order = None
        return node.id

    def _add_edge(self, source: int, target: int) -> None:
        out_edges = self.nodes[source].out_edges
        if target not in out_edges:
            self._order = None
        out_edges[target] = out_edges.get(target, 0) + 1
        in_edges = self.nodes[target].in_edges
        in_edges[source] = in_edges.get(source, 0) + 1

    def edge_weight(self, source: int, target: int) -> int:
        return self.nodes[source].out_edges.get(target, 0)

    def topological_order(self) -> List[int]:
        """Kahn's algorithm, always releasing the lowest ready node id first."""
        if self._order is not None:
            return self._order

        remaining = {node.id: len(node.in_edges) for node in self.nodes}
        ready = [node_id for node_id, degree in remaining.items() if degree == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            node_id = heapq.heappop(ready)
            order.append(node_id)
            for target in self.nodes[node_id].out_edges:
                remaining[target] -= 1
                if remaining[target] == 0:
                    heapq.heappush(ready, target)

        if len(order) != len(self.nodes):
            raise RuntimeError("Alignment graph contains a cycle")
        self._order = order
        return order

    def add_sequence(self, sequence: str) -> Alignment:
        """Align a sequence to the graph and merge it in.

        Returns the alignment as (node id, sequence position) pairs, with None
        on the node side for insertions and on the sequence side for
        deletions. The first sequence seeds a linear chain.
        """
        if not self.nodes:
            alignment: Alignment = []
        else:
            alignment = self.align(sequence)
        self._merge(sequence, alignment, self.sequence_count)
        self.sequence_count += 1
        return alignment

    def _predecessor_rows(self, node: Node, rank: Dict[int, int]) -> List[int]:
        # row 0 last: any node may open the alignment without a deletion penalty
        return [rank[source] for source in node.in_edges] + [0]

    def align(self, sequence: str) -> Alignment:
        """Affine-gap alignment of a whole sequence against a path of the graph.

        The path may begin and end at any node, so leading and trailing graph
        nodes are skipped for free while every base of the sequence is aligned.
        Row 0 of the DP matrices is a virtual start before every node;
        row r >= 1 is the r-th node in topological order. H holds the best
        score ending in any state, E ends in an insertion (sequence base
        without a node) and F ends in a deletion (node without a base).
        """
        scoring = self.scoring
        order = self.topological_order()
        rank = {node_id: r for r, node_id in enumerate(order, start=1)}
        n, m = len(order), len(sequence)
        gap_open, gap_extend = scoring.gap_open, scoring.gap_extend

        codes = np.frombuffer(sequence.encode('ascii'), dtype=np.uint8)
        cols = np.arange(m + 1, dtype=DTYPE)
        substitution: Dict[str, np.ndarray] = {}

        H = np.full((n + 1, m + 1), NEG_INF, dtype=DTYPE)
        E = np.full((n + 1, m + 1), NEG_INF, dtype=DTYPE)
        F = np.full((n + 1, m + 1), NEG_INF, dtype=DTYPE)
        H[0, 0] = 0
        if m:
            H[0, 1:] = E[0, 1:] = gap_open + (cols[1:] - 1) * gap_extend

        pred_rows: List[List[int]] = [[]]
        for r, node_id in enumerate(order, start=1):
            node = self.nodes[node_id]
            preds = self._predecessor_rows(node, rank)
            pred_rows.append(preds)

            sub = substitution.get(node.base)
            if sub is None:
                sub = np.where(codes == ord(node.base), scoring.match, scoring.mismatch).astype(DTYPE)
                substitution[node.base] = sub

            diag = np.full(m + 1, NEG_INF, dtype=DTYPE)
            dele = np.full(m + 1, NEG_INF, dtype=DTYPE)
            for p in preds:
                np.maximum(diag[1:], H[p, :-1] + sub, out=diag[1:])
                np.maximum(dele, np.maximum(H[p] + gap_open, F[p] + gap_extend), out=dele)
            F[r] = dele

            best = np.maximum(diag, dele)
            if m:
                # E[r, j] = max over k < j of best[k] + gap_open + (j - 1 - k) * gap_extend
                running = np.maximum.accumulate(best[:-1] - cols[:-1] * gap_extend)
                E[r, 1:] = gap_open + (cols[1:] - 1) * gap_extend + running
            H[r] = np.maximum(best, E[r])

        # first row with the best score, so ties end earliest in topological order
        r = int(np.argmax(H[1:, m])) + 1
        return self._traceback(sequence, order, pred_rows, H, E, F, r)

    def _traceback(self, sequence: str, order: List[int], pred_rows: List[List[int]],
                   H: np.ndarray, E: np.ndarray, F: np.ndarray, r: int) -> Alignment:
        scoring = self.scoring
        j = len(sequence)
        state = _MATCH
        path: Alignment = []

        while r > 0 or j > 0:
            if r == 0:
                path.append((None, j - 1))
                j -= 1
                continue

            node_id = order[r - 1]
            if state == _MATCH:
                if j > 0 and H[r, j] == E[r, j]:
                    state = _INSERT
                    continue
                if j > 0:
                    score = scoring.match if sequence[j - 1] == self.nodes[node_id].base else scoring.mismatch
                    pred = next((p for p in pred_rows[r] if H[p, j - 1] + score == H[r, j]), None)
                    if pred is not None:
                        path.append((node_id, j - 1))
                        r, j = pred, j - 1
                        continue
                state = _DELETE

            elif state == _INSERT:
                path.append((None, j - 1))
                if H[r, j - 1] + scoring.gap_open == E[r, j]:
                    state = _MATCH
                j -= 1

            else:
                path.append((node_id, None))
                for p in pred_rows[r]:
                    if H[p, j] + scoring.gap_open == F[r, j]:
                        r, state = p, _MATCH
                        break
                    if F[p, j] + scoring.gap_extend == F[r, j]:
                        r, state = p, _DELETE
                        break
                else:
                    raise RuntimeError(f"Traceback failed at node {node_id}, position {j}")

        path.reverse()
        return path

    def _merge(self, sequence: str, alignment: Alignment, seq_index: int) -> None:
        aligned_to: List[Optional[int]] = [None] * len(sequence)
        for node_id, pos in alignment:
            if pos is not None:
                aligned_to[pos] = node_id

        prev = None
        for pos, base in enumerate(sequence):
            node_id = aligned_to[pos]
            if node_id is None or self.nodes[node_id].base != base:
                node_id = self._add_node(base)
            self.nodes[node_id].reads.append(seq_index)
            if prev is None:
                self.nodes[node_id].starts += 1
            else:
                self._add_edge(prev, node_id)
            prev = node_id
        if prev is not None:
            self.nodes[prev].ends += 1

    def _best_predecessor(self, node: Node, scores: Dict[int, int]) -> Tuple[int, int]:
        """Predecessor giving the highest cumulative weight, and that weight.

        The virtual start counts as a predecessor with weight node.starts.
        Ties go to the earliest node, the virtual start first.
        """
        best, best_score = START, None
        if node.starts:
            best_score = node.starts
        for source in sorted(node.in_edges):
            score = scores[source] + node.in_edges[source]
            if best_score is None or score > best_score:
                best, best_score = source, score
        return best, best_score

    def consensus_path(self) -> List[int]:
        """Node ids of the maximum-weight path from the virtual start to the virtual end.

        A node's cumulative weight is the best predecessor's weight plus the
        connecting edge; the path ends where that weight plus the number of
        sequences ending at the node is highest, ties going to the earliest node.
        """
        if not self.nodes:
            return []

        scores: Dict[int, int] = {}
        best_pred: Dict[int, int] = {}
        for node_id in self.topological_order():
            pred, score = self._best_predecessor(self.nodes[node_id], scores)
            best_pred[node_id] = pred
            scores[node_id] = score

        end, end_score = START, None
        for node in self.nodes:
            if node.ends:
                score = scores[node.id] + node.ends
                if end_score is None or score > end_score:
                    end, end_score = node.id, score

        path = []
        while end != START:
            path.append(end)
            end = best_pred[end]
        path.reverse()
        return path

    def consensus(self) -> str:
        return ''.join(self.nodes[node_id].base for node_id in self.consensus_path())


def poa_consensus(sequences: Sequence[str], scoring: Optional[ScoringParams] = None) -> str:
    """Consensus of sequences merged in the given order."""
    if not sequences:
        raise ValueError("Cannot call a consensus from zero sequences")
    if len(sequences) == 1:
        return sequences[0]
    graph = AlignmentGraph(scoring)
    for sequence in sequences:
        graph.add_sequence(sequence)
    return graph.consensus()


def mean_identity(consensus: str, sequences: Sequence[str]) -> Optional[float]:
    """Mean edit-distance identity of each sequence to the consensus."""
    identities = []
    for sequence in sequences:
        longest = max(len(consensus), len(sequence))
        if longest == 0:
            continue
        result = edlib.align(consensus, sequence, task="distance")
        identities.append(1.0 - result["editDistance"] / longest)
    if not identities:
        return None
    return sum(identities) / len(identities)


def call_consensus(group: DuplicateGroup, reads: Sequence[Read],
                   scoring: Optional[ScoringParams] = None) -> ConsensusResult:
    """Collapse one duplicate group into a ConsensusResult.

    Singletons are returned as-is without building a graph.
    """
    if not reads:
        raise ValueError(f"Group {group.index} ({group.fingerprint.key}) has no reads")

    if len(reads) == 1:
        consensus = reads[0].sequence
        identity = 1.0
    else:
        consensus = poa_consensus([read.sequence for read in reads], scoring)
        identity = mean_identity(consensus, [read.sequence for read in reads])
        logging.debug(f"Group {group.index} ({group.fingerprint.key}): {len(reads)} reads, "
                      f"consensus length {len(consensus)}")

    return ConsensusResult(
        fingerprint=group.fingerprint,
        index=group.index,
        consensus=consensus,
        member_count=len(reads),
        member_read_ids=tuple(read.read_id for read in reads),
        members=tuple(reads),
        identity=identity,
    )
