"""
Ranked pairs tally.

Pure functions: they only see candidate ids and the vote order of every
ballot, never rights to vote or any persistence concept.

Policies:
- Candidates missing from a ballot contribute no preference, unless
  rank_unlisted_last is set. Then every ranked candidate beats every
  unranked one, and unranked candidates stay tied among themselves.
- Duels with equal margin are locked as one group. An edge of the group is
  locked iff it is not part of a cycle in (locked edges + the whole group).
  The result therefore does not depend on the order inside a group, and a
  perfect Condorcet cycle locks nothing.
- Winners are the candidates without an incoming locked edge, in candidate
  order. If no candidate was ever preferred over another there is no winner.
"""

from collections import defaultdict
from itertools import groupby
from typing import Iterable, Sequence

import structlog

from schemas.poll import TallyResult

logger = structlog.get_logger(__name__)

Pair = tuple[int, int]


def calc_duel_matrix(
    candidate_ids: Sequence[str],
    vote_orders: Iterable[Sequence[str]],
    rank_unlisted_last: bool = False,
) -> list[list[int]]:
    """
    Build the duel matrix.

    matrix[i][j] is the number of ballots that rank candidate i strictly
    ahead of candidate j. Ids that are not candidates are ignored.
    """
    index = {cid: i for i, cid in enumerate(candidate_ids)}
    size = len(candidate_ids)
    matrix = [[0] * size for _ in range(size)]

    for vote_order in vote_orders:
        ranked = [index[cid] for cid in vote_order if cid in index]
        for pos, winner in enumerate(ranked):
            for loser in ranked[pos + 1 :]:
                matrix[winner][loser] += 1
        if rank_unlisted_last:
            unranked = set(range(size)) - set(ranked)
            for winner in ranked:
                for loser in unranked:
                    matrix[winner][loser] += 1

    return matrix


def _has_path(edges: Iterable[Pair], source: int, sink: int) -> bool:
    graph: dict[int, list[int]] = defaultdict(list)
    for from_idx, to_idx in edges:
        graph[from_idx].append(to_idx)

    visited = {source}
    stack = [source]
    while stack:
        node = stack.pop()
        if node == sink:
            return True
        for nxt in graph[node]:
            if nxt not in visited:
                visited.add(nxt)
                stack.append(nxt)
    return False


def _sorted_duels(matrix: Sequence[Sequence[int]]) -> list[tuple[int, Pair]]:
    """All decided duels as (margin, (winner, loser)), largest margin first."""
    duels = []
    size = len(matrix)
    for i in range(size):
        for j in range(i + 1, size):
            margin = matrix[i][j] - matrix[j][i]
            if margin > 0:
                duels.append((margin, (i, j)))
            elif margin < 0:
                duels.append((-margin, (j, i)))
    duels.sort(key=lambda duel: (-duel[0], duel[1]))
    return duels


def lock_pairs(matrix: Sequence[Sequence[int]]) -> list[Pair]:
    """Lock in duels by descending margin, skipping any that would close a cycle."""
    locked: list[Pair] = []
    for _margin, group in groupby(_sorted_duels(matrix), key=lambda duel: duel[0]):
        group_pairs = [pair for _, pair in group]
        candidates = locked + group_pairs
        lockable = [(w, l) for w, l in group_pairs if not _has_path(candidates, l, w)]
        locked.extend(lockable)
    return locked


def calc_ranked_pairs(candidate_ids: Sequence[str], matrix: Sequence[Sequence[int]]) -> TallyResult:
    """Calculate the winner(s) of a duel matrix by the ranked pairs method."""
    if len(matrix) != len(candidate_ids) or any(len(row) != len(candidate_ids) for row in matrix):
        raise ValueError("Duel matrix must be square and match the number of candidates")

    locked = lock_pairs(matrix)

    if not any(any(row) for row in matrix):
        winner_idx: list[int] = []
    else:
        losers = {loser for _, loser in locked}
        winner_idx = [i for i in range(len(candidate_ids)) if i not in losers]

    result = TallyResult(
        candidate_ids=list(candidate_ids),
        duel_matrix=[list(row) for row in matrix],
        locked_pairs=[(candidate_ids[w], candidate_ids[l]) for w, l in locked],
        winner_ids=[candidate_ids[i] for i in winner_idx],
    )

    if not result.winner_ids:
        logger.info("ranked_pairs_no_winner", num_candidates=len(candidate_ids))
    elif not result.unique_winner:
        logger.warning(
            "ranked_pairs_winner_not_unique",
            winner_ids=result.winner_ids,
            chosen=result.winner_id,
        )
    return result


def tally(
    candidate_ids: Sequence[str],
    vote_orders: Iterable[Sequence[str]],
    rank_unlisted_last: bool = False,
) -> TallyResult:
    """Duel matrix and ranked pairs winner(s) in one go."""
    matrix = calc_duel_matrix(candidate_ids, vote_orders, rank_unlisted_last=rank_unlisted_last)
    return calc_ranked_pairs(candidate_ids, matrix)
