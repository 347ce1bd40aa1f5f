"""Piecewise-linear mapping of a target interval through one chain's blocks."""

from dataclasses import dataclass

from .chain import flip_range


@dataclass(frozen=True)
class Fragment:
    """Contiguous piece of a mapped interval.

    ``t_start``/``t_end`` is the target sub-range and ``q_start``/``q_end``
    its image on the forward strand of the query sequence.
    """

    t_start: int
    t_end: int
    q_start: int
    q_end: int

    @property
    def size(self):
        return self.t_end - self.t_start


@dataclass(frozen=True)
class TransformResult:
    fragments: tuple
    matched_bases: int
    matched_blocks: int
    total_bases: int

    @property
    def match_ratio(self):
        if self.total_bases == 0:
            return 1.0
        return self.matched_bases / self.total_bases


def _report(chain, t_start, t_end, q_start, q_end):
    if chain.is_reverse:
        q_start, q_end = flip_range(q_start, q_end, chain.q_size)
    return Fragment(t_start, t_end, q_start, q_end)


def transform(chain, start, end):
    """Map target range [start, end) through *chain*.

    Every block intersecting the range contributes one fragment; target
    bases falling in gaps between blocks are unmatched. Fragments are
    returned in target order with query coordinates already converted to
    the forward strand.

    A zero-length range [p, p) yields a single zero-length fragment when
    some block satisfies ``t_start <= p <= t_end`` (a block containing
    ``p`` wins over one ending at ``p``), and no fragment when ``p`` lies
    in a gap.
    """
    if end < start:
        raise ValueError(f"invalid range [{start}, {end})")

    blocks = chain.blocks
    i = chain.block_index_at(start)

    if end == start:
        if i >= 0 and start <= blocks[i].t_end:
            blk = blocks[i]
            q = blk.q_start + (start - blk.t_start)
            return TransformResult((_report(chain, start, start, q, q),), 0, 0, 0)
        return TransformResult((), 0, 0, 0)

    if i < 0:
        i = 0
    elif blocks[i].t_end <= start:
        i += 1

    fragments = []
    matched = 0
    n = len(blocks)
    while i < n and blocks[i].t_start < end:
        blk = blocks[i]
        s = max(start, blk.t_start)
        e = min(end, blk.t_end)
        if s < e:
            q_s = blk.q_start + (s - blk.t_start)
            fragments.append(_report(chain, s, e, q_s, q_s + (e - s)))
            matched += e - s
        i += 1

    return TransformResult(tuple(fragments), matched, len(fragments), end - start)


def envelope(fragments):
    """(min q_start, max q_end) over *fragments*."""
    return min(f.q_start for f in fragments), max(f.q_end for f in fragments)

