"""Per-sequence chain indexes and chain map loading."""

import logging as _logging
import warnings
from collections.abc import Mapping

from ._binindex import BinIndex
from ._errors import ChainDataError, ChainDataWarning
from .chain import read_chains

_logger = _logging.getLogger(__name__)


class ChainIndex:
    """All chains of one target sequence, binned by target span.

    Filled by :func:`load_chain_map` and not modified afterwards, so it can be
    shared between threads or forked worker processes.
    """

    __slots__ = ("seq_name", "_bins", "_chains")

    def __init__(self, seq_name, chains=()):
        self.seq_name = seq_name
        self._bins = BinIndex()
        self._chains = []
        for ch in chains:
            self.add(ch)

    def add(self, chain):
        """Index *chain*; it must target this sequence and already be validated."""
        if chain.t_name != self.seq_name:
            raise ValueError(
                f"chain {chain.chain_id} targets '{chain.t_name}', not '{self.seq_name}'"
            )
        self._bins.add(chain.t_start, chain.t_end, chain)
        self._chains.append(chain)

    def __len__(self):
        return len(self._chains)

    def __iter__(self):
        return iter(self._chains)

    def query(self, start, end):
        """Chains whose [t_start, t_end) overlaps [start, end).

        A zero-length query [p, p) returns chains with
        ``t_start <= p <= t_end``. The order is deterministic but carries no
        meaning; callers rank candidates themselves.
        """
        if end > start:
            return self._bins.overlapping(start, end)
        if end < start:
            return []
        # widen by one base on each side, then keep chains touching the point
        return [
            ch for ch in self._bins.overlapping(start - 1, start + 1)
            if ch.t_start <= start <= ch.t_end
        ]


class ChainMap(Mapping):
    """Read-only mapping of target sequence name to :class:`ChainIndex`."""

    def __init__(self, indexes, n_dropped=0):
        self._indexes = dict(indexes)
        self.n_dropped = n_dropped

    def __getitem__(self, seq_name):
        return self._indexes[seq_name]

    def __iter__(self):
        return iter(self._indexes)

    def __len__(self):
        return len(self._indexes)

    @property
    def n_chains(self):
        return sum(len(idx) for idx in self._indexes.values())

    def chains(self):
        for idx in self._indexes.values():
            yield from idx

    def query(self, seq_name, start, end):
        """Overlapping chains on *seq_name*; unknown names give an empty list."""
        idx = self._indexes.get(seq_name)
        if idx is None:
            return []
        return idx.query(start, end)


def load_chain_map(chains):
    """Build a :class:`ChainMap` from an iterable of chains.

    Each chain is validated first. A malformed chain is dropped with a
    :class:`ChainDataWarning`; the remaining chains are still loaded.

    Parameters
    ----------
    chains : iterable of Chain
        Chains as produced by :func:`pychainlift.read_chains` or
        :func:`pychainlift.chains_from_df`.

    Returns
    -------
    ChainMap
        ``t_name -> ChainIndex``. ``ChainMap.n_dropped`` holds the number
        of rejected chains.
    """
    indexes = {}
    n_dropped = 0
    for ch in chains:
        try:
            ch.validate()
        except ChainDataError as exc:
            n_dropped += 1
            _logger.debug("Dropping chain %s: %s", ch.chain_id, exc)
            warnings.warn(f"Skipping malformed chain: {exc}", ChainDataWarning, stacklevel=2)
            continue
        idx = indexes.get(ch.t_name)
        if idx is None:
            idx = indexes[ch.t_name] = ChainIndex(ch.t_name)
        idx.add(ch)

    chain_map = ChainMap(indexes, n_dropped=n_dropped)
    _logger.info(
        "Loaded %d chains over %d target sequences (%d dropped)",
        chain_map.n_chains, len(chain_map), n_dropped,
    )
    return chain_map


def load_chain_file(path, min_score=None):
    """Read a UCSC chain file and index it; see :func:`read_chains` and :func:`load_chain_map`."""
    return load_chain_map(read_chains(path, min_score=min_score))
