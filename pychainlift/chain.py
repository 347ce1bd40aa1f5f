"""Chain block model, UCSC chain file reader and tabular chain views.

UCSC terminology is kept as-is: 't' fields (tName, tStart, tEnd) describe
the target, i.e. the old assembly intervals are lifted *from*, and 'q'
fields describe the query, the new assembly intervals are lifted *to*.

Block query coordinates are stored on the chain's query strand, exactly as
they appear in the chain file. They are converted to forward-strand
coordinates only when reported, through :func:`flip_range`.
"""

import gzip
import logging as _logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd

from ._binindex import MAX_COORDINATE
from ._errors import ChainDataError

_logger = _logging.getLogger(__name__)

_STRANDS = ("+", "-")

_CHAIN_DF_COLS = [
    "tname", "tstart", "tend", "qname", "qstart", "qend", "qstrand",
    "tsize", "qsize", "chain_id", "score",
]


def flip_range(start, end, size):
    """Convert a half-open range between the two strands of a sequence of length *size*."""
    return size - end, size - start


@dataclass(frozen=True)
class ChainBlock:
    """Ungapped aligned run: target [t_start, t_start+size) ~ query [q_start, q_start+size)."""

    t_start: int
    q_start: int
    size: int

    @property
    def t_end(self):
        return self.t_start + self.size

    @property
    def q_end(self):
        return self.q_start + self.size


@dataclass(frozen=True)
class Chain:
    """A pairwise alignment chain between one target and one query sequence.

    Attributes
    ----------
    chain_id : int
        Identifier from the chain header.
    score : float
        Alignment score.
    t_name, t_size, t_strand, t_start, t_end
        Target sequence name, length, strand (always ``'+'`` for a valid
        chain) and aligned span.
    q_name, q_size, q_strand, q_start, q_end
        Query sequence name, length, strand and aligned span. When
        ``q_strand == '-'`` the span is on the reverse strand.
    blocks : tuple of ChainBlock
        Ungapped blocks in increasing target order.
    """

    chain_id: int
    score: float
    t_name: str
    t_size: int
    t_strand: str
    t_start: int
    t_end: int
    q_name: str
    q_size: int
    q_strand: str
    q_start: int
    q_end: int
    blocks: tuple = ()
    _t_starts: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        blocks = tuple(self.blocks)
        object.__setattr__(self, "blocks", blocks)
        object.__setattr__(
            self, "_t_starts",
            np.fromiter((b.t_start for b in blocks), dtype=np.int64, count=len(blocks)),
        )

    @property
    def t_span(self):
        return self.t_end - self.t_start

    @property
    def q_span(self):
        return self.q_end - self.q_start

    @property
    def is_reverse(self):
        return self.q_strand == "-"

    @property
    def aligned_bases(self):
        return sum(b.size for b in self.blocks)

    def block_index_at(self, pos):
        """Index of the last block whose target start is <= *pos*, or -1."""
        return int(np.searchsorted(self._t_starts, pos, side="right")) - 1

    def validate(self):
        """Raise :class:`ChainDataError` if the chain breaks any structural invariant."""
        def fail(msg):
            raise ChainDataError(f"chain {self.chain_id}: {msg}", chain_id=self.chain_id)

        if self.t_strand != "+":
            fail(f"target strand must be '+', got '{self.t_strand}'")
        if self.q_strand not in _STRANDS:
            fail(f"invalid query strand '{self.q_strand}'")
        if self.t_size <= 0 or self.q_size <= 0:
            fail("sequence sizes must be positive")
        if not self.blocks:
            fail("no alignment blocks")

        prev = None
        for blk in self.blocks:
            if blk.size <= 0:
                fail(f"non-positive block size {blk.size} at target {blk.t_start}")
            if prev is not None and (blk.t_start < prev.t_end or blk.q_start < prev.q_end):
                fail(
                    f"blocks not increasing: [{prev.t_start}, {prev.t_end}) followed by "
                    f"[{blk.t_start}, {blk.t_end}) (query {prev.q_end} -> {blk.q_start})"
                )
            prev = blk

        first, last = self.blocks[0], self.blocks[-1]
        if (self.t_start, self.t_end) != (first.t_start, last.t_end):
            fail(
                f"target span [{self.t_start}, {self.t_end}) does not match blocks "
                f"[{first.t_start}, {last.t_end})"
            )
        if (self.q_start, self.q_end) != (first.q_start, last.q_end):
            fail(
                f"query span [{self.q_start}, {self.q_end}) does not match blocks "
                f"[{first.q_start}, {last.q_end})"
            )
        if self.t_start < 0 or self.t_end > self.t_size:
            fail(f"target span out of range for size {self.t_size}")
        if self.q_start < 0 or self.q_end > self.q_size:
            fail(f"query span out of range for size {self.q_size}")
        if self.t_end > MAX_COORDINATE:
            fail(f"target end {self.t_end} exceeds the indexable limit {MAX_COORDINATE}")


def make_chain(chain_id, score, t_name, t_size, q_name, q_size, q_strand, blocks):
    """Build a chain whose spans are derived from its blocks.

    *blocks* is a sequence of ``(t_start, q_start, size)`` tuples or
    :class:`ChainBlock` objects.
    """
    blocks = tuple(
        b if isinstance(b, ChainBlock) else ChainBlock(int(b[0]), int(b[1]), int(b[2]))
        for b in blocks
    )
    if blocks:
        t_start, t_end = blocks[0].t_start, blocks[-1].t_end
        q_start, q_end = blocks[0].q_start, blocks[-1].q_end
    else:
        t_start = t_end = q_start = q_end = 0
    return Chain(
        chain_id=int(chain_id), score=float(score),
        t_name=t_name, t_size=int(t_size), t_strand="+",
        t_start=t_start, t_end=t_end,
        q_name=q_name, q_size=int(q_size), q_strand=q_strand,
        q_start=q_start, q_end=q_end,
        blocks=blocks,
    )


# ===================================================================
# Chain file reader
# ===================================================================

_HEADER_INT_FIELDS = (
    (3, "t_size"), (5, "t_start"), (6, "t_end"),
    (8, "q_size"), (10, "q_start"), (11, "q_end"),
)


def _open_chain_text(chain_path):
    if chain_path.suffix == ".gz":
        return gzip.open(chain_path, "rt", encoding="utf-8")
    return open(chain_path, encoding="utf-8")


def _parse_header(fields, ordinal):
    """Header fields -> Chain keyword arguments. The id defaults to *ordinal*."""
    if len(fields) not in (12, 13):
        raise ValueError(f"expected 13 fields in chain header, got {len(fields)}")
    try:
        header = {name: int(fields[i]) for i, name in _HEADER_INT_FIELDS}
        header["score"] = float(fields[1])
        header["chain_id"] = int(fields[12]) if len(fields) == 13 else ordinal
    except ValueError as exc:
        raise ValueError(f"invalid chain header ({exc})") from exc
    header.update(t_name=fields[2], t_strand=fields[4], q_name=fields[7], q_strand=fields[9])
    return header


def _parse_block(fields):
    """Block line -> (size, dt, dq); the last block of a chain has no gaps."""
    if len(fields) not in (1, 3):
        raise ValueError(f"expected 1 or 3 fields in block line, got {len(fields)}")
    try:
        values = [int(v) for v in fields]
    except ValueError as exc:
        raise ValueError(f"invalid block line ({exc})") from exc
    if len(values) == 1:
        values += [0, 0]
    return values


def read_chains(path, min_score=None):
    """Parse a UCSC chain file (plain text or gzip) into a list of chains.

    Syntax errors (wrong field counts, non-numeric fields, block lines
    outside a chain) raise ``ValueError`` naming the file and line.
    Structurally malformed chains (overlapping blocks, spans inconsistent
    with the header) are returned as-is; :func:`pychainlift.load_chain_map`
    drops them.

    Parameters
    ----------
    path : str or path-like
        Chain file path. A ``.gz`` suffix enables gzip decompression.
    min_score : float, optional
        Chains scoring below this value are skipped.

    Returns
    -------
    list of Chain
    """
    chain_path = Path(path)
    if not chain_path.is_file():
        if not chain_path.exists():
            raise FileNotFoundError(f"No such chain file: {path}")
        raise ValueError(f"{path} is not a regular file")

    chains = []
    header = None
    blocks = []
    n_headers = 0

    def close_chain():
        if header is not None and (min_score is None or header["score"] >= min_score):
            chains.append(Chain(blocks=tuple(blocks), **header))

    with _open_chain_text(chain_path) as f:
        for lineno, text in enumerate(f, start=1):
            fields = text.split()
            if fields and fields[0].startswith("#"):
                continue
            try:
                if not fields:
                    close_chain()
                    header = None
                elif fields[0] == "chain":
                    close_chain()
                    n_headers += 1
                    header = _parse_header(fields, n_headers)
                    blocks = []
                    t_pos, q_pos = header["t_start"], header["q_start"]
                elif header is None:
                    raise ValueError("alignment block outside chain")
                else:
                    size, dt, dq = _parse_block(fields)
                    blocks.append(ChainBlock(t_pos, q_pos, size))
                    t_pos += size + dt
                    q_pos += size + dq
            except ValueError as exc:
                raise ValueError(f"{path}, line {lineno}: {exc}") from exc
        close_chain()

    _logger.debug("Read %d chains from %s", len(chains), path)
    return chains


# ===================================================================
# Tabular views
# ===================================================================

def _empty_chain_df():
    return pd.DataFrame({
        c: pd.Series(
            dtype="object" if c in ("tname", "qname", "qstrand") else
            "float64" if c == "score" else "int64"
        ) for c in _CHAIN_DF_COLS
    })


def chains_to_df(chains):
    """Return one row per block, with the columns used by :func:`chains_from_df`.

    Block query coordinates stay on the chain's query strand.
    """
    rows = []
    for ch in chains:
        for blk in ch.blocks:
            rows.append({
                "tname": ch.t_name,
                "tstart": blk.t_start,
                "tend": blk.t_end,
                "qname": ch.q_name,
                "qstart": blk.q_start,
                "qend": blk.q_end,
                "qstrand": ch.q_strand,
                "tsize": ch.t_size,
                "qsize": ch.q_size,
                "chain_id": ch.chain_id,
                "score": ch.score,
            })
    if not rows:
        return _empty_chain_df()
    return pd.DataFrame(rows)[_CHAIN_DF_COLS]


def chains_from_df(df):
    """Rebuild chains from a block table such as the one made by :func:`chains_to_df`.

    Rows are grouped by ``chain_id``; each group becomes one chain with
    blocks sorted by target start.
    """
    if not isinstance(df, pd.DataFrame):
        raise TypeError("df must be a DataFrame")

    missing = set(_CHAIN_DF_COLS) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(sorted(missing))}")

    chains = []
    for chain_id, group in df.groupby("chain_id", sort=False):
        for col in ("tname", "qname", "qstrand", "tsize", "qsize"):
            if group[col].nunique() != 1:
                raise ValueError(f"chain {chain_id}: inconsistent '{col}' across blocks")
        group = group.sort_values("tstart")
        first = group.iloc[0]
        blocks = [
            ChainBlock(int(ts), int(qs), int(te) - int(ts))
            for ts, te, qs in zip(
                group["tstart"].to_numpy(), group["tend"].to_numpy(),
                group["qstart"].to_numpy(), strict=True,
            )
        ]
        chains.append(make_chain(
            chain_id, float(group["score"].iloc[0]),
            str(first["tname"]), int(first["tsize"]),
            str(first["qname"]), int(first["qsize"]), str(first["qstrand"]),
            blocks,
        ))
    return chains
