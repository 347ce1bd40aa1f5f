"""Interval liftover through an indexed chain map.

Implements lift_interval (single-region, multiple-region and ends modes),
the liftover configuration and result types, and the optional chain
extension hook used in multiple mode to recover chains pruned from the
primary chain set.

Terminology follows UCSC chains: intervals are given on the target (old)
assembly and reported on the query (new) assembly.
"""

import bisect
import logging as _logging
from dataclasses import dataclass, field, replace

from ._errors import ChainDataError, ConfigurationError
from .chain import Chain
from .transform import envelope, transform

_logger = _logging.getLogger(__name__)

LIFTOVER_MINMATCH = 0.95
LIFTOVER_MINBLOCKS = 1.0

# Unmapped reasons (wording follows the UCSC liftOver error help)
DELETED = "Deleted in new"
PARTIAL = "Partially deleted in new"
SPLIT = "Split in new"
ENDS_DISAGREE = "Ends map to different sequences"

_OPTION_ALIASES = {"min_size_t": "min_chain_t"}


# ===================================================================
# Configuration
# ===================================================================

@dataclass(frozen=True)
class LiftoverConfig:
    """Liftover thresholds and output policy.

    Attributes
    ----------
    min_match : float
        Minimum fraction of the interval's bases that must map (inclusive).
    min_blocks : float
        Minimum fraction of the interval's blocks (its sub-blocks, or the
        interval itself when it has none) that must map (inclusive).
    multiple : bool
        Allow several output regions per interval.
    min_chain_t, min_chain_q : int
        Multiple mode only: minimum chain span in target / query.
    min_size_q : int
        Multiple mode only: minimum size of an output region in query.
    ends : int
        Lift only the first and last ``ends`` bases of longer intervals and
        combine the results. 0 disables.
    no_serial : bool
        Multiple mode only: leave ``MappedRegion.serial`` unset.
    extension : callable, optional
        Multiple mode only: ``extension(seq_name, start, end)`` returning
        extra chains for the range (see :func:`chain_map_extension`).
    """

    min_match: float = LIFTOVER_MINMATCH
    min_blocks: float = LIFTOVER_MINBLOCKS
    multiple: bool = False
    min_chain_t: int = 0
    min_chain_q: int = 0
    min_size_q: int = 0
    ends: int = 0
    no_serial: bool = False
    extension: object = field(default=None, compare=False)

    def __post_init__(self):
        for name in ("min_match", "min_blocks"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")

        for name in ("min_chain_t", "min_chain_q", "min_size_q", "ends"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

        if self.extension is not None and not callable(self.extension):
            raise ConfigurationError("extension must be callable")

        if not self.multiple:
            multi_only = [
                name for name in ("min_chain_t", "min_chain_q", "min_size_q", "no_serial")
                if getattr(self, name)
            ]
            if self.extension is not None:
                multi_only.append("extension")
            if multi_only:
                raise ConfigurationError(
                    f"{', '.join(multi_only)} can only be used with multiple=True"
                )

    @classmethod
    def from_options(cls, **options):
        """Build a config from keyword options, resolving deprecated aliases.

        ``min_size_t`` is accepted as a synonym of ``min_chain_t``; giving
        both is an error.
        """
        resolved = {}
        for key, value in options.items():
            canonical = _OPTION_ALIASES.get(key, key)
            if canonical in resolved:
                raise ConfigurationError(
                    f"{key} is a deprecated synonym for {canonical}; can't set both"
                )
            resolved[canonical] = value

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(resolved) - known)
        if unknown:
            raise ConfigurationError(f"Unknown liftover option(s): {', '.join(unknown)}")
        return cls(**resolved)


DEFAULT_CONFIG = LiftoverConfig()


# ===================================================================
# Inputs and results
# ===================================================================

@dataclass(frozen=True)
class LiftInterval:
    """Half-open 0-based range on a target sequence.

    ``strand`` and ``blocks`` are optional. ``blocks`` holds absolute,
    sorted, non-overlapping sub-ranges (e.g. exons) inside [start, end);
    the block ratio is computed over them.
    """

    seq_name: str
    start: int
    end: int
    strand: str = None
    blocks: tuple = None

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"invalid interval {self.seq_name}:{self.start}-{self.end}")
        if self.strand not in (None, "+", "-"):
            raise ValueError(f"invalid strand {self.strand!r}")
        if self.blocks is not None:
            blocks = tuple((int(s), int(e)) for s, e in self.blocks)
            prev_end = self.start
            for s, e in blocks:
                if s < prev_end or e < s or e > self.end:
                    raise ValueError(
                        f"blocks of {self.seq_name}:{self.start}-{self.end} must be sorted, "
                        "non-overlapping and inside the interval"
                    )
                prev_end = e
            object.__setattr__(self, "blocks", blocks)

    @property
    def length(self):
        return self.end - self.start


@dataclass(frozen=True)
class MappedRegion:
    """One output region on the query assembly.

    ``t_start``/``t_end`` is the target range that produced it and
    ``chain_id`` the chain it was mapped through.
    """

    seq_name: str
    start: int
    end: int
    strand: str
    chain_id: int
    matched_bases: int
    matched_blocks: int
    t_start: int
    t_end: int
    serial: int = None


class LiftResult:
    is_mapped = False
    regions = ()


@dataclass(frozen=True)
class Mapped(LiftResult):
    region: MappedRegion
    match_ratio: float
    block_ratio: float
    is_mapped = True

    @property
    def regions(self):
        return (self.region,)


@dataclass(frozen=True)
class MappedMultiple(LiftResult):
    regions: tuple
    is_mapped = True


@dataclass(frozen=True)
class Unmapped(LiftResult):
    reason: str = DELETED


# ===================================================================
# Candidate evaluation
# ===================================================================

@dataclass(frozen=True)
class _Candidate:
    chain: object
    result: object
    match_ratio: float
    block_ratio: float


def _block_ratio(interval, fragments):
    blocks = interval.blocks if interval.blocks is not None else ((interval.start, interval.end),)
    if not blocks:
        return 1.0
    frag_starts = [f.t_start for f in fragments]
    mapped = 0
    for bs, be in blocks:
        # fragments are in target order; check the ones that can reach [bs, be)
        i = max(bisect.bisect_right(frag_starts, bs) - 1, 0)
        while i < len(fragments) and fragments[i].t_start <= max(be - 1, bs):
            frag = fragments[i]
            if (be > bs and frag.t_start < be and frag.t_end > bs) or \
                    (be == bs and frag.t_start <= bs <= frag.t_end):
                mapped += 1
                break
            i += 1
    return mapped / len(blocks)


def _evaluate(chain, interval, config):
    """Transform *interval* through *chain*; None when it fails the thresholds."""
    tr = transform(chain, interval.start, interval.end)
    if not tr.fragments:
        return None
    block_ratio = _block_ratio(interval, tr.fragments)
    if tr.match_ratio < config.min_match or block_ratio < config.min_blocks:
        return None
    return _Candidate(chain, tr, tr.match_ratio, block_ratio)


def _output_strand(chain, interval):
    if interval.strand == "-":
        return "+" if chain.q_strand == "-" else "-"
    return chain.q_strand


def _region_from_fragments(chain, interval, fragments):
    q_start, q_end = envelope(fragments)
    return MappedRegion(
        seq_name=chain.q_name,
        start=q_start,
        end=q_end,
        strand=_output_strand(chain, interval),
        chain_id=chain.chain_id,
        matched_bases=sum(f.size for f in fragments),
        matched_blocks=len(fragments),
        t_start=fragments[0].t_start,
        t_end=fragments[-1].t_end,
    )


def _unmapped_reason(n_candidates):
    if n_candidates == 0:
        return DELETED
    return PARTIAL if n_candidates == 1 else SPLIT


# ===================================================================
# Chain extension
# ===================================================================

def chain_map_extension(chain_map):
    """Extension callable serving chains from a secondary :class:`ChainMap`.

    Typical use: lift against a netted chain set and recover duplicated
    regions from the unfiltered one.
    """
    def extend(seq_name, start, end):
        return chain_map.query(seq_name, start, end)
    return extend


def _extension_chains(extension, interval, known_ids):
    try:
        extra = list(extension(interval.seq_name, interval.start, interval.end))
    except Exception as exc:
        _logger.warning(
            "Chain extension lookup failed for %s:%d-%d, continuing without it: %s",
            interval.seq_name, interval.start, interval.end, exc,
        )
        return []

    chains = []
    for ch in extra:
        if not isinstance(ch, Chain):
            _logger.debug("Ignoring extension result of type %s", type(ch).__name__)
            continue
        if ch.t_name != interval.seq_name or ch.chain_id in known_ids:
            continue
        try:
            ch.validate()
        except ChainDataError as exc:
            _logger.debug("Ignoring malformed extension chain: %s", exc)
            continue
        known_ids.add(ch.chain_id)
        chains.append(ch)
    _logger.debug("Extension added %d chains for %s:%d-%d",
                  len(chains), interval.seq_name, interval.start, interval.end)
    return chains


# ===================================================================
# Resolver
# ===================================================================

def _assemble(regions, config):
    """Order regions by target start then chain id, drop duplicates, number them."""
    regions = sorted(regions, key=lambda r: (r.t_start, r.chain_id, r.start))
    seen = set()
    unique = []
    for reg in regions:
        key = (reg.seq_name, reg.start, reg.end, reg.strand)
        if key in seen:
            continue
        seen.add(key)
        unique.append(reg)
    if config.no_serial:
        return tuple(replace(r, serial=None) for r in unique)
    return tuple(replace(r, serial=k) for k, r in enumerate(unique, start=1))


def _candidate_chains(chain_map, interval, config):
    chains = chain_map.query(interval.seq_name, interval.start, interval.end)
    if not config.multiple:
        return chains
    if config.extension is not None:
        known = {ch.chain_id for ch in chains}
        chains = list(chains) + _extension_chains(config.extension, interval, known)
    return [
        ch for ch in chains
        if ch.t_span >= config.min_chain_t and ch.q_span >= config.min_chain_q
    ]


def _lift_whole(chain_map, interval, config):
    chains = _candidate_chains(chain_map, interval, config)
    if not chains:
        return Unmapped(DELETED)

    accepted = [
        cand for cand in (_evaluate(ch, interval, config) for ch in chains)
        if cand is not None
    ]
    if not accepted:
        return Unmapped(_unmapped_reason(len(chains)))

    if not config.multiple:
        best = min(
            accepted,
            key=lambda c: (-c.result.matched_bases, -c.chain.score, c.chain.chain_id),
        )
        region = _region_from_fragments(best.chain, interval, best.result.fragments)
        return Mapped(region, best.match_ratio, best.block_ratio)

    regions = []
    for cand in accepted:
        for frag in cand.result.fragments:
            region = _region_from_fragments(cand.chain, interval, [frag])
            if region.end - region.start >= config.min_size_q:
                regions.append(region)
    if not regions:
        return Unmapped(_unmapped_reason(len(chains)))
    return MappedMultiple(_assemble(regions, config))


def _combine_ends(left, right, tested):
    a, b = left.region, right.region
    if a.seq_name != b.seq_name or a.strand != b.strand:
        return Unmapped(ENDS_DISAGREE)
    matched = a.matched_bases + b.matched_bases
    region = MappedRegion(
        seq_name=a.seq_name,
        start=min(a.start, b.start),
        end=max(a.end, b.end),
        strand=a.strand,
        chain_id=a.chain_id,
        matched_bases=matched,
        matched_blocks=a.matched_blocks + b.matched_blocks,
        t_start=a.t_start,
        t_end=b.t_end,
    )
    block_ratio = (left.block_ratio + right.block_ratio) / 2
    return Mapped(region, matched / tested, block_ratio)


def _lift_ends(chain_map, interval, config):
    n = config.ends
    left = _lift_whole(
        chain_map, replace(interval, end=interval.start + n, blocks=None), config)
    right = _lift_whole(
        chain_map, replace(interval, start=interval.end - n, blocks=None), config)

    if not left.is_mapped and not right.is_mapped:
        return Unmapped(left.reason if left.reason == right.reason else PARTIAL)

    if config.multiple:
        pooled = [replace(r, serial=None) for r in left.regions + right.regions]
        return MappedMultiple(_assemble(pooled, config))

    if left.is_mapped and right.is_mapped:
        return _combine_ends(left, right, 2 * n)
    return left if left.is_mapped else right


def lift_interval(chain_map, interval, config=None):
    """Lift one target interval to the query assembly.

    Candidate chains overlapping the interval are transformed block by
    block and kept when their match ratio reaches ``config.min_match`` and
    their block ratio reaches ``config.min_blocks`` (zero denominators
    pass). In single mode the candidate with the most matched bases wins
    (ties: higher score, then lower chain id) and the envelope of its
    fragments is reported, even across alignment gaps. In multiple mode
    every accepted candidate contributes its fragments as separate,
    serially numbered regions.

    Parameters
    ----------
    chain_map : ChainMap
        Chains indexed by target sequence (see :func:`load_chain_map`).
    interval : LiftInterval
        Target-assembly interval.
    config : LiftoverConfig, optional
        Thresholds and mode; defaults to ``LiftoverConfig()``.

    Returns
    -------
    Mapped, MappedMultiple or Unmapped
        Per-record failures are reported as ``Unmapped`` with a reason,
        never raised.

    Examples
    --------
    >>> from pychainlift import LiftInterval, load_chain_map, make_chain, lift_interval
    >>> chain = make_chain(1, 1000, "chr1", 10000, "chr1", 10000, "+", [(100, 500, 50)])
    >>> res = lift_interval(load_chain_map([chain]), LiftInterval("chr1", 110, 140))
    >>> res.region.start, res.region.end
    (510, 540)
    """
    if config is None:
        config = DEFAULT_CONFIG
    if config.ends and interval.length > 2 * config.ends:
        return _lift_ends(chain_map, interval, config)
    return _lift_whole(chain_map, interval, config)
