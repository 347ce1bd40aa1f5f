"""
Hierarchical binning index over half-open 1D ranges (UCSC "bin" scheme).

Ranges are assigned to the smallest bin that fully contains them. Bins at
the finest level span 128 kb (2^17); each coarser level is 8 times wider:

  level   bin span   standard offset   extended offset
  0       128 kb     585               4681
  1       1 Mb       73                585
  2       8 Mb       9                 73
  3       64 Mb      1                 9
  4       512 Mb     0                 1
  5       4 Gb       -                 0

Ranges ending at or below 512 Mb use the standard scheme. Longer
coordinates use the extended scheme, whose bin numbers are shifted by
4681 so the two schemes never collide. An overlap query only visits the
bins that can contain an overlapping range, a handful per level.
"""

_BIN_FIRST_SHIFT = 17
_BIN_NEXT_SHIFT = 3

_STANDARD_OFFSETS = (512 + 64 + 8 + 1, 64 + 8 + 1, 8 + 1, 1, 0)
_EXTENDED_OFFSETS = (4096 + 512 + 64 + 8 + 1, 512 + 64 + 8 + 1, 64 + 8 + 1, 8 + 1, 1, 0)
_EXTENDED_BASE = 4681

_STANDARD_MAX = 1 << 29
MAX_COORDINATE = 1 << 32


def _bin_in_scheme(start, end, offsets):
    start_bin = start >> _BIN_FIRST_SHIFT
    end_bin = (end - 1) >> _BIN_FIRST_SHIFT
    for offset in offsets:
        if start_bin == end_bin:
            return offset + start_bin
        start_bin >>= _BIN_NEXT_SHIFT
        end_bin >>= _BIN_NEXT_SHIFT
    raise ValueError(f"range [{start}, {end}) out of range for binning")


def bin_from_range(start, end):
    """Return the bin number of the half-open range [start, end)."""
    if start < 0 or end < start:
        raise ValueError(f"invalid range [{start}, {end})")
    end = max(end, start + 1)
    if end <= _STANDARD_MAX:
        return _bin_in_scheme(start, end, _STANDARD_OFFSETS)
    if end > MAX_COORDINATE:
        raise ValueError(f"range [{start}, {end}) exceeds maximum coordinate {MAX_COORDINATE}")
    return _EXTENDED_BASE + _bin_in_scheme(start, end, _EXTENDED_OFFSETS)


def _candidate_bins(start, end, extended=True):
    """Yield every bin number that may hold a range overlapping [start, end)."""
    last = end - 1
    if start < _STANDARD_MAX:
        std_last = min(last, _STANDARD_MAX - 1)
        shift = _BIN_FIRST_SHIFT
        for offset in _STANDARD_OFFSETS:
            yield from range(offset + (start >> shift), offset + (std_last >> shift) + 1)
            shift += _BIN_NEXT_SHIFT
    if extended:
        last = min(last, MAX_COORDINATE - 1)
        shift = _BIN_FIRST_SHIFT
        for offset in _EXTENDED_OFFSETS:
            base = _EXTENDED_BASE + offset
            yield from range(base + (start >> shift), base + (last >> shift) + 1)
            shift += _BIN_NEXT_SHIFT


class BinIndex:
    """Bin-keyed store of (start, end, item) supporting overlap queries."""

    __slots__ = ("_bins", "_count", "_max_end")

    def __init__(self):
        self._bins = {}
        self._count = 0
        self._max_end = 0

    def __len__(self):
        return self._count

    def add(self, start, end, item):
        self._bins.setdefault(bin_from_range(start, end), []).append((start, end, item))
        self._count += 1
        self._max_end = max(self._max_end, end)

    def overlapping(self, start, end):
        """Items whose range overlaps [start, end), in bin then insertion order.

        A zero-length query never overlaps anything; callers wanting point
        semantics widen the query themselves.
        """
        start = max(start, 0)
        end = min(end, self._max_end)
        if end <= start:
            return []
        found = []
        bins = self._bins
        for b in _candidate_bins(start, end, extended=self._max_end > _STANDARD_MAX):
            entries = bins.get(b)
            if not entries:
                continue
            for s, e, item in entries:
                if s < end and e > start:
                    found.append(item)
        return found
