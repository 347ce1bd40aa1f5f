"""Batch liftover of interval tables."""

import logging as _logging
import multiprocessing as _multiprocessing

import numpy as np
import pandas as pd

from ._shared import CONFIG, _chunk_slices, _progress_context, _report_progress
from .liftover import DEFAULT_CONFIG, LiftInterval, lift_interval

_logger = _logging.getLogger(__name__)

INVALID_INTERVAL = "Invalid interval"

_MAPPED_COLS = [
    "chrom", "start", "end", "strand", "intervalID",
    "chain_id", "matched_bases", "matched_blocks", "serial",
]
_UNMAPPED_COLS = ["chrom", "start", "end", "intervalID", "reason"]

_PROGRESS_STEP = 1000

# Read by forked workers; set right before the pool is created.
_WORKER_STATE = {}


def _empty_mapped_df():
    return pd.DataFrame({
        c: pd.Series(
            dtype="object" if c in ("chrom", "strand") else
            "Int64" if c == "serial" else "int64"
        ) for c in _MAPPED_COLS
    })


def _empty_unmapped_df():
    return pd.DataFrame({
        c: pd.Series(dtype="object" if c in ("chrom", "reason") else "int64")
        for c in _UNMAPPED_COLS
    })


def _records_from_df(intervals):
    chroms = intervals["chrom"].astype(str).to_numpy()
    starts = intervals["start"].to_numpy(dtype=np.int64)
    ends = intervals["end"].to_numpy(dtype=np.int64)
    if "strand" in intervals.columns:
        strands = [
            s if s in ("+", "-") else None
            for s in intervals["strand"].tolist()
        ]
    else:
        strands = [None] * len(intervals)
    return [
        (str(c), int(s), int(e), st)
        for c, s, e, st in zip(chroms, starts, ends, strands, strict=True)
    ]


def _lift_records(chain_map, config, records, offset):
    """Lift records; return (mapped_rows, unmapped_rows) tagged with intervalID."""
    mapped = []
    unmapped = []
    for i, (chrom, start, end, strand) in enumerate(records):
        interval_id = offset + i
        try:
            interval = LiftInterval(chrom, start, end, strand=strand)
        except ValueError:
            unmapped.append((chrom, start, end, interval_id, INVALID_INTERVAL))
            continue
        result = lift_interval(chain_map, interval, config)
        if not result.is_mapped:
            unmapped.append((chrom, start, end, interval_id, result.reason))
            continue
        for reg in result.regions:
            mapped.append((
                reg.seq_name, reg.start, reg.end, reg.strand, interval_id,
                reg.chain_id, reg.matched_bases, reg.matched_blocks, reg.serial,
            ))
    return mapped, unmapped


def _worker_lift_chunk(args):
    offset, records = args
    return _lift_records(
        _WORKER_STATE["chain_map"], _WORKER_STATE["config"], records, offset
    )


def _should_parallelize(n_records):
    """Return (do_parallel, n_workers) for a batch of *n_records*."""
    if not CONFIG.get("multitasking", False):
        return False, 1
    if n_records < max(2, CONFIG.get("min_parallel_records", 0)):
        return False, 1
    n_workers = max(CONFIG.get("min_processes", 1), _multiprocessing.cpu_count())
    n_workers = min(n_workers, CONFIG.get("max_processes", n_workers), n_records)
    if n_workers <= 1:
        return False, 1
    return True, n_workers


def lift_intervals(intervals, chain_map, config=None, progress=None):
    """Lift every row of an intervals table to the query assembly.

    Parameters
    ----------
    intervals : pandas.DataFrame
        Target-assembly intervals with columns ``chrom``, ``start``, ``end``
        and optionally ``strand`` (``'+'``/``'-'``; anything else is
        treated as unstranded).
    chain_map : ChainMap
        Indexed chains, see :func:`pychainlift.load_chain_map`.
    config : LiftoverConfig, optional
        Thresholds and output mode.
    progress : bool, str or callable, optional
        Progress reporting; defaults to ``CONFIG['progress']``.

    Returns
    -------
    tuple of pandas.DataFrame
        ``(mapped, unmapped)``. ``mapped`` has one row per output region
        with columns ``chrom``, ``start``, ``end``, ``strand``,
        ``intervalID``, ``chain_id``, ``matched_bases``, ``matched_blocks``
        and ``serial`` (nullable; set in multiple mode). ``unmapped`` has
        ``chrom``, ``start``, ``end``, ``intervalID`` and ``reason``.
        ``intervalID`` is the 0-based row position in *intervals*; both
        tables follow input order.

    Notes
    -----
    When ``CONFIG['multitasking']`` is enabled and the table has at least
    ``CONFIG['min_parallel_records']`` rows, contiguous chunks are lifted
    in forked worker processes sharing the chain map.
    """
    if not isinstance(intervals, pd.DataFrame):
        raise TypeError("intervals must be a DataFrame")
    missing = {"chrom", "start", "end"} - set(intervals.columns)
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(sorted(missing))}")
    if config is None:
        config = DEFAULT_CONFIG

    records = _records_from_df(intervals)
    n = len(records)
    do_parallel, n_workers = _should_parallelize(n)

    mapped_rows = []
    unmapped_rows = []
    with _progress_context(progress, total=n, desc="liftover") as cb:
        if do_parallel:
            _logger.info("Lifting %d intervals across %d processes", n, n_workers)
            worker_args = [(lo, records[lo:hi]) for lo, hi in _chunk_slices(n, n_workers)]
            _WORKER_STATE.update(chain_map=chain_map, config=config)
            try:
                ctx = _multiprocessing.get_context("fork")
                with ctx.Pool(processes=n_workers) as pool:
                    done = 0
                    for (lo, chunk), (m, u) in zip(
                        worker_args, pool.imap(_worker_lift_chunk, worker_args), strict=True
                    ):
                        mapped_rows.extend(m)
                        unmapped_rows.extend(u)
                        done += len(chunk)
                        _report_progress(cb, done, n)
            finally:
                _WORKER_STATE.clear()
        else:
            for lo in range(0, n, _PROGRESS_STEP):
                hi = min(lo + _PROGRESS_STEP, n)
                m, u = _lift_records(chain_map, config, records[lo:hi], lo)
                mapped_rows.extend(m)
                unmapped_rows.extend(u)
                _report_progress(cb, hi, n)

    if mapped_rows:
        mapped = pd.DataFrame(mapped_rows, columns=_MAPPED_COLS)
        mapped["serial"] = mapped["serial"].astype("Int64")
        mapped = mapped.sort_values("intervalID", kind="stable").reset_index(drop=True)
    else:
        mapped = _empty_mapped_df()

    if unmapped_rows:
        unmapped = pd.DataFrame(unmapped_rows, columns=_UNMAPPED_COLS)
        unmapped = unmapped.sort_values("intervalID", kind="stable").reset_index(drop=True)
    else:
        unmapped = _empty_unmapped_df()

    return mapped, unmapped
