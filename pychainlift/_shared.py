"""
Process-wide settings and helpers shared by pychainlift modules.

`CONFIG` is a plain dict and is not synchronized. Adjust it from the
controlling thread before starting a batch; chain maps are read-only once
built and can be shared freely.
"""

import sys as _sys
from contextlib import contextmanager

CONFIG = {
    'multitasking': True,           # Lift large batches in worker processes
    'min_processes': 2,             # Lower bound on worker count
    'max_processes': 16,            # Upper bound on worker count
    'min_parallel_records': 50000,  # Smaller batches run in-process
    'progress': False,              # False, True, 'tqdm', 'rich', 'text' or a callable
    'progress_style': 'rich'        # Backend used for progress=True
}


# Each reporter factory returns (callback, close); callback(done, total, pct).

def _tqdm_reporter(total, desc):
    from tqdm.auto import tqdm
    bar = tqdm(total=total, desc=desc)

    def update(done, total, pct):
        if total is not None and bar.total != total:
            bar.total = total
        bar.n = int(done)
        bar.refresh()

    return update, bar.close


def _rich_reporter(total, desc):
    from rich.progress import Progress
    display = Progress()
    display.start()
    task = display.add_task(desc or "lifting", total=total)

    def update(done, total, pct):
        display.update(task, total=total, completed=done)

    return update, display.stop


def _text_reporter(total, desc):
    label = desc or "progress"
    shown = [-1]

    def update(done, total, pct):
        if pct == shown[0]:
            return
        shown[0] = pct
        _sys.stderr.write(f"\r{label}: {pct}%" + ("\n" if pct >= 100 else ""))
        _sys.stderr.flush()

    return update, None


_REPORTERS = {
    'tqdm': _tqdm_reporter,
    'auto': _tqdm_reporter,
    'rich': _rich_reporter,
    'text': _text_reporter,
}


def _make_progress_callback(progress, total=None, desc=None):
    """Resolve a ``progress`` argument to ``(callback, close)``.

    Unknown styles disable reporting. A missing tqdm or rich install falls
    back to plain text on stderr.
    """
    if progress is None:
        progress = CONFIG.get('progress', False)
    if not progress:
        return None, None
    if callable(progress):
        return progress, None

    style = CONFIG.get('progress_style', 'rich') if progress is True else progress
    factory = _REPORTERS.get(style)
    if factory is None:
        return None, None
    try:
        return factory(total, desc)
    except ImportError:
        return _text_reporter(total, desc)


@contextmanager
def _progress_context(progress=None, total=None, desc=None):
    cb, close = _make_progress_callback(progress, total=total, desc=desc)
    try:
        yield cb
    finally:
        if close is not None:
            close()


def _report_progress(cb, done, total):
    if cb is not None:
        cb(done, total, 100 if not total else int(100 * done / total))


def _chunk_slices(n, n_chunks):
    """Split ``range(n)`` into at most *n_chunks* contiguous ``(start, end)`` slices.

    Earlier slices take the remainder, so sizes differ by at most one.
    """
    if n_chunks is None or n_chunks <= 1 or n <= 1:
        return [(0, n)]
    n_chunks = min(n_chunks, n)
    base, extra = divmod(n, n_chunks)
    slices = []
    start = 0
    for i in range(n_chunks):
        end = start + base + (i < extra)
        slices.append((start, end))
        start = end
    return slices
