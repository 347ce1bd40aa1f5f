"""Tests for batch liftover of interval tables, serial and multiprocess."""

import numpy as np
import pandas as pd
import pytest

import pychainlift as pcl
from pychainlift._shared import _chunk_slices, _make_progress_callback, _report_progress
from pychainlift.batch import INVALID_INTERVAL, _should_parallelize


def _intervals(rows, strand=None):
    df = pd.DataFrame(rows, columns=["chrom", "start", "end"])
    if strand is not None:
        df["strand"] = strand
    return df


# ===================================================================
# Serial batches
# ===================================================================

class TestLiftIntervals:
    """Mapped/unmapped tables from lift_intervals."""

    def test_mapped_and_unmapped(self, single_block_map):
        df = _intervals(
            [("chr1", 110, 140), ("chrUn", 0, 10), ("chr1", 50, 10), ("chr1", 120, 130)],
            strand=["+", "+", "+", "-"],
        )
        mapped, unmapped = pcl.lift_intervals(df, single_block_map)

        assert list(mapped.columns) == [
            "chrom", "start", "end", "strand", "intervalID",
            "chain_id", "matched_bases", "matched_blocks", "serial",
        ]
        assert mapped["intervalID"].tolist() == [0, 3]
        assert mapped["start"].tolist() == [510, 520]
        assert mapped["end"].tolist() == [540, 530]
        assert mapped["strand"].tolist() == ["+", "-"]
        assert mapped["matched_bases"].tolist() == [30, 10]
        assert str(mapped["serial"].dtype) == "Int64"
        assert mapped["serial"].isna().all()

        assert list(unmapped.columns) == ["chrom", "start", "end", "intervalID", "reason"]
        assert unmapped["intervalID"].tolist() == [1, 2]
        assert unmapped["reason"].tolist() == [pcl.DELETED, INVALID_INTERVAL]

    def test_without_strand_column(self, single_block_map):
        mapped, unmapped = pcl.lift_intervals(_intervals([("chr1", 110, 140)]), single_block_map)
        assert mapped["strand"].tolist() == ["+"]
        assert len(unmapped) == 0

    def test_unknown_strand_value_is_unstranded(self, single_block_map):
        df = _intervals([("chr1", 110, 140)], strand=["."])
        mapped, _ = pcl.lift_intervals(df, single_block_map)
        assert mapped["strand"].tolist() == ["+"]

    def test_multiple_mode_serials(self):
        chain = pcl.make_chain(1, 1000, "chr1", 10000, "chr1", 10000, "+",
                               [(100, 500, 50), (155, 560, 50)])
        chain_map = pcl.load_chain_map([chain])
        df = _intervals([("chr1", 100, 205), ("chr1", 110, 140)])
        mapped, unmapped = pcl.lift_intervals(df, chain_map, pcl.LiftoverConfig(multiple=True))
        assert mapped["intervalID"].tolist() == [0, 0, 1]
        assert mapped["serial"].tolist() == [1, 2, 1]
        assert len(unmapped) == 0

    def test_chain_file_end_to_end(self, example_chain_file):
        chain_map = pcl.load_chain_file(example_chain_file)
        df = _intervals([("chr25", 2100, 2200), ("chr25", 10500, 10600), ("chr25", 9000, 9100)])
        mapped, unmapped = pcl.lift_intervals(df, chain_map)
        assert list(zip(mapped["chrom"], mapped["start"], mapped["end"])) == [
            ("chr1", 12100, 12200),
            ("chrX", 5500, 5600),
        ]
        assert unmapped["intervalID"].tolist() == [2]

    def test_empty_input(self, single_block_map):
        mapped, unmapped = pcl.lift_intervals(_intervals([]), single_block_map)
        assert len(mapped) == 0
        assert len(unmapped) == 0
        assert "serial" in mapped.columns
        assert "reason" in unmapped.columns

    def test_progress_callback(self, single_block_map):
        calls = []
        df = _intervals([("chr1", 110, 140)] * 5)
        pcl.lift_intervals(df, single_block_map, progress=lambda *args: calls.append(args))
        assert calls[-1] == (5, 5, 100)

    def test_missing_columns(self, single_block_map):
        with pytest.raises(ValueError, match="Missing required columns"):
            pcl.lift_intervals(pd.DataFrame({"chrom": ["chr1"], "start": [0]}), single_block_map)

    def test_not_a_dataframe(self, single_block_map):
        with pytest.raises(TypeError):
            pcl.lift_intervals([("chr1", 0, 10)], single_block_map)


# ===================================================================
# Parallel batches
# ===================================================================

class TestParallelLift:
    """Multiprocess batches give the same tables as serial ones."""

    @staticmethod
    def _random_intervals(n, seed=11):
        rng = np.random.default_rng(seed)
        starts = rng.integers(0, 400, size=n)
        lengths = rng.integers(0, 80, size=n)
        chroms = np.where(rng.random(n) < 0.1, "chrUn", "chr1")
        return pd.DataFrame({"chrom": chroms, "start": starts, "end": starts + lengths})

    def test_parallel_matches_serial(self, gapped_map, saved_config):
        df = self._random_intervals(300)
        config = pcl.LiftoverConfig(multiple=True, min_match=0.5)

        saved_config["multitasking"] = False
        serial_mapped, serial_unmapped = pcl.lift_intervals(df, gapped_map, config)

        saved_config.update(multitasking=True, min_parallel_records=10,
                            min_processes=2, max_processes=2)
        assert _should_parallelize(len(df)) == (True, 2)
        par_mapped, par_unmapped = pcl.lift_intervals(df, gapped_map, config)

        assert len(serial_mapped) > 0
        assert len(serial_unmapped) > 0
        pd.testing.assert_frame_equal(serial_mapped, par_mapped)
        pd.testing.assert_frame_equal(serial_unmapped, par_unmapped)

    def test_parallel_progress(self, single_block_map, saved_config):
        saved_config.update(multitasking=True, min_parallel_records=10,
                            min_processes=2, max_processes=2)
        calls = []
        df = _intervals([("chr1", 110, 140)] * 40)
        mapped, _ = pcl.lift_intervals(df, single_block_map,
                                       progress=lambda *args: calls.append(args))
        assert mapped["intervalID"].tolist() == list(range(40))
        assert [c[0] for c in calls] == [20, 40]
        assert calls[-1][2] == 100


class TestProgressResolution:
    """How the ``progress`` argument turns into a callback."""

    def test_disabled(self, saved_config):
        saved_config["progress"] = False
        assert _make_progress_callback(None) == (None, None)
        assert _make_progress_callback(False) == (None, None)

    def test_callable_passthrough(self):
        def cb(done, total, pct):
            pass
        assert _make_progress_callback(cb) == (cb, None)

    def test_unknown_style(self):
        assert _make_progress_callback("fancy") == (None, None)

    def test_text_style(self, capsys, single_block_map):
        df = _intervals([("chr1", 110, 140)] * 3)
        pcl.lift_intervals(df, single_block_map, progress="text")
        assert "liftover: 100%" in capsys.readouterr().err

    def test_config_default_style(self, saved_config, capsys):
        saved_config.update(progress=True, progress_style="text")
        cb, close = _make_progress_callback(None, total=4, desc="demo")
        assert close is None
        _report_progress(cb, 2, 4)
        assert "demo: 50%" in capsys.readouterr().err


class TestParallelPolicy:
    """Chunking and worker-count decisions."""

    def test_chunk_slices(self):
        assert _chunk_slices(10, 3) == [(0, 4), (4, 7), (7, 10)]
        assert _chunk_slices(5, 1) == [(0, 5)]
        assert _chunk_slices(2, 5) == [(0, 1), (1, 2)]
        assert _chunk_slices(0, 4) == [(0, 0)]

    def test_disabled(self, saved_config):
        saved_config["multitasking"] = False
        assert _should_parallelize(10**6) == (False, 1)

    def test_small_batch_stays_serial(self, saved_config):
        saved_config.update(multitasking=True, min_parallel_records=100)
        assert _should_parallelize(50) == (False, 1)

    def test_worker_bounds(self, saved_config):
        saved_config.update(multitasking=True, min_parallel_records=10,
                            min_processes=2, max_processes=3)
        do_parallel, n_workers = _should_parallelize(1000)
        assert do_parallel
        assert 2 <= n_workers <= 3

        saved_config["max_processes"] = 1
        assert _should_parallelize(1000) == (False, 1)

    def test_never_more_workers_than_records(self, saved_config):
        saved_config.update(multitasking=True, min_parallel_records=0,
                            min_processes=8, max_processes=8)
        assert _should_parallelize(3) == (True, 3)
