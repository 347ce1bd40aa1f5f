import os

import pytest

import pychainlift as pcl


_HEADER_FIELDS = (
    "score", "t_name", "t_size", "t_strand", "t_start", "t_end",
    "q_name", "q_size", "q_strand", "q_start", "q_end", "chain_id",
)


def write_chain(path, entries):
    """Write ``(header, blocks)`` pairs as UCSC chain text.

    *header* is a dict keyed by ``_HEADER_FIELDS``; each block is
    ``(size,)`` or ``(size, dt, dq)``.
    """
    lines = []
    for header, blocks in entries:
        lines.append(" ".join(["chain"] + [str(header[k]) for k in _HEADER_FIELDS]))
        lines.extend("\t".join(str(v) for v in blk) for blk in blocks)
        lines.append("")
    with open(path, "w") as out:
        out.write("\n".join(lines) + "\n")
    return str(path)


EXAMPLE_CHAIN = (
    "chain 200000 chr25 100000 + 2000 8000 chr1 500000 + 12000 18500 1\n"
    "500\t0\t200\n"
    "800\t300\t600\n"
    "4400\n"
    "\n"
    "chain 200000 chr25 100000 + 10000 12000 chrX 200000 + 5000 7000 2\n"
    "2000\n"
    "\n"
)


@pytest.fixture
def example_chain_file(tmp_path):
    path = os.path.join(tmp_path, "example.chain")
    with open(path, "w") as f:
        f.write(EXAMPLE_CHAIN)
    return path


@pytest.fixture
def single_block_map():
    """chr1 [100, 150) aligned to query chr1 [500, 550), forward strand."""
    chain = pcl.make_chain(1, 1000, "chr1", 10000, "chr1", 10000, "+", [(100, 500, 50)])
    return pcl.load_chain_map([chain])


@pytest.fixture
def gapped_map():
    """One chain, blocks chr1 [100, 150) -> [500, 550) and [160, 210) -> [600, 650)."""
    chain = pcl.make_chain(
        1, 1000, "chr1", 10000, "chr1", 10000, "+",
        [(100, 500, 50), (160, 600, 50)],
    )
    return pcl.load_chain_map([chain])


@pytest.fixture
def saved_config():
    saved = pcl.CONFIG.copy()
    yield pcl.CONFIG
    pcl.CONFIG.clear()
    pcl.CONFIG.update(saved)


@pytest.fixture
def chain_writer(tmp_path):
    def _write(entries, name="test.chain"):
        return write_chain(tmp_path / name, entries)
    return _write
