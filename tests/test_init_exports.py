import pychainlift as pcl
from pychainlift import _shared


def test_all_names_exist():
    missing = [name for name in pcl.__all__ if not hasattr(pcl, name)]
    assert missing == []


def test_config_export_is_live(saved_config):
    saved_config["min_parallel_records"] = 7
    assert pcl.CONFIG is _shared.CONFIG
    assert pcl._shared.CONFIG["min_parallel_records"] == 7
