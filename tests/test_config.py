import logging

from adtap.config import MonitorConfig, load_config


def test_defaults():
    config = MonitorConfig()
    assert config.interaction_window_ms == 2500
    assert config.interaction_ring_size == 20
    assert (config.border_min_px, config.border_max_px) == (1, 16)
    assert config.exit_probe_attempts == 20


def test_load_from_toml(tmp_path):
    path = tmp_path / "adtap.toml"
    path.write_text('[monitor]\ninteraction_window_ms = 1000\nscan_offsets_ms = [100, 200]\n')

    config = load_config(path)
    assert config.interaction_window_ms == 1000
    assert config.scan_offsets_ms == (100.0, 200.0)


def test_unknown_keys_are_ignored(caplog):
    with caplog.at_level(logging.WARNING):
        config = MonitorConfig.from_dict({"border_max_px": 8, "nonsense": 1})
    assert config.border_max_px == 8
    assert "nonsense" in caplog.text


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "absent.toml") == MonitorConfig()


def test_discovered_in_parent_directory(tmp_path, monkeypatch):
    (tmp_path / "adtap.toml").write_text("[monitor]\nsnapshot_count = 3\n")
    child = tmp_path / "a" / "b"
    child.mkdir(parents=True)
    monkeypatch.chdir(child)
    assert load_config().snapshot_count == 3
