# src/tests/test_config_and_logger.py
"""
Unit-tests for
  • blockstate.utils.config   (load_config / validate_config)
  • blockstate.utils.logger   (CSVLogger)
  • BlockState.from_config
"""
from __future__ import annotations

import csv
import io
from pathlib import Path

import numpy as np
import pytest
import yaml

from blockstate.graph_data import GraphData
from blockstate.block_state import BlockState
from blockstate.exceptions import UnsupportedConfiguration
from blockstate.utils.config import DEFAULT_CONFIG, load_config, validate_config
from blockstate.utils.logger import CSVLogger


###############################################################################
# helpers
###############################################################################
def _write_yaml(path: Path, content: dict) -> Path:
    path.write_text(yaml.safe_dump(content))
    return path


def _ring(n: int = 6) -> GraphData:
    return GraphData(n, [(i, (i + 1) % n) for i in range(n)])


###############################################################################
# config
###############################################################################
def test_load_config_fills_defaults(tmp_path: Path) -> None:
    fn = _write_yaml(tmp_path / "cfg.yaml", {
        "block_index": "dense",
        "entropy": {"partition_dl": True},
    })
    cfg = load_config(fn)
    assert cfg["block_index"] == "dense"
    assert cfg["entropy"]["partition_dl"] is True
    assert cfg["entropy"]["dense"] is False
    assert cfg["deg_corr"] == DEFAULT_CONFIG["deg_corr"]
    assert cfg["logging"]["log_every"] == DEFAULT_CONFIG["logging"]["log_every"]


def test_empty_config_file_gives_defaults(tmp_path: Path) -> None:
    fn = tmp_path / "empty.yaml"
    fn.write_text("")
    assert load_config(fn) == DEFAULT_CONFIG


@pytest.mark.parametrize("raw", [
    {"temperature": 1.0},
    {"entropy": {"exact": True}},
    {"block_index": "tree"},
    {"degree_sequences": "histogram"},
    {"deg_corr": "yes"},
    {"c": -1.0},
    {"seed": 1.5},
    {"logging": {"log_every": 0}},
    {"deg_corr": True, "entropy": {"dense": True}},
])
def test_invalid_config_is_rejected(raw: dict) -> None:
    with pytest.raises(UnsupportedConfiguration):
        validate_config(raw)


def test_validate_does_not_touch_defaults() -> None:
    validate_config({"entropy": {"edges_dl": True}})
    assert DEFAULT_CONFIG["entropy"]["edges_dl"] is False


def test_block_state_from_config(tmp_path: Path) -> None:
    cfg = validate_config({
        "deg_corr": False,
        "block_index": "dense",
        "seed": 3,
        "entropy": {"dense": True, "partition_dl": True},
    })
    state = BlockState.from_config(_ring(), [0, 0, 0, 1, 1, 1], cfg)
    assert state.block_data.block_index_type == "dense"
    assert not state.deg_corr

    expected = state.virtual_move(2, 1, dense=True, partition_dl=True)
    assert state.virtual_move_config(2, 1) == pytest.approx(expected)
    assert state.virtual_move(2, 1) == pytest.approx(expected)
    assert state.sample_block(2, cfg["c"]) in (0, 1)


###############################################################################
# logger
###############################################################################
def test_logger_writes_header_and_honours_cadence(tmp_path: Path) -> None:
    fn = tmp_path / "logs" / "moves.csv"
    with CSVLogger(fn, log_every=2) as logger:
        for i in range(1, 6):
            logger.log(i, vertex=i, source_block=0, target_block=1, nonempty_blocks=2)

    rows = list(csv.reader(fn.open()))
    assert rows[0] == CSVLogger.header
    assert [int(r[0]) for r in rows[1:]] == [2, 4]
    assert rows[1][2:] == ["2", "0", "1", "2"]


def test_logger_overwrites_existing_file(tmp_path: Path) -> None:
    fn = tmp_path / "moves.csv"
    fn.write_text("stale\n")
    CSVLogger(fn, log_every=1).close()
    assert fn.read_text().splitlines() == [",".join(CSVLogger.header)]


def test_logger_borrowed_handle_is_left_open() -> None:
    buf = io.StringIO()
    logger = CSVLogger(buf, log_every=1)
    logger.log(1, 0, 0, 1, 2)
    logger.close()
    assert not buf.closed
    assert buf.getvalue().startswith("1,")


def test_block_state_logs_committed_moves(tmp_path: Path) -> None:
    fn = tmp_path / "trace.csv"
    cfg = validate_config({"logging": {"log_path": str(fn), "log_every": 1}})
    state = BlockState.from_config(_ring(), [0, 0, 0, 1, 1, 1], cfg)
    state.move_vertex(2, 1)
    state.move_vertex(2, 1)  # no-op, not logged
    state.move_vertex(0, 1)
    state.close()

    rows = list(csv.reader(fn.open()))[1:]
    assert [(int(r[0]), int(r[2]), int(r[3]), int(r[4])) for r in rows] == [(1, 2, 0, 1), (2, 0, 0, 1)]
    assert [int(r[5]) for r in rows] == [2, 2]


def test_copy_shares_logger_without_owning_it(tmp_path: Path) -> None:
    buf = io.StringIO()
    state = BlockState(_ring(), [0, 0, 0, 1, 1, 1], logger=CSVLogger(buf, log_every=1),
                       rng=np.random.default_rng(0))
    clone = state.copy()
    clone.move_vertex(0, 1)
    clone.close()
    assert not buf.closed
    assert buf.getvalue().count("\n") == 1
