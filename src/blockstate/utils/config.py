from typing import Any, Dict, Optional, TypedDict, Union
from pathlib import Path
import copy
import math

import yaml

from blockstate.block_pair_index import BlockIndexType
from blockstate.degree_sequences import DegreeSequenceKind
from blockstate.exceptions import UnsupportedConfiguration


class EntropyConfig(TypedDict):
    dense: bool
    multigraph: bool
    partition_dl: bool
    deg_dl: bool
    edges_dl: bool


class LoggingConfig(TypedDict):
    log_path: Optional[str]
    log_every: int


class BlockStateConfig(TypedDict):
    block_index: BlockIndexType
    deg_corr: bool
    degree_sequences: DegreeSequenceKind
    seed: Optional[int]
    c: float
    entropy: EntropyConfig
    logging: LoggingConfig


DEFAULT_CONFIG: BlockStateConfig = {
    "block_index": "hash",
    "deg_corr": True,
    "degree_sequences": "simple",
    "seed": None,
    "c": 1.0,
    "entropy": {
        "dense": False,
        "multigraph": False,
        "partition_dl": False,
        "deg_dl": False,
        "edges_dl": False,
    },
    "logging": {
        "log_path": None,
        "log_every": 1_000,
    },
}

_CHOICES: Dict[str, tuple] = {
    "block_index": ("hash", "dense"),
    "degree_sequences": ("simple", "map"),
}


def _check_keys(section: str, raw: Dict[str, Any], allowed: Dict[str, Any]) -> None:
    unknown = set(raw) - set(allowed)
    if unknown:
        raise UnsupportedConfiguration(f"unknown {section} option(s): {sorted(unknown)}")


def _check_bool(name: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise UnsupportedConfiguration(f"{name} must be true or false, got {value!r}")


def validate_config(raw: Optional[Dict[str, Any]]) -> BlockStateConfig:
    """
    Merge raw settings over the defaults and check every value.
    """
    raw = {} if raw is None else raw
    if not isinstance(raw, dict):
        raise UnsupportedConfiguration("configuration must be a mapping")

    config: BlockStateConfig = copy.deepcopy(DEFAULT_CONFIG)
    _check_keys("top-level", raw, config)

    for section in ("entropy", "logging"):
        sub = raw.get(section) or {}
        if not isinstance(sub, dict):
            raise UnsupportedConfiguration(f"{section} must be a mapping")
        _check_keys(section, sub, config[section])
        config[section].update(sub)  # type: ignore

    for key in ("block_index", "deg_corr", "degree_sequences", "seed", "c"):
        if key in raw:
            config[key] = raw[key]  # type: ignore

    for key, choices in _CHOICES.items():
        if config[key] not in choices:  # type: ignore
            raise UnsupportedConfiguration(f"{key} must be one of {choices}, got {config[key]!r}")  # type: ignore

    _check_bool("deg_corr", config["deg_corr"])
    for key, value in config["entropy"].items():
        _check_bool(f"entropy.{key}", value)

    if config["seed"] is not None and (isinstance(config["seed"], bool) or not isinstance(config["seed"], int)):
        raise UnsupportedConfiguration(f"seed must be an integer, got {config['seed']!r}")

    c = config["c"]
    if isinstance(c, bool) or not isinstance(c, (int, float)) or math.isnan(c) or c < 0:
        raise UnsupportedConfiguration(f"c must be a non-negative number, got {c!r}")
    config["c"] = float(c)

    log_every = config["logging"]["log_every"]
    if isinstance(log_every, bool) or not isinstance(log_every, int) or log_every < 1:
        raise UnsupportedConfiguration(f"logging.log_every must be a positive integer, got {log_every!r}")

    if config["entropy"]["dense"] and config["deg_corr"]:
        raise UnsupportedConfiguration("Dense entropy for degree corrected model not implemented!")

    return config


def load_config(path: Union[str, Path]) -> BlockStateConfig:
    """Read a YAML configuration file and fill in the defaults."""
    raw = yaml.safe_load(Path(path).read_text())
    return validate_config(raw)
