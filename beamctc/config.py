from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from beamctc.errors import ConfigError

_SCORER_KINDS = ("default", "kenlm")

DEFAULT_CONFIG: dict[str, Any] = {
    "logging_level": "INFO",
    "decoder": {
        "beam_width": 20,
        "top_paths": 1,
        "merge_repeated": True,
        "num_workers": 1,
        "log_probs_input": False,
    },
    "scorer": {
        "kind": "default",
        "lm_path": None,
        "trie_path": None,
        "lm_weight": 1.0,
        "word_count_weight": 0.0,
        "valid_word_count_weight": 1.0,
    },
}


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(str(p))
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping; got {type(data)}")
    return data


def deep_update(base: dict[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively update nested dicts."""
    out = copy.deepcopy(base)
    for k, v in patch.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), dict):
            out[k] = deep_update(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def to_pretty_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False)


@dataclass(frozen=True)
class DecodeConfig:
    """Thin wrapper around the nested decoding config with a few convenience helpers."""

    raw: dict[str, Any]
    path: Path | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def require(self, key: str) -> Any:
        if key not in self.raw:
            raise ConfigError(f"Missing required config key: {key}")
        return self.raw[key]

    @property
    def decoder(self) -> dict[str, Any]:
        return self.raw["decoder"]

    @property
    def scorer(self) -> dict[str, Any]:
        return self.raw["scorer"]

    def resolve_path(self, value: str | Path) -> Path:
        """Resolve a config-relative path against the config file's directory."""
        p = Path(value)
        if p.is_absolute() or self.path is None:
            return p
        return self.path.parent / p

    def dump(self) -> str:
        return to_pretty_json({"config_path": str(self.path) if self.path else None, "config": self.raw})


def validate_config(raw: dict[str, Any]) -> None:
    if "labels" not in raw:
        raise ConfigError("Config must define 'labels' (mapping or alphabet file path)")
    if not isinstance(raw["labels"], (dict, str)):
        raise ConfigError("'labels' must be a mapping or a path string")
    if "decoder" not in raw or not isinstance(raw["decoder"], dict):
        raise ConfigError("Config must define 'decoder' mapping")

    dcfg = raw["decoder"]
    for key in ("beam_width", "top_paths"):
        if not isinstance(dcfg.get(key), int) or dcfg[key] < 1:
            raise ConfigError(f"decoder.{key} must be a positive integer; got {dcfg.get(key)!r}")

    scfg = raw.get("scorer") or {}
    kind = scfg.get("kind", "default")
    if kind not in _SCORER_KINDS:
        raise ConfigError(f"Unknown scorer.kind: {kind!r} (expected one of {_SCORER_KINDS})")
    if kind == "kenlm":
        for key in ("lm_path", "trie_path"):
            if not scfg.get(key):
                raise ConfigError(f"scorer.kind 'kenlm' requires scorer.{key}")


def config_from_mapping(raw: Mapping[str, Any], path: str | Path | None = None) -> DecodeConfig:
    merged = deep_update(DEFAULT_CONFIG, raw)
    validate_config(merged)
    return DecodeConfig(raw=merged, path=Path(path) if path is not None else None)


def load_config(path: str | Path) -> DecodeConfig:
    p = Path(path)
    return config_from_mapping(load_yaml(p), path=p)
