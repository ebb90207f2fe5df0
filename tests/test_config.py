from __future__ import annotations

import json

import pytest

from beamctc.config import config_from_mapping, deep_update, load_config
from beamctc.decoding.decoder import BeamCTCDecoder, load_decoder
from beamctc.decoding.scorer import DecodeType
from beamctc.errors import ConfigError

BASE = {
    "labels": {"alphabet": "_ab ", "blank_index": 0, "space_index": 3},
    "decoder": {"beam_width": 8, "top_paths": 2},
}


def test_deep_update_does_not_mutate_base():
    base = {"a": {"b": 1, "c": 2}}
    out = deep_update(base, {"a": {"b": 5}})
    assert out == {"a": {"b": 5, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


def test_defaults_are_filled():
    cfg = config_from_mapping(BASE)
    assert cfg.decoder["merge_repeated"] is True
    assert cfg.scorer["kind"] == "default"
    assert cfg.get("logging_level") == "INFO"


@pytest.mark.parametrize(
    "patch",
    [
        {"decoder": {"beam_width": 0}},
        {"decoder": {"top_paths": "two"}},
        {"scorer": {"kind": "neural"}},
        {"scorer": {"kind": "kenlm", "lm_path": "lm.arpa"}},
        {"labels": 3},
    ],
)
def test_invalid_configs(patch):
    with pytest.raises(ConfigError):
        config_from_mapping(deep_update(BASE, patch))


def test_missing_sections():
    with pytest.raises(ConfigError):
        config_from_mapping({"decoder": BASE["decoder"]})
    with pytest.raises(ConfigError):
        config_from_mapping({"labels": BASE["labels"], "decoder": None})


def test_load_config_and_build_decoder(tmp_path):
    (tmp_path / "labels.json").write_text(json.dumps(["_", "a", "b", " "]), encoding="utf-8")
    cfg_path = tmp_path / "decode.yaml"
    cfg_path.write_text(
        "labels: labels.json\n"
        "decoder:\n"
        "  beam_width: 6\n"
        "  top_paths: 3\n"
        "  merge_repeated: false\n",
        encoding="utf-8",
    )
    cfg = load_config(cfg_path)
    assert cfg.resolve_path("labels.json") == tmp_path / "labels.json"

    decoder = load_decoder(cfg_path)
    assert isinstance(decoder, BeamCTCDecoder)
    assert decoder.beam_width == 6
    assert decoder.top_paths == 3
    assert decoder.search.merge_repeated is False
    assert decoder.scorer.decode_type is DecodeType.CTC
    assert decoder.labels.alphabet == "_ab "


def test_load_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
    p = tmp_path / "list.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(p)
