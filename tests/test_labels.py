from __future__ import annotations

import json

import pytest

from beamctc.data.labels import Labels, load_labels
from beamctc.errors import ConfigError, UnknownSymbolError


def test_label_and_char_lookup(cart_labels):
    assert len(cart_labels) == 6
    assert cart_labels.label_of("c") == 1
    assert cart_labels.char_of(4) == "t"
    assert cart_labels.blank_index == 0
    assert cart_labels.space_index == 5
    assert cart_labels.is_space(5) and cart_labels.is_blank(0)


def test_unknown_symbol_is_structured_error(cart_labels):
    with pytest.raises(UnknownSymbolError) as exc:
        cart_labels.label_of("z")
    assert exc.value.symbol == "z"
    assert isinstance(exc.value, KeyError)
    assert "z" in str(exc.value)


def test_char_of_is_total_over_class_range(cart_labels):
    assert [cart_labels.char_of(i) for i in range(cart_labels.num_classes)] == list("_cart ")
    with pytest.raises(IndexError):
        cart_labels.char_of(6)
    with pytest.raises(IndexError):
        cart_labels.decode([1, -1])


def test_encode_decode_drops_blank(cart_labels):
    assert cart_labels.encode("cat car") == [1, 2, 4, 5, 1, 2, 3]
    assert cart_labels.decode([0, 1, 2, 0, 4]) == "cat"


def test_space_index_defaults_to_space_character():
    labels = Labels("_ab ", blank_index=0)
    assert labels.space_index == 3
    assert Labels("a_", blank_index=1).space_index == -1


def test_invalid_construction():
    with pytest.raises(ValueError):
        Labels("aa_", blank_index=2)
    with pytest.raises(ValueError):
        Labels("_a ", blank_index=0, space_index=0)
    with pytest.raises(ValueError):
        Labels("_a", blank_index=5)
    with pytest.raises(ValueError):
        Labels("_a ", blank_index=0, space_index=-2)


def test_load_labels_json_list(tmp_path):
    p = tmp_path / "labels.json"
    p.write_text(json.dumps(["_", "a", "b", " "]), encoding="utf-8")
    labels = load_labels(p, blank_index=0)
    assert labels.alphabet == "_ab "
    assert labels.space_index == 3


def test_load_labels_yaml_mapping(tmp_path):
    p = tmp_path / "alphabet.yaml"
    p.write_text('alphabet: "ab |"\nblank_index: 3\nspace_index: 2\n', encoding="utf-8")
    labels = load_labels(p)
    assert labels.blank_index == 3
    assert labels.space_index == 2


def test_load_labels_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_labels(tmp_path / "missing.json")
    p = tmp_path / "bad.yaml"
    p.write_text("blank_index: 0\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_labels(p)
