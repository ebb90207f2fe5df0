from __future__ import annotations

import io
import os
import stat

import pytest

from beamctc.errors import DuplicateWordError, TrieFormatError
from beamctc.trie.trie import VocabularyTrie


def test_round_trip_preserves_words(cart_labels, cart_trie):
    restored = VocabularyTrie.from_bytes(cart_trie.to_bytes(), num_classes=cart_labels.num_classes)

    cat = restored.find(cart_labels.encode("cat"))
    car = restored.find(cart_labels.encode("car"))
    assert cat is not None and cat.is_terminal
    assert (cat.vocab_index, cat.unigram_score) == (0, -1.0)
    assert car is not None and car.is_terminal
    assert (car.vocab_index, car.unigram_score) == (1, -5.0)
    assert restored.word_count == 2
    assert sorted(restored) == sorted(cart_trie)


def test_round_trip_is_byte_identical(cart_trie):
    data = cart_trie.to_bytes()
    assert VocabularyTrie.from_bytes(data).to_bytes() == data


def test_unigram_score_survives_exactly(cart_labels):
    trie = VocabularyTrie(cart_labels.num_classes)
    trie.insert(cart_labels.encode("tar"), 7, -3.1415926535897931)
    restored = VocabularyTrie.from_bytes(trie.to_bytes())
    assert restored.find(cart_labels.encode("tar")).unigram_score == -3.1415926535897931


def test_lookup_child_misses_after_prefix(cart_labels, cart_trie):
    ca = cart_trie.find(cart_labels.encode("ca"))
    assert ca is not None and not ca.is_terminal
    for ch in "_ca ":
        assert VocabularyTrie.lookup_child(ca, cart_labels.label_of(ch)) is None
    assert VocabularyTrie.lookup_child(ca, cart_labels.label_of("t")) is not None
    assert VocabularyTrie.lookup_child(None, 1) is None


def test_contains_only_terminal_words(cart_labels, cart_trie):
    assert cart_labels.encode("cat") in cart_trie
    assert cart_labels.encode("ca") not in cart_trie
    assert cart_labels.encode("tac") not in cart_trie


def test_duplicate_insert_raises(cart_labels, cart_trie):
    with pytest.raises(DuplicateWordError):
        cart_trie.insert(cart_labels.encode("cat"), 5, -2.0)
    # Original entry is untouched.
    assert cart_trie.find(cart_labels.encode("cat")).vocab_index == 0
    assert cart_trie.word_count == 2


def test_prefix_word_can_be_inserted_after_longer_word(cart_labels, cart_trie):
    cart_trie.insert(cart_labels.encode("ca"), 2, -7.0)
    assert cart_labels.encode("ca") in cart_trie
    assert cart_trie.word_count == 3


def test_insert_validation(cart_labels):
    trie = VocabularyTrie(cart_labels.num_classes)
    with pytest.raises(ValueError):
        trie.insert([], 0, 0.0)
    with pytest.raises(ValueError):
        trie.insert([1, 99], 0, 0.0)


def test_corrupt_streams(cart_trie):
    data = cart_trie.to_bytes()
    with pytest.raises(TrieFormatError):
        VocabularyTrie.from_bytes(b"NOTATRIE" + data[8:])
    with pytest.raises(TrieFormatError):
        VocabularyTrie.from_bytes(data[:-3])
    with pytest.raises(TrieFormatError):
        VocabularyTrie.from_bytes(data + b"\x00")
    with pytest.raises(TrieFormatError):
        VocabularyTrie.deserialize(io.BytesIO(b""))


def test_class_count_mismatch(cart_trie):
    with pytest.raises(TrieFormatError):
        VocabularyTrie.from_bytes(cart_trie.to_bytes(), num_classes=29)


def test_save_and_load(tmp_path, cart_labels, cart_trie):
    path = tmp_path / "nested" / "vocab.trie"
    cart_trie.save(path)
    assert path.read_bytes() == cart_trie.to_bytes()
    loaded = VocabularyTrie.load(path, num_classes=cart_labels.num_classes)
    assert sorted(loaded) == sorted(cart_trie)
    assert [p.name for p in path.parent.iterdir()] == ["vocab.trie"]


def test_saved_file_uses_default_permissions(tmp_path, cart_trie):
    umask = os.umask(0)
    os.umask(umask)
    path = tmp_path / "vocab.trie"
    cart_trie.save(path)
    assert stat.S_IMODE(path.stat().st_mode) == 0o666 & ~umask


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        VocabularyTrie.load(tmp_path / "missing.trie")
