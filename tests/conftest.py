from __future__ import annotations

import math
from typing import Any

import pytest

from beamctc.data.labels import Labels
from beamctc.lm.language_model import LanguageModel
from beamctc.trie.trie import VocabularyTrie


class FakeLanguageModel(LanguageModel):
    """Unigram LM over a fixed dict of natural-log probabilities.

    The context state is the tuple of words scored so far, so tests can check
    that it advances.
    """

    def __init__(self, unigrams: dict[str, float], unk_score: float = -10.0, end_score: float = math.log(0.5)):
        self.unigrams = dict(unigrams)
        self.unk_score = unk_score
        self.end_score = end_score
        self._index = {w: i for i, w in enumerate(self.unigrams)}

    def begin_state(self) -> Any:
        return ()

    def score_word(self, state: Any, word: str) -> tuple[float, Any]:
        return self.unigram_score(word), state + (word,)

    def score_end(self, state: Any) -> float:
        return self.end_score

    def unigram_score(self, word: str) -> float:
        return self.unigrams.get(word, self.unk_score)

    def __contains__(self, word: str) -> bool:
        return word in self.unigrams

    def vocab_index(self, word: str) -> int | None:
        return self._index.get(word)


@pytest.fixture
def cart_labels() -> Labels:
    # blank=0, c=1, a=2, r=3, t=4, space=5
    return Labels("_cart ", blank_index=0, space_index=5)


@pytest.fixture
def fake_lm() -> FakeLanguageModel:
    return FakeLanguageModel({"cat": -1.0, "car": -5.0})


@pytest.fixture
def cart_trie(cart_labels: Labels) -> VocabularyTrie:
    trie = VocabularyTrie(cart_labels.num_classes)
    trie.insert(cart_labels.encode("cat"), 0, -1.0)
    trie.insert(cart_labels.encode("car"), 1, -5.0)
    return trie
