"""Scoring strategies consulted by the beam search at every label expansion.

A scorer owns an opaque per-beam state. The decoder threads that state through
:meth:`BeamScorer.expand_state` whenever a beam emits a new label and adds the
returned delta to the beam's ranking score.
"""
from __future__ import annotations

import abc
import copy
import enum
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from beamctc.data.labels import Labels
from beamctc.lm.language_model import LanguageModel, load_language_model
from beamctc.trie.trie import TrieNode, VocabularyTrie

logger = logging.getLogger(__name__)


class DecodeType(enum.Enum):
    CTC = "ctc"
    CTC_KENLM = "ctc_kenlm"


class BeamScorer(abc.ABC):
    decode_type: DecodeType

    # Class index treated as a word boundary, -1 when the scorer does not care.
    space_index: int = -1

    @abc.abstractmethod
    def initial_state(self) -> Any:
        ...

    @abc.abstractmethod
    def expand_state(self, state: Any, next_label: int, is_word_boundary: bool) -> tuple[Any, float]:
        ...

    @abc.abstractmethod
    def state_expansion_terminates(self, state: Any) -> float:
        ...

    def snapshot(self) -> BeamScorer:
        """Scorer whose weights stay fixed for the duration of one decode call."""
        return self


class DefaultBeamScorer(BeamScorer):
    """Acoustic-only scoring: ranking reduces to the CTC path probability."""

    decode_type = DecodeType.CTC

    def initial_state(self) -> None:
        return None

    def expand_state(self, state: None, next_label: int, is_word_boundary: bool) -> tuple[None, float]:
        return None, 0.0

    def state_expansion_terminates(self, state: None) -> float:
        return 0.0


@dataclass(frozen=True)
class ScorerWeights:
    lm_weight: float = 1.0
    word_count_weight: float = 0.0
    valid_word_count_weight: float = 1.0


@dataclass(frozen=True)
class KenLMBeamState:
    # None once the in-progress word has left the vocabulary.
    trie_node: TrieNode | None
    word: tuple[int, ...]
    lm_state: Any
    num_words: int = 0
    num_valid_words: int = 0


class KenLMBeamScorer(BeamScorer):
    """Adds language-model and vocabulary-membership signal at word boundaries.

    A beam whose in-progress word falls out of the trie keeps decoding; the word
    is only excluded from the valid-word bonus.
    """

    decode_type = DecodeType.CTC_KENLM

    def __init__(
        self,
        labels: Labels,
        language_model: LanguageModel,
        trie: VocabularyTrie,
        lm_weight: float = 1.0,
        word_count_weight: float = 0.0,
        valid_word_count_weight: float = 1.0,
    ):
        if trie.num_classes != labels.num_classes:
            raise ValueError(
                f"Trie was built for {trie.num_classes} classes but the alphabet has {labels.num_classes}"
            )
        if labels.space_index < 0:
            raise ValueError("LM scoring needs an alphabet with a word separator (space_index)")
        self.labels = labels
        self.language_model = language_model
        self.trie = trie
        self.space_index = labels.space_index
        self._weights = ScorerWeights(
            lm_weight=float(lm_weight),
            word_count_weight=float(word_count_weight),
            valid_word_count_weight=float(valid_word_count_weight),
        )

    @classmethod
    def from_paths(
        cls,
        labels: Labels,
        lm_path: str | Path,
        trie_path: str | Path,
        **weights: float,
    ) -> KenLMBeamScorer:
        language_model = load_language_model(lm_path)
        trie = VocabularyTrie.load(trie_path, num_classes=labels.num_classes)
        logger.info("Loaded vocabulary trie with %d words from %s", trie.word_count, trie_path)
        return cls(labels, language_model, trie, **weights)

    @property
    def weights(self) -> ScorerWeights:
        return self._weights

    def set_lm_weight(self, weight: float) -> None:
        self._weights = replace(self._weights, lm_weight=float(weight))

    def set_word_count_weight(self, weight: float) -> None:
        self._weights = replace(self._weights, word_count_weight=float(weight))

    def set_valid_word_count_weight(self, weight: float) -> None:
        self._weights = replace(self._weights, valid_word_count_weight=float(weight))

    def snapshot(self) -> KenLMBeamScorer:
        # Shares the read-only trie and LM; only the weights reference is rebound.
        return copy.copy(self)

    def initial_state(self) -> KenLMBeamState:
        return KenLMBeamState(
            trie_node=self.trie.root,
            word=(),
            lm_state=self.language_model.begin_state(),
        )

    def expand_state(
        self, state: KenLMBeamState, next_label: int, is_word_boundary: bool
    ) -> tuple[KenLMBeamState, float]:
        if not is_word_boundary:
            return (
                replace(
                    state,
                    trie_node=VocabularyTrie.lookup_child(state.trie_node, next_label),
                    word=state.word + (next_label,),
                ),
                0.0,
            )
        return self._finish_word(state)

    def state_expansion_terminates(self, state: KenLMBeamState) -> float:
        state, delta = self._finish_word(state)
        return delta + self._weights.lm_weight * self.language_model.score_end(state.lm_state)

    def _finish_word(self, state: KenLMBeamState) -> tuple[KenLMBeamState, float]:
        if not state.word:
            # Leading or repeated separator: nothing to score.
            return state, 0.0

        w = self._weights
        word = self.labels.decode(state.word)
        lm_score, lm_state = self.language_model.score_word(state.lm_state, word)
        valid = state.trie_node is not None and state.trie_node.is_terminal

        delta = w.lm_weight * lm_score + w.word_count_weight
        if valid:
            delta += w.valid_word_count_weight

        new_state = KenLMBeamState(
            trie_node=self.trie.root,
            word=(),
            lm_state=lm_state,
            num_words=state.num_words + 1,
            num_valid_words=state.num_valid_words + (1 if valid else 0),
        )
        return new_state, delta


def build_scorer(labels: Labels, scorer_cfg: dict[str, Any], resolve=Path) -> BeamScorer:
    """Build a scorer from the ``scorer`` section of a decoding config."""
    kind = scorer_cfg.get("kind", "default")
    if kind == "default":
        return DefaultBeamScorer()
    if kind == "kenlm":
        return KenLMBeamScorer.from_paths(
            labels,
            lm_path=resolve(scorer_cfg["lm_path"]),
            trie_path=resolve(scorer_cfg["trie_path"]),
            lm_weight=float(scorer_cfg.get("lm_weight", 1.0)),
            word_count_weight=float(scorer_cfg.get("word_count_weight", 0.0)),
            valid_word_count_weight=float(scorer_cfg.get("valid_word_count_weight", 1.0)),
        )
    raise ValueError(f"Unknown scorer kind: {kind}")
