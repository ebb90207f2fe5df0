from __future__ import annotations

import abc
import importlib.util
import logging
import math
from pathlib import Path
from typing import Any

from beamctc.errors import LanguageModelUnavailableError

logger = logging.getLogger(__name__)

# KenLM reports log10 probabilities; the decoder works in natural log.
LOG10_TO_LN = math.log(10.0)


def kenlm_enabled() -> bool:
    """Whether the KenLM-backed scorer can be used in this environment."""
    return importlib.util.find_spec("kenlm") is not None


class LanguageModel(abc.ABC):
    """Word-level n-gram language model as seen by the scorer.

    States are opaque to callers and must not be mutated after being returned.
    All scores are natural-log probabilities.
    """

    @abc.abstractmethod
    def begin_state(self) -> Any:
        ...

    @abc.abstractmethod
    def score_word(self, state: Any, word: str) -> tuple[float, Any]:
        """Return ``(log P(word | state), next_state)``."""

    @abc.abstractmethod
    def score_end(self, state: Any) -> float:
        """Return ``log P(</s> | state)``."""

    @abc.abstractmethod
    def unigram_score(self, word: str) -> float:
        ...

    @abc.abstractmethod
    def __contains__(self, word: str) -> bool:
        ...

    def vocab_index(self, word: str) -> int | None:
        """LM vocabulary index of ``word`` when the backend exposes one."""
        return None


class KenLMLanguageModel(LanguageModel):
    def __init__(self, model_path: str | Path):
        if not kenlm_enabled():
            raise LanguageModelUnavailableError(
                "KenLM scoring requested but the 'kenlm' package is not installed"
            )
        p = Path(model_path)
        if not p.exists():
            raise FileNotFoundError(str(p))

        import kenlm

        self._kenlm = kenlm
        self.path = p
        self.model = kenlm.Model(str(p))
        logger.info("Loaded %d-gram KenLM model from %s", self.model.order, p)

    @property
    def order(self) -> int:
        return int(self.model.order)

    def begin_state(self) -> Any:
        state = self._kenlm.State()
        self.model.BeginSentenceWrite(state)
        return state

    def score_word(self, state: Any, word: str) -> tuple[float, Any]:
        out = self._kenlm.State()
        log10_prob = self.model.BaseScore(state, word, out)
        return log10_prob * LOG10_TO_LN, out

    def score_end(self, state: Any) -> float:
        out = self._kenlm.State()
        return self.model.BaseScore(state, "</s>", out) * LOG10_TO_LN

    def unigram_score(self, word: str) -> float:
        state = self._kenlm.State()
        self.model.NullContextWrite(state)
        out = self._kenlm.State()
        return self.model.BaseScore(state, word, out) * LOG10_TO_LN

    def __contains__(self, word: str) -> bool:
        return word in self.model


def load_language_model(model_path: str | Path) -> LanguageModel:
    return KenLMLanguageModel(model_path)
