"""CTC prefix beam search with a pluggable scorer.

Beams are keyed by their collapsed label sequence. Each beam carries two
forward accumulators in log space: the mass of paths ending in blank and the
mass of paths ending in its last label. Label sequences are built forward as
tuples, so no parent links need to survive pruning.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from beamctc.decoding.scorer import BeamScorer, DefaultBeamScorer
from beamctc.errors import DecodeFailedError, InvalidBeamWidthError, SequenceLengthExceededError

logger = logging.getLogger(__name__)

NEG_INF = float("-inf")


def log_sum_exp(a: float, b: float) -> float:
    if a == NEG_INF:
        return b
    if b == NEG_INF:
        return a
    if a < b:
        a, b = b, a
    return a + math.log1p(math.exp(b - a))


@dataclass(frozen=True)
class BeamEntry:
    labels: tuple[int, ...]
    previous_label: int | None
    log_prob_blank: float
    log_prob_label: float
    scorer_state: Any
    scorer_score: float

    @property
    def log_prob_total(self) -> float:
        return log_sum_exp(self.log_prob_blank, self.log_prob_label)

    @property
    def combined_score(self) -> float:
        return self.log_prob_total + self.scorer_score


@dataclass(frozen=True)
class DecodedPath:
    labels: tuple[int, ...]
    score: float

    def __len__(self) -> int:
        return len(self.labels)


class _Candidate:
    """Mutable accumulator for one beam key while a timestep is being expanded."""

    __slots__ = ("labels", "previous_label", "blank", "label", "scorer_state", "scorer_score", "state_weight")

    def __init__(self, labels: tuple[int, ...], previous_label: int | None, scorer_state: Any, scorer_score: float):
        self.labels = labels
        self.previous_label = previous_label
        self.blank = NEG_INF
        self.label = NEG_INF
        self.scorer_state = scorer_state
        self.scorer_score = scorer_score
        self.state_weight = NEG_INF

    def offer_state(self, weight: float, scorer_state: Any, scorer_score: float) -> None:
        # The most probable contributor decides the surviving scorer state.
        if weight > self.state_weight:
            self.state_weight = weight
            self.scorer_state = scorer_state
            self.scorer_score = scorer_score

    def freeze(self) -> BeamEntry:
        return BeamEntry(
            labels=self.labels,
            previous_label=self.previous_label,
            log_prob_blank=self.blank,
            log_prob_label=self.label,
            scorer_state=self.scorer_state,
            scorer_score=self.scorer_score,
        )


class CTCBeamSearchDecoder:
    def __init__(
        self,
        num_classes: int,
        beam_width: int,
        scorer: BeamScorer | None = None,
        blank_index: int = 0,
        merge_repeated: bool = True,
        space_index: int | None = None,
    ):
        if num_classes < 1:
            raise ValueError("num_classes must be positive")
        if beam_width < 1:
            raise InvalidBeamWidthError(f"beam_width must be >= 1; got {beam_width}")
        if not 0 <= blank_index < num_classes:
            raise ValueError(f"blank_index {blank_index} outside [0, {num_classes})")
        self.num_classes = num_classes
        self.beam_width = beam_width
        self.scorer = scorer if scorer is not None else DefaultBeamScorer()
        self.blank_index = blank_index
        self.merge_repeated = merge_repeated
        self.space_index = self.scorer.space_index if space_index is None else space_index

    @property
    def decode_type(self):
        return self.scorer.decode_type

    def decode(
        self,
        probs: np.ndarray | Sequence[Sequence[float]],
        top_paths: int = 1,
        seq_len: int | None = None,
        *,
        log_probs_input: bool = False,
        scorer: BeamScorer | None = None,
    ) -> list[DecodedPath]:
        """Decode one sequence.

        Args:
          probs: (T, C) per-timestep class probabilities (log probabilities when
            ``log_probs_input``).
          top_paths: number of best paths to return.
          seq_len: valid length, defaults to T.
          scorer: scorer snapshot to use instead of ``self.scorer``.

        Returns:
          Up to ``top_paths`` paths, best first. Paths with zero probability are
          never returned.
        """

        if top_paths < 1:
            raise InvalidBeamWidthError(f"top_paths must be >= 1; got {top_paths}")
        if self.beam_width < top_paths:
            raise InvalidBeamWidthError(
                f"beam_width ({self.beam_width}) must be >= top_paths ({top_paths})"
            )

        log_probs = self._prepare_input(probs, seq_len, log_probs_input)
        scorer = scorer if scorer is not None else self.scorer.snapshot()

        beam = [
            BeamEntry(
                labels=(),
                previous_label=None,
                log_prob_blank=0.0,
                log_prob_label=NEG_INF,
                scorer_state=scorer.initial_state(),
                scorer_score=0.0,
            )
        ]

        for t, row in enumerate(log_probs.tolist()):
            beam = self._step(beam, row, scorer)
            if not beam:
                raise DecodeFailedError(f"All beams reached zero probability at timestep {t}")

        finals = [(entry.combined_score + scorer.state_expansion_terminates(entry.scorer_state), entry) for entry in beam]
        finals.sort(key=lambda item: (-item[0], len(item[1].labels)))
        return [DecodedPath(labels=entry.labels, score=score) for score, entry in finals[:top_paths]]

    def _prepare_input(self, probs, seq_len: int | None, log_probs_input: bool) -> np.ndarray:
        arr = np.asarray(probs, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(f"Expected probabilities of shape (T, C); got {arr.shape}")
        if arr.shape[1] != self.num_classes:
            raise ValueError(f"Expected {self.num_classes} classes; got {arr.shape[1]}")

        max_time = arr.shape[0]
        if seq_len is None:
            seq_len = max_time
        if seq_len < 0 or seq_len > max_time:
            raise SequenceLengthExceededError(
                f"Sequence length {seq_len} outside [0, {max_time}] (time dimension of the input)"
            )
        arr = arr[:seq_len]

        if log_probs_input:
            if np.isnan(arr).any() or np.isposinf(arr).any():
                raise DecodeFailedError("Log probabilities must not be NaN or +inf")
            return arr
        if not np.isfinite(arr).all() or (arr < 0).any():
            raise DecodeFailedError("Probabilities must be finite and non-negative")
        with np.errstate(divide="ignore"):
            return np.log(arr)

    def _step(self, beam: list[BeamEntry], row: list[float], scorer: BeamScorer) -> list[BeamEntry]:
        blank = self.blank_index
        active = [c for c, lp in enumerate(row) if lp != NEG_INF]
        candidates: dict[tuple[tuple[int, ...], int | None], _Candidate] = {}

        def candidate_for(labels, previous_label, scorer_state, scorer_score) -> _Candidate:
            key = (labels, previous_label)
            cand = candidates.get(key)
            if cand is None:
                cand = _Candidate(labels, previous_label, scorer_state, scorer_score)
                candidates[key] = cand
            return cand

        def extend(entry: BeamEntry, c: int, log_prob: float) -> None:
            if log_prob == NEG_INF:
                return
            state, delta = scorer.expand_state(entry.scorer_state, c, c == self.space_index)
            score = entry.scorer_score + delta
            cand = candidate_for(entry.labels + (c,), c, state, score)
            cand.label = log_sum_exp(cand.label, log_prob)
            cand.offer_state(log_prob, state, score)

        for entry in beam:
            total = entry.log_prob_total
            for c in active:
                lp = row[c]
                if c == blank:
                    cand = candidate_for(entry.labels, entry.previous_label, entry.scorer_state, entry.scorer_score)
                    contribution = total + lp
                    cand.blank = log_sum_exp(cand.blank, contribution)
                    cand.offer_state(contribution, entry.scorer_state, entry.scorer_score)
                elif self.merge_repeated and c == entry.previous_label:
                    # Repeat without an intervening blank collapses into the same sequence.
                    contribution = entry.log_prob_label + lp
                    if contribution != NEG_INF:
                        cand = candidate_for(entry.labels, entry.previous_label, entry.scorer_state, entry.scorer_score)
                        cand.label = log_sum_exp(cand.label, contribution)
                        cand.offer_state(contribution, entry.scorer_state, entry.scorer_score)
                    # A blank in between makes it a genuine re-emission.
                    extend(entry, c, entry.log_prob_blank + lp)
                else:
                    extend(entry, c, total + lp)

        live = [cand.freeze() for cand in candidates.values() if log_sum_exp(cand.blank, cand.label) != NEG_INF]
        # Stable sort: equal scores keep insertion order after the length tie-break.
        live.sort(key=lambda e: (-e.combined_score, len(e.labels)))
        return live[: self.beam_width]
