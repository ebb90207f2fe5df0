from __future__ import annotations

import logging
from pathlib import Path

import torch

from beamctc.config import DecodeConfig, load_config
from beamctc.data.labels import Labels, labels_from_mapping, load_labels
from beamctc.decoding.batch import ctc_beam_decode
from beamctc.decoding.beam_search import CTCBeamSearchDecoder
from beamctc.decoding.scorer import BeamScorer, DefaultBeamScorer, build_scorer
from beamctc.errors import InvalidBeamWidthError
from beamctc.lm.language_model import kenlm_enabled

__all__ = ["BeamCTCDecoder", "kenlm_enabled", "load_decoder"]

logger = logging.getLogger(__name__)


class BeamCTCDecoder:
    """Batch-level entry point owning a label table, a scorer and a beam search.

    Example::

        labels = Labels("_'abcdefghijklmnopqrstuvwxyz ", blank_index=0)
        decoder = BeamCTCDecoder(labels, beam_width=20, top_paths=1)
        output, scores, out_lens = decoder.decode(probs)  # probs: (T, B, C)
        texts = decoder.convert_to_strings(output, out_lens)
    """

    def __init__(
        self,
        labels: Labels,
        top_paths: int = 1,
        beam_width: int = 20,
        merge_repeated: bool = True,
        scorer: BeamScorer | None = None,
        num_workers: int = 1,
        log_probs_input: bool = False,
    ):
        self.labels = labels
        self.top_paths = top_paths
        self.num_workers = num_workers
        self.log_probs_input = log_probs_input
        self.scorer = scorer if scorer is not None else DefaultBeamScorer()
        self.search = CTCBeamSearchDecoder(
            num_classes=labels.num_classes,
            beam_width=beam_width,
            scorer=self.scorer,
            blank_index=labels.blank_index,
            merge_repeated=merge_repeated,
            space_index=labels.space_index,
        )
        if beam_width < top_paths:
            raise InvalidBeamWidthError(f"beam_width ({beam_width}) must be >= top_paths ({top_paths})")

    @classmethod
    def from_config(cls, cfg: DecodeConfig) -> BeamCTCDecoder:
        lcfg = cfg.require("labels")
        if isinstance(lcfg, str):
            labels = load_labels(cfg.resolve_path(lcfg))
        else:
            labels = labels_from_mapping(lcfg)
        dcfg = cfg.decoder
        scorer = build_scorer(labels, cfg.scorer, resolve=cfg.resolve_path)
        logger.info(
            "Built %s decoder: beam_width=%s top_paths=%s classes=%d",
            scorer.decode_type.value,
            dcfg["beam_width"],
            dcfg["top_paths"],
            labels.num_classes,
        )
        return cls(
            labels,
            top_paths=int(dcfg["top_paths"]),
            beam_width=int(dcfg["beam_width"]),
            merge_repeated=bool(dcfg.get("merge_repeated", True)),
            scorer=scorer,
            num_workers=int(dcfg.get("num_workers", 1)),
            log_probs_input=bool(dcfg.get("log_probs_input", False)),
        )

    @property
    def beam_width(self) -> int:
        return self.search.beam_width

    def decode(
        self, probs: torch.Tensor, seq_len: torch.Tensor | None = None
    ) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """Decode a (T, B, C) probability tensor.

        Returns:
          output: (top_paths, B, T) int32 label indices
          scores: (top_paths, B) float32 path scores
          out_lens: (top_paths, B) int32 path lengths
        """

        if probs.dim() != 3:
            raise ValueError(f"Expected probs of shape (T, B, C); got {tuple(probs.shape)}")
        max_time, batch_size, _ = probs.shape
        if seq_len is None:
            seq_len = torch.full((batch_size,), max_time, dtype=torch.int32)

        output = torch.zeros((self.top_paths, batch_size, max_time), dtype=torch.int32)
        scores = torch.zeros((self.top_paths, batch_size), dtype=torch.float32)
        out_lens = torch.zeros((self.top_paths, batch_size), dtype=torch.int32)

        ctc_beam_decode(
            self.search,
            probs,
            seq_len,
            output,
            scores,
            out_lens,
            num_workers=self.num_workers,
            log_probs_input=self.log_probs_input,
        )
        return output, scores, out_lens

    def convert_to_strings(self, output: torch.Tensor, out_lens: torch.Tensor) -> list[list[str]]:
        """Map decoder output to text, indexed ``[path][batch]``."""
        strings: list[list[str]] = []
        for p in range(output.shape[0]):
            row = []
            for b in range(output.shape[1]):
                n = int(out_lens[p, b])
                row.append(self.labels.decode(output[p, b, :n].tolist()))
            strings.append(row)
        return strings


def load_decoder(config_path: str | Path) -> BeamCTCDecoder:
    return BeamCTCDecoder.from_config(load_config(config_path))
