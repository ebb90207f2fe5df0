from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import torch

from beamctc.decoding.beam_search import CTCBeamSearchDecoder, DecodedPath
from beamctc.errors import BeamCTCError, DecodeFailedError, InvalidBeamWidthError

logger = logging.getLogger(__name__)


def _check_buffers(
    probs: torch.Tensor,
    seq_lens: torch.Tensor,
    output: torch.Tensor,
    scores: torch.Tensor,
    out_lens: torch.Tensor,
    num_classes: int,
) -> tuple[int, int]:
    if probs.dim() != 3:
        raise ValueError(f"Expected probs of shape (T, B, C); got {tuple(probs.shape)}")
    _, batch_size, classes = probs.shape
    if classes != num_classes:
        raise ValueError(f"Expected {num_classes} classes; got {classes}")
    if seq_lens.dim() != 1 or seq_lens.numel() != batch_size:
        raise ValueError(f"seq_lens must have shape ({batch_size},); got {tuple(seq_lens.shape)}")
    if output.dim() != 3 or output.shape[1] != batch_size:
        raise ValueError(f"output must have shape (top_paths, {batch_size}, L); got {tuple(output.shape)}")
    top_paths = output.shape[0]
    for name, buf in (("scores", scores), ("out_lens", out_lens)):
        if tuple(buf.shape) != (top_paths, batch_size):
            raise ValueError(f"{name} must have shape ({top_paths}, {batch_size}); got {tuple(buf.shape)}")
    return batch_size, top_paths


def ctc_beam_decode(
    decoder: CTCBeamSearchDecoder,
    probs: torch.Tensor,
    seq_lens: torch.Tensor,
    output: torch.Tensor,
    scores: torch.Tensor,
    out_lens: torch.Tensor,
    *,
    num_workers: int = 1,
    log_probs_input: bool = False,
) -> list[list[DecodedPath]]:
    """Decode every sequence of a batch into caller-owned buffers.

    Args:
      probs: (T, B, C) class probabilities; any strides.
      seq_lens: (B,) valid length of every sequence.
      output: (top_paths, B, L) integer buffer receiving label indices.
      scores: (top_paths, B) float buffer receiving path scores.
      out_lens: (top_paths, B) integer buffer receiving path lengths.

    Paths that do not exist (fewer surviving beams than ``top_paths``) get
    length 0 and score ``-inf``. Nothing is written unless every sequence
    decodes successfully.
    """

    batch_size, top_paths = _check_buffers(probs, seq_lens, output, scores, out_lens, decoder.num_classes)
    if decoder.beam_width < top_paths:
        raise InvalidBeamWidthError(f"beam_width ({decoder.beam_width}) must be >= top_paths ({top_paths})")

    # Weights are fixed for the whole call.
    scorer = decoder.scorer.snapshot()
    probs_cpu = probs.detach().cpu()
    lens = [int(x) for x in seq_lens.detach().cpu().tolist()]

    def decode_one(b: int) -> list[DecodedPath]:
        seq = probs_cpu[:, b, :].to(torch.float64).numpy()
        return decoder.decode(seq, top_paths, seq_len=lens[b], log_probs_input=log_probs_input, scorer=scorer)

    results: list[list[DecodedPath] | None] = [None] * batch_size
    errors: dict[int, BeamCTCError] = {}

    def run(b: int) -> None:
        try:
            results[b] = decode_one(b)
        except BeamCTCError as e:
            errors[b] = e

    if num_workers > 1 and batch_size > 1:
        with ThreadPoolExecutor(max_workers=num_workers) as pool:
            list(pool.map(run, range(batch_size)))
    else:
        for b in range(batch_size):
            run(b)

    if errors:
        failed = sorted(errors)
        first = errors[failed[0]]
        logger.error("Decoding failed for %d/%d sequences: %s", len(failed), batch_size, failed)
        raise DecodeFailedError(f"Decoding failed for sequences {failed}: {first}", failed_indices=failed) from first

    max_len = output.shape[2]
    for b, paths in enumerate(results):
        for p, path in enumerate(paths):
            if len(path) > max_len:
                raise ValueError(f"Decoded path of length {len(path)} does not fit output buffer of length {max_len}")

    for b, paths in enumerate(results):
        for p in range(top_paths):
            if p < len(paths):
                path = paths[p]
                n = len(path)
                if n:
                    output[p, b, :n] = torch.tensor(path.labels, dtype=output.dtype)
                out_lens[p, b] = n
                scores[p, b] = path.score
            else:
                out_lens[p, b] = 0
                scores[p, b] = float("-inf")

    return results
