from __future__ import annotations

from typing import Iterable

import numpy as np
import torch

from beamctc.data.labels import Labels


def ctc_collapse(ids: Iterable[int], blank_id: int, merge_repeated: bool = True) -> list[int]:
    out: list[int] = []
    prev = None
    for i in ids:
        i = int(i)
        if i == blank_id:
            prev = i
            continue
        if merge_repeated and prev is not None and i == prev:
            continue
        out.append(i)
        prev = i
    return out


def greedy_decode(
    probs: np.ndarray | torch.Tensor,
    *,
    blank_index: int,
    merge_repeated: bool = True,
    seq_len: int | None = None,
) -> list[int]:
    """Best-path CTC decode for a single sequence.

    Args:
      probs: (T, C) or (T, 1, C) probabilities or log probabilities; argmax is
        the same for both.
    """

    if isinstance(probs, torch.Tensor):
        probs = probs.detach().cpu().numpy()
    arr = np.asarray(probs)
    if arr.ndim == 3:
        arr = arr.squeeze(1)
    if seq_len is not None:
        arr = arr[:seq_len]
    if arr.shape[0] == 0:
        return []
    pred = arr.argmax(axis=-1).tolist()
    return ctc_collapse(pred, blank_id=blank_index, merge_repeated=merge_repeated)


def greedy_decode_text(probs: np.ndarray | torch.Tensor, labels: Labels, **kwargs) -> str:
    ids = greedy_decode(probs, blank_index=labels.blank_index, **kwargs)
    return labels.decode(ids).strip()
