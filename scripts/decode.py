from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path

import numpy as np
import torch
from tqdm import tqdm

from beamctc.config import load_config
from beamctc.decoding.decoder import BeamCTCDecoder
from beamctc.decoding.greedy import greedy_decode
from beamctc.eval.metrics import compute_error_rates
from beamctc.utils.io import write_json, write_jsonl
from beamctc.utils.logging_setup import setup_logging

logger = logging.getLogger("beamctc.scripts.decode")


def _load_tensor(path: str | Path) -> torch.Tensor:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(str(p))
    if p.suffix == ".npy":
        return torch.from_numpy(np.load(p))
    obj = torch.load(p, map_location="cpu")
    if not isinstance(obj, torch.Tensor):
        raise ValueError(f"Expected a tensor in {p}; got {type(obj)}")
    return obj


def _read_refs(path: str | Path) -> list[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f]


def main() -> None:
    ap = argparse.ArgumentParser(description="CTC beam-search decode a (T, B, C) probability tensor.")
    ap.add_argument("--config", required=True)
    ap.add_argument("--probs", required=True, help=".pt or .npy file holding a (T, B, C) tensor")
    ap.add_argument("--lengths", default=None, help=".pt or .npy file holding (B,) sequence lengths")
    ap.add_argument("--out", default="artifacts/decoded.jsonl")
    ap.add_argument("--refs", default=None, help="Reference transcripts, one per batch element")
    ap.add_argument("--greedy", action="store_true", help="Also report best-path (greedy) decoding")
    args = ap.parse_args()

    cfg = load_config(args.config)
    setup_logging(str(cfg.get("logging_level", "INFO")))
    logger.debug("Decoding config:\n%s", cfg.dump())

    decoder = BeamCTCDecoder.from_config(cfg)
    probs = _load_tensor(args.probs).float()
    seq_len = _load_tensor(args.lengths).to(torch.int32) if args.lengths else None

    output, scores, out_lens = decoder.decode(probs, seq_len)
    texts = decoder.convert_to_strings(output, out_lens)

    rows = []
    for p, per_path in enumerate(texts):
        for b, text in enumerate(per_path):
            rows.append(
                {
                    "index": b,
                    "path": p,
                    "text": text,
                    "score": float(scores[p, b]),
                    "length": int(out_lens[p, b]),
                }
            )

    greedy_texts: list[str] = []
    if args.greedy:
        lens = seq_len.tolist() if seq_len is not None else [probs.shape[0]] * probs.shape[1]
        for b in tqdm(range(probs.shape[1]), desc="greedy", unit="seq"):
            ids = greedy_decode(
                probs[:, b, :],
                blank_index=decoder.labels.blank_index,
                merge_repeated=decoder.search.merge_repeated,
                seq_len=int(lens[b]),
            )
            greedy_texts.append(decoder.labels.decode(ids))
        for b, text in enumerate(greedy_texts):
            rows.append({"index": b, "path": "greedy", "text": text})

    write_jsonl(args.out, rows)
    logger.info("Wrote %d decoded rows to %s", len(rows), args.out)

    if args.refs:
        refs = _read_refs(args.refs)
        summary = {"beam": dataclasses.asdict(compute_error_rates(refs, [t.strip() for t in texts[0]]))}
        if greedy_texts:
            summary["greedy"] = dataclasses.asdict(compute_error_rates(refs, [t.strip() for t in greedy_texts]))
        write_json(Path(args.out).with_suffix(".metrics.json"), summary)
        print(json.dumps(summary, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
