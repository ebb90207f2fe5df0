from __future__ import annotations

import argparse
import json
import logging
import sys

from beamctc.data.labels import load_labels
from beamctc.errors import BeamCTCError
from beamctc.lm.language_model import kenlm_enabled, load_language_model
from beamctc.trie.build import generate_lm_trie
from beamctc.utils.logging_setup import setup_logging

logger = logging.getLogger("beamctc.scripts.build_trie")


def main() -> int:
    ap = argparse.ArgumentParser(description="Build a vocabulary trie scored by a KenLM language model.")
    ap.add_argument("--labels", required=True, help="Alphabet config (labels.json list or YAML mapping)")
    ap.add_argument("--blank-index", type=int, default=0, help="Blank index for list-style alphabets")
    ap.add_argument("--space-index", type=int, default=None, help="Separator index for list-style alphabets")
    ap.add_argument("--lm", required=True, help="KenLM model (ARPA or binary)")
    ap.add_argument("--vocab", required=True, help="Whitespace-delimited vocabulary file")
    ap.add_argument("--out", required=True, help="Output trie path")
    ap.add_argument("--allow-duplicates", action="store_true")
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args()

    setup_logging(args.log_level)

    if not kenlm_enabled():
        logger.error("The 'kenlm' package is not installed; cannot build an LM trie")
        return 2

    try:
        labels = load_labels(args.labels, blank_index=args.blank_index, space_index=args.space_index)
        lm = load_language_model(args.lm)
        report = generate_lm_trie(
            labels,
            lm,
            args.vocab,
            args.out,
            allow_duplicates=args.allow_duplicates,
            progress=True,
        )
    except (BeamCTCError, OSError) as e:
        logger.error("Trie build failed: %s", e)
        return 1

    print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
