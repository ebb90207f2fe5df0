from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterator

from tqdm import tqdm

from beamctc.data.labels import Labels
from beamctc.errors import DuplicateWordError, UnknownSymbolError
from beamctc.lm.language_model import LanguageModel
from beamctc.trie.trie import VocabularyTrie

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrieBuildReport:
    output_path: str
    words_read: int
    words_inserted: int
    skipped_words: int
    duplicate_words: int
    unknown_to_lm: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def iter_vocabulary(vocab_path: str | Path) -> Iterator[str]:
    """Yield whitespace-delimited words of a vocabulary file."""
    p = Path(vocab_path)
    if not p.is_file():
        raise FileNotFoundError(f"Unable to open vocabulary: {p}")
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            yield from line.split()


def build_trie(
    labels: Labels,
    language_model: LanguageModel,
    words: Iterator[str],
    *,
    allow_duplicates: bool = False,
    progress: bool = False,
) -> tuple[VocabularyTrie, dict[str, int]]:
    trie = VocabularyTrie(labels.num_classes)
    counts = {"words_read": 0, "skipped_words": 0, "duplicate_words": 0, "unknown_to_lm": 0}
    next_index = 0

    for word in tqdm(words, desc="trie", unit="word", disable=not progress):
        counts["words_read"] += 1
        try:
            word_labels = labels.encode(word)
        except UnknownSymbolError as e:
            counts["skipped_words"] += 1
            logger.warning("Skipping %r: %s", word, e)
            continue
        if labels.blank_index in word_labels:
            counts["skipped_words"] += 1
            logger.warning("Skipping %r: contains the blank placeholder", word)
            continue
        if labels.space_index in word_labels:
            # Cannot happen for whitespace-split words unless the separator is not a space.
            counts["skipped_words"] += 1
            logger.warning("Skipping %r: contains the word separator", word)
            continue

        if word not in language_model:
            counts["unknown_to_lm"] += 1

        vocab_index = language_model.vocab_index(word)
        if vocab_index is None:
            vocab_index = next_index
        try:
            trie.insert(word_labels, vocab_index, language_model.unigram_score(word))
        except DuplicateWordError:
            if not allow_duplicates:
                raise
            counts["duplicate_words"] += 1
            continue
        next_index += 1

    return trie, counts


def generate_lm_trie(
    labels: Labels,
    language_model: LanguageModel,
    vocab_path: str | Path,
    output_path: str | Path,
    *,
    allow_duplicates: bool = False,
    progress: bool = False,
) -> TrieBuildReport:
    """Build a vocabulary trie scored by ``language_model`` and write it to ``output_path``.

    The file is written atomically: on any failure ``output_path`` is left as it was.
    """

    trie, counts = build_trie(
        labels,
        language_model,
        iter_vocabulary(vocab_path),
        allow_duplicates=allow_duplicates,
        progress=progress,
    )
    trie.save(output_path)

    report = TrieBuildReport(output_path=str(output_path), words_inserted=trie.word_count, **counts)
    logger.info(
        "Wrote trie with %d words to %s (%d skipped, %d duplicates, %d unknown to LM)",
        report.words_inserted,
        output_path,
        report.skipped_words,
        report.duplicate_words,
        report.unknown_to_lm,
    )
    return report
