"""Prefix trie over label-index sequences, used to constrain LM scoring to a vocabulary.

Serialized layout (little endian)::

    header   b"CTCTRIE\\0"  uint16 version  uint32 num_classes
    node     int32 label  uint8 is_terminal  int32 vocab_index  float64 unigram_score  uint32 child_count
             followed by child_count nodes, in ascending label order (pre-order)

The root node is stored with label -1. Non-terminal nodes store vocab_index -1
and unigram_score 0.0.
"""
from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import BinaryIO, Iterator, Sequence

from beamctc.errors import DuplicateWordError, TrieFormatError
from beamctc.utils.io import atomic_binary_writer

MAGIC = b"CTCTRIE\0"
FORMAT_VERSION = 1

_HEADER = struct.Struct("<8sHI")
_NODE = struct.Struct("<iBidI")

ROOT_LABEL = -1


class TrieNode:
    __slots__ = ("label", "children", "is_terminal", "vocab_index", "unigram_score")

    def __init__(self, label: int = ROOT_LABEL):
        self.label = label
        self.children: dict[int, TrieNode] = {}
        self.is_terminal = False
        self.vocab_index = -1
        self.unigram_score = 0.0

    def __repr__(self) -> str:
        if self.is_terminal:
            return (
                f"TrieNode(label={self.label}, children={len(self.children)}, "
                f"vocab_index={self.vocab_index}, unigram_score={self.unigram_score})"
            )
        return f"TrieNode(label={self.label}, children={len(self.children)})"


class VocabularyTrie:
    def __init__(self, num_classes: int, root: TrieNode | None = None):
        if num_classes < 1:
            raise ValueError("num_classes must be positive")
        self.num_classes = num_classes
        self.root = root if root is not None else TrieNode()
        self._word_count = sum(1 for _ in _iter_terminals(self.root, ()))

    def __len__(self) -> int:
        return self._word_count

    @property
    def word_count(self) -> int:
        return self._word_count

    def __contains__(self, labels: Sequence[int]) -> bool:
        node = self.find(labels)
        return node is not None and node.is_terminal

    def __iter__(self) -> Iterator[tuple[tuple[int, ...], int, float]]:
        for labels, node in _iter_terminals(self.root, ()):
            yield labels, node.vocab_index, node.unigram_score

    def insert(self, labels: Sequence[int], vocab_index: int, unigram_score: float) -> TrieNode:
        """Insert a word given as label indices. Raises DuplicateWordError on re-insertion."""
        if len(labels) == 0:
            raise ValueError("Cannot insert an empty word")
        node = self.root
        for label in labels:
            label = int(label)
            if not 0 <= label < self.num_classes:
                raise ValueError(f"Label {label} outside [0, {self.num_classes})")
            child = node.children.get(label)
            if child is None:
                child = TrieNode(label)
                node.children[label] = child
            node = child
        if node.is_terminal:
            raise DuplicateWordError(f"Word {tuple(labels)} already in trie (vocab_index={node.vocab_index})")
        node.is_terminal = True
        node.vocab_index = int(vocab_index)
        node.unigram_score = float(unigram_score)
        self._word_count += 1
        return node

    @staticmethod
    def lookup_child(node: TrieNode | None, label: int) -> TrieNode | None:
        if node is None:
            return None
        return node.children.get(label)

    def find(self, labels: Sequence[int]) -> TrieNode | None:
        node: TrieNode | None = self.root
        for label in labels:
            node = self.lookup_child(node, int(label))
            if node is None:
                return None
        return node

    # ------------------------------------------------------------------ #
    #  Serialization                                                      #
    # ------------------------------------------------------------------ #
    def serialize(self, stream: BinaryIO) -> None:
        stream.write(_HEADER.pack(MAGIC, FORMAT_VERSION, self.num_classes))
        # Explicit stack; children pushed in reverse so they pop in ascending order.
        stack = [self.root]
        while stack:
            node = stack.pop()
            stream.write(
                _NODE.pack(
                    node.label,
                    1 if node.is_terminal else 0,
                    node.vocab_index if node.is_terminal else -1,
                    node.unigram_score if node.is_terminal else 0.0,
                    len(node.children),
                )
            )
            for label in sorted(node.children, reverse=True):
                stack.append(node.children[label])

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.serialize(buf)
        return buf.getvalue()

    @classmethod
    def deserialize(cls, stream: BinaryIO, num_classes: int | None = None) -> VocabularyTrie:
        header = _read_exact(stream, _HEADER.size, "header")
        magic, version, stored_classes = _HEADER.unpack(header)
        if magic != MAGIC:
            raise TrieFormatError("Not a trie file (bad magic)")
        if version != FORMAT_VERSION:
            raise TrieFormatError(f"Unsupported trie format version {version}")
        if num_classes is not None and stored_classes != num_classes:
            raise TrieFormatError(
                f"Trie was built for {stored_classes} classes but the alphabet has {num_classes}"
            )

        root, pending = _read_node(stream, stored_classes)
        if root.label != ROOT_LABEL:
            raise TrieFormatError(f"Root node must have label {ROOT_LABEL}; got {root.label}")
        # (node, children still to read)
        stack: list[list] = [[root, pending]]
        while stack:
            top = stack[-1]
            if top[1] == 0:
                stack.pop()
                continue
            top[1] -= 1
            child, child_pending = _read_node(stream, stored_classes)
            parent: TrieNode = top[0]
            if child.label in parent.children:
                raise TrieFormatError(f"Duplicate child label {child.label}")
            parent.children[child.label] = child
            stack.append([child, child_pending])

        if stream.read(1):
            raise TrieFormatError("Trailing bytes after trie data")
        return cls(int(stored_classes), root=root)

    @classmethod
    def from_bytes(cls, data: bytes, num_classes: int | None = None) -> VocabularyTrie:
        return cls.deserialize(io.BytesIO(data), num_classes=num_classes)

    def save(self, path: str | Path) -> None:
        with atomic_binary_writer(path) as f:
            self.serialize(f)

    @classmethod
    def load(cls, path: str | Path, num_classes: int | None = None) -> VocabularyTrie:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(str(p))
        with p.open("rb") as f:
            return cls.deserialize(f, num_classes=num_classes)


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise TrieFormatError(f"Truncated trie data while reading {what}")
    return data


def _read_node(stream: BinaryIO, num_classes: int) -> tuple[TrieNode, int]:
    label, terminal, vocab_index, score, child_count = _NODE.unpack(_read_exact(stream, _NODE.size, "node"))
    if label != ROOT_LABEL and not 0 <= label < num_classes:
        raise TrieFormatError(f"Node label {label} outside [0, {num_classes})")
    if terminal not in (0, 1):
        raise TrieFormatError(f"Invalid terminal flag {terminal}")
    node = TrieNode(label)
    if terminal:
        node.is_terminal = True
        node.vocab_index = vocab_index
        node.unigram_score = score
    return node, child_count


def _iter_terminals(node: TrieNode, prefix: tuple[int, ...]) -> Iterator[tuple[tuple[int, ...], TrieNode]]:
    if node.is_terminal:
        yield prefix, node
    for label in sorted(node.children):
        yield from _iter_terminals(node.children[label], prefix + (label,))
