"""Label table mapping alphabet characters to CTC class indices."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

import yaml

from beamctc.errors import ConfigError, UnknownSymbolError


class Labels:
    """Immutable bidirectional alphabet.

    ``alphabet[i]`` is the character of class ``i``. The blank class keeps a
    placeholder character in the alphabet so that indices stay aligned with the
    classifier output; it is never produced by :meth:`decode`.
    """

    def __init__(self, alphabet: str | Iterable[str], blank_index: int = 0, space_index: int | None = None):
        chars = tuple(alphabet)
        if not chars:
            raise ValueError("Alphabet must not be empty")
        if len(set(chars)) != len(chars):
            raise ValueError("Alphabet characters must be unique")
        if not 0 <= blank_index < len(chars):
            raise ValueError(f"blank_index {blank_index} outside [0, {len(chars)})")
        if space_index is None:
            space_index = chars.index(" ") if " " in chars else -1
        if space_index == blank_index:
            raise ValueError("space_index and blank_index must differ")
        if space_index < -1 or space_index >= len(chars):
            raise ValueError(f"space_index {space_index} outside [0, {len(chars)})")

        self._chars = chars
        self._char2id = {c: i for i, c in enumerate(chars)}
        self._blank_index = blank_index
        self._space_index = space_index

    def __len__(self) -> int:
        return len(self._chars)

    def __repr__(self) -> str:
        return (
            f"Labels(alphabet={''.join(self._chars)!r}, blank_index={self._blank_index}, "
            f"space_index={self._space_index})"
        )

    @property
    def num_classes(self) -> int:
        return len(self._chars)

    @property
    def blank_index(self) -> int:
        return self._blank_index

    @property
    def space_index(self) -> int:
        """Index of the word separator, or -1 when the alphabet has none."""
        return self._space_index

    @property
    def alphabet(self) -> str:
        return "".join(self._chars)

    def label_of(self, char: str) -> int:
        try:
            return self._char2id[char]
        except KeyError:
            raise UnknownSymbolError(char) from None

    def char_of(self, index: int) -> str:
        if not 0 <= index < len(self._chars):
            raise IndexError(f"Class index {index} outside [0, {len(self._chars)})")
        return self._chars[index]

    def is_blank(self, index: int) -> bool:
        return index == self._blank_index

    def is_space(self, index: int) -> bool:
        return index == self._space_index

    def encode(self, text: str) -> list[int]:
        """Encode text as label indices; raises on the first unknown character."""
        return [self.label_of(ch) for ch in text]

    def decode(self, ids: Iterable[int]) -> str:
        """Decode label indices back to text, dropping blanks."""
        return "".join(self.char_of(int(i)) for i in ids if int(i) != self._blank_index)


def labels_from_mapping(data: dict[str, Any]) -> Labels:
    if "alphabet" not in data:
        raise ConfigError("Alphabet config must define 'alphabet'")
    alphabet = data["alphabet"]
    if not isinstance(alphabet, (str, list)):
        raise ConfigError(f"'alphabet' must be a string or a list; got {type(alphabet)}")
    return Labels(
        alphabet,
        blank_index=int(data.get("blank_index", 0)),
        space_index=data.get("space_index"),
    )


def load_labels(path: str | Path, blank_index: int = 0, space_index: int | None = None) -> Labels:
    """Load an alphabet config.

    Accepts either a JSON list of characters (``labels.json`` style, with the
    blank and space indices passed in) or a YAML/JSON mapping with keys
    ``alphabet``, ``blank_index`` and ``space_index``.
    """

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(str(p))
    text = p.read_text(encoding="utf-8")
    if p.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if isinstance(data, list):
        return Labels([str(c) for c in data], blank_index=blank_index, space_index=space_index)
    if isinstance(data, dict):
        return labels_from_mapping(data)
    raise ConfigError(f"Alphabet config must be a list or a mapping; got {type(data)}")
