from __future__ import annotations

from typing import Sequence


class BeamCTCError(RuntimeError):
    pass


class ConfigError(BeamCTCError):
    pass


class UnknownSymbolError(BeamCTCError, KeyError):
    def __init__(self, symbol: str):
        super().__init__(f"Symbol {symbol!r} is not part of the alphabet")
        self.symbol = symbol

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0])


class InvalidBeamWidthError(BeamCTCError, ValueError):
    pass


class SequenceLengthExceededError(BeamCTCError, ValueError):
    pass


class DuplicateWordError(BeamCTCError):
    pass


class TrieFormatError(BeamCTCError):
    pass


class LanguageModelUnavailableError(BeamCTCError):
    pass


class DecodeFailedError(BeamCTCError):
    """Raised when one or more sequences of a batch could not be decoded."""

    def __init__(self, message: str, failed_indices: Sequence[int] = ()):
        super().__init__(message)
        self.failed_indices = list(failed_indices)
