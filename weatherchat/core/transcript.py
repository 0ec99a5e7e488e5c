"""Append-only accumulation of streamed assistant text."""

_SENTENCE_BOUNDARIES = ".!?\n"


class TranscriptBuffer:
    """Accumulates text deltas. Readers only ever get immutable string snapshots."""

    def __init__(self) -> None:
        self._text = ""

    def append(self, delta: str) -> None:
        self._text += delta

    @property
    def text(self) -> str:
        return self._text

    def settled(self) -> str:
        """Text up to and including the last sentence boundary.

        Whatever follows the last boundary may still be growing (a place name
        streamed as "Aus" + "tin"), so classification mid-stream only looks at
        the settled prefix.
        """
        cut = max(self._text.rfind(ch) for ch in _SENTENCE_BOUNDARIES)
        return self._text[: cut + 1] if cut >= 0 else ""

    def __len__(self) -> int:
        return len(self._text)
