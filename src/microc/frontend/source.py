"""
Source Buffer
=============

Holds one µC translation unit. Input bytes are decoded one byte per
character (latin-1), so a character index into `text` is also a byte
offset into the original file. Only the ASCII subset means anything to
the lexer; other bytes are reported as stray.
"""

from pathlib import Path
from typing import Optional


class SourceBuffer:
    """
    One translation unit with line tracking for diagnostics.

    Attributes:
        text: Decoded source text (one character per input byte)
        filename: Name used in diagnostics
    """

    def __init__(self, data: bytes | str, filename: str = "<input>"):
        if isinstance(data, bytes):
            data = data.decode("latin-1")
        self.text = data
        self.filename = filename
        self._line_starts = [0]
        for index, char in enumerate(data):
            if char == "\n":
                self._line_starts.append(index + 1)

    @classmethod
    def from_file(cls, path: str | Path) -> "SourceBuffer":
        """Read a source file as raw bytes."""
        path = Path(path)
        return cls(path.read_bytes(), str(path))

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_text(self, line: int) -> Optional[str]:
        """
        Return the text of a 1-indexed line without its line ending.

        Returns None for lines outside the buffer.
        """
        if line < 1 or line > len(self._line_starts):
            return None
        start = self._line_starts[line - 1]
        end = self.text.find("\n", start)
        if end == -1:
            end = len(self.text)
        return self.text[start:end].rstrip("\r")

    @property
    def lines(self) -> list[str]:
        return [self.line_text(n) for n in range(1, self.line_count + 1)]
