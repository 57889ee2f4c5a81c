from __future__ import annotations
from dataclasses import dataclass
from typing import Callable
import re

from fxcore import MULTILINE_MARKER

# A label is a leading word terminated by ':' and followed by whitespace or the end of the line.
_label_pattern = re.compile(r"^([^\s:;/]+):(?=\s|$)")

@dataclass(frozen=True)
class SourceLine():
    unit: str
    line: int
    text: str

    def describe(self) -> str:
        return f"line {self.line + 1} of unit '{self.unit}'"

# region errors

class FXCoreSyntaxError(Exception):
    source_line: SourceLine | None
    message: str

    def __init__(self, message: str, source_line: SourceLine | None = None):
        if source_line is None:
            super().__init__(message)
        else:
            super().__init__(f"Error in {source_line.describe()}: '{source_line.text.strip()}'.\n{message}")
        self.source_line = source_line
        self.message = message

@dataclass
class Outcome():
    """Result of one fallible step: either a value or the error that prevented it."""
    value: str | None
    error: FXCoreSyntaxError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

def attempt(function: Callable[..., str], *args, **kwargs) -> Outcome:
    try:
        return Outcome(function(*args, **kwargs))
    except FXCoreSyntaxError as error:
        return Outcome(None, error)

# endregion errors

# region statements

@dataclass
class Statement():
    """
    One source line split into instruction text, label and comment.

    `text` has comments and the label removed and is trimmed. `full_text` is the line exactly as read.
    Lines inside a multi-line block comment are flagged with `ignore` by the reader and are copied through
    every later pass untouched.
    """
    full_text: str
    text: str
    source: SourceLine
    label: str = ""
    comment: str = ""
    block_comment_start: bool = False
    block_comment_end: bool = False
    ignore: bool = False

    @property
    def continued(self) -> bool:
        return self.text.endswith(MULTILINE_MARKER)

    @property
    def prefix(self) -> str:
        # Label as written in front of the instruction, including the separator.
        return f"{self.label}: " if self.label else ""

    @property
    def code(self) -> str:
        # Label and instruction text, without comments.
        return f"{self.prefix}{self.text}"

    @classmethod
    def raw(cls, line: str, source: SourceLine) -> Statement:
        # Carry a line as-is, without any comment or label processing.
        return cls(line, line, source, ignore=True)

    @classmethod
    def parse(cls, line: str, source: SourceLine | None = None) -> Statement:
        if source is None:
            source = SourceLine("", 0, line)
        line = line.rstrip("\r\n")
        text = line
        comment = ""
        block_start = False
        block_end = False

        # Block comments have the highest priority, they can start or end inside a line comment.
        i_start = text.find("/*")
        i_end = text.find("*/")
        if i_start >= 0:
            if i_end > i_start:
                # Block comment starts and ends on this line.
                comment = text[i_start:(i_end + 2)]
                text = text[:i_start] + text[(i_end + 2):]
            else:
                # Block comment continues on the following lines.
                comment = text[i_start:]
                text = text[:i_start]
                block_start = True
        elif i_end >= 0:
            # Block comment ends on this line, code may follow.
            comment = text[:(i_end + 2)]
            text = text[(i_end + 2):]
            block_end = True

        # Line comments, ';' or '//', whichever comes first.
        i_comment = min((i for i in (text.find(";"), text.find("//")) if i >= 0), default=-1)
        if i_comment >= 0:
            if not block_start and not block_end:
                comment = f"{comment} {text[i_comment:]}" if comment else text[i_comment:]
            text = text[:i_comment]

        text = text.strip()

        # Leading label.
        label = ""
        match = _label_pattern.match(text)
        if match is not None:
            label = match.group(1)
            text = text[match.end():].strip()

        return cls(line, text, source, label, comment.strip(), block_start, block_end)

# endregion statements
