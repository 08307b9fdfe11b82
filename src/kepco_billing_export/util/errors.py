from __future__ import annotations


class FieldParseError(ValueError):
    """
    Raised when rendered text is present but cannot be normalized.

    Absence of the source text is not a parse error; callers decide the default for that case.
    """

    def __init__(self, kind: str, raw: str) -> None:
        super().__init__(f"Failed to parse {kind}: {raw!r}")
        self.kind = kind
        self.raw = raw
