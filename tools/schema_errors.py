"""
schema_errors.py - Compile-time error taxonomy for record schemas.

Every failure while reading a schema (DSL text or XML tree) is reported as
a SchemaError carrying one CompileStatus. None of them are recovered
internally; the compiler stops at the first one.
"""

from enum import IntEnum
from typing import Optional


class CompileStatus(IntEnum):
    FILE_NOT_FOUND = 1
    FILE_ERROR = 2
    UNKNOWN_TREE_ERROR = 3
    MALFORMED_TREE_STRUCTURE = 4
    INVALID_FORMAT_SPECIFIER = 5
    SYNTAX_ERROR = 6
    EXTRANEOUS_END = 7
    EXPECTED_IDENTIFIER = 8
    INVALID_IDENTIFIER = 9
    UNKNOWN_TOKEN = 10
    EXPECTED_RELATIONAL_OPERATOR = 11
    EXPECTED_VALUE = 12
    DATUM_NOT_PROPERLY_DEFINED = 13
    EXPECTED_LENGTH_SPECIFICATION = 14
    INVALID_LENGTH_SPECIFICATION = 15
    EXPECTED_LENGTH_VALUE = 16
    EXPECTED_LENGTH_NAME = 17
    REQUIRE_ONLY_FOR_SIMPLE_VALUES = 18
    MEMBER_OUTSIDE_TYPE = 19
    LENGTH_ONLY_FOR_SEQUENCES = 20


class SchemaError(ValueError):
    """A schema could not be compiled."""

    def __init__(self, status: CompileStatus, message: str = '',
                 line: Optional[int] = None, source: Optional[str] = None):
        self.status = status
        self.detail = message
        self.line = line
        self.source = source
        super().__init__(self._format())

    def _format(self) -> str:
        where = ''
        if self.source:
            where = f"{self.source}:"
        if self.line is not None:
            where += f"{self.line}:"
        text = self.status.name
        if self.detail:
            text += f": {self.detail}"
        return f"{where} {text}" if where else text

    def located(self, line: Optional[int] = None,
                source: Optional[str] = None) -> 'SchemaError':
        """Return the same error annotated with a position."""
        return SchemaError(
            self.status, self.detail,
            line if line is not None else self.line,
            source if source is not None else self.source,
        )
