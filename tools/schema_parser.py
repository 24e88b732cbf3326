#!/usr/bin/env python3
"""
schema_parser.py - Line-oriented record schema language

Reads the schema one line at a time. Blank lines and lines whose first
non-blank character is ';' are skipped. Every other line is split on
whitespace and fed, one word per transition, through a small state
machine. Nested `begin` / `end` blocks are tracked with a stack of
ParseState snapshots rather than recursion.

Example:
    format big signbit
    begin namespace net
    begin type Header
    u32 magic require == 0x1234
    u8 name_len
    string name length seen name_len
    array s16 samples length user count
    end
    end

Usage:
    from schema_parser import SchemaParser

    types = []
    parser = SchemaParser(types)
    parser.feed(text)
"""

import logging
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from int_codec import INTEGER_KINDS, ByteOrder, NegativeEncoding
from record_model import (
    BlockType, FixedLength, IntegerField, NullTerminated, ParseState,
    PrestatedLength, Relation, Requirement, SchemaType, UserLength,
    accepts_length, accepts_requirement, add_field, is_valid_identifier,
    is_valid_parameter, new_array, new_integer, new_string, validate,
)
from schema_errors import CompileStatus, SchemaError


logger = logging.getLogger(__name__)


class State(Enum):
    LINE_START = 'line_start'
    FORMAT = 'format'
    BEGIN = 'begin'
    NAMESPACE_NAME = 'namespace_name'
    TYPE_NAME = 'type_name'
    ARRAY_ELEMENT = 'array_element'
    MEMBER_NAME = 'member_name'
    MEMBER_NAME_DONE = 'member_name_done'
    REQUIRE_OPERATOR = 'require_operator'
    REQUIRE_VALUE = 'require_value'
    LENGTH_START = 'length_start'
    LENGTH_VALUE = 'length_value'
    LENGTH_NAME = 'length_name'
    DONE = 'done'


# States that cannot end a line, and what to report if they do.
EXPECTS_MORE: Dict[State, CompileStatus] = {
    State.NAMESPACE_NAME: CompileStatus.EXPECTED_IDENTIFIER,
    State.TYPE_NAME: CompileStatus.EXPECTED_IDENTIFIER,
    State.ARRAY_ELEMENT: CompileStatus.SYNTAX_ERROR,
    State.MEMBER_NAME: CompileStatus.EXPECTED_IDENTIFIER,
    State.REQUIRE_OPERATOR: CompileStatus.EXPECTED_RELATIONAL_OPERATOR,
    State.REQUIRE_VALUE: CompileStatus.EXPECTED_VALUE,
    State.LENGTH_START: CompileStatus.EXPECTED_LENGTH_SPECIFICATION,
    State.LENGTH_VALUE: CompileStatus.EXPECTED_LENGTH_VALUE,
    State.LENGTH_NAME: CompileStatus.EXPECTED_LENGTH_NAME,
}

BYTE_ORDER_WORDS = {order.value: order for order in ByteOrder}
NEGATIVE_WORDS = {enc.value: enc for enc in NegativeEncoding}
RELATION_WORDS = {rel.value: rel for rel in Relation}


def is_blank(line: str) -> bool:
    return not line.strip()


def is_comment(line: str) -> bool:
    return line.lstrip().startswith(';')


class SchemaParser:
    """
    Incremental parser for the record schema language.

    Completed types are appended to `types` when their `end` is read, so
    the list can be shared with other ingestion paths.
    """

    def __init__(self, types: Optional[List[SchemaType]] = None,
                 state: Optional[ParseState] = None):
        self.types: List[SchemaType] = types if types is not None else []
        self.state = state or ParseState()
        self.stack: List[ParseState] = []
        self._eol_action: Optional[Callable[[], None]] = None
        self._handlers: Dict[State, Callable[[str], State]] = {
            State.LINE_START: self._line_start,
            State.FORMAT: self._format,
            State.BEGIN: self._begin,
            State.NAMESPACE_NAME: self._namespace_name,
            State.TYPE_NAME: self._type_name,
            State.ARRAY_ELEMENT: self._array_element,
            State.MEMBER_NAME: self._member_name,
            State.MEMBER_NAME_DONE: self._member_name_done,
            State.REQUIRE_OPERATOR: self._require_operator,
            State.REQUIRE_VALUE: self._require_value,
            State.LENGTH_START: self._length_start,
            State.LENGTH_VALUE: self._length_value,
            State.LENGTH_NAME: self._length_name,
        }

    @property
    def depth(self) -> int:
        return len(self.stack)

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def feed(self, text: str, source: Optional[str] = None) -> None:
        self.feed_lines(text.splitlines(), source)

    def feed_lines(self, lines: Iterable[str], source: Optional[str] = None) -> None:
        for number, line in enumerate(lines, 1):
            try:
                self.feed_line(line)
            except SchemaError as e:
                raise e.located(number, source) from None

    def feed_line(self, line: str) -> None:
        """Run one line through the state machine."""
        if is_blank(line) or is_comment(line):
            return

        words = line.split()
        state = State.LINE_START
        self._eol_action = None
        try:
            for index, word in enumerate(words):
                if state is State.DONE:
                    logger.warning("Ignoring trailing words: %s", ' '.join(words[index:]))
                    break
                state = self._handlers[state](word)
            else:
                missing = EXPECTS_MORE.get(state)
                if missing is not None:
                    raise SchemaError(missing, f"line ended in state '{state.value}'")

            if self._eol_action is not None:
                self._eol_action()
        finally:
            self._eol_action = None

    # -------------------------------------------------------------------------
    # Scope handling
    # -------------------------------------------------------------------------

    def _push_state(self) -> None:
        self.stack.append(self.state.copy())
        logger.debug("Scope pushed (depth %d)", len(self.stack))

    def _pop_state(self) -> None:
        if not self.stack:
            raise SchemaError(CompileStatus.EXTRANEOUS_END, "'end' without matching 'begin'")
        if self.state.block == BlockType.TYPE:
            self.types.append(self.state.current_type)
            logger.debug("Committed type %s (%d fields)",
                         self.state.current_type.qualified_name,
                         len(self.state.current_type.fields))
        self.state = self.stack.pop()
        logger.debug("Scope popped (depth %d)", len(self.stack))

    def _commit_field(self) -> None:
        datum = self.state.current_field
        self.state.current_field = None
        if not validate(datum):
            raise SchemaError(
                CompileStatus.DATUM_NOT_PROPERLY_DEFINED,
                f"'{datum.name}' has no length specification"
            )
        owner = self.state.current_type
        if datum.name in owner.field_names():
            logger.warning("Duplicate field '%s' in type %s", datum.name, owner.qualified_name)
        add_field(owner, datum)
        logger.debug("Added field %s.%s", owner.name, datum.name)

    def _require_open_type(self, word: str) -> None:
        if self.state.current_type is None:
            raise SchemaError(CompileStatus.MEMBER_OUTSIDE_TYPE,
                              f"'{word}' member declared outside of a type")

    # -------------------------------------------------------------------------
    # States
    # -------------------------------------------------------------------------

    def _line_start(self, word: str) -> State:
        if word == 'format':
            return State.FORMAT
        if word == 'begin':
            self._push_state()
            self.state.block = BlockType.ANONYMOUS
            return State.BEGIN
        if word == 'end':
            self._pop_state()
            return State.DONE
        if word in INTEGER_KINDS:
            self._require_open_type(word)
            width, signed = INTEGER_KINDS[word]
            self.state.current_field = new_integer('', width, signed, self.state.format)
            self._eol_action = self._commit_field
            return State.MEMBER_NAME
        if word == 'string':
            self._require_open_type(word)
            self.state.current_field = new_string()
            self._eol_action = self._commit_field
            return State.MEMBER_NAME
        if word == 'array':
            self._require_open_type(word)
            return State.ARRAY_ELEMENT
        raise SchemaError(CompileStatus.SYNTAX_ERROR, f"unexpected '{word}' at start of line")

    def _format(self, word: str) -> State:
        fmt = self.state.format
        if word in BYTE_ORDER_WORDS:
            fmt.byte_order = BYTE_ORDER_WORDS[word]
        elif word in NEGATIVE_WORDS:
            fmt.negative_encoding = NEGATIVE_WORDS[word]
        else:
            raise SchemaError(CompileStatus.SYNTAX_ERROR, f"unknown format word '{word}'")
        return State.FORMAT

    def _begin(self, word: str) -> State:
        if word == 'namespace':
            return State.NAMESPACE_NAME
        if word == 'type':
            return State.TYPE_NAME
        raise SchemaError(CompileStatus.SYNTAX_ERROR, f"cannot begin '{word}'")

    def _check_identifier(self, word: str) -> None:
        if not is_valid_identifier(word):
            raise SchemaError(CompileStatus.INVALID_IDENTIFIER, f"'{word}'")

    def _namespace_name(self, word: str) -> State:
        self._check_identifier(word)
        self.state.namespace_path.append(word)
        self.state.block = BlockType.NAMESPACE
        return State.DONE

    def _type_name(self, word: str) -> State:
        self._check_identifier(word)
        self.state.current_type = SchemaType(list(self.state.namespace_path), word)
        self.state.block = BlockType.TYPE
        return State.DONE

    def _array_element(self, word: str) -> State:
        if word not in INTEGER_KINDS:
            raise SchemaError(CompileStatus.SYNTAX_ERROR,
                              f"array element must be an integer kind, not '{word}'")
        width, signed = INTEGER_KINDS[word]
        element = new_integer(word, width, signed, self.state.format)
        self.state.current_field = new_array('', element)
        self._eol_action = self._commit_field
        return State.MEMBER_NAME

    def _member_name(self, word: str) -> State:
        self._check_identifier(word)
        self.state.current_field.name = word
        return State.MEMBER_NAME_DONE

    def _member_name_done(self, word: str) -> State:
        datum = self.state.current_field
        if word == 'require':
            if not accepts_requirement(datum):
                raise SchemaError(CompileStatus.REQUIRE_ONLY_FOR_SIMPLE_VALUES,
                                  f"'{datum.name}' cannot carry a requirement")
            return State.REQUIRE_OPERATOR
        if word == 'length':
            if not accepts_length(datum):
                raise SchemaError(CompileStatus.LENGTH_ONLY_FOR_SEQUENCES,
                                  f"'{datum.name}' is an integer")
            return State.LENGTH_START
        raise SchemaError(CompileStatus.UNKNOWN_TOKEN, f"'{word}'")

    def _require_operator(self, word: str) -> State:
        if word not in RELATION_WORDS:
            raise SchemaError(CompileStatus.EXPECTED_RELATIONAL_OPERATOR, f"got '{word}'")
        self.state.current_requirement = Requirement(RELATION_WORDS[word], '')
        return State.REQUIRE_VALUE

    def _require_value(self, word: str) -> State:
        requirement = self.state.current_requirement
        requirement.literal = word
        self.state.current_field.requirement = requirement
        self.state.current_requirement = None
        return State.MEMBER_NAME_DONE

    def _length_start(self, word: str) -> State:
        if word == 'fixed':
            self.state.current_length = FixedLength('')
            return State.LENGTH_VALUE
        if word == 'seen':
            self.state.current_length = PrestatedLength('')
            return State.LENGTH_NAME
        if word == 'user':
            self.state.current_length = UserLength('')
            return State.LENGTH_NAME
        if word == 'cstyle':
            self.state.current_field.length = NullTerminated()
            return State.MEMBER_NAME_DONE
        raise SchemaError(CompileStatus.INVALID_LENGTH_SPECIFICATION, f"'{word}'")

    def _length_value(self, word: str) -> State:
        length = self.state.current_length
        length.expr = word
        self._attach_length(length)
        return State.MEMBER_NAME_DONE

    def _length_name(self, word: str) -> State:
        length = self.state.current_length
        self._check_identifier(word)
        if isinstance(length, PrestatedLength):
            length.field_name = word
            self._warn_unseen(word)
        else:
            if not is_valid_parameter(word):
                raise SchemaError(CompileStatus.INVALID_IDENTIFIER,
                                  f"'{word}' is reserved for the constructor")
            length.param_name = word
        self._attach_length(length)
        return State.MEMBER_NAME_DONE

    def _attach_length(self, length) -> None:
        self.state.current_field.length = length
        self.state.current_length = None

    def _warn_unseen(self, name: str) -> None:
        earlier = [f for f in self.state.current_type.fields if f.name == name]
        if not earlier or not isinstance(earlier[-1], IntegerField):
            logger.warning("Length field '%s' is not an earlier integer of %s",
                           name, self.state.current_type.qualified_name)
