"""
record_model.py - In-memory model of a compiled record schema.

Field kinds and length kinds are closed sets of dataclasses; code that
walks them (the generator, the vector builder) checks every variant and
raises TypeError on anything else.

    IntegerField   fixed-width integer with a NumericFormat
    StringField    byte string sized by a length rule
    ArrayField     homogeneous integer sequence sized by a length rule

    FixedLength      literal / constant expression
    PrestatedLength  an earlier field holds the count
    UserLength       the caller passes the count to the constructor
    NullTerminated   runs until a zero terminator
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from int_codec import NumericFormat


_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*\Z')

# Names the generated constructor already takes as parameters.
RESERVED_PARAMETERS = ('stream', 'status')


def is_valid_identifier(text: str) -> bool:
    """Letter or underscore first, then letters, digits, underscores."""
    return bool(text) and _IDENTIFIER.match(text) is not None


def is_valid_parameter(text: str) -> bool:
    """A user-supplied length name that can become a constructor parameter."""
    return is_valid_identifier(text) and text not in RESERVED_PARAMETERS


# =============================================================================
# Length rules
# =============================================================================

@dataclass
class FixedLength:
    expr: str


@dataclass
class PrestatedLength:
    field_name: str


@dataclass
class UserLength:
    param_name: str


@dataclass
class NullTerminated:
    pass


LengthSpec = Union[FixedLength, PrestatedLength, UserLength, NullTerminated]


# =============================================================================
# Requirements
# =============================================================================

class Relation(Enum):
    EQ = '=='
    NEQ = '!='
    LT = '<'
    GT = '>'
    LEQ = '<='
    GEQ = '>='


@dataclass
class Requirement:
    """Post-read assertion: `<field> <relation> <literal>` must hold."""
    relation: Relation
    literal: str

    def expression(self, subject: str) -> str:
        return f"{subject} {self.relation.value} {self.literal}"


# =============================================================================
# Fields
# =============================================================================

@dataclass
class IntegerField:
    name: str
    width: int
    signed: bool
    format: NumericFormat = field(default_factory=NumericFormat)
    requirement: Optional[Requirement] = None

    @property
    def bits(self) -> int:
        return self.width * 8

    @property
    def kind(self) -> str:
        return f"{'s' if self.signed else 'u'}{self.bits}"


@dataclass
class StringField:
    name: str
    length: Optional[LengthSpec] = None
    requirement: Optional[Requirement] = None


@dataclass
class ArrayField:
    name: str
    element: IntegerField
    length: Optional[LengthSpec] = None


Field = Union[IntegerField, StringField, ArrayField]


def new_integer(name: str, width: int, signed: bool,
                fmt: NumericFormat) -> IntegerField:
    """Create an integer field; the format is copied, not shared."""
    return IntegerField(name, width, signed, fmt.copy())


def new_string(name: str = '') -> StringField:
    return StringField(name)


def new_array(name: str, element: IntegerField) -> ArrayField:
    return ArrayField(name, element)


def accepts_requirement(f: Field) -> bool:
    return isinstance(f, (IntegerField, StringField))


def accepts_length(f: Field) -> bool:
    return isinstance(f, (StringField, ArrayField))


def validate(f: Field) -> bool:
    """Integers are always complete; sequences need a length rule."""
    if isinstance(f, IntegerField):
        return True
    if isinstance(f, (StringField, ArrayField)):
        return f.length is not None
    raise TypeError(f"Unknown field kind: {type(f).__name__}")


# =============================================================================
# Types and parse state
# =============================================================================

@dataclass
class SchemaType:
    namespace_path: List[str]
    name: str
    fields: List[Field] = field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return '::'.join(self.namespace_path + [self.name])

    def add_field(self, f: Field) -> None:
        self.fields.append(f)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def user_parameters(self) -> List[str]:
        """Constructor parameters demanded by UserLength rules, in order."""
        params = []
        for f in self.fields:
            length = getattr(f, 'length', None)
            if isinstance(length, UserLength) and length.param_name not in params:
                params.append(length.param_name)
        return params


def add_field(schema_type: SchemaType, f: Field) -> None:
    schema_type.add_field(f)


class BlockType(Enum):
    NONE = 'none'
    ANONYMOUS = 'anonymous'
    NAMESPACE = 'namespace'
    TYPE = 'type'


@dataclass
class ParseState:
    """Snapshot of everything a `begin` saves and the matching `end` restores."""
    namespace_path: List[str] = field(default_factory=list)
    format: NumericFormat = field(default_factory=NumericFormat)
    block: BlockType = BlockType.NONE
    current_type: Optional[SchemaType] = None
    current_field: Optional[Field] = None
    current_requirement: Optional[Requirement] = None
    current_length: Optional[LengthSpec] = None

    def copy(self) -> 'ParseState':
        # The open type is shared: an anonymous scope inside a type keeps
        # appending to the same SchemaType.
        return ParseState(
            namespace_path=list(self.namespace_path),
            format=self.format.copy(),
            block=self.block,
            current_type=self.current_type,
            current_field=self.current_field,
            current_requirement=self.current_requirement,
            current_length=self.current_length,
        )
