"""
schema_xml.py - Read record schemas from an element/attribute tree.

The ingester only needs a generic node (see TreeNode); ElementNode adapts
xml.etree.ElementTree to it. Recognised elements:

    <spec>                                  root
      <format end="big" neg="signbit"/>     end: little|big, neg: twoscomp|
                                            onescomp|signbit|excesskbiased
      <namespace name="net"> ... </namespace>
      <scope> ... </scope>                  format changes stay inside
      <type name="Header">
        <u32 name="magic"><require eq="0x1234"/></u32>
        <string name="label" length="16"/>  16 = fixed, $n = earlier field,
                                            @n = caller supplied, absent = NUL
        <array name="samples" length="$count"><s16/></array>
      </type>
    </spec>

A <format> element describes the whole format: an attribute it leaves out
falls back to little endian / two's complement.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Tuple

from int_codec import INTEGER_KINDS, NumericFormat
from record_model import (
    ArrayField, FixedLength, IntegerField, LengthSpec, NullTerminated,
    ParseState, PrestatedLength, Relation, Requirement, SchemaType,
    StringField, UserLength, add_field, is_valid_identifier,
    is_valid_parameter,
)
from schema_errors import CompileStatus, SchemaError
from schema_parser import BYTE_ORDER_WORDS, NEGATIVE_WORDS


logger = logging.getLogger(__name__)

REQUIRE_ATTRIBUTES = {
    'eq': Relation.EQ,
    'neq': Relation.NEQ,
    'gt': Relation.GT,
    'lt': Relation.LT,
    'geq': Relation.GEQ,
    'leq': Relation.LEQ,
}


class TreeNode(Protocol):
    """What the ingester needs from a tree library."""

    @property
    def name(self) -> str: ...

    def attribute(self, key: str) -> Optional[str]: ...

    def attributes(self) -> Iterator[Tuple[str, str]]: ...

    def children(self) -> Iterator['TreeNode']: ...


class ElementNode:
    """TreeNode over an ElementTree element."""

    def __init__(self, element: ET.Element):
        self.element = element

    @property
    def name(self) -> str:
        return self.element.tag

    def attribute(self, key: str) -> Optional[str]:
        return self.element.get(key)

    def attributes(self) -> Iterator[Tuple[str, str]]:
        return iter(self.element.attrib.items())

    def children(self) -> Iterator['ElementNode']:
        return (ElementNode(child) for child in self.element)


def load_xml(path: Path) -> ElementNode:
    """Parse an XML file and return its root as a TreeNode."""
    try:
        tree = ET.parse(str(path))
    except FileNotFoundError:
        raise SchemaError(CompileStatus.FILE_NOT_FOUND, source=str(path)) from None
    except ET.ParseError as e:
        raise SchemaError(CompileStatus.UNKNOWN_TREE_ERROR, str(e), source=str(path)) from None
    except OSError as e:
        raise SchemaError(CompileStatus.FILE_ERROR, str(e), source=str(path)) from None
    return ElementNode(tree.getroot())


def parse_xml_string(text: str) -> ElementNode:
    try:
        return ElementNode(ET.fromstring(text))
    except ET.ParseError as e:
        raise SchemaError(CompileStatus.UNKNOWN_TREE_ERROR, str(e)) from None


# =============================================================================
# Attribute helpers
# =============================================================================

def required_attribute(node: TreeNode, key: str) -> str:
    value = node.attribute(key)
    if value is None:
        raise SchemaError(CompileStatus.MALFORMED_TREE_STRUCTURE,
                          f"<{node.name}> is missing attribute '{key}'")
    return value


def identifier_attribute(node: TreeNode, key: str = 'name') -> str:
    value = required_attribute(node, key)
    if not is_valid_identifier(value):
        raise SchemaError(CompileStatus.INVALID_IDENTIFIER, f"<{node.name} {key}='{value}'>")
    return value


def read_format(node: TreeNode) -> NumericFormat:
    fmt = NumericFormat()
    for key, value in node.attributes():
        if key == 'end':
            if value not in BYTE_ORDER_WORDS:
                raise SchemaError(CompileStatus.INVALID_FORMAT_SPECIFIER, f"end='{value}'")
            fmt.byte_order = BYTE_ORDER_WORDS[value]
        elif key == 'neg':
            if value not in NEGATIVE_WORDS:
                raise SchemaError(CompileStatus.INVALID_FORMAT_SPECIFIER, f"neg='{value}'")
            fmt.negative_encoding = NEGATIVE_WORDS[value]
    return fmt


def read_requirement(node: TreeNode) -> Requirement:
    requirement = None
    for key, value in node.attributes():
        if key in REQUIRE_ATTRIBUTES:
            requirement = Requirement(REQUIRE_ATTRIBUTES[key], value)
    if requirement is None:
        raise SchemaError(CompileStatus.MALFORMED_TREE_STRUCTURE,
                          "<require> needs one of " + '|'.join(REQUIRE_ATTRIBUTES))
    return requirement


def read_length(node: TreeNode) -> LengthSpec:
    value = node.attribute('length')
    if value is None:
        return NullTerminated()
    if not value:
        raise SchemaError(CompileStatus.MALFORMED_TREE_STRUCTURE,
                          f"<{node.name}> has an empty length")
    if value[0] == '$':
        name = value[1:]
        if not is_valid_identifier(name):
            raise SchemaError(CompileStatus.INVALID_IDENTIFIER, f"length='{value}'")
        return PrestatedLength(name)
    if value[0] == '@':
        name = value[1:]
        if not is_valid_parameter(name):
            raise SchemaError(CompileStatus.INVALID_IDENTIFIER, f"length='{value}'")
        return UserLength(name)
    return FixedLength(value)


# =============================================================================
# Ingester
# =============================================================================

class TreeIngester:
    """Builds SchemaTypes from a <spec> tree, appending them to `types`."""

    def __init__(self, types: List[SchemaType], state: Optional[ParseState] = None):
        self.types = types
        self.state = state or ParseState()

    def ingest(self, root: TreeNode) -> None:
        if root.name != 'spec':
            raise SchemaError(CompileStatus.MALFORMED_TREE_STRUCTURE,
                              f"root element is <{root.name}>, expected <spec>")
        self._parse_scope(root, self.state.copy())

    def _parse_scope(self, node: TreeNode, state: ParseState) -> None:
        for child in node.children():
            if child.name == 'format':
                state.format = read_format(child)
            elif child.name == 'namespace':
                inner = state.copy()
                inner.namespace_path.append(identifier_attribute(child))
                self._parse_scope(child, inner)
            elif child.name == 'type':
                self.types.append(self._parse_type(child, state.copy()))
            elif child.name == 'scope':
                self._parse_scope(child, state.copy())
            else:
                logger.debug("Ignoring <%s> outside of a type", child.name)

    def _parse_type(self, node: TreeNode, state: ParseState) -> SchemaType:
        schema_type = SchemaType(list(state.namespace_path), identifier_attribute(node))
        self._parse_members(node, state, schema_type)
        logger.debug("Read type %s (%d fields)",
                     schema_type.qualified_name, len(schema_type.fields))
        return schema_type

    def _parse_members(self, node: TreeNode, state: ParseState,
                       schema_type: SchemaType) -> None:
        for child in node.children():
            if child.name in INTEGER_KINDS:
                add_field(schema_type, self._integer(child, state))
            elif child.name == 'string':
                datum = StringField(identifier_attribute(child), read_length(child))
                datum.requirement = self._requirement_child(child)
                add_field(schema_type, datum)
            elif child.name == 'array':
                add_field(schema_type, self._array(child, state))
            elif child.name == 'format':
                state.format = read_format(child)
            elif child.name == 'scope':
                self._parse_members(child, state.copy(), schema_type)
            else:
                logger.debug("Ignoring <%s> in type %s", child.name, schema_type.name)

    def _integer(self, node: TreeNode, state: ParseState) -> IntegerField:
        width, signed = INTEGER_KINDS[node.name]
        datum = IntegerField(identifier_attribute(node), width, signed, state.format.copy())
        datum.requirement = self._requirement_child(node)
        return datum

    def _requirement_child(self, node: TreeNode) -> Optional[Requirement]:
        requirement = None
        for child in node.children():
            if child.name == 'require':
                requirement = read_requirement(child)
        return requirement

    def _array(self, node: TreeNode, state: ParseState) -> ArrayField:
        name = identifier_attribute(node)
        if any(child.name == 'require' for child in node.children()):
            raise SchemaError(CompileStatus.REQUIRE_ONLY_FOR_SIMPLE_VALUES,
                              f"<array name='{name}'> cannot carry a requirement")
        for child in node.children():
            if child.name in INTEGER_KINDS:
                width, signed = INTEGER_KINDS[child.name]
                element = IntegerField(child.name, width, signed, state.format.copy())
                return ArrayField(name, element, read_length(node))
        raise SchemaError(CompileStatus.MALFORMED_TREE_STRUCTURE,
                          f"<array name='{name}'> has no integer element")
