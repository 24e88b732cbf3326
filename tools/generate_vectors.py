#!/usr/bin/env python3
"""
generate_vectors.py - Boundary test vectors for generated record parsers

For every integer field (and integer array element) the four boundary bit
patterns are encoded in the field's byte order and decoded with int_codec,
so a C++ harness can check the generated readers against the reference:

    all_zero    0000...0000
    all_ones    1111...1111
    top_bit     1000...0000
    bottom_bit  0000...0001

Output is YAML:

    vectors:
    - type: net::Header
      field: magic
      kind: u32
      format:
        end: little
        neg: twoscomp
      pattern: top_bit
      payload: '00000080'
      expected: 2147483648
"""

import io
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import yaml

from int_codec import encode_unsigned, read_integer
from record_model import ArrayField, IntegerField, SchemaType, StringField


def boundary_patterns(bits: int) -> Dict[str, int]:
    return {
        'all_zero': 0,
        'all_ones': (1 << bits) - 1,
        'top_bit': 1 << (bits - 1),
        'bottom_bit': 1,
    }


@dataclass
class BoundaryVector:
    """Expected decoding of one bit pattern for one field."""
    type_name: str
    field: str
    kind: str
    byte_order: str
    negative_encoding: str
    pattern: str
    payload: bytes
    expected: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type_name,
            'field': self.field,
            'kind': self.kind,
            'format': {'end': self.byte_order, 'neg': self.negative_encoding},
            'pattern': self.pattern,
            'payload': self.payload.hex(),
            'expected': self.expected,
        }


def field_vectors(type_name: str, label: str, datum: IntegerField) -> List[BoundaryVector]:
    fmt = datum.format
    vectors = []
    for pattern, raw in boundary_patterns(datum.bits).items():
        payload = encode_unsigned(raw, datum.width, fmt.byte_order)
        expected = read_integer(io.BytesIO(payload), datum.width, datum.signed, fmt)
        vectors.append(BoundaryVector(
            type_name=type_name,
            field=label,
            kind=datum.kind,
            byte_order=fmt.byte_order.value,
            negative_encoding=fmt.negative_encoding.value,
            pattern=pattern,
            payload=payload,
            expected=expected,
        ))
    return vectors


def generate_vectors(types: Iterable[SchemaType]) -> List[BoundaryVector]:
    vectors = []
    for schema_type in types:
        for datum in schema_type.fields:
            if isinstance(datum, IntegerField):
                vectors.extend(field_vectors(schema_type.qualified_name, datum.name, datum))
            elif isinstance(datum, ArrayField):
                vectors.extend(field_vectors(schema_type.qualified_name,
                                             f"{datum.name}[]", datum.element))
            elif not isinstance(datum, StringField):
                raise TypeError(f"Unknown field kind: {type(datum).__name__}")
    return vectors


def vectors_to_yaml(vectors: Iterable[BoundaryVector]) -> str:
    return yaml.safe_dump({'vectors': [v.to_dict() for v in vectors]},
                          sort_keys=False, default_flow_style=False)
