"""
Tests for boundary test-vector generation.
"""

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from generate_vectors import boundary_patterns, generate_vectors, vectors_to_yaml
from record_model import SchemaType
from schema_parser import SchemaParser


def vectors_for(text):
    parser = SchemaParser()
    parser.feed(text)
    return generate_vectors(parser.types)


def by_field(vectors):
    table = {}
    for v in vectors:
        table[(v.field, v.pattern)] = v
    return table


class TestPatterns:

    def test_eight_bit(self):
        assert boundary_patterns(8) == {
            'all_zero': 0,
            'all_ones': 0xFF,
            'top_bit': 0x80,
            'bottom_bit': 1,
        }


class TestGenerateVectors:

    def test_header(self, header_schema):
        vectors = vectors_for(header_schema)
        # magic, name_len, delta; the string is skipped
        assert len(vectors) == 12
        table = by_field(vectors)
        assert {f for f, _ in table} == {'magic', 'name_len', 'delta'}

        magic = table[('magic', 'top_bit')]
        assert magic.type_name == 'net::Header'
        assert magic.payload == b'\x80\x00\x00\x00'
        assert magic.expected == 0x80000000

        delta = table[('delta', 'top_bit')]
        assert delta.payload == b'\x80\x00'
        assert delta.expected == -32768
        assert table[('delta', 'all_ones')].expected == -1

    def test_little_endian_payload(self):
        table = by_field(vectors_for("begin type L\ns16 v\nend\n"))
        assert table[('v', 'top_bit')].payload == b'\x00\x80'
        assert table[('v', 'top_bit')].expected == -32768
        assert table[('v', 'bottom_bit')].payload == b'\x01\x00'

    @pytest.mark.parametrize('neg, all_ones, top_bit', [
        ('twoscomp', -1, -128),
        ('onescomp', 0, -127),
        ('signbit', -127, 0),
        ('excesskbiased', 127, 0),
    ])
    def test_negative_encodings(self, neg, all_ones, top_bit):
        table = by_field(vectors_for(f"format {neg}\nbegin type N\ns8 v\nend\n"))
        assert table[('v', 'all_ones')].expected == all_ones
        assert table[('v', 'top_bit')].expected == top_bit

    def test_array_elements_labelled(self):
        vectors = vectors_for("begin type A\narray u16 samples length cstyle\nend\n")
        assert {v.field for v in vectors} == {'samples[]'}
        assert {v.kind for v in vectors} == {'u16'}

    def test_unknown_field_kind(self):
        with pytest.raises(TypeError):
            generate_vectors([SchemaType([], 'Bad', [object()])])


class TestYaml:

    def test_document_shape(self):
        text = vectors_to_yaml(vectors_for("format big\nbegin type Y\nu16 v\nend\n"))
        document = yaml.safe_load(text)
        first = document['vectors'][0]
        assert first == {
            'type': 'Y',
            'field': 'v',
            'kind': 'u16',
            'format': {'end': 'big', 'neg': 'twoscomp'},
            'pattern': 'all_zero',
            'payload': '0000',
            'expected': 0,
        }
        assert [v['pattern'] for v in document['vectors']] == \
            ['all_zero', 'all_ones', 'top_bit', 'bottom_bit']

    def test_empty(self):
        assert yaml.safe_load(vectors_to_yaml([])) == {'vectors': []}
