"""
Tests for C++ code generation.

Covers:
- Declaration layout: integer grouping by width and signedness
- Definitions: read order, requirements, length routines
- Both error modes
- Namespace wrapping and the runtime support header
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from generate_cpp import (
    ErrorMode, NamespaceClose, close_namespaces, constructor_parameters,
    generate_declaration, generate_declarations, generate_definition,
    generate_definitions, generate_read_code, generate_runtime,
    integer_groups, integer_reader,
)
from record_model import SchemaType
from schema_parser import SchemaParser


def compile_types(text):
    parser = SchemaParser()
    parser.feed(text)
    return parser.types


def one_type(body, prelude=''):
    (schema_type,) = compile_types(f"{prelude}begin type T\n{body}\nend\n")
    return schema_type


# =============================================================================
# Declarations
# =============================================================================

class TestDeclaration:

    def test_widest_first(self):
        schema_type = one_type("u8 a\nu32 b\nu16 c")
        groups = integer_groups(schema_type)
        assert [[f.name for f in g] for g in groups] == [['b'], ['c'], ['a']]

    def test_unsigned_before_signed_and_grouped(self):
        schema_type = one_type("u8 a\nu32 b\nu16 c\ns32 d\nu32 e")
        groups = integer_groups(schema_type)
        assert [[f.name for f in g] for g in groups] == [['b', 'e'], ['d'], ['c'], ['a']]

    def test_layout_text(self):
        (schema_type,) = compile_types(
            "begin namespace net\nbegin type Rec\n"
            "u8 a\nu32 b\nu16 c\ns32 d\nu32 e\n"
            "end\nend\n"
        )
        assert generate_declaration(schema_type) == (
            "namespace net{\n"
            "struct Rec{\n"
            "\tuint32_t b,\n"
            "\t\te;\n"
            "\tint32_t d;\n"
            "\tuint16_t c;\n"
            "\tuint8_t a;\n"
            "\n"
            "\tRec(std::istream &stream);\n"
            "}; // struct Rec\n"
            "} // namespace net\n"
        )

    def test_sequences_follow_integers(self):
        schema_type = one_type(
            "string s length cstyle\nu8 n\narray s16 a length seen n"
        )
        lines = generate_declaration(schema_type).splitlines()
        assert lines[1:4] == [
            "\tuint8_t n;",
            "\tstd::string s;",
            "\tstd::vector<int16_t> a;",
        ]

    def test_no_integers_no_stray_member(self):
        schema_type = one_type("string s length cstyle")
        declaration = generate_declaration(schema_type)
        assert "\t;" not in declaration
        assert "\tstd::string s;" in declaration

    def test_empty_type(self):
        schema_type = SchemaType([], 'Empty')
        assert generate_declaration(schema_type) == (
            "struct Empty{\n"
            "\n"
            "\tEmpty(std::istream &stream);\n"
            "}; // struct Empty\n"
        )

    def test_status_mode_adds_ok_and_status(self):
        schema_type = one_type("u8 a")
        declaration = generate_declaration(schema_type, ErrorMode.STATUS_CODE)
        assert "\tbool ok;" in declaration
        assert "\tT(std::istream &stream, ParserStatus &status);" in declaration

    def test_user_length_parameters(self):
        schema_type = one_type("string s length user n\narray u8 a length user m")
        assert constructor_parameters(schema_type, ErrorMode.EXCEPTIONS) == \
            "std::istream &stream, size_t n, size_t m"
        assert constructor_parameters(schema_type, ErrorMode.STATUS_CODE) == \
            "std::istream &stream, ParserStatus &status, size_t n, size_t m"


# =============================================================================
# Read code
# =============================================================================

class TestReadCode:

    def test_integer_reader_name(self):
        datum = one_type("s16 x", prelude="format big signbit\n").fields[0]
        assert integer_reader(datum, ErrorMode.EXCEPTIONS) == \
            "read_big_integer<int16_t, 2, correct_sign_signbit<int16_t>>"
        assert integer_reader(datum, ErrorMode.STATUS_CODE) == \
            "read_big_integer_nothrow<int16_t, 2, correct_sign_signbit<int16_t>>"

    @pytest.mark.parametrize('body, expected', [
        ("string s length fixed 10", "this->s = read_sized_string(stream, 10)"),
        ("string s length seen n", "this->s = read_sized_string(stream, this->n)"),
        ("string s length user n", "this->s = read_user_length_string(stream, n)"),
        ("string s length cstyle", "this->s = read_cstyle_string(stream)"),
    ])
    def test_string_routines(self, body, expected):
        datum = one_type(f"u8 n\n{body}").fields[1]
        assert generate_read_code(datum, ErrorMode.EXCEPTIONS) == expected

    def test_string_nothrow(self):
        datum = one_type("string s length fixed 4").fields[0]
        assert generate_read_code(datum, ErrorMode.STATUS_CODE) == \
            "read_sized_string_nothrow(this->s, stream, 4)"

    def test_array_routine(self):
        datum = one_type("u8 n\narray s16 a length seen n", prelude="format big\n").fields[1]
        assert generate_read_code(datum, ErrorMode.EXCEPTIONS) == (
            "this->a = read_sized_array<int16_t, "
            "read_big_integer<int16_t, 2, correct_sign_twoscomp<int16_t>>>(stream, this->n)"
        )
        assert generate_read_code(datum, ErrorMode.STATUS_CODE) == (
            "read_sized_array_nothrow<int16_t, "
            "read_big_integer_nothrow<int16_t, 2, correct_sign_twoscomp<int16_t>>>"
            "(this->a, stream, this->n)"
        )

    @pytest.mark.parametrize('mode', list(ErrorMode))
    def test_unknown_field_kind(self, mode):
        with pytest.raises(TypeError, match="Unknown field kind: object"):
            generate_read_code(object(), mode)

    def test_unknown_field_kind_in_definition(self):
        schema_type = SchemaType([], 'Bad', [object()])
        with pytest.raises(TypeError, match="Unknown field kind"):
            generate_definition(schema_type)


# =============================================================================
# Definitions
# =============================================================================

class TestDefinition:

    def test_exceptions(self):
        (schema_type,) = compile_types("begin type P\nu16 x require == 7\nend\n")
        assert generate_definition(schema_type) == (
            "P::P(std::istream &stream){\n"
            "\tthis->x = read_little_integer<uint16_t, 2, correct_sign_twoscomp<uint16_t>>(stream);\n"
            "\tif (!(this->x == 7))\n"
            "\t\tthrow ParsingException(ParserStatus::REQUIREMENT_NOT_MET);\n"
            "}\n"
        )

    def test_status_codes(self):
        (schema_type,) = compile_types("begin type P\nu16 x require == 7\nend\n")
        assert generate_definition(schema_type, ErrorMode.STATUS_CODE) == (
            "P::P(std::istream &stream, ParserStatus &status): ok(false){\n"
            "\tstatus = read_little_integer_nothrow<uint16_t, 2, correct_sign_twoscomp<uint16_t>>"
            "(this->x, stream);\n"
            "\tif (status != ParserStatus::SUCCESS)\n"
            "\t\treturn;\n"
            "\tif (!(this->x == 7)){\n"
            "\t\tstatus = ParserStatus::REQUIREMENT_NOT_MET;\n"
            "\t\treturn;\n"
            "\t}\n"
            "\tthis->ok = true;\n"
            "\tstatus = ParserStatus::SUCCESS;\n"
            "}\n"
        )

    def test_reads_in_declaration_order(self):
        schema_type = one_type("u8 a\nu32 b\nstring s length cstyle\nu16 c")
        body = generate_definition(schema_type)
        positions = [body.index(f"this->{n} =") for n in ('a', 'b', 's', 'c')]
        assert positions == sorted(positions)

    def test_string_requirement(self):
        schema_type = one_type('string s length fixed 2 require != "no"')
        assert '\tif (!(this->s != "no"))' in generate_definition(schema_type)


# =============================================================================
# Namespaces and batches
# =============================================================================

class TestNamespaces:

    def test_close_innermost_first(self):
        assert close_namespaces(['a', 'b']) == ["} // namespace b", "} // namespace a"]

    def test_close_in_opening_order(self):
        assert close_namespaces(['a', 'b'], NamespaceClose.OPENING) == \
            ["} // namespace a", "} // namespace b"]

    def test_nested_wrap(self):
        (schema_type,) = compile_types(
            "begin namespace a\nbegin namespace b\nbegin type T\nend\nend\nend\n"
        )
        lines = generate_definition(schema_type).splitlines()
        assert lines[:2] == ["namespace a{", "namespace b{"]
        assert lines[-2:] == ["} // namespace b", "} // namespace a"]

    def test_batches_keep_compile_order(self):
        types = compile_types("begin type A\nend\nbegin type B\nend\n")
        declarations = generate_declarations(types)
        definitions = generate_definitions(types)
        assert declarations.index("struct A{") < declarations.index("struct B{")
        assert definitions.index("A::A(") < definitions.index("B::B(")
        assert generate_declarations([]) == ''


# =============================================================================
# Runtime header
# =============================================================================

class TestRuntime:

    def test_exceptions_runtime(self):
        runtime = generate_runtime(ErrorMode.EXCEPTIONS)
        assert "#pragma once" in runtime
        assert "class ParsingException" in runtime
        assert "T read_little_integer(std::istream &stream)" in runtime
        assert "T read_big_integer(std::istream &stream)" in runtime
        assert "read_user_length_string(" in runtime
        assert "read_cstyle_array(" in runtime
        assert "_nothrow" not in runtime

    def test_status_runtime(self):
        runtime = generate_runtime(ErrorMode.STATUS_CODE)
        assert "read_little_integer_nothrow(T &dst, std::istream &stream)" in runtime
        assert "read_big_integer_nothrow(T &dst, std::istream &stream)" in runtime
        assert "return ParserStatus::ALLOCATION_ERROR;" in runtime
        assert "throw ParsingException" not in runtime

    @pytest.mark.parametrize('mode', list(ErrorMode))
    def test_all_sign_correctors(self, mode):
        runtime = generate_runtime(mode)
        for name in ('twoscomp', 'onescomp', 'signbit', 'excesskbiased'):
            assert f"T correct_sign_{name}(" in runtime

    def test_byte_order_loops(self):
        runtime = generate_runtime()
        assert "for (unsigned i = 0; i != N; i++){" in runtime
        assert "for (unsigned i = N; i-- != 0;){" in runtime

    def test_braces_balanced(self):
        for mode in ErrorMode:
            runtime = generate_runtime(mode)
            assert runtime.count('{') == runtime.count('}')
