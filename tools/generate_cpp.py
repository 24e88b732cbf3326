#!/usr/bin/env python3
"""
generate_cpp.py - Generate C++ record parsers from compiled schema types

Generates, per SchemaType:
    - a declaration: struct with the field layout and constructor prototype
    - a definition: constructor that reads every field from a std::istream
and, once per output, the runtime support header those constructors call.

Two error modes:
    EXCEPTIONS   readers return the value and throw ParsingException
    STATUS_CODE  readers fill an output parameter and return ParserStatus;
                 the constructor reports through a `ParserStatus &status`
                 parameter and sets `ok` only when every field was read
"""

from enum import Enum
from itertools import groupby
from typing import Iterable, List

from int_codec import NegativeEncoding
from record_model import (
    ArrayField, FixedLength, IntegerField, LengthSpec, NullTerminated,
    PrestatedLength, Requirement, SchemaType, StringField, UserLength,
)


class ErrorMode(Enum):
    EXCEPTIONS = 'exceptions'
    STATUS_CODE = 'status'


class NamespaceClose(Enum):
    INNERMOST = 'innermost'   # standard nesting: last opened, first closed
    OPENING = 'opening'       # close in the order the namespaces were opened


# (width in bytes, signed) -> C++ type
CPP_TYPES = {
    (1, False): 'uint8_t',
    (1, True): 'int8_t',
    (2, False): 'uint16_t',
    (2, True): 'int16_t',
    (4, False): 'uint32_t',
    (4, True): 'int32_t',
    (8, False): 'uint64_t',
    (8, True): 'int64_t',
}

SIGN_CORRECTORS = {
    NegativeEncoding.TWOS_COMPLEMENT: 'correct_sign_twoscomp',
    NegativeEncoding.ONES_COMPLEMENT: 'correct_sign_onescomp',
    NegativeEncoding.SIGN_MAGNITUDE: 'correct_sign_signbit',
    NegativeEncoding.EXCESS_K: 'correct_sign_excesskbiased',
}

STATUS_CHECK = [
    "\tif (status != ParserStatus::SUCCESS)",
    "\t\treturn;",
]


def cpp_type(datum: IntegerField) -> str:
    return CPP_TYPES[(datum.width, datum.signed)]


def _suffix(mode: ErrorMode) -> str:
    return '_nothrow' if mode == ErrorMode.STATUS_CODE else ''


# =============================================================================
# Namespaces
# =============================================================================

def open_namespaces(path: List[str]) -> List[str]:
    return [f"namespace {ns}{{" for ns in path]


def close_namespaces(path: List[str],
                     order: NamespaceClose = NamespaceClose.INNERMOST) -> List[str]:
    names = reversed(path) if order == NamespaceClose.INNERMOST else path
    return [f"}} // namespace {ns}" for ns in names]


# =============================================================================
# Read routines
# =============================================================================

def integer_reader(datum: IntegerField, mode: ErrorMode) -> str:
    """Name of the runtime template that reads `datum`, fully instantiated."""
    ctype = cpp_type(datum)
    corrector = SIGN_CORRECTORS[datum.format.negative_encoding]
    return (f"read_{datum.format.byte_order.value}_integer{_suffix(mode)}"
            f"<{ctype}, {datum.width}, {corrector}<{ctype}>>")


def length_routine(length: LengthSpec) -> str:
    if isinstance(length, (FixedLength, PrestatedLength)):
        return 'sized'
    if isinstance(length, UserLength):
        return 'user_length'
    if isinstance(length, NullTerminated):
        return 'cstyle'
    raise TypeError(f"Unknown length kind: {type(length).__name__}")


def length_arguments(length: LengthSpec) -> str:
    if isinstance(length, FixedLength):
        return f", {length.expr}"
    if isinstance(length, PrestatedLength):
        return f", this->{length.field_name}"
    if isinstance(length, UserLength):
        return f", {length.param_name}"
    if isinstance(length, NullTerminated):
        return ''
    raise TypeError(f"Unknown length kind: {type(length).__name__}")


def generate_read_code(datum, mode: ErrorMode) -> str:
    """One read statement (without indentation or trailing semicolon)."""
    if not isinstance(datum, (IntegerField, StringField, ArrayField)):
        raise TypeError(f"Unknown field kind: {type(datum).__name__}")
    target = f"this->{datum.name}"
    exceptions = mode == ErrorMode.EXCEPTIONS

    if isinstance(datum, IntegerField):
        reader = integer_reader(datum, mode)
        if exceptions:
            return f"{target} = {reader}(stream)"
        return f"{reader}({target}, stream)"

    if isinstance(datum, StringField):
        routine = f"read_{length_routine(datum.length)}_string{_suffix(mode)}"
        args = length_arguments(datum.length)
        if exceptions:
            return f"{target} = {routine}(stream{args})"
        return f"{routine}({target}, stream{args})"

    ctype = cpp_type(datum.element)
    routine = (f"read_{length_routine(datum.length)}_array{_suffix(mode)}"
               f"<{ctype}, {integer_reader(datum.element, mode)}>")
    args = length_arguments(datum.length)
    if exceptions:
        return f"{target} = {routine}(stream{args})"
    return f"{routine}({target}, stream{args})"


def generate_requirement_code(name: str, requirement: Requirement,
                              mode: ErrorMode) -> List[str]:
    condition = f"\tif (!({requirement.expression('this->' + name)}))"
    if mode == ErrorMode.EXCEPTIONS:
        return [
            condition,
            "\t\tthrow ParsingException(ParserStatus::REQUIREMENT_NOT_MET);",
        ]
    return [
        condition + "{",
        "\t\tstatus = ParserStatus::REQUIREMENT_NOT_MET;",
        "\t\treturn;",
        "\t}",
    ]


# =============================================================================
# Declarations
# =============================================================================

def layout_key(datum: IntegerField):
    """Widest first; unsigned before signed at equal width."""
    return (-datum.width, datum.signed)


def integer_groups(schema_type: SchemaType) -> List[List[IntegerField]]:
    """Integer fields sorted by layout_key, runs of one C++ type grouped.

    The sort is stable, so fields of the same type keep declaration order.
    """
    integers = [f for f in schema_type.fields if isinstance(f, IntegerField)]
    ordered = sorted(integers, key=layout_key)
    return [list(group) for _, group in groupby(ordered, key=layout_key)]


def constructor_parameters(schema_type: SchemaType, mode: ErrorMode) -> str:
    params = ['std::istream &stream']
    if mode == ErrorMode.STATUS_CODE:
        params.append('ParserStatus &status')
    params.extend(f"size_t {p}" for p in schema_type.user_parameters())
    return ', '.join(params)


def member_declaration(datum) -> str:
    if isinstance(datum, StringField):
        return f"\tstd::string {datum.name};"
    if isinstance(datum, ArrayField):
        return f"\tstd::vector<{cpp_type(datum.element)}> {datum.name};"
    raise TypeError(f"Unknown field kind: {type(datum).__name__}")


def generate_declaration(schema_type: SchemaType,
                         mode: ErrorMode = ErrorMode.EXCEPTIONS,
                         close: NamespaceClose = NamespaceClose.INNERMOST) -> str:
    """Generate the struct declaration for one type."""
    lines = open_namespaces(schema_type.namespace_path)
    lines.append(f"struct {schema_type.name}{{")

    for group in integer_groups(schema_type):
        names = ',\n\t\t'.join(f.name for f in group)
        lines.append(f"\t{cpp_type(group[0])} {names};")

    if mode == ErrorMode.STATUS_CODE:
        lines.append("\tbool ok;")

    for datum in schema_type.fields:
        if not isinstance(datum, IntegerField):
            lines.append(member_declaration(datum))

    lines.append("")
    lines.append(f"\t{schema_type.name}({constructor_parameters(schema_type, mode)});")
    lines.append(f"}}; // struct {schema_type.name}")
    lines.extend(close_namespaces(schema_type.namespace_path, close))
    return '\n'.join(lines) + '\n'


# =============================================================================
# Definitions
# =============================================================================

def generate_definition(schema_type: SchemaType,
                        mode: ErrorMode = ErrorMode.EXCEPTIONS,
                        close: NamespaceClose = NamespaceClose.INNERMOST) -> str:
    """Generate the parsing constructor for one type.

    Fields are read in declaration order, not layout order.
    """
    name = schema_type.name
    status_mode = mode == ErrorMode.STATUS_CODE
    init = ": ok(false)" if status_mode else ""

    lines = open_namespaces(schema_type.namespace_path)
    lines.append(f"{name}::{name}({constructor_parameters(schema_type, mode)}){init}{{")

    for datum in schema_type.fields:
        read = generate_read_code(datum, mode)
        if status_mode:
            lines.append(f"\tstatus = {read};")
            lines.extend(STATUS_CHECK)
        else:
            lines.append(f"\t{read};")
        requirement = getattr(datum, 'requirement', None)
        if requirement is not None:
            lines.extend(generate_requirement_code(datum.name, requirement, mode))

    if status_mode:
        lines.append("\tthis->ok = true;")
        lines.append("\tstatus = ParserStatus::SUCCESS;")
    lines.append("}")
    lines.extend(close_namespaces(schema_type.namespace_path, close))
    return '\n'.join(lines) + '\n'


def generate_declarations(types: Iterable[SchemaType],
                          mode: ErrorMode = ErrorMode.EXCEPTIONS,
                          close: NamespaceClose = NamespaceClose.INNERMOST) -> str:
    return ''.join(generate_declaration(t, mode, close) + '\n' for t in types)


def generate_definitions(types: Iterable[SchemaType],
                         mode: ErrorMode = ErrorMode.EXCEPTIONS,
                         close: NamespaceClose = NamespaceClose.INNERMOST) -> str:
    return ''.join(generate_definition(t, mode, close) + '\n' for t in types)


# =============================================================================
# Runtime support header
# =============================================================================

RUNTIME_PREAMBLE = """\
/*
 * Record parser runtime ({mode_name})
 *
 * Generated by: generate_cpp.py
 * DO NOT EDIT - Regenerate with the record compiler
 */

#pragma once

#include <cstddef>
#include <cstdint>
#include <exception>
#include <istream>
#include <new>
#include <string>
#include <type_traits>
#include <vector>

enum class ParserStatus{{
\tSUCCESS,
\tUNEXPECTED_EOF,
\tREQUIREMENT_NOT_MET,
\tALLOCATION_ERROR,
}};

class ParsingException : public std::exception{{
\tParserStatus status;
public:
\tParsingException(ParserStatus status): status(status){{}}
\tParserStatus get_status() const{{
\t\treturn this->status;
\t}}
\tconst char *what() const noexcept override{{
\t\treturn "record parsing failed";
\t}}
}};

/* ============================================
 * Negative number mappings
 * ============================================ */

template <typename T>
T correct_sign_twoscomp(typename std::make_unsigned<T>::type x){{
\ttypedef typename std::make_unsigned<T>::type U;
\tconst U top = (U)1 << (sizeof(T) * 8 - 1);
\tif (std::is_unsigned<T>::value || !(x & top))
\t\treturn (T)x;
\treturn -(T)(U)~x - 1;
}}

template <typename T>
T correct_sign_onescomp(typename std::make_unsigned<T>::type x){{
\ttypedef typename std::make_unsigned<T>::type U;
\tconst U top = (U)1 << (sizeof(T) * 8 - 1);
\tif (std::is_unsigned<T>::value || !(x & top))
\t\treturn (T)x;
\treturn -(T)(U)~x;
}}

template <typename T>
T correct_sign_signbit(typename std::make_unsigned<T>::type x){{
\ttypedef typename std::make_unsigned<T>::type U;
\tconst U top = (U)1 << (sizeof(T) * 8 - 1);
\tif (std::is_unsigned<T>::value || !(x & top))
\t\treturn (T)x;
\treturn -(T)(U)(x & (U)~top);
}}

template <typename T>
T correct_sign_excesskbiased(typename std::make_unsigned<T>::type x){{
\ttypedef typename std::make_unsigned<T>::type U;
\tif (std::is_unsigned<T>::value)
\t\treturn (T)x;
\tconst U top = (U)1 << (sizeof(T) * 8 - 1);
\treturn correct_sign_twoscomp<T>((U)(x ^ top));
}}
"""


def _fail(mode: ErrorMode, status: str) -> str:
    if mode == ErrorMode.EXCEPTIONS:
        return f"throw ParsingException(ParserStatus::{status});"
    return f"return ParserStatus::{status};"


def _succeed(mode: ErrorMode, expr: str) -> List[str]:
    if mode == ErrorMode.EXCEPTIONS:
        return [f"\treturn {expr};"]
    return [f"\tdst = {expr};", "\treturn ParserStatus::SUCCESS;"]


def _runtime_integer_reader(order: str, mode: ErrorMode) -> List[str]:
    if mode == ErrorMode.EXCEPTIONS:
        signature = f"T read_{order}_integer(std::istream &stream)"
    else:
        signature = f"ParserStatus read_{order}_integer_nothrow(T &dst, std::istream &stream)"
    if order == 'big':
        loop = "\tfor (unsigned i = 0; i != N; i++){"
    else:
        loop = "\tfor (unsigned i = N; i-- != 0;){"
    return [
        "template <typename T, unsigned N, T F(typename std::make_unsigned<T>::type)>",
        signature + "{",
        "\tunsigned char bytes[N];",
        "\tstream.read((char *)bytes, N);",
        "\tif ((size_t)stream.gcount() < N)",
        "\t\t" + _fail(mode, 'UNEXPECTED_EOF'),
        "\ttypename std::make_unsigned<T>::type temp = 0;",
        loop,
        "\t\ttemp <<= 8;",
        "\t\ttemp |= bytes[i];",
        "\t}",
        *_succeed(mode, 'F(temp)'),
        "}",
        "",
    ]


def _runtime_strings(mode: ErrorMode) -> List[str]:
    if mode == ErrorMode.EXCEPTIONS:
        return [
            "inline std::string read_sized_string(std::istream &stream, size_t length){",
            "\tstd::string temp(length, '\\0');",
            "\tstream.read(&temp[0], length);",
            "\tif ((size_t)stream.gcount() < length)",
            "\t\t" + _fail(mode, 'UNEXPECTED_EOF'),
            "\treturn temp;",
            "}",
            "",
            "inline std::string read_user_length_string(std::istream &stream, size_t length){",
            "\treturn read_sized_string(stream, length);",
            "}",
            "",
            "inline std::string read_cstyle_string(std::istream &stream){",
            "\tstd::string temp;",
            "\twhile (true){",
            "\t\tint c = stream.get();",
            "\t\tif (c == std::char_traits<char>::eof())",
            "\t\t\t" + _fail(mode, 'UNEXPECTED_EOF'),
            "\t\tif (!c)",
            "\t\t\tbreak;",
            "\t\ttemp.push_back((char)c);",
            "\t}",
            "\treturn temp;",
            "}",
            "",
        ]
    return [
        "inline ParserStatus read_sized_string_nothrow(std::string &dst, std::istream &stream, size_t length){",
        "\tstd::string temp;",
        "\ttry{",
        "\t\ttemp.resize(length);",
        "\t}catch (const std::bad_alloc &){",
        "\t\t" + _fail(mode, 'ALLOCATION_ERROR'),
        "\t}",
        "\tstream.read(&temp[0], length);",
        "\tif ((size_t)stream.gcount() < length)",
        "\t\t" + _fail(mode, 'UNEXPECTED_EOF'),
        "\tdst.swap(temp);",
        "\treturn ParserStatus::SUCCESS;",
        "}",
        "",
        "inline ParserStatus read_user_length_string_nothrow(std::string &dst, std::istream &stream, size_t length){",
        "\treturn read_sized_string_nothrow(dst, stream, length);",
        "}",
        "",
        "inline ParserStatus read_cstyle_string_nothrow(std::string &dst, std::istream &stream){",
        "\tstd::string temp;",
        "\twhile (true){",
        "\t\tint c = stream.get();",
        "\t\tif (c == std::char_traits<char>::eof())",
        "\t\t\t" + _fail(mode, 'UNEXPECTED_EOF'),
        "\t\tif (!c)",
        "\t\t\tbreak;",
        "\t\ttry{",
        "\t\t\ttemp.push_back((char)c);",
        "\t\t}catch (const std::bad_alloc &){",
        "\t\t\t" + _fail(mode, 'ALLOCATION_ERROR'),
        "\t\t}",
        "\t}",
        "\tdst.swap(temp);",
        "\treturn ParserStatus::SUCCESS;",
        "}",
        "",
    ]


def _runtime_arrays(mode: ErrorMode) -> List[str]:
    if mode == ErrorMode.EXCEPTIONS:
        return [
            "template <typename T, T R(std::istream &)>",
            "std::vector<T> read_sized_array(std::istream &stream, size_t length){",
            "\tstd::vector<T> temp;",
            "\ttemp.reserve(length);",
            "\tfor (size_t i = 0; i != length; i++)",
            "\t\ttemp.push_back(R(stream));",
            "\treturn temp;",
            "}",
            "",
            "template <typename T, T R(std::istream &)>",
            "std::vector<T> read_user_length_array(std::istream &stream, size_t length){",
            "\treturn read_sized_array<T, R>(stream, length);",
            "}",
            "",
            "template <typename T, T R(std::istream &)>",
            "std::vector<T> read_cstyle_array(std::istream &stream){",
            "\tstd::vector<T> temp;",
            "\twhile (true){",
            "\t\tT element = R(stream);",
            "\t\tif (!element)",
            "\t\t\tbreak;",
            "\t\ttemp.push_back(element);",
            "\t}",
            "\treturn temp;",
            "}",
            "",
        ]
    return [
        "template <typename T, ParserStatus R(T &, std::istream &)>",
        "ParserStatus read_sized_array_nothrow(std::vector<T> &dst, std::istream &stream, size_t length){",
        "\tstd::vector<T> temp;",
        "\ttry{",
        "\t\ttemp.reserve(length);",
        "\t}catch (const std::bad_alloc &){",
        "\t\t" + _fail(mode, 'ALLOCATION_ERROR'),
        "\t}",
        "\tfor (size_t i = 0; i != length; i++){",
        "\t\tT element;",
        "\t\tParserStatus status = R(element, stream);",
        "\t\tif (status != ParserStatus::SUCCESS)",
        "\t\t\treturn status;",
        "\t\ttemp.push_back(element);",
        "\t}",
        "\tdst.swap(temp);",
        "\treturn ParserStatus::SUCCESS;",
        "}",
        "",
        "template <typename T, ParserStatus R(T &, std::istream &)>",
        "ParserStatus read_user_length_array_nothrow(std::vector<T> &dst, std::istream &stream, size_t length){",
        "\treturn read_sized_array_nothrow<T, R>(dst, stream, length);",
        "}",
        "",
        "template <typename T, ParserStatus R(T &, std::istream &)>",
        "ParserStatus read_cstyle_array_nothrow(std::vector<T> &dst, std::istream &stream){",
        "\tstd::vector<T> temp;",
        "\twhile (true){",
        "\t\tT element;",
        "\t\tParserStatus status = R(element, stream);",
        "\t\tif (status != ParserStatus::SUCCESS)",
        "\t\t\treturn status;",
        "\t\tif (!element)",
        "\t\t\tbreak;",
        "\t\ttry{",
        "\t\t\ttemp.push_back(element);",
        "\t\t}catch (const std::bad_alloc &){",
        "\t\t\t" + _fail(mode, 'ALLOCATION_ERROR'),
        "\t\t}",
        "\t}",
        "\tdst.swap(temp);",
        "\treturn ParserStatus::SUCCESS;",
        "}",
        "",
    ]


def generate_runtime(mode: ErrorMode = ErrorMode.EXCEPTIONS) -> str:
    """Generate the support header included before the definitions."""
    mode_name = 'exceptions' if mode == ErrorMode.EXCEPTIONS else 'status codes'
    lines = [RUNTIME_PREAMBLE.format(mode_name=mode_name)]
    lines.append("/* ============================================")
    lines.append(" * Readers")
    lines.append(" * ============================================ */")
    lines.append("")
    for order in ('little', 'big'):
        lines.extend(_runtime_integer_reader(order, mode))
    lines.extend(_runtime_strings(mode))
    lines.extend(_runtime_arrays(mode))
    return '\n'.join(lines)
