#!/usr/bin/env python3
"""
record_compiler.py - Compile record schemas into C++ parsers

Usage:
    python tools/record_compiler.py schema.rec -o records.h
    python tools/record_compiler.py schema.xml --status-codes --runtime
    python tools/record_compiler.py a.rec b.xml --vectors vectors.yaml

Schemas ending in .xml are read as element trees, anything else as the
line-oriented schema language (see schema_parser.py). Both kinds can be
mixed; types are emitted in the order they were compiled, all
declarations first, then all definitions.

Options file (YAML, every key optional):
    error_mode: status          # exceptions | status
    namespace_close: innermost  # innermost | opening
    runtime: true               # prepend the runtime support header
    vectors: build/vectors.yaml # write boundary test vectors
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

import generate_cpp
from generate_cpp import ErrorMode, NamespaceClose
from generate_vectors import BoundaryVector, generate_vectors, vectors_to_yaml
from record_model import SchemaType
from schema_errors import CompileStatus, SchemaError
from schema_parser import SchemaParser
from schema_xml import TreeIngester, TreeNode, load_xml


logger = logging.getLogger(__name__)


# =============================================================================
# Options
# =============================================================================

@dataclass
class CompilerOptions:
    error_mode: ErrorMode = ErrorMode.EXCEPTIONS
    namespace_close: NamespaceClose = NamespaceClose.INNERMOST
    emit_runtime: bool = False
    vectors_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CompilerOptions':
        options = cls()
        for key, value in data.items():
            if key == 'error_mode':
                options.error_mode = ErrorMode(value)
            elif key == 'namespace_close':
                options.namespace_close = NamespaceClose(value)
            elif key == 'runtime':
                options.emit_runtime = bool(value)
            elif key == 'vectors':
                options.vectors_path = Path(value) if value else None
            else:
                raise ValueError(f"Unknown option: {key}")
        return options


def load_options(path: Path) -> CompilerOptions:
    """Load compiler options from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: options must be a mapping")
    return CompilerOptions.from_dict(data)


# =============================================================================
# Compiler session
# =============================================================================

class RecordCompiler:
    """
    One compilation session.

    Holds the compiled types and the schema-language parse state, so
    several files (of either kind) can be compiled into one output. Not
    thread-safe; use one instance per concurrent compilation.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()
        self.types: List[SchemaType] = []
        self.parser = SchemaParser(self.types)

    def compile_text(self, text: str, source: Optional[str] = None) -> None:
        self.parser.feed(text, source)

    def compile_from_domain_language(self, path) -> None:
        path = Path(path)
        try:
            text = path.read_text()
        except FileNotFoundError:
            raise SchemaError(CompileStatus.FILE_NOT_FOUND, source=str(path)) from None
        except (OSError, UnicodeDecodeError) as e:
            raise SchemaError(CompileStatus.FILE_ERROR, str(e), source=str(path)) from None

        before = len(self.types)
        self.compile_text(text, str(path))
        if self.parser.depth:
            logger.warning("%s: %d scope(s) still open at end of file", path, self.parser.depth)
        logger.info("Compiled %d type(s) from %s", len(self.types) - before, path)

    def compile_tree(self, root: TreeNode, source: Optional[str] = None) -> None:
        ingester = TreeIngester(self.types, self.parser.state)
        try:
            ingester.ingest(root)
        except SchemaError as e:
            raise e.located(source=source) from None

    def compile_from_tree(self, path) -> None:
        path = Path(path)
        before = len(self.types)
        self.compile_tree(load_xml(path), str(path))
        logger.info("Compiled %d type(s) from %s", len(self.types) - before, path)

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def _mode(self, mode: Optional[ErrorMode]) -> ErrorMode:
        return self.options.error_mode if mode is None else mode

    def generate_declarations(self, mode: Optional[ErrorMode] = None) -> str:
        return generate_cpp.generate_declarations(
            self.types, self._mode(mode), self.options.namespace_close)

    def generate_definitions(self, mode: Optional[ErrorMode] = None) -> str:
        return generate_cpp.generate_definitions(
            self.types, self._mode(mode), self.options.namespace_close)

    def generate_runtime(self, mode: Optional[ErrorMode] = None) -> str:
        return generate_cpp.generate_runtime(self._mode(mode))

    def generate_vectors(self) -> List[BoundaryVector]:
        return generate_vectors(self.types)

    def generate_output(self) -> str:
        parts = []
        if self.options.emit_runtime:
            parts.append(self.generate_runtime())
        parts.append(self.generate_declarations())
        parts.append(self.generate_definitions())
        return '\n'.join(parts)


# =============================================================================
# CLI
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Compile binary record schemas into C++ parsers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s header.rec
  %(prog)s header.rec trailer.xml -o records.h --runtime
  %(prog)s header.rec --status-codes --vectors build/vectors.yaml
        """,
    )
    parser.add_argument('schemas', type=Path, nargs='+', help='Schema file(s)')
    parser.add_argument('--xml', action='store_true',
                        help='Read every schema as XML regardless of extension')
    parser.add_argument('--status-codes', action='store_true',
                        help='Report errors with ParserStatus instead of exceptions')
    parser.add_argument('--runtime', action='store_true',
                        help='Prepend the runtime support header')
    parser.add_argument('--vectors', type=Path,
                        help='Write boundary test vectors (YAML) to this file')
    parser.add_argument('--namespace-close', choices=[c.value for c in NamespaceClose],
                        help='Order in which nested namespaces are closed')
    parser.add_argument('--config', type=Path, help='YAML options file')
    parser.add_argument('-o', '--output', type=Path, help='Output file (default: stdout)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(levelname)s] %(message)s',
    )

    try:
        options = load_options(args.config) if args.config else CompilerOptions()
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Cannot load options from %s: %s", args.config, e)
        return 1

    if args.status_codes:
        options.error_mode = ErrorMode.STATUS_CODE
    if args.runtime:
        options.emit_runtime = True
    if args.vectors:
        options.vectors_path = args.vectors
    if args.namespace_close:
        options.namespace_close = NamespaceClose(args.namespace_close)

    compiler = RecordCompiler(options)
    try:
        for schema in args.schemas:
            if args.xml or schema.suffix.lower() == '.xml':
                compiler.compile_from_tree(schema)
            else:
                compiler.compile_from_domain_language(schema)
    except SchemaError as e:
        logger.error("%s", e)
        return 1

    output = compiler.generate_output()

    if options.vectors_path:
        options.vectors_path.parent.mkdir(parents=True, exist_ok=True)
        options.vectors_path.write_text(vectors_to_yaml(compiler.generate_vectors()))
        logger.info("Vectors written to %s", options.vectors_path)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output)
        logger.info("Generated: %s", args.output)
    else:
        sys.stdout.write(output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
