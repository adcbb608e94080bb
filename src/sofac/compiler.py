"""Compiler pipeline for the Sofa language."""

import os
import logging
import tempfile
import subprocess
from pathlib import Path
from dataclasses import dataclass

from .lexer import LexerError, tokenize
from .parser import ParseError, parse
from .checker import TypeError
from .codegen import CodegenError, generate

logger = logging.getLogger(__name__)

DEFAULT_CC = "gcc"


@dataclass
class CompileResult:
  """Result of a compilation."""

  success: bool
  error: str | None = None
  assembly: str | None = None


class Compiler:
  """Orchestrates the compilation pipeline."""

  def __init__(self, cc: str | None = None) -> None:
    # C compiler driver used to assemble and link
    self.cc = cc or os.environ.get("SOFAC_CC", DEFAULT_CC)

  def compile_to_asm(self, source: str) -> CompileResult:
    """Compile source code to x86-64 assembly."""
    try:
      # Lexing
      tokens = tokenize(source)
      logger.debug("lexed %d tokens", len(tokens))

      # Parsing (names and types are resolved here)
      ast = parse(tokens)
      logger.debug("parsed %d function definitions", len(ast.definitions))

      # Code generation (type checks happen while lowering)
      assembly = generate(ast)
      logger.debug("generated %d lines of assembly", assembly.count("\n"))

      return CompileResult(success=True, assembly=assembly)

    except LexerError as e:
      return CompileResult(success=False, error=f"Lexer error: {e}")
    except ParseError as e:
      return CompileResult(success=False, error=f"Parse error: {e}")
    except TypeError as e:
      return CompileResult(success=False, error=f"Type error: {e}")
    except CodegenError as e:
      return CompileResult(success=False, error=f"Codegen error: {e}")
    except Exception as e:
      logger.debug("internal error", exc_info=True)
      return CompileResult(success=False, error=f"Internal error: {e}")

  def compile_to_binary(self, source: str, output_path: Path, keep_asm: bool = False) -> CompileResult:
    """Compile source code to an executable binary."""
    result = self.compile_to_asm(source)
    if not result.success or result.assembly is None:
      return result

    try:
      with tempfile.TemporaryDirectory() as tmpdir:
        asm_path = Path(tmpdir) / "output.s"

        # Write assembly
        asm_path.write_text(result.assembly)

        # Optionally save assembly file alongside output
        if keep_asm:
          output_path.with_suffix(".s").write_text(result.assembly)

        # Assemble and link
        logger.debug("linking %s with %s", output_path, self.cc)
        link_result = subprocess.run(
          [self.cc, "-o", str(output_path), str(asm_path)],
          capture_output=True,
          text=True,
        )
        if link_result.returncode != 0:
          return CompileResult(success=False, error=f"Linker error: {link_result.stderr}")

      return CompileResult(success=True, assembly=result.assembly)

    except FileNotFoundError as e:
      return CompileResult(
        success=False,
        error=f"Tool not found: {e}. Make sure '{self.cc}' is installed.",
      )


def compile_source(source: str) -> CompileResult:
  """Convenience function to compile source to assembly."""
  return Compiler().compile_to_asm(source)


def compile_file(source_path: Path, output_path: Path, keep_asm: bool = False) -> CompileResult:
  """Compile a source file to an executable."""
  source = source_path.read_text()
  return Compiler().compile_to_binary(source, output_path, keep_asm)
