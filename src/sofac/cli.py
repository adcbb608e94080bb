"""Command-line interface for the sofa compiler."""

import sys
import logging
import argparse
from pathlib import Path

from .compiler import Compiler

DEFAULT_OUTPUT = Path("tmp.s")


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    prog="sofac",
    description="sofac - compiles sofa source to x86-64 assembly",
  )

  input_group = parser.add_mutually_exclusive_group(required=True)
  input_group.add_argument("-c", "--console", metavar="TEXT", help="read input from console")
  input_group.add_argument("-f", "--file", type=Path, metavar="PATH", help="read input from file")

  output_group = parser.add_mutually_exclusive_group()
  output_group.add_argument("-o", "--out", type=Path, metavar="PATH", help=f"output file (default: {DEFAULT_OUTPUT})")
  output_group.add_argument("-s", "--stdout", action="store_true", help="output to stdout")

  parser.add_argument("-v", "--verbose", action="store_true", help="log compiler phases to stderr")
  return parser


def main(argv: list[str] | None = None) -> int:
  """Main entry point for the sofa compiler."""
  args = build_parser().parse_args(argv)

  root = logging.getLogger("sofac")
  if not root.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(handler)
  root.setLevel(logging.DEBUG if args.verbose else logging.WARNING)

  # Read source
  if args.file is not None:
    if not args.file.exists():
      print(f"Error: Source file '{args.file}' not found", file=sys.stderr)
      return 1
    source = args.file.read_text()
  else:
    source = args.console

  # Compile
  result = Compiler().compile_to_asm(source)
  if not result.success or result.assembly is None:
    print(f"Error: {result.error}", file=sys.stderr)
    return 1

  if args.stdout:
    sys.stdout.write(result.assembly)
  else:
    output_path = args.out or DEFAULT_OUTPUT
    output_path.write_text(result.assembly)
  return 0


if __name__ == "__main__":
  sys.exit(main())
