"""Token definitions for the Sofa language."""

from enum import Enum, auto
from dataclasses import dataclass


class TokenType(Enum):
  # Keywords
  FN = auto()
  LET = auto()
  IF = auto()
  ELSE = auto()
  LOOP = auto()
  RETURN = auto()
  TRUE = auto()
  FALSE = auto()

  # Identifiers and literals
  IDENT = auto()
  INT = auto()

  # Punctuation
  COLON = auto()
  ARROW = auto()
  LPAREN = auto()
  RPAREN = auto()
  LBRACKET = auto()
  RBRACKET = auto()
  LBRACE = auto()
  RBRACE = auto()
  COMMA = auto()
  SEMICOLON = auto()

  # Operators
  PLUS = auto()
  MINUS = auto()
  STAR = auto()
  SLASH = auto()
  PERCENT = auto()
  AMP = auto()  # & for references and bitwise and
  PIPE = auto()
  CARET = auto()
  AMPAMP = auto()
  PIPEPIPE = auto()

  # Comparison
  EQ = auto()
  NE = auto()
  LT = auto()
  GT = auto()
  LE = auto()
  GE = auto()

  # Assignment
  ASSIGN = auto()

  # End of file
  EOF = auto()


KEYWORDS: dict[str, TokenType] = {
  "fn": TokenType.FN,
  "let": TokenType.LET,
  "if": TokenType.IF,
  "else": TokenType.ELSE,
  "loop": TokenType.LOOP,
  "return": TokenType.RETURN,
  "true": TokenType.TRUE,
  "false": TokenType.FALSE,
}


@dataclass(frozen=True, slots=True)
class Token:
  type: TokenType
  value: str
  line: int
  column: int

  def __repr__(self) -> str:
    return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
