"""Lexer for the Sofa language."""

from .tokens import KEYWORDS, Token, TokenType

# Single-character tokens that never start a two-character operator
SIMPLE_TOKENS: dict[str, TokenType] = {
  "(": TokenType.LPAREN,
  ")": TokenType.RPAREN,
  "[": TokenType.LBRACKET,
  "]": TokenType.RBRACKET,
  "{": TokenType.LBRACE,
  "}": TokenType.RBRACE,
  ",": TokenType.COMMA,
  ";": TokenType.SEMICOLON,
  ":": TokenType.COLON,
  "+": TokenType.PLUS,
  "*": TokenType.STAR,
  "%": TokenType.PERCENT,
  "^": TokenType.CARET,
}


class LexerError(Exception):
  """Raised when the lexer encounters invalid input."""

  def __init__(self, message: str, line: int, column: int) -> None:
    super().__init__(f"{message} at line {line}, column {column}")
    self.line, self.column = line, column


class Lexer:
  """Tokenizes Sofa source code."""

  def __init__(self, source: str) -> None:
    self.source = source
    self.pos = 0
    self.line = 1
    self.column = 1
    self.tokens: list[Token] = []

  def _current(self) -> str:
    return self.source[self.pos] if self.pos < len(self.source) else ""

  def _peek(self) -> str:
    return self.source[self.pos + 1] if self.pos + 1 < len(self.source) else ""

  def _advance(self) -> str:
    ch = self._current()
    self.pos += 1
    self.line, self.column = (self.line + 1, 1) if ch == "\n" else (self.line, self.column + 1)
    return ch

  def _emit(self, type: TokenType, value: str, line: int, col: int) -> None:
    self.tokens.append(Token(type, value, line, col))

  def _read_while(self, pred) -> str:
    start = self.pos
    while self._current() and pred(self._current()):
      self._advance()
    return self.source[start : self.pos]

  def _two_char_token(self, second: str, two_type: TokenType, one_type: TokenType, line: int, col: int) -> None:
    """Handle potential two-character tokens like ==, !=, <=, >=, ->, &&, ||."""
    self._advance()
    if self._current() == second:
      self._advance()
      self._emit(two_type, f"{self.source[self.pos - 2]}{second}", line, col)
    else:
      self._emit(one_type, self.source[self.pos - 1], line, col)

  def tokenize(self) -> list[Token]:
    """Tokenize the entire source and return a list of tokens."""
    while self.pos < len(self.source):
      ch = self._current()
      line, col = self.line, self.column

      match ch:
        case c if c.isspace():
          self._advance()
        case "/" if self._peek() == "/":
          self._read_while(lambda c: c != "\n")
        case "/":
          self._advance()
          self._emit(TokenType.SLASH, "/", line, col)
        case c if c.isascii() and c.isdigit():
          self._emit(TokenType.INT, self._read_while(lambda c: c.isascii() and c.isdigit()), line, col)
        case c if (c.isascii() and c.isalpha()) or c == "_":
          ident = self._read_while(lambda c: (c.isascii() and c.isalnum()) or c == "_")
          self._emit(KEYWORDS.get(ident, TokenType.IDENT), ident, line, col)
        case "-":
          self._two_char_token(">", TokenType.ARROW, TokenType.MINUS, line, col)
        case "=":
          self._two_char_token("=", TokenType.EQ, TokenType.ASSIGN, line, col)
        case "!":
          self._advance()
          if self._current() == "=":
            self._advance()
            self._emit(TokenType.NE, "!=", line, col)
          else:
            raise LexerError("Unexpected character '!'", line, col)
        case "<":
          self._two_char_token("=", TokenType.LE, TokenType.LT, line, col)
        case ">":
          self._two_char_token("=", TokenType.GE, TokenType.GT, line, col)
        case "&":
          self._two_char_token("&", TokenType.AMPAMP, TokenType.AMP, line, col)
        case "|":
          self._two_char_token("|", TokenType.PIPEPIPE, TokenType.PIPE, line, col)
        case c if c in SIMPLE_TOKENS:
          self._advance()
          self._emit(SIMPLE_TOKENS[c], c, line, col)
        case _:
          raise LexerError(f"Unexpected character '{ch}'", line, col)

    self._emit(TokenType.EOF, "", self.line, self.column)
    return self.tokens


def tokenize(source: str) -> list[Token]:
  """Convenience function to tokenize source code."""
  return Lexer(source).tokenize()
