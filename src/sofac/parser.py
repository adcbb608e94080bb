"""Recursive descent parser for the Sofa language.

Names are resolved while parsing: parameters, `let` bindings and functions are
entered into a flat signature table as soon as they are parsed, and every use
of an identifier is looked up there. A name has to appear textually before its
first use, including functions called from earlier definitions.
"""

from .ast import (
  I64,
  BOOL,
  VOID,
  NEVER,
  Expr,
  Init,
  Loop,
  Stmt,
  Type,
  UnOp,
  BinOp,
  Block,
  FnDef,
  Local,
  Assign,
  FnCall,
  FnType,
  IfElse,
  Number,
  Return,
  Program,
  PtrType,
  Enclosed,
  ArrayType,
  BoolLiteral,
)
from .tokens import Token, TokenType
from .checker import type_of


class ParseError(Exception):
  """Raised when the parser encounters a syntax error."""

  def __init__(self, message: str, token: Token) -> None:
    super().__init__(f"{message} at line {token.line}, column {token.column}")
    self.token = token


class UndefinedError(ParseError):
  """Raised when an identifier is used before it is declared."""

  pass


# All binary operators share one precedence tier and associate to the right
OP_STRINGS: dict[TokenType, str] = {
  TokenType.PLUS: "+",
  TokenType.MINUS: "-",
  TokenType.STAR: "*",
  TokenType.SLASH: "/",
  TokenType.PERCENT: "%",
  TokenType.AMP: "&",
  TokenType.PIPE: "|",
  TokenType.CARET: "^",
  TokenType.EQ: "==",
  TokenType.NE: "!=",
  TokenType.LT: "<",
  TokenType.LE: "<=",
  TokenType.GT: ">",
  TokenType.GE: ">=",
  TokenType.AMPAMP: "&&",
  TokenType.PIPEPIPE: "||",
}

SCALAR_TYPES: dict[str, Type] = {
  "i64": I64,
  "bool": BOOL,
  "void": VOID,
  "never": NEVER,
}

# Expressions that end in a block and need no ';' at statement position
BLOCK_LIKE: set[TokenType] = {TokenType.LBRACE, TokenType.IF, TokenType.LOOP}


def describe(token: Token) -> str:
  """Spell a token for an error message."""
  if token.type == TokenType.EOF:
    return "end of input"
  return f"'{token.value}'"


class Parser:
  """Parses tokens into a typed AST."""

  def __init__(self, tokens: list[Token]) -> None:
    self.tokens = tokens
    self.pos = 0
    # Signature table: name -> declared type of a variable or function
    self.signatures: dict[str, Type] = {}

  def _current(self) -> Token:
    return self.tokens[self.pos]

  def _at_end(self) -> bool:
    return self._current().type == TokenType.EOF

  def _check(self, *types: TokenType) -> bool:
    return self._current().type in types

  def _advance(self) -> Token:
    token = self._current()
    if not self._at_end():
      self.pos += 1
    return token

  def _expect(self, type: TokenType, message: str) -> Token:
    if not self._check(type):
      raise ParseError(f"{message}, found {describe(self._current())}", self._current())
    return self._advance()

  def _declare(self, name: str, ty: Type) -> None:
    self.signatures[name] = ty

  def _lookup(self, token: Token) -> Type:
    if token.value not in self.signatures:
      raise UndefinedError(f"Undefined identifier '{token.value}'", token)
    return self.signatures[token.value]

  # === Parsing Functions ===

  def parse(self) -> Program:
    """Parse the entire program."""
    definitions: list[FnDef] = []
    while not self._at_end():
      if self._check(TokenType.FN):
        definitions.append(self._parse_function())
      else:
        raise ParseError(f"Expected 'fn', found {describe(self._current())}", self._current())
    return Program(tuple(definitions))

  def _parse_function(self) -> FnDef:
    """Parse: fn name(params) [-> type] { body }"""
    self._expect(TokenType.FN, "Expected 'fn'")
    name_token = self._expect(TokenType.IDENT, "Expected function name")

    self._expect(TokenType.LPAREN, "Expected '('")
    params = self._parse_parameters()
    self._expect(TokenType.RPAREN, "Expected ')'")

    ret = I64
    if self._check(TokenType.ARROW):
      self._advance()
      ret = self._parse_type()

    # Registered before the body so the function can call itself
    fn_type = FnType(tuple(p.ty for p in params), ret)
    self._declare(name_token.value, fn_type)

    body = self._parse_block()
    return FnDef(name_token.value, tuple(params), fn_type, body)

  def _parse_parameters(self) -> list[Local]:
    """Parse comma-separated parameters."""
    params: list[Local] = []

    if self._check(TokenType.RPAREN):
      return params

    params.append(self._parse_parameter())

    while self._check(TokenType.COMMA):
      self._advance()
      params.append(self._parse_parameter())

    return params

  def _parse_parameter(self) -> Local:
    """Parse: name: type"""
    name_token = self._expect(TokenType.IDENT, "Expected parameter name")
    self._expect(TokenType.COLON, "Expected ':'")
    ty = self._parse_type()
    self._declare(name_token.value, ty)
    return Local(name_token.value, ty)

  def _parse_type(self) -> Type:
    """Parse a type: &T, &&T, [T; N] or a scalar name."""
    if self._check(TokenType.AMP):
      self._advance()
      return PtrType(self._parse_type())

    # '&&' is lexed as one token
    if self._check(TokenType.AMPAMP):
      self._advance()
      return PtrType(PtrType(self._parse_type()))

    if self._check(TokenType.LBRACKET):
      self._advance()
      element = self._parse_type()
      self._expect(TokenType.SEMICOLON, "Expected ';' in array type")
      size_token = self._expect(TokenType.INT, "Expected array length")
      self._expect(TokenType.RBRACKET, "Expected ']'")
      return ArrayType(element, int(size_token.value))

    token = self._expect(TokenType.IDENT, "Expected type name")
    if token.value not in SCALAR_TYPES:
      raise ParseError(f"Unknown type '{token.value}'", token)
    return SCALAR_TYPES[token.value]

  def _parse_block(self) -> Block:
    """Parse: { (expr [;])* }"""
    self._expect(TokenType.LBRACE, "Expected '{'")
    exprs: list[Expr] = []

    while not self._check(TokenType.RBRACE):
      block_like = self._check(*BLOCK_LIKE)
      # A block-like expression at statement position is not continued by an operator
      expr = self._parse_primary() if block_like else self._parse_expression()

      if self._check(TokenType.SEMICOLON):
        self._advance()
        exprs.append(Stmt(expr))
      elif self._check(TokenType.RBRACE):
        exprs.append(expr)
      elif block_like:
        exprs.append(Stmt(expr))
      else:
        raise ParseError(f"Expected ';' or '}}', found {describe(self._current())}", self._current())

    self._expect(TokenType.RBRACE, "Expected '}'")
    return Block(tuple(exprs))

  # === Expression Parsing ===

  def _parse_expression(self) -> Expr:
    """Parse a unary operand followed by at most one operator and the rest of the expression."""
    lhs = self._parse_unary()

    if self._check(TokenType.ASSIGN):
      self._advance()
      return Assign(lhs, self._parse_expression())

    op = OP_STRINGS.get(self._current().type)
    if op is None:
      return lhs
    self._advance()
    return BinOp(op, lhs, self._parse_expression())

  def _parse_unary(self) -> Expr:
    """Parse unary expression."""
    if self._check(TokenType.MINUS):
      self._advance()
      return UnOp("-", self._parse_unary())
    elif self._check(TokenType.AMP):
      self._advance()
      return UnOp("&", self._parse_unary())
    elif self._check(TokenType.AMPAMP):
      self._advance()
      return UnOp("&", UnOp("&", self._parse_unary()))
    elif self._check(TokenType.STAR):
      self._advance()
      return UnOp("*", self._parse_unary())

    return self._parse_postfix(self._parse_primary())

  def _parse_postfix(self, expr: Expr) -> Expr:
    """Parse indexing; a[i] is sugar for *(a + i)."""
    while self._check(TokenType.LBRACKET):
      self._advance()
      index = self._parse_expression()
      self._expect(TokenType.RBRACKET, "Expected ']'")
      expr = UnOp("*", BinOp("+", expr, index))
    return expr

  def _parse_primary(self) -> Expr:
    """Parse primary expression (blocks, control flow, literals, variables, calls)."""
    token = self._current()

    if token.type == TokenType.LBRACE:
      return self._parse_block()

    elif token.type == TokenType.RETURN:
      self._advance()
      return Return(self._parse_expression())

    elif token.type == TokenType.LOOP:
      self._advance()
      return Loop(self._parse_block())

    elif token.type == TokenType.IF:
      return self._parse_if()

    elif token.type == TokenType.LET:
      return self._parse_let()

    elif token.type == TokenType.LPAREN:
      self._advance()
      inner = self._parse_expression()
      self._expect(TokenType.RPAREN, "Expected ')'")
      return Enclosed(inner)

    elif token.type == TokenType.INT:
      self._advance()
      return Number(int(token.value))

    elif token.type == TokenType.TRUE:
      self._advance()
      return BoolLiteral(True)

    elif token.type == TokenType.FALSE:
      self._advance()
      return BoolLiteral(False)

    elif token.type == TokenType.IDENT:
      self._advance()
      if self._check(TokenType.LPAREN):
        return self._parse_call(token)
      return Local(token.value, self._lookup(token))

    raise ParseError(f"Unexpected token {describe(token)}", token)

  def _parse_call(self, name_token: Token) -> FnCall:
    """Parse: name(args). The callee must already be defined."""
    fn_type = self._lookup(name_token)
    if not isinstance(fn_type, FnType):
      raise ParseError(f"'{name_token.value}' is not a function", name_token)

    self._expect(TokenType.LPAREN, "Expected '('")
    args: list[Expr] = []
    if not self._check(TokenType.RPAREN):
      args.append(self._parse_expression())
      while self._check(TokenType.COMMA):
        self._advance()
        args.append(self._parse_expression())
    self._expect(TokenType.RPAREN, "Expected ')'")
    return FnCall(name_token.value, tuple(args), fn_type)

  def _parse_if(self) -> IfElse:
    """Parse: if cond { body } [else if ... | else { body }]"""
    self._expect(TokenType.IF, "Expected 'if'")
    cond = self._parse_expression()
    if_body = self._parse_block()

    else_body: Block | None = None
    if self._check(TokenType.ELSE):
      self._advance()
      if self._check(TokenType.IF):
        else_body = Block((self._parse_if(),))
      else:
        else_body = self._parse_block()

    return IfElse(cond, if_body, else_body)

  def _parse_let(self) -> Init:
    """Parse: let name [: type] [= expr]"""
    self._expect(TokenType.LET, "Expected 'let'")
    name_token = self._expect(TokenType.IDENT, "Expected variable name")

    ty: Type | None = None
    if self._check(TokenType.COLON):
      self._advance()
      ty = self._parse_type()

    value: Expr | None = None
    if self._check(TokenType.ASSIGN):
      self._advance()
      value = self._parse_expression()

    if ty is None:
      if value is None:
        raise ParseError(f"Variable '{name_token.value}' needs a type or an initializer", name_token)
      ty = type_of(value)

    self._declare(name_token.value, ty)
    return Init(Local(name_token.value, ty), ty, value)


def parse(tokens: list[Token]) -> Program:
  """Convenience function to parse tokens into an AST."""
  return Parser(tokens).parse()
