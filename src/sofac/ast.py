"""AST node definitions for the Sofa language."""

from dataclasses import dataclass

# === Types ===


@dataclass(frozen=True, slots=True)
class SimpleType:
  """Scalar type: 'i64', 'bool', 'void' or 'never'."""

  name: str


@dataclass(frozen=True, slots=True)
class PtrType:
  """Pointer type like &i64."""

  to: "Type"


@dataclass(frozen=True, slots=True)
class ArrayType:
  """Fixed-size array type like [i64; 5]."""

  element: "Type"
  length: int


@dataclass(frozen=True, slots=True)
class FnType:
  """Function signature. Only used to resolve calls, never stored."""

  params: tuple["Type", ...]
  ret: "Type"


# Type union
Type = SimpleType | PtrType | ArrayType | FnType

I64 = SimpleType("i64")
BOOL = SimpleType("bool")
VOID = SimpleType("void")
NEVER = SimpleType("never")


# === Expressions ===


@dataclass(frozen=True, slots=True)
class Number:
  """Integer literal like 42."""

  value: int


@dataclass(frozen=True, slots=True)
class BoolLiteral:
  """Boolean literal: true or false."""

  value: bool


@dataclass(frozen=True, slots=True)
class Local:
  """Variable reference. The type is fixed when the parser resolves the name."""

  name: str
  ty: Type


@dataclass(frozen=True, slots=True)
class Enclosed:
  """Parenthesized expression."""

  expr: "Expr"


@dataclass(frozen=True, slots=True)
class BinOp:
  """Binary expression like a + b or x < y."""

  op: str
  lhs: "Expr"
  rhs: "Expr"


@dataclass(frozen=True, slots=True)
class UnOp:
  """Unary expression: -x, &x or *p."""

  op: str
  expr: "Expr"


@dataclass(frozen=True, slots=True)
class Assign:
  """Assignment: x = 42, *p = 1, a[i] = 2"""

  lhs: "Expr"
  rhs: "Expr"


@dataclass(frozen=True, slots=True)
class Init:
  """Local declaration: let x: i64 = 42"""

  local: Local
  ty: Type
  value: "Expr | None"


@dataclass(frozen=True, slots=True)
class FnCall:
  """Function call like foo(1, 2)."""

  name: str
  args: tuple["Expr", ...]
  fn_type: FnType


@dataclass(frozen=True, slots=True)
class Block:
  """Braced sequence of expressions; its value is the last one."""

  exprs: tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Stmt:
  """Expression whose value is discarded (followed by ';')."""

  expr: "Expr"


@dataclass(frozen=True, slots=True)
class Return:
  """return expr"""

  expr: "Expr"


@dataclass(frozen=True, slots=True)
class Loop:
  """Infinite loop, left only through return."""

  body: Block


@dataclass(frozen=True, slots=True)
class IfElse:
  """If expression with optional else block."""

  cond: "Expr"
  if_body: Block
  else_body: Block | None


# Expression union type
Expr = Stmt | Block | Return | Loop | IfElse | FnCall | Init | Assign | BinOp | UnOp | Enclosed | BoolLiteral | Local | Number


# === Top-level Definitions ===


@dataclass(frozen=True, slots=True)
class FnDef:
  """Function definition."""

  name: str
  params: tuple[Local, ...]
  fn_type: FnType
  body: Block


@dataclass(frozen=True, slots=True)
class Program:
  """Root node: function definitions in declaration order."""

  definitions: tuple[FnDef, ...]
