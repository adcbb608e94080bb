"""Type rules for the Sofa language.

Type checking is not a separate pass: the code generator asks for the type of
each node as it lowers it, and any combination missing from the tables below
aborts compilation with a TypeError. `type_of` is pure and recomputes the type
on every call.
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
  Local,
  Assign,
  FnCall,
  FnType,
  IfElse,
  Number,
  Return,
  PtrType,
  Enclosed,
  ArrayType,
  SimpleType,
  BoolLiteral,
)


class TypeError(Exception):
  """Raised when a type error is detected."""

  pass


ARITHMETIC_OPS: set[str] = {"+", "-", "*", "/", "%", "&", "|", "^"}
POINTER_OPS: set[str] = {"+", "-"}
COMPARISON_OPS: set[str] = {"==", "!=", "<", "<=", ">", ">="}
LOGICAL_OPS: set[str] = {"&&", "||"}


def type_to_str(t: Type) -> str:
  """Convert a type to its source spelling."""
  match t:
    case SimpleType(name):
      return name
    case PtrType(to):
      return f"&{type_to_str(to)}"
    case ArrayType(element, length):
      return f"[{type_to_str(element)}; {length}]"
    case FnType(params, ret):
      param_strs = ", ".join(type_to_str(p) for p in params)
      return f"fn({param_strs}) -> {type_to_str(ret)}"
  raise TypeError(f"Unknown type: {t}")


def size_of(t: Type) -> int:
  """Return the storage size of a type in bytes."""
  match t:
    case SimpleType("i64") | SimpleType("bool") | PtrType(_):
      return 8
    case ArrayType(element, length):
      return size_of(element) * length
  raise TypeError(f"Type '{type_to_str(t)}' has no size")


def pointee(t: Type) -> Type | None:
  """Element type behind a pointer or array, None for anything else."""
  match t:
    case PtrType(to):
      return to
    case ArrayType(element, _):
      return element
  return None


def binop_type(op: str, lhs: Type, rhs: Type) -> Type:
  """Result type of a binary operator applied to the given operand types."""
  if op in POINTER_OPS and rhs == I64:
    element = pointee(lhs)
    if element is not None:
      return PtrType(element)
  if op in ARITHMETIC_OPS and lhs == I64 and rhs == I64:
    return I64
  if op in COMPARISON_OPS and lhs == rhs:
    return BOOL
  if op in LOGICAL_OPS and lhs == BOOL and rhs == BOOL:
    return BOOL
  raise TypeError(f"Operator '{op}' is not defined for '{type_to_str(lhs)}' and '{type_to_str(rhs)}'")


def block_type(block: Block) -> Type:
  """A block has the type of its last expression, void when empty."""
  if not block.exprs:
    return VOID
  return type_of(block.exprs[-1])


def type_of(expr: Expr) -> Type:
  """Derive the type of an expression from the types of its children."""
  match expr:
    case Stmt(_) | Init(_, _, _) | Assign(_, _):
      return VOID
    case Return(_) | Loop(_):
      return NEVER
    case Block(_):
      return block_type(expr)
    case IfElse(_, if_body, _):
      return block_type(if_body)
    case FnCall(_, _, fn_type):
      return fn_type.ret
    case BinOp(op, lhs, rhs):
      return binop_type(op, type_of(lhs), type_of(rhs))
    case UnOp("-", operand):
      return type_of(operand)
    case UnOp("&", operand):
      return PtrType(type_of(operand))
    case UnOp("*", operand):
      operand_type = type_of(operand)
      element = pointee(operand_type)
      if element is None:
        raise TypeError(f"Cannot dereference '{type_to_str(operand_type)}'")
      return element
    case Enclosed(inner):
      return type_of(inner)
    case BoolLiteral(_):
      return BOOL
    case Local(_, ty):
      return ty
    case Number(_):
      return I64
  raise TypeError(f"Cannot type expression: {expr}")
