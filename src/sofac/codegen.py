"""x86-64 code generator (Intel syntax, System V ABI)."""

import logging

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
  IfElse,
  Number,
  Return,
  Program,
  Enclosed,
  ArrayType,
  BoolLiteral,
)
from .checker import (
  LOGICAL_OPS,
  TypeError,
  type_of,
  pointee,
  size_of,
  binop_type,
  block_type,
  type_to_str,
)

logger = logging.getLogger(__name__)

ARG_REGISTERS = ["rdi", "rsi", "rdx", "rcx", "r8", "r9"]

# Names the assembler reads as registers rather than symbols
REGISTERS: set[str] = (
  {f"{width}{base}" for base in ("ax", "bx", "cx", "dx", "si", "di", "sp", "bp") for width in ("r", "e", "")}
  | {"al", "bl", "cl", "dl", "ah", "bh", "ch", "dh", "sil", "dil", "spl", "bpl"}
  | {f"r{n}{suffix}" for n in range(8, 16) for suffix in ("", "d", "w", "b")}
  | {f"{kind}mm{n}" for kind in ("x", "y", "z") for n in range(32)}
  | {f"mm{n}" for n in range(8)}
  | {f"st{n}" for n in range(8)}
  | {"st", "rip", "eip", "ip", "cs", "ds", "es", "fs", "gs", "ss"}
)

ARITHMETIC_INSTRUCTIONS: dict[str, list[str]] = {
  "+": ["add rax, rdi"],
  "-": ["sub rax, rdi"],
  "*": ["imul rax, rdi"],
  "/": ["cqo", "idiv rdi"],
  "%": ["cqo", "idiv rdi", "mov rax, rdx"],
  "&": ["and rax, rdi"],
  "|": ["or rax, rdi"],
  "^": ["xor rax, rdi"],
}

# '>' and '>=' compare with swapped operands so setl/setle cover both directions
COMPARISON_INSTRUCTIONS: dict[str, list[str]] = {
  "==": ["cmp rax, rdi", "sete al"],
  "!=": ["cmp rax, rdi", "setne al"],
  "<": ["cmp rax, rdi", "setl al"],
  "<=": ["cmp rax, rdi", "setle al"],
  ">": ["cmp rdi, rax", "setl al"],
  ">=": ["cmp rdi, rax", "setle al"],
}

IMM32_MIN, IMM32_MAX = -(2**31), 2**31 - 1


class CodegenError(Exception):
  """Raised for constructs the code generator cannot lower."""

  pass


def align16(n: int) -> int:
  """Round a frame size up to the next multiple of 16."""
  return (n + 15) & ~15


class CodeGenerator:
  """Generates x86-64 assembly for Linux.

  Stack frame layout (growing downward):
      [rbp + 16 + 8k] -> arguments beyond the sixth
      [rbp + 8]       -> return address
      [rbp]           -> saved rbp
      [rbp - off]     -> parameters and locals, bump-allocated in order
      [rsp]           -> operand stack, below the fixed frame

  Every expression leaves exactly one 8-byte word on the operand stack. For an
  array that word is its address. `depth` tracks the number of words the
  current function has on the operand stack; it keeps calls 16-byte aligned.
  """

  def __init__(self) -> None:
    self.output: list[str] = []
    self.label_counter = 0
    # Frame offset table: local name -> offset below rbp
    self.offsets: dict[str, int] = {}
    self.frame_cursor = 0
    self.frame_size = 0
    self.current_func_name = ""
    self.current_ret: Type = VOID
    self.depth = 0

  def _emit(self, line: str) -> None:
    self.output.append(line)

  def _new_label(self, prefix: str = ".L") -> str:
    label = f"{prefix}{self.label_counter}"
    self.label_counter += 1
    return label

  def _push(self, operand: str) -> None:
    self._emit(f"    push {operand}")
    self.depth += 1

  def _pop(self, register: str) -> None:
    self._emit(f"    pop {register}")
    self.depth -= 1

  def _load(self) -> None:
    """Replace the address on top of the stack with the word it points to."""
    self._pop("rax")
    self._emit("    mov rax, [rax]")
    self._push("rax")

  def _allocate(self, name: str, ty: Type) -> int:
    """Give a local a fresh frame slot."""
    self.frame_cursor += size_of(ty)
    self.offsets[name] = self.frame_cursor
    return self.frame_cursor

  def generate(self, program: Program) -> str:
    """Generate assembly for the entire program."""
    self._emit(".intel_syntax noprefix")
    self._emit(".text")
    self._emit("")

    for fn_def in program.definitions:
      self._gen_function(fn_def)

    self._emit('.section .note.GNU-stack,"",@progbits')
    return "\n".join(self.output) + "\n"

  # === Frame layout ===

  def _frame_bytes(self, fn_def: FnDef) -> int:
    """Bytes of frame needed by the function, following the order slots get allocated."""
    declared = {p.name for p in fn_def.params}
    total = sum(size_of(p.ty) for p in fn_def.params)

    def walk(expr: Expr | None) -> None:
      nonlocal total
      match expr:
        case Init(local, ty, value):
          total += size_of(ty)
          declared.add(local.name)
          walk(value)
        case Local(name, ty):
          if name not in declared:
            total += size_of(ty)
            declared.add(name)
        case Block(exprs):
          for e in exprs:
            walk(e)
        case Stmt(inner) | Return(inner) | Enclosed(inner) | UnOp(_, inner):
          walk(inner)
        case Loop(body):
          walk(body)
        case IfElse(cond, if_body, else_body):
          walk(cond)
          walk(if_body)
          walk(else_body)
        case BinOp(_, lhs, rhs) | Assign(lhs, rhs):
          walk(lhs)
          walk(rhs)
        case FnCall(_, args, _):
          for arg in args:
            walk(arg)

    walk(fn_def.body)
    return total

  def _gen_function(self, fn_def: FnDef) -> None:
    """Generate assembly for a function: prologue, parameter spill, body, epilogue."""
    self.offsets = {}
    self.frame_cursor = 0
    self.depth = 0
    self.current_func_name = fn_def.name
    self.current_ret = fn_def.fn_type.ret

    if fn_def.name in REGISTERS:
      raise CodegenError(f"Function name '{fn_def.name}' is an x86-64 register name")
    for param in fn_def.params:
      if isinstance(param.ty, ArrayType):
        raise CodegenError(f"Parameter '{param.name}' of '{fn_def.name}' is an array; pass a pointer instead")
    if isinstance(self.current_ret, ArrayType):
      raise CodegenError(f"Function '{fn_def.name}' cannot return an array")

    body_type = block_type(fn_def.body)
    if body_type not in (VOID, NEVER) and body_type != self.current_ret:
      raise TypeError(
        f"Function '{fn_def.name}' returns '{type_to_str(self.current_ret)}' but its body has type '{type_to_str(body_type)}'"
      )

    self.frame_size = align16(self._frame_bytes(fn_def))
    logger.debug("function %s: %d params, %d byte frame", fn_def.name, len(fn_def.params), self.frame_size)

    self._emit(f".globl {fn_def.name}")
    self._emit(f"{fn_def.name}:")

    # Prologue
    self._emit("    push rbp")
    self._emit("    mov rbp, rsp")
    if self.frame_size:
      self._emit(f"    sub rsp, {self.frame_size}")

    # Spill parameters: the first six arrive in registers, the rest above the return address
    for i, param in enumerate(fn_def.params):
      offset = self._allocate(param.name, param.ty)
      if i < len(ARG_REGISTERS):
        self._emit(f"    mov [rbp-{offset}], {ARG_REGISTERS[i]}")
      else:
        self._emit(f"    mov rax, [rbp+{16 + 8 * (i - len(ARG_REGISTERS))}]")
        self._emit(f"    mov [rbp-{offset}], rax")

    self._gen_expr(fn_def.body)
    self._pop("rax")

    # Epilogue
    self._emit("    mov rsp, rbp")
    self._emit("    pop rbp")
    self._emit("    ret")
    self._emit("")

  # === Expressions ===

  def _gen_address(self, expr: Expr) -> None:
    """Push the address of an lvalue."""
    match expr:
      case Local(name, ty):
        if name not in self.offsets:
          self._allocate(name, ty)
        self._emit(f"    lea rax, [rbp-{self.offsets[name]}]")
        self._push("rax")
      case UnOp("*", pointer):
        # The pointer's value is the address
        self._gen_expr(pointer)
      case Enclosed(inner):
        self._gen_address(inner)
      case _:
        raise CodegenError(f"Cannot take the address of a temporary value: {expr}")

  def _is_addressable(self, expr: Expr) -> bool:
    match expr:
      case Local(_, _) | UnOp("*", _):
        return True
      case Enclosed(inner):
        return self._is_addressable(inner)
    return False

  def _gen_expr(self, expr: Expr, value_used: bool = True) -> None:
    """Generate assembly for an expression, leaving one word on the stack."""
    match expr:
      case Number(value):
        if IMM32_MIN <= value <= IMM32_MAX:
          self._push(str(value))
        elif value < 2**63:
          self._emit(f"    mov rax, {value}")
          self._push("rax")
        else:
          raise CodegenError(f"Integer literal {value} does not fit in i64")

      case BoolLiteral(value):
        self._push("1" if value else "0")

      case Local(_, ty):
        self._gen_address(expr)
        if not isinstance(ty, ArrayType):
          self._load()

      case Enclosed(inner):
        self._gen_expr(inner, value_used)

      case BinOp(op, lhs, rhs):
        self._gen_binop(op, lhs, rhs)

      case UnOp("-", operand):
        operand_type = type_of(operand)
        if operand_type != I64:
          raise TypeError(f"Cannot negate '{type_to_str(operand_type)}'")
        self._gen_expr(operand)
        self._pop("rax")
        self._emit("    neg rax")
        self._push("rax")

      case UnOp("&", operand):
        self._gen_address(operand)

      case UnOp("*", operand):
        target_type = type_of(expr)
        self._gen_expr(operand)
        if not isinstance(target_type, ArrayType):
          self._load()

      case UnOp(op, _):
        raise CodegenError(f"Unknown unary operator '{op}'")

      case Init(local, ty, value):
        offset = self._allocate(local.name, ty)
        if value is not None:
          value_type = type_of(value)
          if value_type != ty:
            raise TypeError(f"Cannot initialize '{local.name}: {type_to_str(ty)}' with '{type_to_str(value_type)}'")
          if isinstance(ty, ArrayType):
            raise CodegenError(f"Array '{local.name}' cannot be initialized from a value")
          self._gen_expr(value)
          self._pop("rax")
          self._emit(f"    mov [rbp-{offset}], rax")
        self._push("0")

      case Assign(lhs, rhs):
        self._gen_assign(lhs, rhs)

      case IfElse(_, _, _):
        self._gen_if_else(expr, value_used)

      case Loop(body):
        begin_label = self._new_label(".Lloop")
        self._emit(f"{begin_label}:")
        self._gen_expr(body, value_used=False)
        self._pop("rax")
        self._emit(f"    jmp {begin_label}")
        # Control never falls through; count the word the expression stands for
        self.depth += 1

      case Return(value):
        value_type = type_of(value)
        if value_type not in (NEVER, self.current_ret):
          raise TypeError(
            f"Function '{self.current_func_name}' returns '{type_to_str(self.current_ret)}', not '{type_to_str(value_type)}'"
          )
        self._gen_expr(value)
        self._pop("rax")
        self._emit("    mov rsp, rbp")
        self._emit("    pop rbp")
        self._emit("    ret")
        self.depth += 1

      case Stmt(inner):
        self._gen_expr(inner, value_used=False)
        # Nothing runs after a never expression, so it keeps its counted word
        if type_of(inner) != NEVER:
          self._pop("rax")
          self._push("0")

      case Block(exprs):
        if not exprs:
          self._push("0")
        for i, e in enumerate(exprs):
          last = i == len(exprs) - 1
          self._gen_expr(e, value_used if last else False)
          if not last:
            self._pop("rax")

      case FnCall(name, args, fn_type):
        if len(args) != len(fn_type.params):
          raise TypeError(f"'{name}' takes {len(fn_type.params)} arguments but {len(args)} were given")
        for i, (arg, param_type) in enumerate(zip(args, fn_type.params)):
          arg_type = type_of(arg)
          if arg_type != param_type:
            raise TypeError(
              f"Argument {i + 1} of '{name}' must be '{type_to_str(param_type)}', not '{type_to_str(arg_type)}'"
            )
        self._gen_call(name, args)

      case _:
        raise CodegenError(f"Cannot generate code for {expr}")

  def _gen_binop(self, op: str, lhs: Expr, rhs: Expr) -> None:
    """Generate a binary operation; the operand types select the instructions."""
    lhs_type = type_of(lhs)
    result_type = binop_type(op, lhs_type, type_of(rhs))

    if op in LOGICAL_OPS:
      self._gen_logical(op, lhs, rhs)
      return

    self._gen_expr(lhs)
    self._gen_expr(rhs)
    self._pop("rdi")
    self._pop("rax")

    if op in COMPARISON_INSTRUCTIONS:
      for instr in COMPARISON_INSTRUCTIONS[op]:
        self._emit(f"    {instr}")
      self._emit("    movzx rax, al")
    else:
      element = pointee(lhs_type)
      if result_type != BOOL and element is not None:
        # Pointer arithmetic: scale the integer by the element size
        self._emit(f"    imul rdi, rdi, {size_of(element)}")
      for instr in ARITHMETIC_INSTRUCTIONS[op]:
        self._emit(f"    {instr}")

    self._push("rax")

  def _gen_logical(self, op: str, lhs: Expr, rhs: Expr) -> None:
    """Short-circuit && and ||: the right operand runs only when it decides the result."""
    short_label = self._new_label(".Lshort")
    end_label = self._new_label(".Lend")
    # && stops at the first false operand, || at the first true one
    jump = "je" if op == "&&" else "jne"

    for operand in (lhs, rhs):
      self._gen_expr(operand)
      self._pop("rax")
      self._emit("    cmp rax, 0")
      self._emit(f"    {jump} {short_label}")

    depth = self.depth
    self._push("0" if op == "||" else "1")
    self._emit(f"    jmp {end_label}")
    self.depth = depth
    self._emit(f"{short_label}:")
    self._push("1" if op == "||" else "0")
    self._emit(f"{end_label}:")

  def _gen_assign(self, lhs: Expr, rhs: Expr) -> None:
    """Store rhs through the address of lhs; the assignment itself is void."""
    if not self._is_addressable(lhs):
      raise CodegenError(f"Invalid assignment target: {lhs}")
    lhs_type, rhs_type = type_of(lhs), type_of(rhs)
    if lhs_type != rhs_type:
      raise TypeError(f"Cannot assign '{type_to_str(rhs_type)}' to '{type_to_str(lhs_type)}'")
    if isinstance(lhs_type, ArrayType):
      raise CodegenError("Arrays cannot be assigned as a whole")

    self._gen_address(lhs)
    self._gen_expr(rhs)
    self._pop("rdi")
    self._pop("rax")
    self._emit("    mov [rax], rdi")
    self._push("0")

  def _gen_if_else(self, expr: IfElse, value_used: bool) -> None:
    """Generate an if/else; both paths leave one word on the stack."""
    cond_type = type_of(expr.cond)
    if cond_type != BOOL:
      raise TypeError(f"Condition must be 'bool', not '{type_to_str(cond_type)}'")

    if_type = block_type(expr.if_body)
    if value_used:
      if expr.else_body is None:
        if if_type not in (VOID, NEVER):
          raise TypeError(f"'if' without 'else' cannot produce a '{type_to_str(if_type)}' value")
      else:
        else_type = block_type(expr.else_body)
        # A void or never branch leaves a placeholder or does not fall through
        if if_type != else_type and not {if_type, else_type} & {VOID, NEVER}:
          raise TypeError(f"'if' and 'else' branches have different types: '{type_to_str(if_type)}' and '{type_to_str(else_type)}'")

    else_label = self._new_label(".Lelse")
    end_label = self._new_label(".Lend")

    self._gen_expr(expr.cond)
    self._pop("rax")
    self._emit("    cmp rax, 0")
    self._emit(f"    je {else_label}")

    depth = self.depth
    self._gen_expr(expr.if_body, value_used)
    self._emit(f"    jmp {end_label}")
    self.depth = depth

    self._emit(f"{else_label}:")
    if expr.else_body is not None:
      self._gen_expr(expr.else_body, value_used)
    else:
      self._push("0")
    self._emit(f"{end_label}:")

  def _gen_call(self, name: str, args: tuple[Expr, ...]) -> None:
    """Generate code for a function call; the result in rax is pushed."""
    for arg in args:
      self._gen_expr(arg)

    count = len(args)
    stack_count = max(0, count - len(ARG_REGISTERS))

    if stack_count == 0:
      for register in reversed(ARG_REGISTERS[:count]):
        self._pop(register)
      padded = self.depth % 2 == 1
      if padded:
        self._emit("    sub rsp, 8")
      self._emit(f"    call {name}")
      if padded:
        self._emit("    add rsp, 8")
    else:
      # Arguments sit on the stack with the last one on top; copy the stack
      # arguments below them so the seventh ends up at [rsp] when calling.
      padded = (self.depth + stack_count) % 2 == 1
      pad = 8 if padded else 0
      if padded:
        self._emit("    sub rsp, 8")
        self.depth += 1
      for k, j in enumerate(range(count - 1, len(ARG_REGISTERS) - 1, -1)):
        self._push(f"qword ptr [rsp+{8 * (count - 1 - j) + pad + 8 * k}]")
      for i, register in enumerate(ARG_REGISTERS):
        self._emit(f"    mov {register}, [rsp+{8 * (count - 1 - i) + pad + 8 * stack_count}]")
      self._emit(f"    call {name}")
      cleanup = count + stack_count + (1 if padded else 0)
      self._emit(f"    add rsp, {8 * cleanup}")
      self.depth -= cleanup

    self._push("rax")


def generate(program: Program) -> str:
  """Convenience function to generate assembly for a program."""
  return CodeGenerator().generate(program)
