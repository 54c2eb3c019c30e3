"""
Dusth Interpreter
Tree-walking evaluator over the parsed Node tree. Values follow deep-copy
semantics: every read, argument pass and closure capture is a clone.
Runtime failures are ordinary String values; only exit, panic and assert
stop a script.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
import operator
import os
import sys

from parsing import Node, create_parser
from values import (
  Value,
  INT,
  FLOAT,
  STRING,
  LIST,
  MAP,
  FUNCTION,
  NATIVE,
  make_null,
  make_bool,
  make_int,
  make_float,
  make_string,
  make_list,
  make_map,
  make_function,
  clone_value,
  value_to_string,
  is_truthy,
)
from environment import Environment, make_runtime_env
from error_handling import DusthExit
from utilities import (
  UNDEFINED_FUNCTION,
  NOT_CALLABLE,
  DIVISION_BY_ZERO,
  MODULO_BY_ZERO,
  wrap_int64,
  literal_number,
  truncating_remainder,
  float_remainder,
  binary_arithmetic_op,
  binary_comparison_op,
  values_equal,
)
from stdlib import register_builtins


# ============================================================================
# CONTROL SIGNALS
# ============================================================================

class ReturnSignal(Exception):
  """Unwinds nested blocks up to the nearest call boundary"""
  def __init__(self, value: Value):
    self.value = value
    super().__init__("return outside of function")


COMPLETED = "completed"
RETURNED = "returned"
EXITED = "exited"


@dataclass
class ExitSignal:
  """How a program run finished

  status is COMPLETED when the last statement ran, RETURNED when a top-level
  return stopped the program early, EXITED when a native requested exit.
  value is the last statement's value (or the returned value); code is the
  exit status requested by exit/panic/assert, 0 otherwise.
  """
  status: str
  value: Value
  code: int = 0


# Each interpreted call nests several Python frames
RECURSION_LIMIT = 20000


def ensure_recursion_limit() -> None:
  if sys.getrecursionlimit() < RECURSION_LIMIT:
    sys.setrecursionlimit(RECURSION_LIMIT)


def make_execution_context(debug: bool = False, loader: Any = None) -> Dict:
  """Create the per-run context threaded through evaluation"""
  ensure_recursion_limit()
  return {
      'debug': debug,
      'loader': loader,
      'call_depth': 0
  }


# ============================================================================
# OPERATORS
# ============================================================================

_arith_add = binary_arithmetic_op(operator.add, operator.add)


def add_values(x: Value, y: Value) -> Value:
  """+ concatenates when either side is a String, otherwise adds numerically"""
  if x.type == STRING or y.type == STRING:
    return make_string(value_to_string(x) + value_to_string(y))
  return _arith_add(x, y)


BINARY_OPERATORS: Dict[str, Callable[[Value, Value], Value]] = {
    '+': add_values,
    '-': binary_arithmetic_op(operator.sub, operator.sub),
    '*': binary_arithmetic_op(operator.mul, operator.mul),
    '/': binary_arithmetic_op(None, operator.truediv, DIVISION_BY_ZERO),
    '%': binary_arithmetic_op(truncating_remainder, float_remainder, MODULO_BY_ZERO),
    '==': lambda x, y: make_bool(values_equal(x, y)),
    '!=': lambda x, y: make_bool(not values_equal(x, y)),
    '<': binary_comparison_op(operator.lt),
    '>': binary_comparison_op(operator.gt),
    '<=': binary_comparison_op(operator.le),
    '>=': binary_comparison_op(operator.ge),
}


def perform_binary_op(op: str, left: Value, right: Value) -> Value:
  """Apply a binary operator; unknown operators yield Null"""
  handler = BINARY_OPERATORS.get(op)
  if handler is None:
    return make_null()
  return handler(left, right)


# ============================================================================
# EVALUATION
# ============================================================================

def eval_node(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Evaluate a node against env and return its value"""
  if context is None:
    context = make_execution_context(debug)

  if debug:
    print(f"DEBUG: eval {node.type}")

  node_type = node.type

  if node_type == "PROGRAM":
    return eval_statements(node.children, env, debug, context)
  elif node_type == "EXPR_STMT":
    return eval_node(node.children[0], env, debug, context)
  elif node_type == "LET":
    return eval_let(node, env, debug, context)
  elif node_type == "BLOCK":
    return eval_block(node, env, debug, context)
  elif node_type == "IF":
    return eval_if(node, env, debug, context)
  elif node_type == "LOOP":
    return eval_loop(node, env, debug, context)
  elif node_type == "RETURN":
    return eval_return(node, env, debug, context)
  elif node_type == "BINARY":
    return eval_binary(node, env, debug, context)
  elif node_type == "UNARY":
    return eval_unary(node, env, debug, context)
  elif node_type == "LITERAL":
    return eval_literal(node, env, debug, context)
  elif node_type == "IDENT":
    return eval_identifier(node, env, debug, context)
  elif node_type == "CALL":
    return eval_function_call(node, env, debug, context)
  elif node_type == "FUNC":
    return eval_function_def(node, env, debug, context)
  elif node_type == "INDEX":
    return eval_index(node, env, debug, context)
  elif node_type == "ASSIGN":
    return eval_assign(node, env, debug, context)
  elif node_type == "LIST":
    return eval_list(node, env, debug, context)
  elif node_type == "MAP":
    return eval_map(node, env, debug, context)
  elif node_type == "EXTERN":
    return eval_extern(node, env, debug, context)
  elif node_type == "IMPORT":
    return eval_import(node, env, debug, context)
  else:
    if debug:
      print(f"DEBUG: unknown node type {node_type}")
    return make_null()


def eval_statements(nodes: List[Node], env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Evaluate statements in order; the last one's value is the result.

  A return anywhere inside raises ReturnSignal, which skips the remaining
  statements of every enclosing sequence until a call boundary catches it.
  """
  result = make_null()
  for node in nodes:
    result = eval_node(node, env, debug, context)
  return result


def eval_block(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Evaluate a block in a fresh child scope"""
  scope = make_runtime_env(env)
  return eval_statements(node.children, scope, debug, context)


def eval_let(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """let always binds in the innermost scope"""
  value = eval_node(node.children[0], env, debug, context)
  env.define(node.value, value)
  if debug:
    print(f"DEBUG: let {node.value} = {value_to_string(value)}")
  return value


def eval_if(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  condition = eval_node(node.children[0], env, debug, context)
  if is_truthy(condition):
    return eval_node(node.children[1], env, debug, context)
  if len(node.children) > 2:
    return eval_node(node.children[2], env, debug, context)
  return make_null()


def eval_loop(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """while: the condition is re-evaluated before every iteration"""
  condition, body = node.children
  result = make_null()
  while is_truthy(eval_node(condition, env, debug, context)):
    result = eval_node(body, env, debug, context)
  return result


def eval_return(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  value = eval_node(node.children[0], env, debug, context) if node.children else make_null()
  if debug:
    print(f"DEBUG: return {value_to_string(value)}")
  raise ReturnSignal(value)


def eval_literal(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Literal; numbers collapse to Int when they have no fractional part"""
  value = node.value
  if value is None:
    return make_null()
  if isinstance(value, bool):
    return make_bool(value)
  if isinstance(value, str):
    return make_string(value)
  return literal_number(value)


def eval_identifier(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Look up a name; unbound names read as Null"""
  value = env.lookup(node.value)
  if value is None:
    return make_null()
  return value


def eval_list(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  return make_list([eval_node(child, env, debug, context) for child in node.children])


def eval_map(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  entries = {}
  for key, child in zip(node.value, node.children):
    entries[key] = eval_node(child, env, debug, context)
  return make_map(entries)


def eval_index(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Map[String] and List[Int] indexing; every other case is Null"""
  container = eval_node(node.children[0], env, debug, context)
  index = eval_node(node.children[1], env, debug, context)

  if container.type == MAP and index.type == STRING:
    found = container.value.get(index.value)
    return clone_value(found) if found is not None else make_null()

  if container.type == LIST and index.type == INT:
    if 0 <= index.value < len(container.value):
      return clone_value(container.value[index.value])

  return make_null()


def eval_unary(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  operand = eval_node(node.children[0], env, debug, context)
  op = node.value

  if op == '-':
    if operand.type == INT:
      return make_int(wrap_int64(-operand.value))
    if operand.type == FLOAT:
      return make_float(-operand.value)
    return make_null()
  if op == '!':
    return make_bool(not is_truthy(operand))
  return make_null()


def eval_binary(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Both operands are always evaluated, left first"""
  left = eval_node(node.children[0], env, debug, context)
  right = eval_node(node.children[1], env, debug, context)
  return perform_binary_op(node.value, left, right)


def eval_assign(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """
  Assignment to a bare identifier

  Compound forms combine the current value with the right-hand side using
  the matching binary operator. The result is stored with Environment.assign,
  which updates the nearest existing binding or creates one in env.
  """
  target = node.children[0].value
  value = eval_node(node.children[1], env, debug, context)
  op = node.value

  if op != '=':
    current = env.lookup(target)
    if current is None:
      current = make_null()
    value = perform_binary_op(op[:-1], current, value)

  env.assign(target, value)
  if debug:
    print(f"DEBUG: {target} {op} {value_to_string(value)}")
  return value


# ============================================================================
# FUNCTIONS
# ============================================================================

def function_parts(node: Node):
  """Split a FUNC node into (parameter names, body)"""
  params = [child.value for child in node.children[:-1]]
  body = node.children[-1]
  return params, body


def eval_function_def(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """
  Create a function value

  The closure is a snapshot of env taken now, so later changes to the
  defining scope are not seen by the function. Named functions are also
  bound in env.
  """
  params, body = function_parts(node)
  func = make_function(params, body, env, node.value)
  if node.value:
    env.define(node.value, func)
    if debug:
      print(f"DEBUG: defined fn {node.value}({', '.join(params)})")
  return func


def call_native(callee: Value, arg_nodes: List[Node], env: Environment,
                debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Evaluate arguments left to right and hand them to the host routine"""
  args = [eval_node(arg, env, debug, context) for arg in arg_nodes]
  if debug:
    print(f"DEBUG: native {callee.value.name} with {len(args)} args")
  result = callee.value.fn(env, args)
  return result if result is not None else make_null()


def call_user_function(callee: Value, arg_nodes: List[Node], env: Environment,
                       debug: bool = False, context: Optional[Dict] = None) -> Value:
  """
  Call an interpreted function

  Arguments are evaluated in the caller's env. The frame is parented on a
  fresh snapshot of the captured closure, so nothing a call changes outlives
  it. A named function can see itself through its frame.
  """
  func = callee.value
  args = [eval_node(arg, env, debug, context) for arg in arg_nodes]

  closure = func.closure.snapshot() if func.closure is not None else env
  frame = make_runtime_env(closure)
  if func.name:
    frame.define(func.name, callee)
  for i, param in enumerate(func.params):
    frame.define(param, args[i] if i < len(args) else make_null())

  context['call_depth'] += 1
  if debug:
    print(f"DEBUG: call {func.name or '<anonymous>'} with {len(args)} args at depth {context['call_depth']}")

  try:
    if func.body.type == "BLOCK":
      return eval_statements(func.body.children, frame, debug, context)
    return eval_node(func.body, frame, debug, context)
  except ReturnSignal as signal:
    return signal.value
  finally:
    context['call_depth'] -= 1


def eval_function_call(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """
  Resolve the callee and dispatch on its type

  A call by name whose name is unbound yields "undefined function"; a callee
  that is neither Function nor Native yields "value not callable".
  """
  if context is None:
    context = make_execution_context(debug)

  if node.value is not None:
    callee = env.lookup(node.value)
    if callee is None:
      return make_string(UNDEFINED_FUNCTION)
    arg_nodes = node.children
  elif node.children:
    callee = eval_node(node.children[0], env, debug, context)
    arg_nodes = node.children[1:]
  else:
    return make_null()

  if callee.type == NATIVE:
    return call_native(callee, arg_nodes, env, debug, context)
  if callee.type == FUNCTION:
    return call_user_function(callee, arg_nodes, env, debug, context)
  return make_string(NOT_CALLABLE)


# ============================================================================
# LOADER DELEGATION
# ============================================================================

def eval_extern(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  loader = context.get('loader') if context else None
  if loader is None:
    if debug:
      print(f"DEBUG: no loader for extern {node.value}")
    return make_null()
  loader.load_extern(node.value, env, context)
  return make_null()


def eval_import(node: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  loader = context.get('loader') if context else None
  if loader is None:
    if debug:
      print(f"DEBUG: no loader for import {node.value}")
    return make_null()
  loader.load_import(node.value, env, context)
  return make_null()


# ============================================================================
# ENTRY POINTS
# ============================================================================

def exec_program(program: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> Value:
  """Run source already parsed, stopping quietly at a top-level return"""
  if context is None:
    context = make_execution_context(debug)
  try:
    return eval_statements(program.children, env, debug, context)
  except ReturnSignal as signal:
    return signal.value


def run(program: Node, env: Environment, loader: Any = None, debug: bool = False) -> ExitSignal:
  """
  Run a parsed program against env

  Args:
    program: PROGRAM node
    env: Environment the top-level statements execute in
    loader: Collaborator resolving extern and import
    debug: Print DEBUG trace lines

  Returns:
    ExitSignal describing how the program finished
  """
  context = make_execution_context(debug, loader)
  try:
    value = eval_statements(program.children, env, debug, context)
    return ExitSignal(COMPLETED, value)
  except ReturnSignal as signal:
    return ExitSignal(RETURNED, signal.value)
  except DusthExit as e:
    if debug:
      print(f"DEBUG: exit {e.code}")
    return ExitSignal(EXITED, make_null(), e.code)


def hoist_functions(program: Node, env: Environment, debug: bool = False, context: Optional[Dict] = None) -> None:
  """Bind every top-level fn declaration before anything runs"""
  for child in program.children:
    if child.type == "FUNC" and child.value:
      eval_function_def(child, env, debug, context)


def load_file(path: str, env: Environment, context: Optional[Dict] = None) -> bool:
  """
  Parse a source file and evaluate it directly into env

  Returns False when the file does not exist. A malformed file raises
  DusthParseError before any of it runs; exit requests raised by natives
  propagate to the caller.
  """
  if context is None:
    context = make_execution_context()
  debug = context.get('debug', False)

  if not os.path.isfile(path):
    if debug:
      print(f"DEBUG: {path} not found")
    return False

  program = create_parser(debug).parse_file(path)
  if debug:
    print(f"DEBUG: loading {path}")

  hoist_functions(program, env, debug, context)
  exec_program(program, env, debug, context)
  return True


def create_global_env() -> Environment:
  """Top-level environment with every builtin native registered"""
  env = make_runtime_env()
  register_builtins(env)
  return env


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

class DusthInterpreter:
  """One global environment plus the parser and loader that feed it"""

  def __init__(self, debug: bool = False, loader: Any = None):
    self.debug = debug
    self.loader = loader
    ensure_recursion_limit()
    self.parser = create_parser(debug)
    self.global_env = create_global_env()

  def context(self) -> Dict:
    return make_execution_context(self.debug, self.loader)

  def run_source(self, source: str, filename: str = "<input>") -> ExitSignal:
    """Parse and run source text in the global environment"""
    program = self.parser.parse_string(source, filename)
    return run(program, self.global_env, self.loader, self.debug)

  def run_file(self, path: str) -> bool:
    """Load a script file into the global environment"""
    if self.loader is not None:
      return self.loader.load_path(path, self.global_env, self.context())
    return load_file(path, self.global_env, self.context())

  def evaluate(self, source: str) -> Value:
    """Value of the last statement of source; used by the interactive loop"""
    program = self.parser.parse_string(source, "<stdin>")
    return exec_program(program, self.global_env, self.debug, self.context())

  def lookup(self, name: str) -> Optional[Value]:
    return self.global_env.lookup(name)


def create_interpreter(debug: bool = False, loader: Any = None) -> DusthInterpreter:
  """Factory function returning an interpreter"""
  return DusthInterpreter(debug=debug, loader=loader)


def create_debug_interpreter(loader: Any = None) -> DusthInterpreter:
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True, loader=loader)
