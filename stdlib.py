"""
Dusth Standard Library
Builtin natives. Every builtin follows the native contract: it receives the
calling environment and a list of already evaluated arguments and returns
exactly one value.
"""

from typing import Callable, Dict, List
import math

from values import (
  Value,
  INT,
  FLOAT,
  STRING,
  LIST,
  MAP,
  NATIVE,
  make_null,
  make_int,
  make_float,
  make_string,
  make_list,
  make_native,
  clone_value,
  value_to_string,
  is_truthy,
  type_name,
)
from error_handling import DusthExit
from utilities import (
  wrap_int64,
  to_number,
  parse_int_prefix,
  parse_float_prefix,
  float_math,
)


def arg(args: List[Value], i: int) -> Value:
  """i-th argument, Null when missing"""
  return args[i] if i < len(args) else make_null()


def int_arg(args: List[Value], i: int) -> int:
  v = arg(args, i)
  return v.value if v.type == INT else 0


# ============================================================================
# OUTPUT
# ============================================================================

def dusth_say(env, args: List[Value]) -> Value:
  """Print each argument on its own line"""
  for a in args:
    print(value_to_string(a))
  return make_null()


def dusth_print(env, args: List[Value]) -> Value:
  """Print arguments without separators or newline"""
  for a in args:
    print(value_to_string(a), end='')
  return make_null()


# ============================================================================
# CONVERSION AND INTROSPECTION
# ============================================================================

def dusth_len(env, args: List[Value]) -> Value:
  """Characters of a String, items of a List, keys of a Map; 0 otherwise"""
  v = arg(args, 0)
  if v.type in (STRING, LIST, MAP):
    return make_int(len(v.value))
  return make_int(0)


def dusth_to_string(env, args: List[Value]) -> Value:
  if not args:
    return make_string("")
  return make_string(value_to_string(args[0]))


def dusth_to_int(env, args: List[Value]) -> Value:
  v = arg(args, 0)
  if v.type == INT:
    return make_int(v.value)
  if v.type == FLOAT:
    if not math.isfinite(v.value):
      return make_int(0)
    return make_int(wrap_int64(int(v.value)))
  if v.type == STRING:
    return make_int(parse_int_prefix(v.value))
  return make_int(0)


def dusth_to_float(env, args: List[Value]) -> Value:
  v = arg(args, 0)
  if v.type in (INT, FLOAT):
    return make_float(to_number(v))
  if v.type == STRING:
    return make_float(parse_float_prefix(v.value))
  return make_float(0.0)


def dusth_type_of(env, args: List[Value]) -> Value:
  if not args:
    return make_string("null")
  return make_string(type_name(args[0]))


# ============================================================================
# MATH
# ============================================================================

def dusth_abs(env, args: List[Value]) -> Value:
  v = arg(args, 0)
  if not args:
    return make_int(0)
  if v.type == INT:
    return make_int(wrap_int64(abs(v.value)))
  return make_float(abs(to_number(v)))


def dusth_pow(env, args: List[Value]) -> Value:
  if len(args) < 2:
    return make_float(0.0)
  return make_float(float_math(math.pow, to_number(args[0]), to_number(args[1])))


def unary_float_builtin(func: Callable[[float], float]) -> Callable:
  """Wrap a one-argument math routine as a native returning Float"""
  def builtin(env, args: List[Value]) -> Value:
    if not args:
      return make_float(0.0)
    return make_float(float_math(func, to_number(args[0])))

  return builtin


def rounding(func: Callable[[float], int]) -> Callable[[float], float]:
  """floor/ceil that pass infinities and NaN through"""
  def rounded(x: float) -> float:
    if not math.isfinite(x):
      return x
    return float(func(x))

  return rounded


# ============================================================================
# LIST FUNCTIONS
# ============================================================================

def dusth_range(env, args: List[Value]) -> Value:
  """range(n) is 0..n-1, range(a, b) is a..b-1"""
  if len(args) == 1:
    start, end = 0, int_arg(args, 0)
  elif len(args) >= 2:
    start, end = int_arg(args, 0), int_arg(args, 1)
  else:
    start, end = 0, 0
  return make_list([make_int(i) for i in range(start, end)])


# push, pop, shift and unshift mutate the argument, which is the caller's
# copy; the variable the list came from is unchanged.

def dusth_push(env, args: List[Value]) -> Value:
  if len(args) < 2 or args[0].type != LIST:
    return make_null()
  items = args[0].value
  items.append(clone_value(args[1]))
  return make_int(len(items))


def dusth_pop(env, args: List[Value]) -> Value:
  if not args or args[0].type != LIST or not args[0].value:
    return make_null()
  return args[0].value.pop()


def dusth_shift(env, args: List[Value]) -> Value:
  if not args or args[0].type != LIST or not args[0].value:
    return make_null()
  return args[0].value.pop(0)


def dusth_unshift(env, args: List[Value]) -> Value:
  if len(args) < 2 or args[0].type != LIST:
    return make_null()
  items = args[0].value
  items.insert(0, clone_value(args[1]))
  return make_int(len(items))


def dusth_concat(env, args: List[Value]) -> Value:
  """Append two lists or concatenate two strings into a new value"""
  a, b = arg(args, 0), arg(args, 1)
  if a.type == LIST and b.type == LIST:
    return make_list([clone_value(item) for item in a.value + b.value])
  if a.type == STRING and b.type == STRING:
    return make_string(a.value + b.value)
  return make_null()


# ============================================================================
# MAP FUNCTIONS
# ============================================================================

def dusth_keys(env, args: List[Value]) -> Value:
  v = arg(args, 0)
  if v.type != MAP:
    return make_list()
  return make_list([make_string(key) for key in v.value])


def dusth_values(env, args: List[Value]) -> Value:
  v = arg(args, 0)
  if v.type != MAP:
    return make_list()
  return make_list([clone_value(item) for item in v.value.values()])


# ============================================================================
# HIGHER ORDER
# ============================================================================

# Callbacks must be natives; an interpreted function is not accepted here.

def call_callback(callback: Value, env, args: List[Value]) -> Value:
  result = callback.value.fn(env, args)
  return result if result is not None else make_null()


def dusth_map(env, args: List[Value]) -> Value:
  """map(list, native) applies native to each item"""
  if len(args) < 2 or args[0].type != LIST or args[1].type != NATIVE:
    return make_list()
  return make_list([call_callback(args[1], env, [clone_value(item)]) for item in args[0].value])


def dusth_filter(env, args: List[Value]) -> Value:
  """filter(list, native) keeps the items the native returns a truthy value for"""
  if len(args) < 2 or args[0].type != LIST or args[1].type != NATIVE:
    return make_list()
  kept = [clone_value(item) for item in args[0].value
          if is_truthy(call_callback(args[1], env, [clone_value(item)]))]
  return make_list(kept)


def dusth_reduce(env, args: List[Value]) -> Value:
  """
  reduce(list, native[, initial]) folds from the left

  Without an initial value the first item seeds the accumulator, and an
  empty list reduces to Null.
  """
  if len(args) < 2 or args[0].type != LIST or args[1].type != NATIVE:
    return make_null()
  items = args[0].value
  if len(args) >= 3:
    acc = clone_value(args[2])
  elif items:
    acc, items = clone_value(items[0]), items[1:]
  else:
    return make_null()
  for item in items:
    acc = call_callback(args[1], env, [acc, clone_value(item)])
  return acc


# ============================================================================
# CONTROL
# ============================================================================

def dusth_assert(env, args: List[Value]) -> Value:
  if not args:
    return make_null()
  if not is_truthy(args[0]):
    print("Assertion failed")
    raise DusthExit(1, "Assertion failed")
  return make_null()


def dusth_panic(env, args: List[Value]) -> Value:
  message = value_to_string(args[0]) if args else ""
  if args:
    print(f"Panic: {message}")
  raise DusthExit(1, message)


def dusth_exit(env, args: List[Value]) -> Value:
  raise DusthExit(int_arg(args, 0))


def dusth_eval(env, args: List[Value]) -> Value:
  """
  Parse and run source text in the calling environment

  A top-level return stops only the evaluated source. Malformed source
  evaluates to Null without running anything.
  """
  # Imported here: the interpreter registers these builtins
  from parsing import parse
  from error_handling import DusthParseError
  from interpreter import exec_program

  if not args or args[0].type != STRING:
    return make_null()
  try:
    program = parse(args[0].value, "<eval>")
  except DusthParseError as e:
    print(str(e), end='')
    return make_null()
  exec_program(program, env)
  return make_null()


# ============================================================================
# BUILT-IN FUNCTION REGISTRY
# ============================================================================

def make_builtin_function(name: str, func: Callable) -> Value:
  """Create a built-in function value"""
  return make_native(func, name)


BUILTIN_FUNCTIONS: Dict[str, Value] = {
    # Output
    "say": make_builtin_function("say", dusth_say),
    "print": make_builtin_function("print", dusth_print),

    # Conversion
    "len": make_builtin_function("len", dusth_len),
    "to_string": make_builtin_function("to_string", dusth_to_string),
    "to_int": make_builtin_function("to_int", dusth_to_int),
    "to_float": make_builtin_function("to_float", dusth_to_float),
    "type_of": make_builtin_function("type_of", dusth_type_of),

    # Math
    "abs": make_builtin_function("abs", dusth_abs),
    "pow": make_builtin_function("pow", dusth_pow),
    "sqrt": make_builtin_function("sqrt", unary_float_builtin(math.sqrt)),
    "sin": make_builtin_function("sin", unary_float_builtin(math.sin)),
    "cos": make_builtin_function("cos", unary_float_builtin(math.cos)),
    "tan": make_builtin_function("tan", unary_float_builtin(math.tan)),
    "floor": make_builtin_function("floor", unary_float_builtin(rounding(math.floor))),
    "ceil": make_builtin_function("ceil", unary_float_builtin(rounding(math.ceil))),

    # Lists
    "range": make_builtin_function("range", dusth_range),
    "push": make_builtin_function("push", dusth_push),
    "pop": make_builtin_function("pop", dusth_pop),
    "shift": make_builtin_function("shift", dusth_shift),
    "unshift": make_builtin_function("unshift", dusth_unshift),
    "concat": make_builtin_function("concat", dusth_concat),

    # Maps
    "keys": make_builtin_function("keys", dusth_keys),
    "values": make_builtin_function("values", dusth_values),

    # Higher order
    "map": make_builtin_function("map", dusth_map),
    "filter": make_builtin_function("filter", dusth_filter),
    "reduce": make_builtin_function("reduce", dusth_reduce),

    # Control
    "assert": make_builtin_function("assert", dusth_assert),
    "panic": make_builtin_function("panic", dusth_panic),
    "exit": make_builtin_function("exit", dusth_exit),
    "eval": make_builtin_function("eval", dusth_eval),
}


def register_builtins(env) -> None:
  """Bind every builtin in env"""
  for name, builtin in BUILTIN_FUNCTIONS.items():
    env.define(name, builtin)


def list_builtin_functions() -> List[str]:
  """List all available built-in functions"""
  return list(BUILTIN_FUNCTIONS.keys())
