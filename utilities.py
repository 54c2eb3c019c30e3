"""
Utilities module for the Dusth interpreter
Numeric coercion helpers and the operator factories shared by the evaluator
and the builtins
"""

from typing import Callable, Optional
import math
import re

from values import (
  Value,
  BOOL,
  INT,
  FLOAT,
  STRING,
  make_int,
  make_float,
  make_bool,
  make_string,
)


INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

# Fixed messages returned as ordinary String values
UNDEFINED_FUNCTION = "undefined function"
NOT_CALLABLE = "value not callable"
DIVISION_BY_ZERO = "division by zero"
MODULO_BY_ZERO = "modulo by zero"

_INT_PREFIX = re.compile(r'\s*([+-]?\d+)')
_FLOAT_PREFIX = re.compile(r'\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?(?:inf(?:inity)?|nan))', re.IGNORECASE)


# ==================== NUMERIC COERCION ====================

def wrap_int64(i: int) -> int:
  """Reduce an integer to 64-bit two's complement"""
  i &= (1 << 64) - 1
  return i - (1 << 64) if i > INT64_MAX else i


def to_number(v: Value) -> float:
  """
  Coerce a value to a double

  Int and Float convert; every other type coerces to 0.0.

  Examples:
    to_number(make_int(3)) -> 3.0
    to_number(make_string("3")) -> 0.0
  """
  if v.type == FLOAT:
    return v.value
  if v.type == INT:
    return float(v.value)
  return 0.0


def literal_number(num: float) -> Value:
  """Int when the double has no fractional part and fits, else Float"""
  if math.isfinite(num) and num.is_integer() and INT64_MIN <= num <= INT64_MAX:
    as_int = int(num)
    if INT64_MIN <= as_int <= INT64_MAX:
      return make_int(as_int)
  return make_float(num)


def truncating_remainder(a: int, b: int) -> int:
  """Integer remainder with the sign of the dividend"""
  r = abs(a) % abs(b)
  return -r if a < 0 else r


def float_remainder(a: float, b: float) -> float:
  """fmod that yields NaN instead of raising on an infinite dividend"""
  try:
    return math.fmod(a, b)
  except ValueError:
    return math.nan


def parse_int_prefix(text: str) -> int:
  """Leading integer of a string, 0 when there is none"""
  match = _INT_PREFIX.match(text)
  return wrap_int64(int(match.group(1))) if match else 0


def parse_float_prefix(text: str) -> float:
  """Leading floating point number of a string, 0.0 when there is none"""
  match = _FLOAT_PREFIX.match(text)
  return float(match.group(1)) if match else 0.0


def float_math(func: Callable[..., float], *args: float) -> float:
  """Apply a math function with C-style results on domain errors and overflow"""
  try:
    return float(func(*args))
  except ValueError:
    return math.nan
  except OverflowError:
    return math.inf


# ==================== BINARY OPERATION FACTORIES ====================

def binary_arithmetic_op(
  int_op: Optional[Callable[[int, int], int]],
  float_op: Callable[[float, float], float],
  zero_message: Optional[str] = None
) -> Callable[[Value, Value], Value]:
  """
  Factory for Int/Float promoting arithmetic

  Args:
    int_op: Operation applied when both operands are Int (None to always promote)
    float_op: Operation applied to both operands coerced to Float
    zero_message: Sentinel returned instead of dividing by zero

  Returns:
    Function that performs the arithmetic operation

  Examples:
    sub = binary_arithmetic_op(operator.sub, operator.sub)
    sub(make_int(5), make_float(0.5)) -> Float 4.5
  """
  def arithmetic(x: Value, y: Value) -> Value:
    if int_op is not None and x.type == INT and y.type == INT:
      if zero_message is not None and y.value == 0:
        return make_string(zero_message)
      return make_int(wrap_int64(int_op(x.value, y.value)))
    a, b = to_number(x), to_number(y)
    if zero_message is not None and b == 0.0:
      return make_string(zero_message)
    return make_float(float_op(a, b))

  return arithmetic


def binary_comparison_op(op: Callable[[float, float], bool]) -> Callable[[Value, Value], Value]:
  """
  Factory for ordering comparisons; both operands are coerced to Float

  Examples:
    lt = binary_comparison_op(operator.lt)
    lt(make_int(1), make_float(1.5)) -> Bool true
  """
  def comparison(x: Value, y: Value) -> Value:
    return make_bool(op(to_number(x), to_number(y)))

  return comparison


def values_equal(x: Value, y: Value) -> bool:
  """
  Equality used by == and !=

  Same-typed String, Bool and Int compare by value; any other pairing
  compares both sides coerced to Float.
  """
  if x.type == y.type and x.type in (STRING, BOOL, INT):
    return x.value == y.value
  return to_number(x) == to_number(y)

