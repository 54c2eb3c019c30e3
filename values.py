"""
Dusth runtime values
Tagged values with explicit deep-clone semantics: no two live values share
mutable substructure unless one was produced by clone_value from the other
"""

from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING
from dataclasses import dataclass

from parsing import Node, clone_node

if TYPE_CHECKING:
  from environment import Environment


# ============================================================================
# TYPE TAGS
# ============================================================================

NULL = "Null"
BOOL = "Bool"
INT = "Int"
FLOAT = "Float"
STRING = "String"
LIST = "List"
MAP = "Map"
FUNCTION = "Function"
NATIVE = "Native"

# Rendering of maps is a fixed placeholder, contents are never shown
MAP_PLACEHOLDER = "{map}"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class Value:
  """A runtime value: a type tag plus its payload"""
  type: str
  value: Any = None

  def __str__(self) -> str:
    return value_to_string(self)


@dataclass
class FunctionData:
  """Payload of an interpreted function"""
  params: List[str]
  body: Node
  closure: Optional['Environment']
  name: Optional[str] = None


NativeFn = Callable[['Environment', List[Value]], Value]


@dataclass
class NativeData:
  """Payload of a host routine"""
  fn: NativeFn
  name: str


# ============================================================================
# CONSTRUCTORS
# ============================================================================

def make_null() -> Value:
  return Value(NULL, None)


def make_bool(b: bool) -> Value:
  return Value(BOOL, bool(b))


def make_int(i: int) -> Value:
  return Value(INT, int(i))


def make_float(f: float) -> Value:
  return Value(FLOAT, float(f))


def make_string(s: str) -> Value:
  return Value(STRING, s)


def make_list(items: Optional[List[Value]] = None) -> Value:
  """List value; takes ownership of the given items"""
  return Value(LIST, list(items) if items is not None else [])


def make_map(entries: Optional[Dict[str, Value]] = None) -> Value:
  """Map value; keys are unique strings kept in insertion order"""
  return Value(MAP, dict(entries) if entries is not None else {})


def make_function(params: List[str], body: Node, closure: Optional['Environment'],
                  name: Optional[str] = None) -> Value:
  """Function value owning a copy of its body and a snapshot of the closure"""
  return Value(FUNCTION, FunctionData(
      params=list(params),
      body=clone_node(body),
      closure=closure.snapshot() if closure is not None else None,
      name=name
  ))


def make_native(fn: NativeFn, name: str) -> Value:
  return Value(NATIVE, NativeData(fn, name))


# ============================================================================
# CLONING
# ============================================================================

def clone_value(v: Value) -> Value:
  """Deep copy of a value and everything it owns"""
  if v.type == LIST:
    return Value(LIST, [clone_value(item) for item in v.value])
  if v.type == MAP:
    return Value(MAP, {key: clone_value(item) for key, item in v.value.items()})
  if v.type == FUNCTION:
    func = v.value
    return Value(FUNCTION, FunctionData(
        params=list(func.params),
        body=clone_node(func.body),
        closure=func.closure.snapshot() if func.closure is not None else None,
        name=func.name
    ))
  if v.type == NATIVE:
    return Value(NATIVE, NativeData(v.value.fn, v.value.name))
  # Scalars and strings are immutable in Python
  return Value(v.type, v.value)


# ============================================================================
# RENDERING AND TRUTHINESS
# ============================================================================

def format_float(f: float) -> str:
  """Render a double with 12 significant digits"""
  return '%.12g' % f


def value_to_string(v: Value) -> str:
  """Display form used by printing and string concatenation"""
  if v.type == NULL:
    return "null"
  if v.type == BOOL:
    return "true" if v.value else "false"
  if v.type == INT:
    return str(v.value)
  if v.type == FLOAT:
    return format_float(v.value)
  if v.type == STRING:
    return v.value
  if v.type == LIST:
    return "[" + ", ".join(value_to_string(item) for item in v.value) + "]"
  if v.type == MAP:
    return MAP_PLACEHOLDER
  if v.type == FUNCTION:
    return "<function>"
  if v.type == NATIVE:
    return "<native>"
  return f"<{v.type}>"


def is_truthy(v: Value) -> bool:
  """Truthiness used by if, while and unary !"""
  if v.type == NULL:
    return False
  if v.type == BOOL:
    return v.value
  if v.type in (INT, FLOAT):
    return v.value != 0
  if v.type in (STRING, LIST, MAP):
    return len(v.value) > 0
  return True


TYPE_NAMES = {
    NULL: "null",
    BOOL: "bool",
    INT: "int",
    FLOAT: "float",
    STRING: "string",
    LIST: "list",
    MAP: "map",
    FUNCTION: "function",
    NATIVE: "native",
}


def type_name(v: Value) -> str:
  """Lower-case type name as reported by type_of"""
  return TYPE_NAMES.get(v.type, "unknown")
