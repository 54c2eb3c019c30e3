"""
Dusth environments
A chain of scopes mapping names to values. Reads hand out clones and writes
store clones, so a binding is never aliased by a live value.
"""

from typing import Dict, Iterator, List, Optional

from values import Value, clone_value


class Environment:
  """One scope plus an optional owning link to its parent"""

  def __init__(self, parent: Optional['Environment'] = None):
    self.parent = parent
    self.bindings: Dict[str, Value] = {}

  def __repr__(self) -> str:
    return f"Environment({list(self.bindings)}, depth={self.depth()})"

  def depth(self) -> int:
    count = 0
    scope = self.parent
    while scope is not None:
      count += 1
      scope = scope.parent
    return count

  def scopes(self) -> Iterator['Environment']:
    """This scope, then each ancestor outward"""
    scope = self
    while scope is not None:
      yield scope
      scope = scope.parent

  def find_scope(self, name: str) -> Optional['Environment']:
    """Nearest scope in the chain that binds name"""
    for scope in self.scopes():
      if name in scope.bindings:
        return scope
    return None

  def lookup(self, name: str) -> Optional[Value]:
    """Clone of the nearest binding of name, or None when unbound"""
    scope = self.find_scope(name)
    if scope is None:
      return None
    return clone_value(scope.bindings[name])

  def assign(self, name: str, value: Value) -> None:
    """Overwrite the nearest existing binding, else bind in this scope.

    The search covers the whole chain, so assignment inside a nested scope
    mutates the enclosing variable. A new binding is never created in an
    ancestor.
    """
    scope = self.find_scope(name)
    if scope is None:
      scope = self
    scope.bindings[name] = clone_value(value)

  def define(self, name: str, value: Value) -> None:
    """Bind name in this scope only, shadowing any outer binding"""
    self.bindings[name] = clone_value(value)

  def snapshot(self) -> 'Environment':
    """Independent deep copy of the entire chain"""
    parent_copy = self.parent.snapshot() if self.parent is not None else None
    copy = Environment(parent_copy)
    for name, value in self.bindings.items():
      copy.bindings[name] = clone_value(value)
    return copy

  def names(self) -> List[str]:
    """Every visible name, innermost scope first"""
    seen: List[str] = []
    for scope in self.scopes():
      for name in scope.bindings:
        if name not in seen:
          seen.append(name)
    return seen


def make_runtime_env(parent: Optional[Environment] = None) -> Environment:
  """Create a runtime environment"""
  return Environment(parent)
