"""
Dusth source loader
Resolves extern and import declarations to files and loads them into the
environment that declared them
"""

from typing import Dict, List, Optional, Set
import os

from environment import Environment
from interpreter import load_file


EXTERN_PACKAGES_DIR = "extern_packages"


class FileLoader:
  """
  Default search strategy for extern and import

  extern NAME tries <base>/NAME, then <base>/extern_packages/NAME.
  import "path" loads path relative to base (absolute paths as given).
  A file that is still being loaded is never entered again.
  """

  def __init__(self, base_dir: str = "."):
    self.base_dir = base_dir
    self.loading: Set[str] = set()
    self.loaded: List[str] = []

  def extern_candidates(self, name: str) -> List[str]:
    return [
        os.path.join(self.base_dir, name),
        os.path.join(self.base_dir, EXTERN_PACKAGES_DIR, name),
    ]

  def resolve_import(self, path: str) -> str:
    if os.path.isabs(path):
      return path
    return os.path.join(self.base_dir, path)

  def load_path(self, path: str, env: Environment, context: Optional[Dict]) -> bool:
    """Load one file unless it is already on the loading stack"""
    key = os.path.abspath(path)
    debug = bool(context and context.get('debug'))
    if key in self.loading:
      if debug:
        print(f"DEBUG: skipping {path}, already loading")
      return True

    self.loading.add(key)
    try:
      found = load_file(path, env, context)
    finally:
      self.loading.discard(key)

    if found:
      self.loaded.append(key)
    return found

  def load_extern(self, name: str, env: Environment, context: Optional[Dict] = None) -> bool:
    for candidate in self.extern_candidates(name):
      if self.load_path(candidate, env, context):
        return True
    if context and context.get('debug'):
      print(f"DEBUG: extern {name} not found")
    return False

  def load_import(self, path: str, env: Environment, context: Optional[Dict] = None) -> bool:
    found = self.load_path(self.resolve_import(path), env, context)
    if not found and context and context.get('debug'):
      print(f"DEBUG: import {path} not found")
    return found


def create_loader(script_path: Optional[str] = None) -> FileLoader:
  """Loader rooted at the script's directory, or the working directory"""
  if script_path:
    return FileLoader(os.path.dirname(os.path.abspath(script_path)))
  return FileLoader(".")
