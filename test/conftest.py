"""
Test configuration for Dusth tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from interpreter import create_interpreter, create_global_env, run


@pytest.fixture
def parser():
  """Provide a fresh parser for each test"""
  return create_parser()


@pytest.fixture
def interpreter():
  """Provide a fresh interpreter with builtins registered"""
  return create_interpreter()


@pytest.fixture
def run_source(parser):
  """Run source in a fresh global environment; returns (signal, env)"""
  def runner(source):
    env = create_global_env()
    signal = run(parser.parse_string(source), env)
    return signal, env
  return runner
