"""
Test configuration for PEANO tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from interpreter import create_interpreter
from stdlib import show_value


@pytest.fixture
def interpreter():
  """Fresh interpreter with the prelude loaded"""
  return create_interpreter()


@pytest.fixture
def bare_interpreter():
  """Fresh interpreter holding only Zero, Succ and Nat_rec"""
  return create_interpreter(prelude=False)


@pytest.fixture
def run(interpreter):
  """Run source text and return the printed form of every computed value"""
  def run_source(source):
    return [show_value(value) for _, value in interpreter.run(source)]
  return run_source
