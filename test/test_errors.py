"""
Runtime error taxonomy: kind, location and message of each failure
"""

import sys

import pytest

from error_handling import (
  ArityMismatchError,
  MalformedDefinitionError,
  NonExhaustiveMatchError,
  PeanoError,
  PeanoParseError,
  PeanoRuntimeError,
  StackExhaustedError,
  UnboundVariableError
)
import interpreter as interpreter_module
from interpreter import DEFAULT_MAX_DEPTH, create_interpreter, evaluate
from semantics import make_apply, make_variable
from stdlib import nat_to_int


class TestNonExhaustiveMatch:

  def test_no_clause_matches(self, interpreter):
    """Test a match with no applicable clause"""
    with pytest.raises(NonExhaustiveMatchError) as exc_info:
      interpreter.eval_expression("match Zero { Succ(x) => x }")
    assert "0" in exc_info.value.message

  def test_empty_match(self, interpreter):
    """Test a match with no clauses"""
    with pytest.raises(NonExhaustiveMatchError):
      interpreter.eval_expression("match () { }")

  def test_location_is_expression_path(self, interpreter):
    """Test the expression path in the error"""
    interpreter.run("fn head(l) = match l { Cons(h, _) => h }.")
    with pytest.raises(NonExhaustiveMatchError) as exc_info:
      interpreter.run("compute head(Nil).")
    assert exc_info.value.location == "head/match"
    assert str(exc_info.value) == "NonExhaustiveMatchError in head/match: no clause matches Nil"

  def test_recursor_on_wrong_type(self, interpreter):
    """Test a recursor applied to another type"""
    with pytest.raises(NonExhaustiveMatchError):
      interpreter.eval_expression("Nat_rec(0, fun p r => r, Nil)")


class TestArityMismatch:

  def test_constructor_pattern_binders(self, interpreter):
    """Test too few binders in a constructor pattern"""
    with pytest.raises(ArityMismatchError):
      interpreter.eval_expression("match Cons(1, Nil) { Cons(h) => h }")

  def test_succ_pattern_with_two_binders(self, interpreter):
    """Test Succ with two binders"""
    with pytest.raises(ArityMismatchError):
      interpreter.eval_expression("match 1 { Succ(a, b) => a }")

  def test_binder_count_ignored_when_tag_differs(self, interpreter):
    """Test that non-matching clauses skip the count"""
    value = interpreter.eval_expression("match Nil { Cons(h) => h; Nil => 0 }")
    assert value['type'] == 'Zero'

  def test_function_arguments(self, interpreter):
    """Test a call with too few arguments"""
    with pytest.raises(ArityMismatchError) as exc_info:
      interpreter.eval_expression("add(1)")
    assert "expects 2 arguments, got 1" in exc_info.value.message

  def test_constructor_arguments(self, interpreter):
    """Test a constructor applied to too few fields"""
    with pytest.raises(ArityMismatchError):
      interpreter.eval_expression("Cons(1)")


class TestUnboundVariable:

  def test_unknown_name_in_expression(self, interpreter):
    """Test an unknown function name"""
    with pytest.raises(UnboundVariableError) as exc_info:
      interpreter.run("compute nope(1).")
    assert exc_info.value.location == "compute@1/apply"

  def test_parameter_does_not_escape(self, interpreter):
    """Test that parameters are local"""
    with pytest.raises(UnboundVariableError):
      interpreter.run("fn f(x) = x. compute x.")

  def test_module_names_need_qualification(self, interpreter):
    """Test that module members need their prefix"""
    with pytest.raises(UnboundVariableError):
      interpreter.run("module M { fn hidden(x) = x. } compute hidden(1).")

  def test_unknown_constructor_pattern(self, interpreter):
    """Test an unknown constructor in a pattern"""
    with pytest.raises(UnboundVariableError):
      interpreter.eval_expression("match 1 { Blue => 0 }")

  def test_unknown_field_type(self, interpreter):
    """Test an unknown field type"""
    with pytest.raises(UnboundVariableError):
      interpreter.run("data Box = Box(Thing).")

  def test_evaluate_checks_names_first(self):
    """Test that evaluate checks names before running"""
    with pytest.raises(UnboundVariableError):
      evaluate(make_apply(make_variable('missing'), []))


class TestStackExhausted:

  @pytest.fixture
  def shallow_host_stack(self, monkeypatch):
    """Keep the host recursion limit at 1000 and stop evaluate from raising it"""
    monkeypatch.setattr(interpreter_module, 'FRAMES_PER_CALL', 0)
    previous = sys.getrecursionlimit()
    sys.setrecursionlimit(1000)
    yield
    sys.setrecursionlimit(previous)

  def test_depth_limit(self):
    """Calls past max_depth stop with the configured limit in the message"""
    interpreter = create_interpreter(max_depth=50)
    with pytest.raises(StackExhaustedError) as exc_info:
      interpreter.eval_expression("add(100, 0)")
    assert "50" in exc_info.value.message

  def test_within_limit(self):
    """Evaluation below max_depth is unaffected"""
    interpreter = create_interpreter(max_depth=50)
    assert interpreter.eval_expression("add(10, 0)") == interpreter.eval_expression("10")

  def test_default_depth_is_reachable(self, interpreter):
    """The default depth, not the host stack, bounds a deep evaluation"""
    assert nat_to_int(interpreter.eval_expression("add(1500, 0)")) == 1500
    with pytest.raises(StackExhaustedError) as exc_info:
      interpreter.eval_expression("add(2500, 0)")
    assert exc_info.value.message == f"call depth exceeded the limit of {DEFAULT_MAX_DEPTH}"

  def test_host_limit_is_restored(self, interpreter):
    """The host recursion limit is raised only while evaluating"""
    before = sys.getrecursionlimit()
    interpreter.eval_expression("add(20, 0)")
    assert sys.getrecursionlimit() == before

  def test_host_stack_overflow(self, shallow_host_stack):
    """A host RecursionError surfaces as StackExhaustedError at the expression"""
    interpreter = create_interpreter(max_depth=100000)
    with pytest.raises(StackExhaustedError) as exc_info:
      interpreter.eval_expression("add(1000, 0)")
    assert exc_info.value.message == "host stack exhausted"
    assert exc_info.value.location == "eval/apply"
    assert sys.getrecursionlimit() == 1000


class TestMalformedDefinitions:

  def test_redefinition(self, interpreter):
    """Test redefining a prelude function"""
    with pytest.raises(MalformedDefinitionError):
      interpreter.run("fn add(x, y) = x.")

  def test_duplicate_parameters(self, interpreter):
    """Test repeated parameter names"""
    with pytest.raises(MalformedDefinitionError):
      interpreter.run("fn f(x, x) = x.")

  def test_duplicate_pattern_binders(self, interpreter):
    """Test repeated binders in a pattern"""
    with pytest.raises(MalformedDefinitionError):
      interpreter.eval_expression("match (1, 2) { (a, a) => a }")

  def test_struct_must_name_a_parameter(self, interpreter):
    """Test a struct annotation naming no parameter"""
    with pytest.raises(MalformedDefinitionError):
      interpreter.run("fn f(x) {struct y} = x.")

  def test_duplicate_constructor(self, interpreter):
    """Test repeated constructor names"""
    with pytest.raises(MalformedDefinitionError):
      interpreter.run("data Color = Red | Red.")


class TestTaxonomy:

  def test_hierarchy(self):
    """Test the exception hierarchy"""
    for cls in (MalformedDefinitionError, UnboundVariableError, NonExhaustiveMatchError,
                ArityMismatchError, StackExhaustedError):
      assert issubclass(cls, PeanoRuntimeError)
    assert issubclass(PeanoParseError, PeanoError)
    assert issubclass(PeanoRuntimeError, PeanoError)

  def test_format_with_and_without_location(self):
    """Test error formatting"""
    assert str(UnboundVariableError("unbound name 'x'", "f")) == "UnboundVariableError in f: unbound name 'x'"
    assert str(StackExhaustedError("host stack exhausted")) == "StackExhaustedError: host stack exhausted"

  def test_applying_a_non_function(self, interpreter):
    """Test applying a natural"""
    with pytest.raises(PeanoRuntimeError) as exc_info:
      interpreter.eval_expression("3(4)")
    assert type(exc_info.value) is PeanoRuntimeError
