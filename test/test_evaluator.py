"""
Evaluation tests for the PEANO structural evaluator
Programs run through the parser, analyzer and interpreter together
"""

import pytest

from interpreter import (
  define,
  evaluate,
  make_definition_table,
  make_execution_context,
  make_runtime_env,
  read_value
)
from semantics import (
  make_apply,
  make_clause,
  make_let,
  make_match,
  make_nat_literal,
  make_pattern_succ,
  make_pattern_wildcard,
  make_pattern_zero,
  make_variable
)
from stdlib import int_to_nat, make_pair, make_unit, nat_to_int, show_value


def plus_body():
  """plus(n, m) = match n { Zero => m; Succ(p) => Succ(plus(p, m)) }"""
  return make_match(make_variable('n'), [
      make_clause(make_pattern_zero(), make_variable('m')),
      make_clause(make_pattern_succ('p'), make_apply(make_variable('Succ'), [
          make_apply(make_variable('plus'), [make_variable('p'), make_variable('m')])
      ])),
  ])


class TestArithmetic:
  """The book's natural number examples"""

  def test_add(self, run):
    """Test addition"""
    assert run("compute add(3, 4).") == ["7"]

  def test_mult(self, run):
    """Test multiplication"""
    assert run("compute mult(3, 4).") == ["12"]

  def test_factorial(self, run):
    """Test factorial"""
    assert run("compute factorial(4).") == ["24"]

  def test_minus_truncates(self, run):
    """Test that subtraction stops at zero"""
    assert run("compute minus(5, 2). compute minus(2, 5).") == ["3", "0"]

  def test_comparisons(self, run):
    """Test equality and ordering on naturals"""
    assert run("compute eqb(3, 3). compute leb(4, 2). compute is_zero(0).") == ["True", "False", "True"]

  def test_pred(self, run):
    """Test predecessor"""
    assert run("compute pred(0). compute pred(5).") == ["0", "4"]

  def test_user_definition(self, run):
    source = """
    fn double(n) {struct n} = match n { Zero => 0; Succ(p) => Succ(Succ(double(p))) }.
    compute double(5).
    """
    assert run(source) == ["10"]

  def test_succ_of_numeral(self, run):
    """Test Succ applied to a numeral"""
    assert run("compute Succ(Succ(0)).") == ["2"]


class TestDataAndPairs:
  """Pairs, unit and user-declared variants"""

  def test_pairs(self, run):
    """Test pair construction and projection"""
    assert run("compute (1, 2). compute swap((1, 2)). compute fst((3, 4)).") == ["(1, 2)", "(2, 1)", "3"]

  def test_triple_nests_left(self, run):
    """Test that (a, b, c) is ((a, b), c)"""
    assert run("compute (1, 2, 3).") == ["((1, 2), 3)"]

  def test_unit(self, run):
    """Test the unit value"""
    assert run("compute ().") == ["()"]

  def test_lists(self, run):
    source = """
    compute length(Cons(1, Cons(2, Cons(3, Nil)))).
    compute rev(Cons(1, Cons(2, Nil))).
    compute map(fun x => add(x, 10), Cons(1, Nil)).
    """
    assert run(source) == ["3", "Cons(2, Cons(1, Nil))", "Cons(11, Nil)"]

  def test_user_datatype(self, run):
    source = """
    data Tree = Leaf | Node(Tree, Nat, Tree).
    fn size(t) = match t { Leaf => 0; Node(l, _, r) => Succ(add(size(l), size(r))) }.
    compute size(Node(Node(Leaf, 1, Leaf), 2, Leaf)).
    """
    assert run(source) == ["2"]

  def test_options_and_sums(self, run):
    """Test Option and Sum values"""
    assert run("compute Some(3). compute None. compute Inr(()).") == ["Some(3)", "None", "Inr(())"]

  def test_first_matching_clause_wins(self, run):
    """Test clause order"""
    assert run("compute match 2 { _ => 0; Succ(p) => p }.") == ["0"]

  def test_match_binds_whole_value(self, run):
    """Test a variable pattern binding the scrutinee"""
    assert run("compute match 3 { Zero => 0; n => add(n, n) }.") == ["6"]

  def test_callables_print(self, run):
    """Test the printed form of callables"""
    assert run("compute add. compute fun x => x. compute Cons. compute Nat_rec.") == [
        "<fun add>", "<fun>", "<constructor Cons>", "<builtin Nat_rec>"
    ]


class TestBindingForms:
  """let, anonymous functions and local fix"""

  def test_let(self, run):
    """Test let bindings"""
    assert run("compute let x = 2 in add(x, x).") == ["4"]

  def test_closure_captures_environment(self, run):
    source = """
    fn adder(n) = fun m => add(n, m).
    compute adder(2)(3).
    """
    assert run(source) == ["5"]

  def test_local_fix(self, run):
    """Test a local fix expression"""
    source = "compute (fix double(n) {struct n} => match n { Zero => 0; Succ(p) => Succ(Succ(double(p))) })(3)."
    assert run(source) == ["6"]

  def test_local_fix_infers_decreasing_argument(self, run):
    """Test fix without a struct annotation"""
    source = "compute (fix plus(m, n) => match n { Zero => m; Succ(p) => Succ(plus(m, p)) })(2, 3)."
    assert run(source) == ["5"]

  def test_higher_order(self, run):
    source = """
    fn twice(f, x) = f(f(x)).
    compute twice(fun n => mult(n, n), 2).
    """
    assert run(source) == ["16"]


class TestRecursors:
  """Synthesised T_rec fold combinators"""

  def test_nat_rec(self, run):
    """Test the Nat recursor"""
    assert run("compute Nat_rec(0, fun p r => Succ(Succ(r)), 3).") == ["6"]

  def test_nat_rec_on_zero_returns_handler(self, run):
    """Test that a nullary handler is returned as is"""
    assert run("compute Nat_rec(7, fun p r => r, 0).") == ["7"]

  def test_list_rec(self, run):
    """Test the List recursor"""
    source = "compute List_rec(0, fun h t r => add(h, r), Cons(1, Cons(2, Cons(3, Nil))))."
    assert run(source) == ["6"]

  def test_recursor_for_declared_type(self, run):
    source = """
    data Tree = Leaf | Node(Tree, Nat, Tree).
    compute Tree_rec(0, fun l rl x r rr => add(rl, add(x, rr)), Node(Node(Leaf, 1, Leaf), 2, Leaf)).
    """
    assert run(source) == ["3"]

  def test_bool_rec(self, run):
    """Test the Bool recursor"""
    assert run("compute Bool_rec(1, 2, False).") == ["2"]


class TestModules:
  """Qualified names"""

  def test_qualified_function(self, run):
    source = """
    module Pairs { fn swap(p) = match p { (a, b) => (b, a) }. fn twist(p) = swap(p). }
    compute Pairs.twist((1, 2)).
    """
    assert run(source) == ["(2, 1)"]

  def test_module_datatype(self, run):
    source = """
    module Shapes {
      data Shape = Circle(Nat) | Square(Nat).
      fn size(s) = match s { Circle(r) => r; Square(w) => w }.
    }
    compute Shapes.size(Shapes.Square(5)).
    """
    assert run(source) == ["5"]

  def test_nested_modules(self, run):
    source = """
    module A {
      module B { fn f(x) = Succ(x). }
      fn g(x) = B.f(B.f(x)).
    }
    compute A.g(1).
    """
    assert run(source) == ["3"]

  def test_inner_name_shadows_global(self, run):
    source = """
    module M { fn add(x, y) = x. fn use(x) = add(x, 5). }
    compute M.use(1). compute add(1, 5).
    """
    assert run(source) == ["1", "6"]

  def test_definitions_persist_across_runs(self, interpreter):
    """Test that definitions persist between runs"""
    interpreter.run("fn three(u) = 3.")
    assert show_value(interpreter.eval_expression("three(())")) == "3"


class TestDirectApi:
  """define/evaluate on hand-built expressions"""

  def test_define_and_evaluate(self):
    """Test define then evaluate on hand-built ASTs"""
    table = define(make_definition_table(), 'plus', ['n', 'm'], 0, plus_body())
    expr = make_apply(make_variable('plus'), [make_nat_literal(3), make_nat_literal(4)])
    assert evaluate(expr, table=table) == int_to_nat(7)

  def test_define_infers_position(self):
    """Test define without a decreasing position"""
    table = define(make_definition_table(), 'plus', ['n', 'm'], None, plus_body())
    assert table['functions']['plus']['decreasing'] == 0

  def test_define_accepts_parameter_name(self):
    """Test define with a parameter name"""
    table = define(make_definition_table(), 'plus', ['n', 'm'], 'n', plus_body())
    assert table['functions']['plus']['decreasing'] == 0

  def test_table_is_not_mutated(self):
    """Test that define returns a new table"""
    table = make_definition_table()
    define(table, 'plus', ['n', 'm'], 0, plus_body())
    assert 'plus' not in table['functions']

  def test_evaluate_in_environment(self):
    """Test evaluate with a caller-supplied environment"""
    env = make_runtime_env(None, {'x': int_to_nat(2)})
    expr = make_match(make_variable('x'), [
        make_clause(make_pattern_zero(), make_nat_literal(0)),
        make_clause(make_pattern_succ('p'), make_variable('p')),
    ])
    assert nat_to_int(evaluate(expr, env)) == 1

  def test_let_and_wildcard(self):
    """Test let and wildcard patterns on hand-built ASTs"""
    expr = make_let('y', make_nat_literal(1), make_match(make_variable('y'), [
        make_clause(make_pattern_wildcard(), make_variable('y')),
    ]))
    context = make_execution_context(make_definition_table(), max_depth=10)
    assert evaluate(expr, context=context) == int_to_nat(1)


class TestReadValue:
  """Printed values read back"""

  @pytest.mark.parametrize("text", ["0", "7", "(1, 2)", "()", "Cons(1, Nil)", "Some((1, True))"])
  def test_printed_form_reads_back(self, interpreter, text):
    """Test that printed naturals read back"""
    assert show_value(read_value(text, interpreter.table)) == text

  def test_read_structures(self, interpreter):
    """Test reading pairs and constructors"""
    assert read_value("(0, ())", interpreter.table) == make_pair(int_to_nat(0), make_unit())
