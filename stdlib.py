"""
PEANO Standard Library
Runtime values, their canonical printed form, synthesised recursors
and the prelude of datatypes and functions written in PEANO itself
Pure functional style using immutable dictionaries
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from error_handling import NonExhaustiveMatchError
from utilities import dispatch_by_type, is_value_dict


logger = logging.getLogger(__name__)


# Type names a constructor field may mention besides declared datatypes
BUILTIN_TYPE_NAMES = ("Nat", "Unit", "Pair", "Any")

NAT_TYPE = "Nat"
ZERO = "Zero"
SUCC = "Succ"


# ============================================================================
# VALUE CONSTRUCTION
# ============================================================================

def make_value(value: Any, type_name: str = "Unknown") -> Dict:
  """Create an immutable runtime value"""
  return {
      'value': value,
      'type': type_name
  }


def make_zero() -> Dict:
  return make_value(None, ZERO)


def make_succ(value: Dict) -> Dict:
  return make_value(value, SUCC)


def make_pair(first: Dict, second: Dict) -> Dict:
  return make_value((first, second), "Pair")


def make_unit() -> Dict:
  return make_value(None, "Unit")


def make_constructor(name: str, fields: Tuple[Dict, ...] = ()) -> Dict:
  """Value built by a user-declared constructor"""
  return make_value({'name': name, 'fields': tuple(fields)}, "Constructor")


def make_function_value(definition: Dict) -> Dict:
  """Reference to a top-level definition from the definition table"""
  return make_value(definition, "Function")


def make_closure(name: Optional[str], params: List[str], body: Dict, env: Dict) -> Dict:
  """Anonymous (name is None) or locally recursive function with its captured environment"""
  return make_value({
      'name': name,
      'params': list(params),
      'body': body,
      'env': env
  }, "Closure")


def make_constructor_function(name: str, arity: int) -> Dict:
  """A constructor of non-zero arity used in function position"""
  return make_value({'name': name, 'arity': arity}, "ConstructorFunction")


def make_builtin(name: str, arity: int, impl: Callable) -> Dict:
  """
  Host-implemented function.

  impl is called as impl(args, apply, context) where apply(func, args)
  applies a PEANO callable, so builtins never import the evaluator.
  """
  return make_value({'name': name, 'arity': arity, 'impl': impl}, "Builtin")


# ============================================================================
# VALUE INSPECTION
# ============================================================================

def value_tag(value: Dict) -> str:
  """Constructor name a pattern is compared against"""
  if value['type'] == "Constructor":
    return value['value']['name']
  return value['type']


def value_fields(value: Dict) -> Tuple[Dict, ...]:
  """Sub-values in declaration order"""
  value_type = value['type']
  if value_type == SUCC:
    return (value['value'],)
  if value_type == "Pair":
    return value['value']
  if value_type == "Constructor":
    return value['value']['fields']
  return ()


def int_to_nat(number: int) -> Dict:
  """Unary Peano encoding of a non-negative integer, built iteratively"""
  if number < 0:
    raise ValueError(f"Naturals are non-negative, got {number}")
  result = make_zero()
  for _ in range(number):
    result = make_succ(result)
  return result


def nat_to_int(value: Dict) -> Optional[int]:
  """Count the Succ layers of a natural; None if value is not built from Zero/Succ"""
  count = 0
  current = value
  while is_value_dict(current) and current['type'] == SUCC:
    count += 1
    current = current['value']
  if is_value_dict(current) and current['type'] == ZERO:
    return count
  return None


def show_value(value: Dict) -> str:
  """Canonical printed form: naturals in decimal, constructors as Name(fields)"""
  number = nat_to_int(value)
  if number is not None:
    return str(number)

  def show_constructor(v: Dict) -> str:
    name = v['value']['name']
    fields = v['value']['fields']
    if not fields:
      return name
    return f"{name}({', '.join(show_value(f) for f in fields)})"

  def show_closure(v: Dict) -> str:
    name = v['value']['name']
    return f"<fun {name}>" if name else "<fun>"

  handlers = {
      'Unit': lambda v: "()",
      'Pair': lambda v: f"({show_value(v['value'][0])}, {show_value(v['value'][1])})",
      SUCC: lambda v: f"Succ({show_value(v['value'])})",
      'Constructor': show_constructor,
      'Function': lambda v: f"<fun {v['value']['name']}>",
      'Closure': show_closure,
      'ConstructorFunction': lambda v: f"<constructor {v['value']['name']}>",
      'Builtin': lambda v: f"<builtin {v['value']['name']}>",
  }
  return dispatch_by_type(value, handlers, lambda v: f"<{v.get('type', 'Unknown')}>")


# ============================================================================
# RECURSORS
# ============================================================================

def make_datatype(name: str, constructors: List[Dict]) -> Dict:
  """Datatype declaration: constructors are {'name', 'fields'} with field type names"""
  return {
      'name': name,
      'constructors': [
          {'name': c['name'], 'fields': list(c['fields'])} for c in constructors
      ]
  }


NAT_DATATYPE = make_datatype(NAT_TYPE, [
    {'name': ZERO, 'fields': []},
    {'name': SUCC, 'fields': [NAT_TYPE]},
])


def recursor_name(datatype_name: str) -> str:
  return f"{datatype_name}_rec"


def make_recursor(datatype: Dict) -> Dict:
  """
  Synthesise the fold combinator of a datatype.

  T_rec takes one handler per constructor, in declaration order, followed
  by the scrutinee. A nullary constructor's handler is the result itself;
  otherwise the handler is applied to the constructor's fields, each
  recursive field immediately followed by the recursor's result on it.

  Example:
    Nat_rec(z, s, 2) == s(1, s(0, z))
  """
  type_name = datatype['name']
  constructors = datatype['constructors']
  by_name = {c['name']: (i, c) for i, c in enumerate(constructors)}
  name = recursor_name(type_name)

  def impl(args: List[Dict], apply: Callable, context: Dict) -> Dict:
    handlers = args[:-1]

    def fold(value: Dict) -> Dict:
      tag = value_tag(value)
      if tag not in by_name:
        raise NonExhaustiveMatchError(
            f"{name} expects a value of type {type_name}, got {show_value(value)}",
            context.get('definition') or name
        )
      index, constructor = by_name[tag]
      handler = handlers[index]
      fields = value_fields(value)
      if not constructor['fields']:
        return handler

      handler_args = []
      for field_value, field_type in zip(fields, constructor['fields']):
        handler_args.append(field_value)
        if field_type == type_name:
          handler_args.append(fold(field_value))
      return apply(handler, handler_args)

    return fold(args[-1])

  logger.debug("Synthesised %s over %d constructors", name, len(constructors))
  return make_builtin(name, len(constructors) + 1, impl)


# ============================================================================
# PRELUDE
# ============================================================================

PRELUDE_SOURCE = """
// Booleans, options, sums and lists
data Bool = True | False.
data Option = None | Some(Any).
data Sum = Inl(Any) | Inr(Any).
data List = Nil | Cons(Any, List).

fn negb(b) = match b { True => False; False => True }.
fn andb(a, b) = match a { True => b; False => False }.
fn orb(a, b) = match a { True => True; False => b }.

// Natural numbers
fn is_zero(n) = match n { Zero => True; Succ(_) => False }.
fn pred(n) = match n { Zero => 0; Succ(p) => p }.
fn add(n, m) {struct n} = match n { Zero => m; Succ(p) => Succ(add(p, m)) }.
fn mult(n, m) {struct n} = match n { Zero => 0; Succ(p) => add(m, mult(p, m)) }.
fn minus(n, m) {struct n} = match n {
  Zero => 0;
  Succ(p) => match m { Zero => n; Succ(q) => minus(p, q) }
}.
fn factorial(n) = match n { Zero => 1; Succ(p) => mult(n, factorial(p)) }.
fn eqb(n, m) = match n {
  Zero => match m { Zero => True; Succ(_) => False };
  Succ(p) => match m { Zero => False; Succ(q) => eqb(p, q) }
}.
fn leb(n, m) = match n {
  Zero => True;
  Succ(p) => match m { Zero => False; Succ(q) => leb(p, q) }
}.

// Products
fn fst(p) = match p { (a, _) => a }.
fn snd(p) = match p { (_, b) => b }.
fn swap(p) = match p { (a, b) => (b, a) }.

// Lists
fn length(l) = match l { Nil => 0; Cons(_, t) => Succ(length(t)) }.
fn app(l1, l2) = match l1 { Nil => l2; Cons(h, t) => Cons(h, app(t, l2)) }.
fn rev(l) = match l { Nil => Nil; Cons(h, t) => app(rev(t), Cons(h, Nil)) }.
fn map(f, l) {struct l} = match l { Nil => Nil; Cons(h, t) => Cons(f(h), map(f, t)) }.
"""
