"""
PEANO Interpreter - Pure Functional Style
Structural evaluator over immutable dictionaries: a definition table that
define/declare_datatype extend by copying, per-call environments and an
execution context carrying the configured depth limit
"""

import logging
import sys
from typing import Any, Dict, List, Optional, Tuple, Union

from error_handling import (
  MalformedDefinitionError,
  NonExhaustiveMatchError,
  PeanoRuntimeError,
  StackExhaustedError,
  UnboundVariableError
)
from parsing import create_parser
from semantics import analyze_expression, analyze_program, create_builtin_env
from stdlib import (
  BUILTIN_TYPE_NAMES,
  NAT_DATATYPE,
  PRELUDE_SOURCE,
  SUCC,
  ZERO,
  make_closure,
  make_constructor,
  make_constructor_function,
  make_datatype,
  make_function_value,
  make_pair,
  make_recursor,
  make_succ,
  make_zero,
  recursor_name,
  show_value,
  value_fields,
  value_tag
)
from termination import check_definition, check_expression
from utilities import arity_error, format_location, get_dict_type, validate_arity


logger = logging.getLogger(__name__)


DEFAULT_MAX_DEPTH = 2000

# Host frames one PEANO call may use; a call nests eval_ast, eval_match,
# eval_apply and apply_function, more for deeply nested bodies
FRAMES_PER_CALL = 16
HOST_FRAME_HEADROOM = 200


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_runtime_env(parent: Optional[Dict] = None, bindings: Optional[Dict] = None) -> Dict:
  """Create an immutable runtime environment"""
  return {
      'parent': parent,
      'bindings': bindings or {}
  }


def make_definition(name: str, params: List[str], decreasing: Optional[int], body: Dict) -> Dict:
  """A checked top-level function; decreasing is fixed here and never changes"""
  return {
      'name': name,
      'params': list(params),
      'decreasing': decreasing,
      'body': body
  }


def make_constructor_info(name: str, fields: List[str], datatype: str) -> Dict:
  return {
      'name': name,
      'arity': len(fields),
      'fields': list(fields),
      'datatype': datatype
  }


def make_definition_table() -> Dict:
  """Empty table holding only the naturals and their recursor"""
  return {
      'functions': {},
      'constructors': {
          ZERO: make_constructor_info(ZERO, [], NAT_DATATYPE['name']),
          SUCC: make_constructor_info(SUCC, [NAT_DATATYPE['name']], NAT_DATATYPE['name']),
      },
      'datatypes': {NAT_DATATYPE['name']: NAT_DATATYPE},
      'builtins': {recursor_name(NAT_DATATYPE['name']): make_recursor(NAT_DATATYPE)}
  }


def make_execution_context(table: Dict, max_depth: int = DEFAULT_MAX_DEPTH, debug: bool = False) -> Dict:
  """Create an execution context: definitions, call depth limit and current depth"""
  return {
      'table': table,
      'max_depth': max_depth,
      'depth': 0,
      'debug': debug,
      'definition': None
  }


# ============================================================================
# ENVIRONMENT OPERATIONS
# ============================================================================

def env_bind_value(env: Dict, name: str, value: Dict) -> Dict:
  """Return new environment with name bound to value"""
  return {
      **env,
      'bindings': {**env['bindings'], name: value}
  }


def env_lookup_value(env: Dict, name: str) -> Optional[Dict]:
  """Look up a value in the environment chain"""
  if name in env['bindings']:
    return env['bindings'][name]
  elif env['parent']:
    return env_lookup_value(env['parent'], name)
  return None


def env_names(env: Optional[Dict]) -> List[str]:
  """Every name visible in the environment chain"""
  names = []
  while env is not None:
    names.extend(env['bindings'])
    env = env['parent']
  return names


def is_defined(table: Dict, name: str) -> bool:
  return name in table['functions'] or name in table['constructors'] or name in table['builtins']


# ============================================================================
# DEFINITIONS
# ============================================================================

def declare_datatype(table: Dict, name: str, constructors: List[Dict], debug: bool = False) -> Dict:
  """
  Register a tagged variant and synthesise its recursor.

  Args:
    table: Current definition table
    name: Datatype name (possibly module-qualified)
    constructors: [{'name': str, 'fields': [type names]}] in declaration order

  Returns:
    New definition table
  """
  if name in table['datatypes'] or name in BUILTIN_TYPE_NAMES:
    raise MalformedDefinitionError(f"type '{name}' is already declared", name)

  seen = set()
  for constructor in constructors:
    ctor_name = constructor['name']
    if ctor_name in seen or is_defined(table, ctor_name):
      raise MalformedDefinitionError(f"'{ctor_name}' is already declared", name)
    seen.add(ctor_name)
    for field_type in constructor['fields']:
      if field_type != name and field_type not in table['datatypes'] and field_type not in BUILTIN_TYPE_NAMES:
        raise UnboundVariableError(f"unknown type '{field_type}'", name)

  rec_name = recursor_name(name)
  if is_defined(table, rec_name):
    raise MalformedDefinitionError(f"'{rec_name}' is already defined", name)

  datatype = make_datatype(name, constructors)
  if debug:
    logger.debug("Declaring %s with constructors %s", name, [c['name'] for c in constructors])

  return {
      **table,
      'constructors': {
          **table['constructors'],
          **{c['name']: make_constructor_info(c['name'], c['fields'], name) for c in constructors}
      },
      'datatypes': {**table['datatypes'], name: datatype},
      'builtins': {**table['builtins'], rec_name: make_recursor(datatype)}
  }


def define(table: Dict, name: str, params: List[str], decreasing: Union[int, str, None],
           body: Dict, debug: bool = False) -> Dict:
  """
  Register a (possibly recursive) top-level function.

  decreasing is a parameter index, a parameter name, or None to infer it.
  The body is checked against the table as it stands, so a definition can
  only mention itself and what was defined before it.

  Returns:
    New definition table

  Raises:
    MalformedDefinitionError if a recursive call is not on a strict
    structural sub-term of the decreasing parameter
    UnboundVariableError if the body mentions an unknown name
  """
  if is_defined(table, name):
    raise MalformedDefinitionError(f"'{name}' is already defined", name)

  if isinstance(decreasing, str):
    if decreasing not in params:
      raise MalformedDefinitionError(f"decreasing argument '{decreasing}' is not a parameter", name)
    decreasing = list(params).index(decreasing)

  checked_body, index = check_definition(name, params, decreasing, body, table, name)
  if debug:
    logger.debug("Defined %s(%s), decreasing argument %s", name, ", ".join(params), index)

  return {
      **table,
      'functions': {**table['functions'], name: make_definition(name, params, index, checked_body)}
  }


# ============================================================================
# EVALUATION
# ============================================================================

def eval_ast(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """
  Evaluate an AST node and return (result_value, environment).
  Expressions never extend the environment they are evaluated in.
  """
  node_type = ast_node['type']
  if debug:
    logger.debug("Evaluating %s at %s", node_type, ast_node.get('path'))

  if node_type == "LITERAL":
    return eval_literal(ast_node, env, debug, context)
  elif node_type == "VARIABLE":
    return eval_variable(ast_node, env, debug, context)
  elif node_type == "APPLY":
    return eval_apply(ast_node, env, debug, context)
  elif node_type == "PAIR":
    return eval_pair(ast_node, env, debug, context)
  elif node_type == "MATCH":
    return eval_match(ast_node, env, debug, context)
  elif node_type == "LET":
    return eval_let(ast_node, env, debug, context)
  elif node_type == "LAMBDA":
    return eval_lambda(ast_node, env, debug, context)
  elif node_type == "FIX":
    return eval_fix(ast_node, env, debug, context)
  raise ValueError(f"Unknown expression type: {node_type}")


def eval_literal(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """Numerals were desugared to Succ/Zero during analysis"""
  return ast_node['value'], env


def lookup_global(table: Dict, name: str) -> Optional[Dict]:
  """Definition table lookup: functions, then constructors, then builtins"""
  if name in table['functions']:
    return make_function_value(table['functions'][name])

  if name in table['constructors']:
    constructor = table['constructors'][name]
    if constructor['arity'] > 0:
      return make_constructor_function(name, constructor['arity'])
    return make_zero() if name == ZERO else make_constructor(name)

  return table['builtins'].get(name)


def eval_variable(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """Evaluate variable by looking up the environment, then the definition table"""
  name = ast_node['value']
  value = env_lookup_value(env, name)
  if value is None:
    value = lookup_global(context['table'], name)

  if value is None:
    raise UnboundVariableError(
        f"unbound name '{name}'",
        format_location(ast_node.get('path'), context['definition'])
    )
  return value, env


def eval_apply(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """Strict application: function first, then arguments left to right"""
  value_dict = ast_node['value']
  func_val, _ = eval_ast(value_dict['function'], env, debug, context)

  arg_vals = []
  for arg in value_dict['args']:
    arg_val, _ = eval_ast(arg, env, debug, context)
    arg_vals.append(arg_val)

  location = format_location(ast_node.get('path'), context['definition'])
  return apply_function(func_val, arg_vals, context, location), env


def enter_call(context: Dict, name: Optional[str], location: Optional[str]) -> Dict:
  """Child context one call deeper"""
  depth = context['depth'] + 1
  if depth > context['max_depth']:
    raise StackExhaustedError(
        f"call depth exceeded the limit of {context['max_depth']}",
        location
    )
  return {**context, 'depth': depth, 'definition': name or context['definition']}


def apply_function(func_val: Dict, args: List[Dict], context: Dict, location: Optional[str] = None) -> Dict:
  """Apply a callable value to evaluated arguments"""
  func_type = get_dict_type(func_val)
  debug = context['debug']

  if func_type == "Function":
    definition = func_val['value']
    name = definition['name']
    validate_arity(f"function '{name}'", definition['params'], args, location)
    call_context = enter_call(context, name, location)
    call_env = make_runtime_env(None, dict(zip(definition['params'], args)))
    result, _ = eval_ast(definition['body'], call_env, debug, call_context)
    return result

  if func_type == "Closure":
    closure = func_val['value']
    name = closure['name']
    what = f"function '{name}'" if name else "anonymous function"
    validate_arity(what, closure['params'], args, location)
    call_context = enter_call(context, name, location)

    bindings = dict(zip(closure['params'], args))
    if name and name not in bindings:
      bindings[name] = func_val
    call_env = make_runtime_env(closure['env'], bindings)
    result, _ = eval_ast(closure['body'], call_env, debug, call_context)
    return result

  if func_type == "ConstructorFunction":
    name = func_val['value']['name']
    arity = func_val['value']['arity']
    if len(args) != arity:
      raise arity_error(f"constructor '{name}'", arity, len(args), location)
    if name == SUCC:
      return make_succ(args[0])
    return make_constructor(name, tuple(args))

  if func_type == "Builtin":
    builtin = func_val['value']
    if len(args) != builtin['arity']:
      raise arity_error(f"'{builtin['name']}'", builtin['arity'], len(args), location)
    call_context = enter_call(context, None, location)
    return builtin['impl'](
        args,
        lambda f, a: apply_function(f, a, call_context, location),
        call_context
    )

  raise PeanoRuntimeError(f"{show_value(func_val)} is not a function", location)


def eval_pair(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  value_dict = ast_node['value']
  first, _ = eval_ast(value_dict['first'], env, debug, context)
  second, _ = eval_ast(value_dict['second'], env, debug, context)
  return make_pair(first, second), env


def eval_match(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """Evaluate match expression; clauses are tried in order and the first match wins"""
  value_dict = ast_node['value']
  location = format_location(ast_node.get('path'), context['definition'])

  scrutinee_val, _ = eval_ast(value_dict['scrutinee'], env, debug, context)

  for clause in value_dict['clauses']:
    bindings = matches_pattern(scrutinee_val, clause['pattern'], location)
    if bindings is not None:
      if debug:
        logger.debug("Matched %s against %s", show_value(scrutinee_val), clause['pattern']['type'])
      clause_env = make_runtime_env(env, bindings)
      result_val, _ = eval_ast(clause['body'], clause_env, debug, context)
      return result_val, env

  raise NonExhaustiveMatchError(f"no clause matches {show_value(scrutinee_val)}", location)


def bind_fields(binders: List[str], fields, what: str, location: Optional[str]) -> Dict:
  if len(binders) != len(fields):
    raise arity_error(what, len(fields), len(binders), location)
  return {name: field for name, field in zip(binders, fields) if name != '_'}


def matches_pattern(value: Dict, pattern: Dict, location: Optional[str] = None) -> Optional[Dict]:
  """
  Pattern matching against a value's tag

  Returns:
    Dictionary of bindings if pattern matches, None otherwise

  Raises:
    ArityMismatchError when the tag matches but the binder count
    differs from the value's field count
  """
  pattern_type = pattern['type']

  if pattern_type == 'PATTERN_WILDCARD':
    return {}

  if pattern_type == 'PATTERN_VAR':
    return {pattern['value']: value}

  if pattern_type == 'PATTERN_ZERO':
    return {} if value['type'] == ZERO else None

  if pattern_type == 'PATTERN_SUCC':
    if value['type'] != SUCC:
      return None
    return bind_fields([pattern['value']], value_fields(value), "pattern 'Succ'", location)

  if pattern_type == 'PATTERN_PAIR':
    if value['type'] != 'Pair':
      return None
    binders = [pattern['value']['first'], pattern['value']['second']]
    return bind_fields(binders, value_fields(value), "pair pattern", location)

  if pattern_type == 'PATTERN_CONSTRUCTOR':
    name = pattern['value']['name']
    if value_tag(value) != name:
      return None
    return bind_fields(pattern['value']['binders'], value_fields(value), f"pattern '{name}'", location)

  raise ValueError(f"Unknown pattern type: {pattern_type}")


def eval_let(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  value_dict = ast_node['value']
  bound_val, _ = eval_ast(value_dict['value'], env, debug, context)
  body_env = env_bind_value(make_runtime_env(env), value_dict['name'], bound_val)
  result_val, _ = eval_ast(value_dict['body'], body_env, debug, context)
  return result_val, env


def eval_lambda(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """Evaluate anonymous function, capturing the current environment"""
  value_dict = ast_node['value']
  return make_closure(None, value_dict['params'], value_dict['body'], env), env


def eval_fix(ast_node: Dict, env: Dict, debug: bool = False, context: Optional[Dict] = None) -> Tuple[Dict, Dict]:
  """Local recursive function; already checked before evaluation started"""
  value_dict = ast_node['value']
  return make_closure(value_dict['name'], value_dict['params'], value_dict['body'], env), env


def host_recursion_limit(max_depth: int) -> int:
  """Host frames needed to reach max_depth nested calls"""
  return max_depth * FRAMES_PER_CALL + HOST_FRAME_HEADROOM


def evaluate(expr: Dict, env: Optional[Dict] = None, table: Optional[Dict] = None,
             context: Optional[Dict] = None) -> Dict:
  """
  Evaluate an expression to a value.

  Local fix expressions are checked for structural decrease before any
  evaluation happens. The host recursion limit is raised for the duration
  of the call so that the configured depth is what normally stops a deep
  evaluation; exceeding either raises StackExhaustedError.
  """
  if context is None:
    context = make_execution_context(table if table is not None else make_definition_table())
  if env is None:
    env = make_runtime_env()

  location = format_location(expr.get('path'), context['definition'])
  checked = check_expression(expr, context['table'], env_names(env), location)

  previous_limit = sys.getrecursionlimit()
  needed_limit = host_recursion_limit(context['max_depth'])
  if needed_limit > previous_limit:
    sys.setrecursionlimit(needed_limit)
  try:
    value, _ = eval_ast(checked, env, context['debug'], context)
  except RecursionError:
    raise StackExhaustedError("host stack exhausted", location) from None
  finally:
    if needed_limit > previous_limit:
      sys.setrecursionlimit(previous_limit)
  return value


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def exec_statement(ast_node: Dict, table: Dict, context: Dict) -> Tuple[Dict, Optional[Dict]]:
  """Run one analysed statement; returns (table, computed value or None)"""
  node_type = ast_node['type']
  value_dict = ast_node['value']
  debug = context['debug']

  if node_type == "DATA_DEF":
    return declare_datatype(table, value_dict['name'], value_dict['constructors'], debug), None

  if node_type == "FUNCTION_DEF":
    return define(table, value_dict['name'], value_dict['params'], value_dict['decreasing'],
                  value_dict['body'], debug), None

  if node_type == "COMPUTE":
    return table, evaluate(value_dict, context={**context, 'table': table})

  raise ValueError(f"Unknown statement type: {node_type}")


def eval_program(ast_nodes: List[Dict], table: Optional[Dict] = None, debug: bool = False,
                 max_depth: int = DEFAULT_MAX_DEPTH) -> Tuple[Dict, List[Tuple[str, Dict]]]:
  """
  Evaluate a program (list of AST nodes) and return the final definition
  table and the computed values as (location, value) pairs.
  The first error aborts the rest of the program.
  """
  if table is None:
    table = make_definition_table()
  context = make_execution_context(table, max_depth, debug)
  results = []

  for ast_node in ast_nodes:
    table, value = exec_statement(ast_node, table, context)
    if value is not None:
      results.append((ast_node.get('path'), value))

  return table, results


def load_source(table: Dict, text: str, filename: str = "<input>", debug: bool = False,
                max_depth: int = DEFAULT_MAX_DEPTH) -> Tuple[Dict, List[Tuple[str, Dict]]]:
  """Parse, analyse and run source text against a table"""
  cst_nodes = create_parser(debug).parse_string(text, filename)
  ast_nodes, _ = analyze_program(cst_nodes, create_builtin_env(table), debug)
  return eval_program(ast_nodes, table, debug, max_depth)


def create_builtin_table(prelude: bool = True, debug: bool = False) -> Dict:
  """Definition table with the naturals and, unless disabled, the prelude"""
  table = make_definition_table()
  if prelude:
    table, _ = load_source(table, PRELUDE_SOURCE, "<prelude>", debug)
  return table


def read_value(text: str, table: Optional[Dict] = None) -> Dict:
  """Re-read a printed value such as '7', '(1, 2)' or 'Cons(1, Nil)'"""
  if table is None:
    table = create_builtin_table()
  cst = create_parser().parse_expression(text, "<value>")
  ast = analyze_expression(cst.value, create_builtin_env(table), "value")
  return evaluate(ast, table=table)


# ============================================================================
# FACTORY FUNCTIONS (for main.py)
# ============================================================================

class Interpreter:
  """Session state for the CLI and REPL: the definition table grows as source is run"""

  def __init__(self, debug: bool = False, max_depth: int = DEFAULT_MAX_DEPTH, prelude: bool = True):
    self.debug = debug
    self.max_depth = max_depth
    self.parser = create_parser(debug)
    self.table = create_builtin_table(prelude, debug)

  def analysis_env(self) -> Dict:
    return create_builtin_env(self.table)

  def analyze(self, text: str, filename: str = "<input>") -> List[Dict]:
    cst_nodes = self.parser.parse_string(text, filename)
    ast_nodes, _ = analyze_program(cst_nodes, self.analysis_env(), self.debug)
    return ast_nodes

  def run(self, text: str, filename: str = "<input>") -> List[Tuple[str, Dict]]:
    """Run declarations and compute statements; definitions persist on success"""
    ast_nodes = self.analyze(text, filename)
    self.table, results = eval_program(ast_nodes, self.table, self.debug, self.max_depth)
    return results

  def run_file(self, filepath: str) -> List[Tuple[str, Dict]]:
    cst_nodes = self.parser.parse_file(filepath)
    ast_nodes, _ = analyze_program(cst_nodes, self.analysis_env(), self.debug)
    self.table, results = eval_program(ast_nodes, self.table, self.debug, self.max_depth)
    return results

  def eval_expression(self, text: str) -> Dict:
    """Evaluate a bare expression such as 'add(3, 4)'"""
    cst = self.parser.parse_expression(text)
    ast = analyze_expression(cst.value, self.analysis_env(), "eval", self.debug)
    context = make_execution_context(self.table, self.max_depth, self.debug)
    return evaluate(ast, context=context)

  def definitions(self) -> Dict[str, Any]:
    """Names visible at top level, grouped by kind"""
    return {
        'datatypes': sorted(self.table['datatypes']),
        'constructors': sorted(self.table['constructors']),
        'functions': sorted(self.table['functions']),
        'builtins': sorted(self.table['builtins'])
    }


def create_interpreter(debug: bool = False, max_depth: int = DEFAULT_MAX_DEPTH,
                       prelude: bool = True) -> Interpreter:
  """Factory function returning an interpreter"""
  return Interpreter(debug=debug, max_depth=max_depth, prelude=prelude)
