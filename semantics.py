"""
PEANO Semantic Analysis - Pure Functional Style
Turns parser tuples into AST dictionaries: resolves names against the
definition table and enclosing modules, desugars numerals into Succ/Zero
values and records an expression path on every node
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from error_handling import MalformedDefinitionError, UnboundVariableError
from parsing import CSTNode
from stdlib import BUILTIN_TYPE_NAMES, int_to_nat, make_unit, recursor_name
from utilities import child_path, extract_from_wrapper, find_duplicates, is_tuple_with_type


logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_ast_node(node_type: str, value: Any, span: Any = None, path: Optional[str] = None) -> Dict:
  """Create an immutable AST node dictionary"""
  return {
      'type': node_type,
      'value': value,
      'span': span,
      'path': path
  }


def make_environment(parent: Optional[Dict] = None, bindings: Optional[Dict] = None,
                     types: Optional[Dict] = None, module: Optional[str] = None) -> Dict:
  """Create an immutable analysis environment; module is the enclosing module's qualified name"""
  return {
      'parent': parent,
      'bindings': bindings or {},
      'types': types or {},
      'module': module
  }


# ============================================================================
# AST BUILDERS
# ============================================================================

def make_literal(value: Dict, path: Optional[str] = None) -> Dict:
  return make_ast_node("LITERAL", value, path=path)


def make_nat_literal(number: int, path: Optional[str] = None) -> Dict:
  """Numerals become nested Succ/Zero values here, never at run time"""
  return make_literal(int_to_nat(number), path)


def make_unit_literal(path: Optional[str] = None) -> Dict:
  return make_literal(make_unit(), path)


def make_variable(name: str, path: Optional[str] = None) -> Dict:
  return make_ast_node("VARIABLE", name, path=path)


def make_apply(function: Dict, args: List[Dict], path: Optional[str] = None) -> Dict:
  return make_ast_node("APPLY", {'function': function, 'args': list(args)}, path=path)


def make_pair_expr(first: Dict, second: Dict, path: Optional[str] = None) -> Dict:
  return make_ast_node("PAIR", {'first': first, 'second': second}, path=path)


def make_clause(pattern: Dict, body: Dict) -> Dict:
  return {'pattern': pattern, 'body': body}


def make_match(scrutinee: Dict, clauses: List[Dict], path: Optional[str] = None) -> Dict:
  return make_ast_node("MATCH", {'scrutinee': scrutinee, 'clauses': list(clauses)}, path=path)


def make_let(name: str, value: Dict, body: Dict, path: Optional[str] = None) -> Dict:
  return make_ast_node("LET", {'name': name, 'value': value, 'body': body}, path=path)


def make_lambda(params: List[str], body: Dict, path: Optional[str] = None) -> Dict:
  return make_ast_node("LAMBDA", {'params': list(params), 'body': body}, path=path)


def make_fix(name: str, params: List[str], body: Dict, decreasing: Optional[int] = None,
             path: Optional[str] = None) -> Dict:
  """Local recursive function; decreasing is the index of the structural parameter"""
  return make_ast_node("FIX", {
      'name': name,
      'params': list(params),
      'decreasing': decreasing,
      'body': body
  }, path=path)


def make_pattern_zero() -> Dict:
  return {'type': 'PATTERN_ZERO', 'value': None}


def make_pattern_succ(binder: str) -> Dict:
  return {'type': 'PATTERN_SUCC', 'value': binder}


def make_pattern_wildcard() -> Dict:
  return {'type': 'PATTERN_WILDCARD', 'value': '_'}


def make_pattern_var(name: str) -> Dict:
  return {'type': 'PATTERN_VAR', 'value': name}


def make_pattern_pair(first: str, second: str) -> Dict:
  return {'type': 'PATTERN_PAIR', 'value': {'first': first, 'second': second}}


def make_pattern_constructor(name: str, binders: List[str]) -> Dict:
  return {'type': 'PATTERN_CONSTRUCTOR', 'value': {'name': name, 'binders': list(binders)}}


def pattern_binders(pattern: Dict) -> List[str]:
  """Names a pattern binds, in order, without wildcards"""
  pattern_type = pattern['type']
  if pattern_type in ('PATTERN_SUCC', 'PATTERN_VAR'):
    names = [pattern['value']]
  elif pattern_type == 'PATTERN_PAIR':
    names = [pattern['value']['first'], pattern['value']['second']]
  elif pattern_type == 'PATTERN_CONSTRUCTOR':
    names = list(pattern['value']['binders'])
  else:
    names = []
  return [name for name in names if name != '_']


# ============================================================================
# ENVIRONMENT OPERATIONS (Pure Functions)
# ============================================================================

def env_bind(env: Dict, name: str, info: Dict) -> Dict:
  """Return new environment with name bound"""
  return {
      **env,
      'bindings': {**env['bindings'], name: info}
  }


def env_bind_type(env: Dict, name: str, info: Dict) -> Dict:
  """Return new environment with type name bound"""
  return {
      **env,
      'types': {**env['types'], name: info}
  }


def env_lookup(env: Dict, name: str) -> Optional[Dict]:
  """Look up a name in the environment chain"""
  if name in env['bindings']:
    return env['bindings'][name]
  elif env['parent']:
    return env_lookup(env['parent'], name)
  return None


def env_lookup_type(env: Dict, name: str) -> Optional[Dict]:
  """Look up a type name in the environment chain"""
  if name in env['types']:
    return env['types'][name]
  elif env['parent']:
    return env_lookup_type(env['parent'], name)
  return None


def make_child_env(env: Dict, names: List[str]) -> Dict:
  """New scope binding names as locals"""
  return make_environment(env, {name: {'kind': 'local'} for name in names}, module=env['module'])


def module_prefixes(module: Optional[str]) -> List[str]:
  """'A.B' -> ['A.B', 'A']"""
  if not module:
    return []
  parts = module.split('.')
  return ['.'.join(parts[:i]) for i in range(len(parts), 0, -1)]


def qualify(env: Dict, name: str) -> str:
  return f"{env['module']}.{name}" if env['module'] else name


def create_builtin_env(table: Dict) -> Dict:
  """Create the global analysis environment from a definition table"""
  env = make_environment()

  for name in table['datatypes']:
    env = env_bind_type(env, name, {'kind': 'datatype'})
  for name in table['constructors']:
    env = env_bind(env, name, {'kind': 'constructor'})
  for name in table['builtins']:
    env = env_bind(env, name, {'kind': 'builtin'})
  for name in table['functions']:
    env = env_bind(env, name, {'kind': 'function'})

  return env


# ============================================================================
# NAME RESOLUTION
# ============================================================================

def resolve_name(env: Dict, name: str, path: Optional[str]) -> str:
  """Locals first, then the enclosing modules innermost-first, then globals"""
  info = env_lookup(env, name)
  if info is not None and info['kind'] == 'local':
    return name

  for prefix in module_prefixes(env['module']):
    qualified = f"{prefix}.{name}"
    if env_lookup(env, qualified) is not None:
      return qualified

  if info is not None:
    return name
  raise UnboundVariableError(f"unbound name '{name}'", path)


def resolve_constructor(env: Dict, name: str, path: Optional[str]) -> str:
  resolved = resolve_name(env, name, path)
  info = env_lookup(env, resolved)
  if info is None or info['kind'] != 'constructor':
    raise UnboundVariableError(f"'{name}' is not a constructor", path)
  return resolved


def resolve_type(env: Dict, name: str, own_name: str, path: Optional[str]) -> str:
  """Field type of a constructor; own_name is the qualified datatype being declared"""
  if name == own_name or qualify(env, name) == own_name:
    return own_name

  for prefix in module_prefixes(env['module']):
    qualified = f"{prefix}.{name}"
    if env_lookup_type(env, qualified) is not None:
      return qualified

  if env_lookup_type(env, name) is not None or name in BUILTIN_TYPE_NAMES:
    return name
  raise UnboundVariableError(f"unknown type '{name}'", path)


def check_binders(names: List[str], what: str, location: Optional[str]) -> None:
  duplicates = find_duplicates(names)
  if duplicates:
    raise MalformedDefinitionError(
        f"{what} binds {', '.join(repr(d) for d in duplicates)} more than once",
        location
    )


def decreasing_index(params: List[str], struct: Optional[str], location: Optional[str]) -> Optional[int]:
  if struct is None:
    return None
  if struct not in params:
    raise MalformedDefinitionError(
        f"decreasing argument '{struct}' is not a parameter", location
    )
  return params.index(struct)


# ============================================================================
# EXPRESSION ANALYSIS
# ============================================================================

def analyze_expression(expr: Tuple, env: Dict, path: Optional[str] = None, debug: bool = False) -> Dict:
  """Analyze a parser tuple and return an AST node"""
  if not is_tuple_with_type(expr):
    raise ValueError(f"Unable to analyze expression: {expr!r}")

  expr_type, expr_data = expr[0], expr[1]
  if debug:
    logger.debug("Analyzing %s at %s", expr_type, path)

  handlers = {
      "NAT": lambda: make_nat_literal(expr_data, path),
      "UNIT": lambda: make_unit_literal(path),
      "PARENTHESIZED": lambda: analyze_expression(expr_data, env, path, debug),
      "IDENTIFIER": lambda: make_variable(resolve_name(env, expr_data, path), path),
      "PAIR": lambda: analyze_pair(expr_data, env, path, debug),
      "APPLY": lambda: analyze_apply(expr_data, env, path, debug),
      "MATCH": lambda: analyze_match(expr_data, env, path, debug),
      "LET": lambda: analyze_let(expr_data, env, path, debug),
      "LAMBDA": lambda: analyze_lambda(expr_data, env, path, debug),
      "FIX": lambda: analyze_fix(expr_data, env, path, debug),
  }

  if expr_type not in handlers:
    raise ValueError(f"Unknown expression type: {expr_type}")
  return handlers[expr_type]()


def analyze_pair(elements: List[Tuple], env: Dict, path: Optional[str], debug: bool) -> Dict:
  """(a, b, c) is ((a, b), c)"""
  pair_path = child_path(path, "pair")
  result = analyze_expression(elements[0], env, child_path(pair_path, "[0]"), debug)
  for i, element in enumerate(elements[1:], 1):
    second = analyze_expression(element, env, child_path(pair_path, f"[{i}]"), debug)
    result = make_pair_expr(result, second, pair_path)
  return result


def analyze_apply(apply_data: Dict, env: Dict, path: Optional[str], debug: bool) -> Dict:
  apply_path = child_path(path, "apply")
  function_ast = analyze_expression(apply_data['function'], env, apply_path, debug)
  arg_asts = [
      analyze_expression(arg, env, child_path(apply_path, f"arg[{i}]"), debug)
      for i, arg in enumerate(apply_data['args'])
  ]
  return make_apply(function_ast, arg_asts, apply_path)


def analyze_pattern(pattern: Tuple, env: Dict, path: Optional[str]) -> Dict:
  pattern_type, pattern_data = pattern[0], pattern[1]

  if pattern_type == "PATTERN_WILDCARD":
    return make_pattern_wildcard()
  if pattern_type == "PATTERN_ZERO":
    return make_pattern_zero()
  if pattern_type == "PATTERN_VAR":
    return make_pattern_var(pattern_data)
  if pattern_type == "PATTERN_PAIR":
    return make_pattern_pair(pattern_data['first'], pattern_data['second'])

  name = resolve_constructor(env, pattern_data['name'], path)
  binders = list(pattern_data['binders'])
  if name == "Zero" and not binders:
    return make_pattern_zero()
  if name == "Succ" and len(binders) == 1:
    return make_pattern_succ(binders[0])
  # Binder counts are checked against the scrutinee when the match runs
  return make_pattern_constructor(name, binders)


def analyze_match(match_data: Dict, env: Dict, path: Optional[str], debug: bool) -> Dict:
  match_path = child_path(path, "match")
  scrutinee_ast = analyze_expression(match_data['scrutinee'], env, child_path(match_path, "scrutinee"), debug)

  clause_asts = []
  for i, clause in enumerate(match_data['clauses']):
    clause_data = extract_from_wrapper(clause, "CLAUSE")
    clause_path = child_path(match_path, f"clause[{i}]")

    pattern_ast = analyze_pattern(clause_data['pattern'], env, clause_path)
    binders = pattern_binders(pattern_ast)
    check_binders(binders, "pattern", clause_path)

    body_ast = analyze_expression(clause_data['body'], make_child_env(env, binders), clause_path, debug)
    clause_asts.append(make_clause(pattern_ast, body_ast))

  return make_match(scrutinee_ast, clause_asts, match_path)


def analyze_let(let_data: Dict, env: Dict, path: Optional[str], debug: bool) -> Dict:
  let_path = child_path(path, "let")
  value_ast = analyze_expression(let_data['value'], env, child_path(let_path, "value"), debug)
  body_ast = analyze_expression(let_data['body'], make_child_env(env, [let_data['name']]), let_path, debug)
  return make_let(let_data['name'], value_ast, body_ast, let_path)


def analyze_lambda(lambda_data: Dict, env: Dict, path: Optional[str], debug: bool) -> Dict:
  fun_path = child_path(path, "fun")
  params = list(lambda_data['params'])
  check_binders(params, "anonymous function", fun_path)
  body_ast = analyze_expression(lambda_data['body'], make_child_env(env, params), fun_path, debug)
  return make_lambda(params, body_ast, fun_path)


def analyze_fix(fix_data: Dict, env: Dict, path: Optional[str], debug: bool) -> Dict:
  name = fix_data['name']
  params = list(fix_data['params'])
  fix_path = child_path(path, f"fix {name}")

  check_binders(params, f"fix '{name}'", fix_path)
  decreasing = decreasing_index(params, fix_data['struct'], fix_path)

  body_env = make_child_env(env, [name] + params)
  body_ast = analyze_expression(fix_data['body'], body_env, fix_path, debug)
  return make_fix(name, params, body_ast, decreasing, fix_path)


# ============================================================================
# STATEMENT ANALYSIS
# ============================================================================

def analyze_data_def(cst_node: CSTNode, env: Dict, debug: bool = False) -> Tuple[List[Dict], Dict]:
  """data T = A | B(Nat, T)."""
  data = cst_node.value
  type_name = qualify(env, data['name'])

  if env_lookup_type(env, type_name) is not None or type_name in BUILTIN_TYPE_NAMES:
    raise MalformedDefinitionError(f"type '{type_name}' is already declared", type_name)

  constructors = []
  for decl in data['constructors']:
    decl_data = extract_from_wrapper(decl, "CONSTRUCTOR_DECL")
    ctor_name = qualify(env, decl_data['name'])
    if env_lookup(env, ctor_name) is not None or any(c['name'] == ctor_name for c in constructors):
      raise MalformedDefinitionError(f"'{ctor_name}' is already declared", type_name)
    fields = [resolve_type(env, field_type, type_name, type_name) for field_type in decl_data['fields']]
    constructors.append({'name': ctor_name, 'fields': fields})

  new_env = env_bind_type(env, type_name, {'kind': 'datatype'})
  new_env = env_bind(new_env, recursor_name(type_name), {'kind': 'builtin'})
  for constructor in constructors:
    new_env = env_bind(new_env, constructor['name'], {'kind': 'constructor'})

  ast_node = make_ast_node("DATA_DEF", {'name': type_name, 'constructors': constructors},
                           cst_node.span, type_name)
  return [ast_node], new_env


def analyze_function_def(cst_node: CSTNode, env: Dict, debug: bool = False) -> Tuple[List[Dict], Dict]:
  """fn f(x, y) {struct x} = body."""
  data = cst_node.value
  name = qualify(env, data['name'])
  params = list(data['params'])

  if env_lookup(env, name) is not None:
    raise MalformedDefinitionError(f"'{name}' is already defined", name)
  check_binders(params, f"function '{name}'", name)
  decreasing = decreasing_index(params, data['struct'], name)

  # The function may refer to itself; the body sees it before the global table does
  self_env = env_bind(make_child_env(env, []), name, {'kind': 'function'})
  body_ast = analyze_expression(data['body'], make_child_env(self_env, params), name, debug)

  ast_node = make_ast_node("FUNCTION_DEF", {
      'name': name,
      'params': params,
      'decreasing': decreasing,
      'body': body_ast
  }, cst_node.span, name)
  return [ast_node], env_bind(env, name, {'kind': 'function'})


def analyze_compute(cst_node: CSTNode, env: Dict, debug: bool = False) -> Tuple[List[Dict], Dict]:
  """compute e."""
  line = cst_node.span.start_line if cst_node.span else 0
  path = f"compute@{line}"
  expression_ast = analyze_expression(cst_node.value, env, path, debug)
  return [make_ast_node("COMPUTE", expression_ast, cst_node.span, path)], env


def analyze_module(cst_node: CSTNode, env: Dict, debug: bool = False) -> Tuple[List[Dict], Dict]:
  """module M { ... } registers every inner declaration as M.name"""
  module_name = qualify(env, cst_node.value['name'])
  module_env = {**env, 'module': module_name}

  ast_nodes = []
  for child in cst_node.children:
    child_asts, module_env = analyze_cst_node(child, module_env, debug)
    ast_nodes.extend(child_asts)

  if debug:
    logger.debug("Module %s declares %d statements", module_name, len(ast_nodes))
  return ast_nodes, {**module_env, 'module': env['module']}


def analyze_cst_node(cst_node: CSTNode, env: Dict, debug: bool = False) -> Tuple[List[Dict], Dict]:
  """Analyze a single statement, returning its AST nodes and the extended environment"""
  if debug:
    logger.debug("Analyzing CST node: %s at %s", cst_node.type, cst_node.span)

  handlers = {
      "DATA_DEF": analyze_data_def,
      "FUNCTION_DEF": analyze_function_def,
      "COMPUTE": analyze_compute,
      "MODULE": analyze_module,
  }

  if cst_node.type not in handlers:
    raise ValueError(f"Unknown statement type: {cst_node.type}")
  return handlers[cst_node.type](cst_node, env, debug)


# ============================================================================
# MAIN ANALYSIS FUNCTION
# ============================================================================

def analyze_program(cst_nodes: List[CSTNode], env: Dict, debug: bool = False) -> Tuple[List[Dict], Dict]:
  """
  Analyze a program (list of CST nodes) and return AST nodes and final environment.
  Modules are flattened: their declarations come out with qualified names.
  """
  ast_nodes = []

  for cst_node in cst_nodes:
    node_asts, env = analyze_cst_node(cst_node, env, debug)
    ast_nodes.extend(node_asts)

  return ast_nodes, env
