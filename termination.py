"""
PEANO Decreasing-Argument Checker
Syntactic structural-recursion check run when a definition is registered
and before any expression containing a local fix is evaluated.

A recursive call f(..., a_k, ...) is accepted when a_k, at the decreasing
position k, is a variable bound by a Succ, constructor or pair pattern of a
match whose scrutinee is the decreasing parameter (or an alias of it) or a
variable already known to be a strict sub-term of it.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

from error_handling import MalformedDefinitionError, UnboundVariableError
from semantics import make_ast_node, pattern_binders
from utilities import find_duplicates, format_location


logger = logging.getLogger(__name__)


# Patterns whose binders are strict sub-terms of the scrutinee
STRUCTURAL_PATTERNS = ('PATTERN_SUCC', 'PATTERN_CONSTRUCTOR', 'PATTERN_PAIR')


# ============================================================================
# FREE VARIABLES
# ============================================================================

def free_variables(node: Dict) -> Set[str]:
  """Names an expression refers to without binding them itself"""
  node_type = node['type']
  value = node['value']

  if node_type == 'LITERAL':
    return set()
  if node_type == 'VARIABLE':
    return {value}
  if node_type == 'APPLY':
    result = free_variables(value['function'])
    for arg in value['args']:
      result |= free_variables(arg)
    return result
  if node_type == 'PAIR':
    return free_variables(value['first']) | free_variables(value['second'])
  if node_type == 'MATCH':
    result = free_variables(value['scrutinee'])
    for clause in value['clauses']:
      result |= free_variables(clause['body']) - set(pattern_binders(clause['pattern']))
    return result
  if node_type == 'LET':
    return free_variables(value['value']) | (free_variables(value['body']) - {value['name']})
  if node_type == 'LAMBDA':
    return free_variables(value['body']) - set(value['params'])
  if node_type == 'FIX':
    return free_variables(value['body']) - {value['name']} - set(value['params'])
  raise ValueError(f"Unknown expression type: {node_type}")


def is_recursive(name: str, params: Iterable[str], body: Dict) -> bool:
  return name in free_variables(body) - set(params)


# ============================================================================
# SCOPE (Immutable Dictionaries)
# ============================================================================

def make_guard(function: str, position: int, arity: int, root: str) -> Dict:
  """Decreasing-argument obligation of one recursive function"""
  return {
      'function': function,
      'position': position,
      'arity': arity,
      'roots': frozenset([root]),
      'smaller': frozenset()
  }


def make_scope(table: Dict, locals_: Iterable[str] = (), location: Optional[str] = None) -> Dict:
  return {
      'table': table,
      'locals': frozenset(locals_),
      'guards': (),
      'location': location
  }


def bind_names(scope: Dict, names: Iterable[str]) -> Dict:
  """Bind names as locals; they shadow any function, root or sub-term of the same name"""
  names = frozenset(names)
  if not names:
    return scope

  guards = tuple({
      **guard,
      'function': None if guard['function'] in names else guard['function'],
      'roots': guard['roots'] - names,
      'smaller': guard['smaller'] - names
  } for guard in scope['guards'])

  return {**scope, 'locals': scope['locals'] | names, 'guards': guards}


def add_guard(scope: Dict, guard: Dict) -> Dict:
  return {**scope, 'guards': scope['guards'] + (guard,)}


def refine(scope: Dict, outer: Dict, source: str, names: FrozenSet[str], structural: bool) -> Dict:
  """
  Record names bound from source, judged by source's status in the outer
  scope. Binders of a structural pattern on a root or sub-term become
  sub-terms; aliases inherit the source's status.
  """
  guards = []
  for guard, before in zip(scope['guards'], outer['guards']):
    if source in before['smaller'] or (structural and source in before['roots']):
      guard = {**guard, 'smaller': guard['smaller'] | names}
    elif source in before['roots']:
      guard = {**guard, 'roots': guard['roots'] | names}
    guards.append(guard)
  return {**scope, 'guards': tuple(guards)}


def active_guard(scope: Dict, name: str) -> Optional[Dict]:
  for guard in reversed(scope['guards']):
    if guard['function'] == name:
      return guard
  return None


def is_visible(scope: Dict, name: str) -> bool:
  table = scope['table']
  return (
      name in scope['locals'] or
      active_guard(scope, name) is not None or
      name in table['functions'] or
      name in table['constructors'] or
      name in table['builtins']
  )


# ============================================================================
# WALK
# ============================================================================

def describe(node: Dict) -> str:
  if node['type'] == 'VARIABLE':
    return f"'{node['value']}'"
  return f"a {node['type'].lower()} expression"


def check_call(guard: Dict, args, location: Optional[str]) -> None:
  """The argument at the decreasing position must be a known strict sub-term"""
  function = guard['function']
  position = guard['position']

  if len(args) <= position:
    raise MalformedDefinitionError(
        f"recursive call to '{function}' is missing its decreasing argument "
        f"(position {position + 1})",
        location
    )

  arg = args[position]
  if arg['type'] == 'VARIABLE' and arg['value'] in guard['smaller']:
    return

  raise MalformedDefinitionError(
      f"recursive call to '{function}' must pass a structural sub-term of its "
      f"argument {position + 1}, got {describe(arg)}",
      location
  )


def walk(node: Dict, scope: Dict) -> Dict:
  """Check every recursive reference under node; returns node with local fixes annotated"""
  node_type = node['type']
  value = node['value']
  location = format_location(node.get('path'), scope['location'])

  if node_type == 'LITERAL':
    return node

  if node_type == 'VARIABLE':
    if active_guard(scope, value) is not None:
      raise MalformedDefinitionError(
          f"'{value}' may only be used as a recursive call", location
      )
    if not is_visible(scope, value):
      raise UnboundVariableError(f"unbound name '{value}'", location)
    return node

  if node_type == 'APPLY':
    function = value['function']
    guard = active_guard(scope, function['value']) if function['type'] == 'VARIABLE' else None
    if guard is not None:
      check_call(guard, value['args'], location)
    else:
      function = walk(function, scope)
    args = [walk(arg, scope) for arg in value['args']]
    return {**node, 'value': {'function': function, 'args': args}}

  if node_type == 'PAIR':
    return {**node, 'value': {
        'first': walk(value['first'], scope),
        'second': walk(value['second'], scope)
    }}

  if node_type == 'MATCH':
    scrutinee = walk(value['scrutinee'], scope)
    source = scrutinee['value'] if scrutinee['type'] == 'VARIABLE' else None

    clauses = []
    for clause in value['clauses']:
      pattern = clause['pattern']
      names = frozenset(pattern_binders(pattern))
      clause_scope = bind_names(scope, names)
      if source is not None and names:
        clause_scope = refine(clause_scope, scope, source, names, pattern['type'] in STRUCTURAL_PATTERNS)
      clauses.append({**clause, 'body': walk(clause['body'], clause_scope)})
    return {**node, 'value': {'scrutinee': scrutinee, 'clauses': clauses}}

  if node_type == 'LET':
    bound = walk(value['value'], scope)
    body_scope = bind_names(scope, [value['name']])
    if bound['type'] == 'VARIABLE':
      body_scope = refine(body_scope, scope, bound['value'], frozenset([value['name']]), False)
    return {**node, 'value': {**value, 'value': bound, 'body': walk(value['body'], body_scope)}}

  if node_type == 'LAMBDA':
    return {**node, 'value': {**value, 'body': walk(value['body'], bind_names(scope, value['params']))}}

  if node_type == 'FIX':
    body, decreasing = check_recursive(
        value['name'], value['params'], value['decreasing'], value['body'],
        scope, location
    )
    return make_ast_node('FIX', {**value, 'decreasing': decreasing, 'body': body},
                         node.get('span'), node.get('path'))

  raise ValueError(f"Unknown expression type: {node_type}")


def check_recursive(name: str, params, decreasing: Optional[int], body: Dict,
                    scope: Dict, location: Optional[str]) -> Tuple[Dict, Optional[int]]:
  """Check one (possibly recursive) function in scope; returns (body, decreasing index)"""
  params = list(params)
  duplicates = find_duplicates(params)
  if duplicates:
    raise MalformedDefinitionError(
        f"'{name}' binds {', '.join(repr(d) for d in duplicates)} more than once", location
    )
  if decreasing is not None and not 0 <= decreasing < len(params):
    raise MalformedDefinitionError(
        f"'{name}' has no parameter at position {decreasing + 1}", location
    )

  body_scope = bind_names(scope, [name] + params)

  if not is_recursive(name, params, body):
    return walk(body, body_scope), decreasing

  if decreasing is not None:
    guard = make_guard(name, decreasing, len(params), params[decreasing])
    return walk(body, add_guard(body_scope, guard)), decreasing

  if not params:
    raise MalformedDefinitionError(f"'{name}' recurses but has no argument to decrease", location)

  # Try each position in turn, like the host assistant's struct inference
  failure = None
  for position in range(len(params)):
    guard = make_guard(name, position, len(params), params[position])
    try:
      checked = walk(body, add_guard(body_scope, guard))
    except MalformedDefinitionError as e:
      failure = e
      continue
    logger.debug("Inferred decreasing argument %d (%s) for %s", position, params[position], name)
    return checked, position

  raise MalformedDefinitionError(
      f"no argument of '{name}' decreases structurally ({failure.message})", location
  )


# ============================================================================
# ENTRY POINTS
# ============================================================================

def check_definition(name: str, params, decreasing: Optional[int], body: Dict,
                     table: Dict, location: Optional[str] = None) -> Tuple[Dict, Optional[int]]:
  """
  Check a top-level definition against the definition table.

  Only earlier definitions and the function itself are visible, so mutual
  recursion through later definitions is rejected as unbound.

  Returns:
    (checked body, decreasing index or None when not recursive)

  Raises:
    MalformedDefinitionError, UnboundVariableError
  """
  location = location or name
  scope = make_scope(table, location=location)
  return check_recursive(name, params, decreasing, body, scope, location)


def check_expression(expr: Dict, table: Dict, visible: Iterable[str] = (),
                     location: Optional[str] = None) -> Dict:
  """Check an expression about to be evaluated; visible are the names of the runtime environment"""
  return walk(expr, make_scope(table, visible, location))
