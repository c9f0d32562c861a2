"""
Utilities module for the PEANO evaluator
Contains common helper functions to reduce code duplication
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

from error_handling import ArityMismatchError


# ==================== VALUE EXTRACTION UTILITIES ====================

def extract_from_wrapper(
  data: Any,
  wrapper_type: Optional[str] = None,
  default: Any = None
) -> Any:
  """
  Generic extraction from tuple/dict wrappers

  Args:
    data: Input data (can be str, tuple, dict, or raw value)
    wrapper_type: Expected wrapper type (e.g., "IDENTIFIER", "PATTERN_VAR")
    default: Default value if extraction fails

  Returns:
    Extracted value or default

  Examples:
    extract_from_wrapper("foo") -> "foo"
    extract_from_wrapper(("IDENTIFIER", "foo")) -> "foo"
    extract_from_wrapper(("IDENTIFIER", "foo"), "IDENTIFIER") -> "foo"
    extract_from_wrapper({"value": 42}) -> 42
  """
  if isinstance(data, str):
    return data
  elif isinstance(data, tuple) and len(data) >= 2:
    if wrapper_type is None or data[0] == wrapper_type:
      return data[1]
  elif isinstance(data, dict) and 'value' in data:
    return data['value']
  return default


def is_tuple_with_type(item: Any, expected_type: Optional[str] = None) -> bool:
  """
  Check if item is tuple with type in first position

  Args:
    item: Item to check
    expected_type: Expected type tag (optional)

  Returns:
    True if item is a valid typed tuple
  """
  if not (isinstance(item, tuple) and len(item) >= 2):
    return False
  return item[0] == expected_type if expected_type else True


# ==================== TYPE CHECKING UTILITIES ====================

def is_value_dict(val: Any) -> bool:
  """True if val is a dict with 'type' and 'value' keys"""
  return isinstance(val, dict) and 'type' in val and 'value' in val


def get_dict_type(val: Any) -> Optional[str]:
  """Safely get type from dict"""
  return val.get('type') if isinstance(val, dict) else None


# ==================== ERROR MESSAGE BUILDERS ====================

def arity_error(
  what: str,
  expected: int,
  got: int,
  location: Optional[str] = None
) -> ArityMismatchError:
  """
  Generate arity mismatch error

  Args:
    what: Description of the callee or pattern ("function 'add'")
    expected: Expected number of arguments or binders
    got: Actual number
    location: Definition name or expression path

  Returns:
    ArityMismatchError with formatted message
  """
  noun = "argument" if expected == 1 else "arguments"
  return ArityMismatchError(
    f"{what} expects {expected} {noun}, got {got}",
    location
  )


def format_location(path: Optional[str], definition: Optional[str] = None) -> Optional[str]:
  """
  Pick the most precise location available

  Examples:
    format_location("add/match/clause[1]") -> "add/match/clause[1]"
    format_location(None, "add") -> "add"
  """
  return path or definition


def child_path(path: Optional[str], segment: str) -> str:
  """Extend an expression path by one segment"""
  return f"{path}/{segment}" if path else segment


# ==================== VALIDATION UTILITIES ====================

def validate_arity(
  what: str,
  params: Sequence[Any],
  args: Sequence[Any],
  location: Optional[str] = None
) -> None:
  """
  Validate that args has one entry per parameter

  Raises:
    ArityMismatchError if the counts differ
  """
  if len(args) != len(params):
    raise arity_error(what, len(params), len(args), location)


def find_duplicates(names: List[str]) -> List[str]:
  """Names appearing more than once, ignoring the wildcard binder"""
  seen = set()
  duplicates = []
  for name in names:
    if name == '_':
      continue
    if name in seen and name not in duplicates:
      duplicates.append(name)
    seen.add(name)
  return duplicates


def dispatch_by_type(
  value: Dict,
  handlers: Dict[str, Callable],
  default_handler: Optional[Callable] = None
) -> Any:
  """
  Generic type-based dispatch

  Args:
    value: Value dict with 'type' field
    handlers: Map of type names to handler functions
    default_handler: Fallback handler

  Returns:
    Result of calling the appropriate handler

  Raises:
    ValueError if no handler found and no default

  Examples:
    dispatch_by_type(
      {"type": "Unit", "value": None},
      {"Unit": lambda v: "()"}
    ) -> "()"
  """
  value_type = value.get('type', 'Unknown')
  handler = handlers.get(value_type, default_handler)
  if handler is None:
    raise ValueError(f"No handler for type: {value_type}")
  return handler(value)
