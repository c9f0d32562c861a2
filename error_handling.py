"""
Error handling for the PEANO structural evaluator
Parse errors are enhanced with context lines and suggestions;
runtime errors follow a fixed taxonomy, each carrying a location
"""

from typing import List, Optional, Dict
from pyparsing import ParseException
import re


# ============================================================================
# PARSE DIAGNOSTICS
# ============================================================================

def make_diagnostic(message: str, offset: int, line: int, column: int,
                    filename: str = "<input>", **details) -> Dict:
    """Plain record of a syntax error; details holds expected/found/excerpt/hints"""
    return {
        'message': message,
        'offset': offset,
        'line': line,
        'column': column,
        'filename': filename,
        'expected': list(details.get('expected') or []),
        'found': details.get('found'),
        'excerpt': details.get('excerpt'),
        'hints': list(details.get('hints') or []),
    }


def render_diagnostic(diag: Dict) -> str:
    """Multi-line report: header, message, then whichever details are present"""
    parts = [f"Parse error in {diag['filename']} at line {diag['line']}, column {diag['column']}:",
             f"  {diag['message']}"]
    if diag['expected']:
        parts.append("  Expected: " + ", ".join(diag['expected']))
    if diag['found']:
        parts.append(f"  Found: {diag['found']}")
    if diag['excerpt']:
        parts.append("  Context:")
        parts.append(diag['excerpt'])
    if diag['hints']:
        parts.append("  Suggestions:")
        parts.extend(f"    - {hint}" for hint in diag['hints'])
    return '\n'.join(parts) + '\n'


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def source_excerpt(lines: List[str], line_num: int, col_num: int, radius: int = 2) -> str:
    """Numbered source lines around line_num with a caret under the failing column"""
    first = max(1, line_num - radius)
    last = min(len(lines), line_num + radius)
    out = []
    for number in range(first, last + 1):
        out.append(f"{number:4d}: {lines[number - 1]}")
        if number == line_num:
            out.append(" " * (6 + col_num - 1) + "^ Error here")
    return '\n'.join(out)


def expected_from(exc: ParseException) -> List[str]:
    """What pyparsing was looking for, pulled out of its message"""
    found = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(at|$)", str(exc))
    return [found.group(1)] if found else ["valid syntax"]


def token_at(lines: List[str], line_num: int, col_num: int) -> str:
    """Up to ten characters of source starting at the failing column"""
    if not 0 < line_num <= len(lines):
        return "end of input"
    snippet = lines[line_num - 1][col_num - 1:col_num + 10].strip()
    return f"'{snippet}'" if snippet else "end of line"


def hints_for(found: str, expected: List[str], source_line: str = "") -> List[str]:
    """Suggestions keyed on common PEANO syntax slips"""
    wanted = str(expected)
    stripped = source_line.strip()
    rules = [
        (found in ("end of line", "end of input") and not stripped.endswith('.'),
         "Every declaration ends with '.' (e.g. 'compute add(1, 2).')"),
        ("=>" in wanted, "Match clauses are written 'Pattern => body'"),
        ("{" in wanted and "match" in stripped,
         "Match clauses go inside braces: match n { Zero => ...; Succ(p) => ... }"),
        ("struct" in found,
         "The decreasing argument is written '{struct name}' after the parameter list"),
        (found.startswith("'-"), "Naturals are non-negative; there are no negative literals"),
        ("(" in wanted and stripped.startswith("fn"),
         "Function parameters are parenthesised: fn name(x, y) = body."),
    ]
    return [hint for applies, hint in rules if applies]


def diagnose(exc: ParseException, source_text: str, filename: str = "<input>") -> Dict:
    """Turn a pyparsing exception into a diagnostic record"""
    lines = source_text.split('\n')
    line_num, col_num = exc.lineno, exc.col
    expected = expected_from(exc)
    found = token_at(lines, line_num, col_num)
    source_line = lines[line_num - 1] if 0 < line_num <= len(lines) else ""
    return make_diagnostic(
        str(exc), exc.loc, line_num, col_num, filename,
        expected=expected,
        found=found,
        excerpt=source_excerpt(lines, line_num, col_num) if lines else None,
        hints=hints_for(found, expected, source_line),
    )


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class PeanoError(Exception):
    """Base class of every error the evaluator reports"""
    kind = "PeanoError"


class PeanoParseError(PeanoError):
    """Syntax error with line, column and surrounding context"""
    kind = "ParseError"

    def __init__(self, diagnostic: Dict):
        self.diagnostic = diagnostic
        self.message = diagnostic['message']
        self.line = diagnostic['line']
        self.column = diagnostic['column']
        self.filename = diagnostic['filename']
        self.context = diagnostic['excerpt']
        self.suggestions = diagnostic['hints']
        super().__init__(self.message)

    def __str__(self) -> str:
        return render_diagnostic(self.diagnostic)


class PeanoRuntimeError(PeanoError):
    """Error raised while defining or evaluating; carries the failing location"""
    kind = "RuntimeError"

    def __init__(self, message: str, location: Optional[str] = None):
        self.message = message
        self.location = location
        super().__init__(message)

    def __str__(self) -> str:
        if self.location:
            return f"{self.kind} in {self.location}: {self.message}"
        return f"{self.kind}: {self.message}"


class MalformedDefinitionError(PeanoRuntimeError):
    """A recursive definition is not structurally decreasing"""
    kind = "MalformedDefinitionError"


class UnboundVariableError(PeanoRuntimeError):
    """A name is referenced outside of its defining scope"""
    kind = "UnboundVariableError"


class NonExhaustiveMatchError(PeanoRuntimeError):
    """No clause of a match accepts the scrutinee's tag"""
    kind = "NonExhaustiveMatchError"


class ArityMismatchError(PeanoRuntimeError):
    """Binder or argument count differs from the number of fields or parameters"""
    kind = "ArityMismatchError"


class StackExhaustedError(PeanoRuntimeError):
    """Evaluation went deeper than the configured call depth"""
    kind = "StackExhaustedError"


def enhance_parse_exception(exc: ParseException, source_text: str,
                            filename: str = "<input>") -> PeanoParseError:
    """Convert pyparsing exception to a PeanoParseError"""
    return PeanoParseError(diagnose(exc, source_text, filename))


def source_error(message: str, filename: str = "<input>") -> PeanoParseError:
    """Error for a source that could not be read at all"""
    return PeanoParseError(make_diagnostic(message, 0, 0, 0, filename))
