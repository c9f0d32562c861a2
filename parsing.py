"""
PEANO Language Parser
pyparsing grammar producing tagged tuples, wrapped into CST nodes with source spans
"""

import logging
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field

from pyparsing import (
    DelimitedList, Forward, Group, Keyword, Literal, MatchFirst, OneOrMore,
    Optional as PyParsingOptional, ParseException, ParserElement, Regex,
    StringEnd, Suppress, ZeroOrMore, alphanums, col, lineno
)

from error_handling import enhance_parse_exception, source_error

# Enable packrat parsing for performance
ParserElement.enable_packrat()

logger = logging.getLogger(__name__)


KEYWORDS = ("data", "fn", "fix", "fun", "struct", "match", "let", "in", "compute", "module")

NAME_PATTERN = r"[A-Za-z_][A-Za-z0-9_']*"

# Module prefixes are capitalised, and a keyword after '.' starts the next statement
QUALIFIED_PATTERN = (
    r"(?:[A-Z][A-Za-z0-9_']*\.(?!(?:" + "|".join(KEYWORDS) + r")(?![A-Za-z0-9_']))(?=[A-Za-z_]))*"
    + NAME_PATTERN
)


@dataclass(frozen=True)
class SourceSpan:
    """Source location information for preserving CST"""
    filename: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    text: str = ""

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_col}"
        return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class CSTNode:
    """Concrete Syntax Tree node: one top-level statement, or a bare expression"""
    type: str
    value: Any
    children: List['CSTNode'] = field(default_factory=list)
    span: Optional[SourceSpan] = None

    def __str__(self) -> str:
        if self.children:
            children_str = ", ".join(str(child) for child in self.children)
            return f"{self.type}({self.value}, [{children_str}])"
        return f"{self.type}({self.value})"


def located(node_type: str, build):
    """Parse action factory recording the line and column a statement starts at"""
    def action(s, loc, tokens):
        return (node_type, build(tokens), (lineno(loc, s), col(loc, s)))
    return action


class PeanoGrammar:
    """PEANO grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        """Setup the grammar; every parse action yields a (TAG, payload) tuple"""

        expression = Forward().set_name("expression")
        statement = Forward().set_name("statement")

        # Keywords
        ident_chars = alphanums + "_'"
        kw = {word: Keyword(word, ident_chars=ident_chars) for word in KEYWORDS}
        any_keyword = MatchFirst(list(kw.values()))

        # Names
        simple_name = (~any_keyword + Regex(NAME_PATTERN)).set_name("name")
        qualified_name = (
            ~any_keyword + Regex(QUALIFIED_PATTERN)
        ).set_name("identifier")
        lower_name = (~any_keyword + Regex(r"[a-z_][A-Za-z0-9_']*")).set_name("variable")
        upper_name = Regex(r"[A-Z][A-Za-z0-9_']*").set_name("constructor name")
        constructor_ref = Regex(r"[A-Z][A-Za-z0-9_']*(?:\.[A-Z][A-Za-z0-9_']*)*").set_name("constructor")
        wildcard = Regex(r"_(?![A-Za-z0-9_'])").set_name("'_'")

        # Clause separators: ';' or '|'
        separator = Suppress(Literal(";") | Literal("|"))

        # Literals
        number = Regex(r"\d+").set_name("natural").set_parse_action(lambda t: ("NAT", int(t[0])))
        unit_literal = (Literal("(") + Literal(")")).set_parse_action(lambda t: ("UNIT", None))

        # Parenthesised expression or tuple: (a), (a, b), (a, b, c)
        tuple_expr = (
            Suppress("(") + DelimitedList(expression, ",") + Suppress(")")
        ).set_parse_action(lambda t: ("PAIR", list(t)) if len(t) > 1 else ("PARENTHESIZED", t[0]))

        # Patterns
        binder = wildcard | lower_name
        pattern_wildcard = wildcard.copy().set_parse_action(lambda t: ("PATTERN_WILDCARD", "_"))
        pattern_zero = Regex(r"0(?!\d)").set_parse_action(lambda t: ("PATTERN_ZERO", 0))
        pattern_pair = (
            Suppress("(") + binder + Suppress(",") + binder + Suppress(")")
        ).set_parse_action(lambda t: ("PATTERN_PAIR", {"first": t[0], "second": t[1]}))

        def make_constructor_pattern(tokens):
            binders = list(tokens[1]) if len(tokens) > 1 else []
            return ("PATTERN_CONSTRUCTOR", {"name": tokens[0], "binders": binders})

        pattern_constructor = (
            constructor_ref +
            PyParsingOptional(Group(Suppress("(") + DelimitedList(binder, ",") + Suppress(")")))
        ).set_parse_action(make_constructor_pattern)
        pattern_var = lower_name.copy().set_parse_action(lambda t: ("PATTERN_VAR", t[0]))

        pattern = (
            pattern_wildcard |
            pattern_zero |
            pattern_pair |
            pattern_constructor |
            pattern_var
        ).set_name("pattern")

        # Match expressions: match e { P => body; P => body }
        clause = (
            pattern + Suppress("=>") + expression
        ).set_parse_action(lambda t: ("CLAUSE", {"pattern": t[0], "body": t[1]}))

        clauses = (
            PyParsingOptional(separator) +
            PyParsingOptional(clause + ZeroOrMore(separator + clause) + PyParsingOptional(separator))
        )

        match_expr = (
            Suppress(kw["match"]) + expression + Suppress("{") + clauses + Suppress("}")
        ).set_parse_action(lambda t: ("MATCH", {"scrutinee": t[0], "clauses": list(t[1:])}))

        # let x = e in body
        let_expr = (
            Suppress(kw["let"]) + lower_name + Suppress("=") + expression +
            Suppress(kw["in"]) + expression
        ).set_parse_action(lambda t: ("LET", {"name": t[0], "value": t[1], "body": t[2]}))

        # fun x y => body
        lambda_expr = (
            Suppress(kw["fun"]) + Group(OneOrMore(binder)) + Suppress("=>") + expression
        ).set_parse_action(lambda t: ("LAMBDA", {"params": list(t[0]), "body": t[1]}))

        # Parameter lists and the decreasing-argument annotation
        param_list = Group(
            Suppress("(") + PyParsingOptional(DelimitedList(lower_name, ",")) + Suppress(")")
        )
        struct_annotation = (
            Suppress("{") + Suppress(kw["struct"]) + lower_name + Suppress("}")
        ).set_parse_action(lambda t: ("STRUCT", t[0]))

        def split_function_tokens(tokens) -> Dict:
            """name, (params), [STRUCT], body -> dict"""
            struct = None
            if len(tokens) == 4:
                struct = tokens[2][1]
            return {
                "name": tokens[0],
                "params": list(tokens[1]),
                "struct": struct,
                "body": tokens[-1]
            }

        # fix f(x) {struct x} => body
        fix_expr = (
            Suppress(kw["fix"]) + lower_name + param_list +
            PyParsingOptional(struct_annotation) + Suppress("=>") + expression
        ).set_parse_action(lambda t: ("FIX", split_function_tokens(t)))

        identifier_expr = qualified_name.copy().set_parse_action(lambda t: ("IDENTIFIER", t[0]))

        primary_expr = (
            unit_literal |
            tuple_expr |
            number |
            match_expr |
            let_expr |
            lambda_expr |
            fix_expr |
            identifier_expr
        )

        # Application is postfix and may be chained: f(x)(y)
        call_args = Group(
            Suppress("(") + PyParsingOptional(DelimitedList(expression, ",")) + Suppress(")")
        )

        def make_application(tokens):
            result = tokens[0]
            for args in tokens[1:]:
                result = ("APPLY", {"function": result, "args": list(args)})
            return result

        application = (primary_expr + ZeroOrMore(call_args)).set_parse_action(make_application)

        expression <<= application

        # Declarations
        constructor_decl = (
            upper_name +
            PyParsingOptional(Group(Suppress("(") + DelimitedList(qualified_name, ",") + Suppress(")")))
        ).set_parse_action(lambda t: ("CONSTRUCTOR_DECL", {
            "name": t[0],
            "fields": list(t[1]) if len(t) > 1 else []
        }))

        data_def = (
            Suppress(kw["data"]) + upper_name + Suppress("=") +
            PyParsingOptional(Suppress("|")) + constructor_decl +
            ZeroOrMore(Suppress("|") + constructor_decl)
        ).set_parse_action(located("DATA_DEF", lambda t: {
            "name": t[0],
            "constructors": list(t[1:])
        }))

        function_def = (
            Suppress(kw["fn"]) + simple_name + param_list +
            PyParsingOptional(struct_annotation) + Suppress("=") + expression
        ).set_parse_action(located("FUNCTION_DEF", split_function_tokens))

        compute_stmt = (
            Suppress(kw["compute"]) + expression
        ).set_parse_action(located("COMPUTE", lambda t: t[0]))

        module_def = (
            Suppress(kw["module"]) + upper_name + Suppress("{") +
            Group(ZeroOrMore(statement)) + Suppress("}")
        ).set_parse_action(located("MODULE", lambda t: {
            "name": t[0],
            "body": list(t[1])
        }))

        statement <<= module_def | ((data_def | function_def | compute_stmt) + Suppress("."))
        program = ZeroOrMore(statement) + StringEnd()

        # Comments run from '#' or '//' to end of line
        comment = Regex(r"(#|//)[^\n]*")
        program.ignore(comment)

        # Store the main parsers
        self.program = program
        self.statement = statement
        self.expression = expression
        self.pattern = pattern
        self.clause = clause
        self.function_def = function_def
        self.data_def = data_def
        self.primary_expr = primary_expr

    def parse_program(self, text: str, filename: str = "<input>") -> List[CSTNode]:
        """Parse a complete PEANO program"""
        try:
            result = self.program.parse_string(text, parse_all=True)
        except ParseException as e:
            raise enhance_parse_exception(e, text, filename) from e

        cst_nodes = self._convert_to_cst(list(result), filename, text)
        if self.debug:
            logger.debug("Parsed %d statements from %s", len(cst_nodes), filename)
        return cst_nodes

    def parse_expression(self, text: str, filename: str = "<input>") -> CSTNode:
        """Parse a single PEANO expression"""
        try:
            result = self.expression.parse_string(text, parse_all=True)
        except ParseException as e:
            raise enhance_parse_exception(e, text, filename) from e

        first_line = text.strip().split('\n')[0] if text.strip() else ""
        span = SourceSpan(filename, 1, 1, 1, len(first_line) + 1, first_line)
        return CSTNode("EXPRESSION", result[0], [], span)

    def _convert_to_cst(self, items: List[Any], filename: str, text: str) -> List[CSTNode]:
        """Convert located statement tuples to CST nodes"""
        lines = text.split('\n')

        def convert_item(item) -> CSTNode:
            node_type, value, (line, column) = item
            source_line = lines[line - 1] if 0 < line <= len(lines) else ""
            span = SourceSpan(filename, line, column, line, len(source_line) + 1, source_line.strip())

            if node_type == "MODULE":
                children = [convert_item(child) for child in value["body"]]
                return CSTNode(node_type, {"name": value["name"]}, children, span)
            return CSTNode(node_type, value, [], span)

        return [convert_item(item) for item in items]


class PeanoParser:
    """Main PEANO parser"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = PeanoGrammar(debug)

    def parse_file(self, filepath: str) -> List[CSTNode]:
        """Parse a PEANO source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise source_error(f"File not found: {filepath}", filepath)
        except UnicodeDecodeError as e:
            raise source_error(f"Cannot decode file {filepath}: {e}", filepath)
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> List[CSTNode]:
        """Parse PEANO source code from string"""
        return self.grammar.parse_program(text, filename)

    def parse_expression(self, text: str, filename: str = "<input>") -> CSTNode:
        """Parse a single PEANO expression"""
        return self.grammar.parse_expression(text, filename)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> PeanoParser:
    """Create a PEANO parser"""
    return PeanoParser(debug=debug)


# Utility functions for working with CST
def find_nodes_by_type(cst: CSTNode, node_type: str) -> List[CSTNode]:
    """Find all nodes of a specific type in CST"""
    result = []

    def search(node: CSTNode):
        if node.type == node_type:
            result.append(node)
        for child in node.children:
            search(child)

    search(cst)
    return result


def pretty_print_cst(cst: CSTNode, indent: int = 0) -> str:
    """Pretty print a CST node for debugging"""
    result = "  " * indent + f"{cst.type}"
    if cst.span is not None:
        result += f" @ {cst.span}"
    result += "\n"
    if cst.value is not None:
        result += "  " * (indent + 1) + f"{cst.value!r}\n"

    for child in cst.children:
        result += pretty_print_cst(child, indent + 1)

    return result
