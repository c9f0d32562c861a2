"""
Basic parsing tests for the PEANO language
Tests fundamental parsing capabilities
"""

import pytest
from parsing import PeanoGrammar, create_parser, find_nodes_by_type, pretty_print_cst
from error_handling import PeanoParseError
from pyparsing import ParseException


class TestBasicParsing:
  """Test basic parsing functionality"""

  @pytest.fixture
  def parser(self):
    """Provide a fresh parser instance for each test"""
    return create_parser()

  def test_compute_statement(self, parser):
    """Test parsing of a compute statement"""
    nodes = parser.parse_string("compute add(3, 4).")
    assert len(nodes) == 1
    assert nodes[0].type == 'COMPUTE'
    assert nodes[0].value[0] == 'APPLY'

  def test_function_definition(self, parser):
    """Test parsing of function definitions"""
    code = "fn add(n, m) = match n { Zero => m; Succ(p) => Succ(add(p, m)) }."
    node = parser.parse_string(code)[0]
    assert node.type == 'FUNCTION_DEF'
    assert node.value['name'] == 'add'
    assert node.value['params'] == ['n', 'm']
    assert node.value['struct'] is None
    assert node.value['body'][0] == 'MATCH'

  def test_struct_annotation(self, parser):
    """Test the {struct n} annotation after the parameters"""
    node = parser.parse_string("fn pred(n) {struct n} = match n { Zero => 0 | Succ(p) => p }.")[0]
    assert node.value['struct'] == 'n'
    assert len(node.value['body'][1]['clauses']) == 2

  def test_data_declaration(self, parser):
    """Test parsing of data declarations"""
    node = parser.parse_string("data List = Nil | Cons(Nat, List).")[0]
    assert node.type == 'DATA_DEF'
    assert node.value['name'] == 'List'
    assert node.value['constructors'] == [
        ('CONSTRUCTOR_DECL', {'name': 'Nil', 'fields': []}),
        ('CONSTRUCTOR_DECL', {'name': 'Cons', 'fields': ['Nat', 'List']}),
    ]

  def test_comments_are_ignored(self, parser):
    code = """
    # a comment
    compute 1.  // trailing comment
    compute 2.
    """
    assert [node.type for node in parser.parse_string(code)] == ['COMPUTE', 'COMPUTE']

  def test_spans_record_lines(self, parser):
    """Test that statement spans record file and line"""
    nodes = parser.parse_string("compute 1.\n\ncompute 2.", "demo.peano")
    assert nodes[1].span.start_line == 3
    assert nodes[1].span.filename == "demo.peano"

  def test_module_children(self, parser):
    """Test module blocks and their child statements"""
    code = "module Pairs { fn swap(p) = match p { (a, b) => (b, a) }. data T = A. }"
    nodes = parser.parse_string(code)
    assert nodes[0].type == 'MODULE'
    assert nodes[0].value['name'] == 'Pairs'
    assert [child.type for child in nodes[0].children] == ['FUNCTION_DEF', 'DATA_DEF']
    assert len(find_nodes_by_type(nodes[0], 'DATA_DEF')) == 1

  def test_statements_without_whitespace(self, parser):
    """Test a statement-ending '.' directly followed by the next statement"""
    nodes = parser.parse_string("fn id(x) = x.fn g(y) = y.")
    assert [node.value['name'] for node in nodes] == ['id', 'g']

  def test_constructor_before_next_statement(self, parser):
    """Test that a keyword after '.' is never read as a qualified name"""
    nodes = parser.parse_string("compute Nil.compute Pairs.swap.")
    assert [node.type for node in nodes] == ['COMPUTE', 'COMPUTE']
    assert nodes[1].value == ('IDENTIFIER', 'Pairs.swap')

  def test_pretty_print(self, parser):
    """Test CST pretty printing"""
    text = pretty_print_cst(parser.parse_string("compute 1.")[0])
    assert text.startswith("COMPUTE @ <input>:1:1")


class TestExpressions:
  """Test expression parsing"""

  @pytest.fixture
  def grammar(self):
    return PeanoGrammar()

  def test_identifier(self, grammar):
    """Test parsing of a plain identifier"""
    assert grammar.expression.parse_string("myVar")[0] == ('IDENTIFIER', 'myVar')

  def test_qualified_identifier(self, grammar):
    """Test parsing of a module-qualified identifier"""
    assert grammar.expression.parse_string("Pairs.swap")[0] == ('IDENTIFIER', 'Pairs.swap')

  def test_lowercase_prefix_is_not_a_module(self, grammar):
    """Test that only capitalised module names qualify a name"""
    assert grammar.expression.parse_string("x.y")[0] == ('IDENTIFIER', 'x')

  def test_numeral(self, grammar):
    """Test parsing of numerals"""
    assert grammar.expression.parse_string("42")[0] == ('NAT', 42)

  def test_unit_and_pairs(self, grammar):
    """Test unit, pairs, tuples and parenthesised expressions"""
    assert grammar.expression.parse_string("()")[0] == ('UNIT', None)
    pair = grammar.expression.parse_string("(1, 2, 3)")[0]
    assert pair[0] == 'PAIR'
    assert len(pair[1]) == 3
    assert grammar.expression.parse_string("(x)")[0] == ('PARENTHESIZED', ('IDENTIFIER', 'x'))

  def test_chained_application(self, grammar):
    """Test that application chains to the left"""
    result = grammar.expression.parse_string("f(x)(y)")[0]
    assert result[0] == 'APPLY'
    assert result[1]['args'] == [('IDENTIFIER', 'y')]
    assert result[1]['function'][0] == 'APPLY'

  def test_let_lambda_fix(self, grammar):
    """Test parsing of let, fun and fix"""
    assert grammar.expression.parse_string("let x = 1 in x")[0][0] == 'LET'
    assert grammar.expression.parse_string("fun x y => x")[0][1]['params'] == ['x', 'y']
    fix = grammar.expression.parse_string("fix f(x) {struct x} => f")[0]
    assert fix[0] == 'FIX'
    assert fix[1]['struct'] == 'x'

  def test_keywords_are_not_identifiers(self, grammar):
    """Test that keywords are reserved"""
    with pytest.raises(ParseException):
      grammar.expression.parse_string("match", parse_all=True)

  def test_empty_match_and_leading_separator(self, grammar):
    """Test empty matches and a leading clause separator"""
    assert grammar.expression.parse_string("match x { }")[0][1]['clauses'] == []
    clauses = grammar.expression.parse_string("match x { | Zero => 0 | Succ(p) => p }")[0][1]['clauses']
    assert len(clauses) == 2


class TestPatterns:
  """Test pattern parsing"""

  @pytest.fixture
  def grammar(self):
    return PeanoGrammar()

  def test_pattern_variable(self, grammar):
    """Test variable patterns"""
    assert grammar.pattern.parse_string("x")[0] == ('PATTERN_VAR', 'x')

  def test_pattern_wildcard(self, grammar):
    """Test the wildcard pattern"""
    assert grammar.pattern.parse_string("_")[0] == ('PATTERN_WILDCARD', '_')

  def test_pattern_zero_numeral(self, grammar):
    """Test that 0 is a Zero pattern"""
    assert grammar.pattern.parse_string("0")[0] == ('PATTERN_ZERO', 0)

  def test_pattern_constructor(self, grammar):
    """Test constructor patterns with binders"""
    result = grammar.pattern.parse_string("Cons(h, _)")[0]
    assert result == ('PATTERN_CONSTRUCTOR', {'name': 'Cons', 'binders': ['h', '_']})

  def test_pattern_pair(self, grammar):
    """Test pair patterns"""
    assert grammar.pattern.parse_string("(a, b)")[0] == ('PATTERN_PAIR', {'first': 'a', 'second': 'b'})


class TestErrorHandling:
  """Test error handling and reporting"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_missing_period(self, parser):
    """Test error for a missing statement terminator"""
    with pytest.raises(PeanoParseError) as exc_info:
      parser.parse_string("compute add(1, 2)")
    assert exc_info.value.line == 1

  def test_error_line_and_context(self, parser):
    """Test error line, file name and context excerpt"""
    with pytest.raises(PeanoParseError) as exc_info:
      parser.parse_string("compute 1.\nfn f(x) = .", "bad.peano")
    error = exc_info.value
    assert error.line == 2
    assert error.filename == "bad.peano"
    assert "^ Error here" in error.context
    assert "bad.peano" in str(error)

  def test_missing_file(self, parser, tmp_path):
    """Test error for a missing source file"""
    with pytest.raises(PeanoParseError):
      parser.parse_file(str(tmp_path / "missing.peano"))
