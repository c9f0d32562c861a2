"""
PEANO - Main Entry Point
A structural evaluator for Peano naturals, pairs and tagged variants
with definition-time structural-recursion checking
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from error_handling import PeanoError, PeanoParseError, PeanoRuntimeError
from interpreter import DEFAULT_MAX_DEPTH, create_interpreter
from parsing import create_parser, pretty_print_cst
from stdlib import show_value


logger = logging.getLogger(__name__)

DEFAULT_RECURSION_LIMIT = 20000


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      description='PEANO - structural evaluator for inductive data',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.peano              # Run a PEANO script
  %(prog)s -e 'add(3, 4)'            # Evaluate one expression
  %(prog)s -i                        # Interactive mode
  %(prog)s --parse script.peano      # Parse and show CST
  %(prog)s --analyze script.peano    # Parse, analyze and show AST
  %(prog)s --max-depth 100 f.peano   # Limit call depth
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='PEANO script file to execute'
  )

  parser.add_argument(
      '-e', '--eval',
      metavar='EXPR',
      help='Evaluate an expression and print its value'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show CST (for debugging)'
  )

  parser.add_argument(
      '--analyze',
      action='store_true',
      help='Parse and analyze file, show AST (for debugging)'
  )

  parser.add_argument(
      '--max-depth',
      type=int,
      default=DEFAULT_MAX_DEPTH,
      help=f'Maximum call depth before StackExhaustedError (default: {DEFAULT_MAX_DEPTH})'
  )

  parser.add_argument(
      '--recursion-limit',
      type=int,
      default=DEFAULT_RECURSION_LIMIT,
      help=f'Host interpreter recursion limit (default: {DEFAULT_RECURSION_LIMIT})'
  )

  parser.add_argument(
      '--no-prelude',
      action='store_true',
      help='Do not load the prelude (Bool, List, add, mult, ...)'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--log-level',
      default='WARNING',
      choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
      help='Logging level (default: WARNING, DEBUG with --debug)'
  )

  parser.add_argument(
      '--version',
      action='version',
      version='PEANO v0.1.0'
  )

  return parser


def configure_logging(args: argparse.Namespace) -> None:
  level = logging.DEBUG if args.debug else getattr(logging, args.log_level)
  logging.basicConfig(
      level=level,
      format='%(asctime)s %(name)s %(levelname)s %(message)s'
  )


def report_error(e: PeanoError, script_path: Optional[str] = None) -> None:
  """Print an error with its kind and location"""
  if isinstance(e, PeanoParseError):
    print(str(e).rstrip())
  elif script_path:
    print(f"{e} ({script_path})")
  else:
    print(e)


def parse_file(script_path: str, debug: bool = False) -> None:
  """Parse a PEANO script file and show the CST"""
  try:
    parser = create_parser(debug)

    print(f"Parsing {script_path}...")
    cst_nodes = parser.parse_file(script_path)

    print(f"\nParsed {len(cst_nodes)} top-level statements:")
    print("=" * 50)

    for i, node in enumerate(cst_nodes, 1):
      print(f"\nStatement {i}:")
      print(pretty_print_cst(node))

  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    sys.exit(1)
  except PeanoParseError as e:
    report_error(e)
    sys.exit(1)


def analyze_file(script_path: str, debug: bool = False, prelude: bool = True) -> None:
  """Parse and analyze a PEANO script file and show the AST"""
  try:
    interpreter = create_interpreter(debug=debug, prelude=prelude)
    source = Path(script_path).read_text(encoding='utf-8')

    print(f"Parsing and analyzing {script_path}...")
    ast_nodes = interpreter.analyze(source, script_path)

    print(f"\nAnalyzed {len(ast_nodes)} declarations:")
    print("=" * 50)

    for i, ast_node in enumerate(ast_nodes, 1):
      print(f"\nDeclaration {i} - {ast_node['type']} {ast_node['path']}")
      print(f"Value: {ast_node['value']}")

  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    sys.exit(1)
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}")
    sys.exit(1)
  except PeanoError as e:
    report_error(e, script_path)
    sys.exit(1)


def run_script_file(script_path: str, debug: bool = False, max_depth: int = DEFAULT_MAX_DEPTH,
                    prelude: bool = True) -> None:
  """Run a PEANO script file, printing every computed value"""
  try:
    interpreter = create_interpreter(debug=debug, max_depth=max_depth, prelude=prelude)

    logger.debug("Running %s", script_path)
    results = interpreter.run_file(script_path)

    for _, value in results:
      print(show_value(value))

  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    print(f"  Hint: Make sure you have read permissions for this file")
    sys.exit(1)
  except PeanoError as e:
    report_error(e, script_path)
    sys.exit(1)


def eval_expression(expr_text: str, debug: bool = False, max_depth: int = DEFAULT_MAX_DEPTH,
                    prelude: bool = True) -> None:
  """Evaluate a single expression given on the command line"""
  try:
    interpreter = create_interpreter(debug=debug, max_depth=max_depth, prelude=prelude)
    print(show_value(interpreter.eval_expression(expr_text)))
  except PeanoError as e:
    report_error(e)
    sys.exit(1)


def setup_readline(words: List[str]):
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.peano_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    logger.debug("No readline history at %s", history_file)

  readline.set_history_length(1000)

  completions = [
      # Keywords
      "data", "fn", "fix", "fun", "struct", "match", "let", "in", "compute", "module",
      # REPL commands
      ":parse", ":analyze", ":defs", ":help", ":quit"
  ] + words

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def print_repl_help() -> None:
  print("REPL Commands:")
  print("  :parse <expr>     - Show parsed CST")
  print("  :analyze <expr>   - Show analyzed AST")
  print("  :defs             - Show datatypes, constructors and functions")
  print("  :help             - Show this help")
  print("  :quit             - Exit REPL")
  print()
  print("Language:")
  print("  data List = Nil | Cons(Nat, List).")
  print("  fn add(n, m) = match n { Zero => m; Succ(p) => Succ(add(p, m)) }.")
  print("  fn pred(n) {struct n} = match n { Zero => 0 | Succ(p) => p }.")
  print("  module M { fn id(x) = x. }")
  print("  add(3, 4)                 - Expressions are evaluated and printed")


def run_interactive_mode(debug: bool = False, max_depth: int = DEFAULT_MAX_DEPTH,
                         prelude: bool = True) -> None:
  """Run PEANO in interactive mode; definitions accumulate across inputs"""
  print("PEANO v0.1.0 - Interactive Mode")
  print("Type ':quit' to exit, ':help' for commands")
  if debug:
    print("Debug mode enabled")
  print()

  interpreter = create_interpreter(debug=debug, max_depth=max_depth, prelude=prelude)
  definitions = interpreter.definitions()
  setup_readline(definitions['functions'] + definitions['constructors'])

  while True:
    try:
      code = input("peano> ").strip()
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    if not code:
      continue
    if code in (":quit", ":q", "exit."):
      break

    try:
      if code.startswith(":parse "):
        cst = interpreter.parser.parse_expression(code[len(":parse "):])
        print("Expression CST:")
        print(pretty_print_cst(cst))
      elif code.startswith(":analyze "):
        from semantics import analyze_expression
        cst = interpreter.parser.parse_expression(code[len(":analyze "):])
        ast = analyze_expression(cst.value, interpreter.analysis_env(), "eval", debug)
        print("Expression AST:")
        print(ast)
      elif code in (":defs", ":env"):
        for kind, names in interpreter.definitions().items():
          print(f"  {kind}: {', '.join(names) if names else '(none)'}")
      elif code == ":help":
        print_repl_help()
      elif code.endswith('.') or code.startswith("module"):
        for _, value in interpreter.run(code, "<repl>"):
          print(show_value(value))
      else:
        print(show_value(interpreter.eval_expression(code)))
    except PeanoParseError as e:
      report_error(e)
    except PeanoRuntimeError as e:
      report_error(e)


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for PEANO"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  configure_logging(args)
  sys.setrecursionlimit(max(sys.getrecursionlimit(), args.recursion_limit))

  prelude = not args.no_prelude

  if args.eval is not None:
    eval_expression(args.eval, args.debug, args.max_depth, prelude)

  elif args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist")
      sys.exit(1)

    if args.parse:
      parse_file(args.script, debug=args.debug)
    elif args.analyze:
      analyze_file(args.script, debug=args.debug, prelude=prelude)
    else:
      run_script_file(args.script, args.debug, args.max_depth, prelude)

  elif args.interactive:
    run_interactive_mode(args.debug, args.max_depth, prelude)

  else:
    arg_parser.print_help()


if __name__ == "__main__":
  main()
