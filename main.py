"""
Dusth Programming Language - Main Entry Point
Runs scripts, prints parse trees, and hosts a line-at-a-time interactive loop
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional

from parsing import create_parser, create_debug_parser, pretty_print_ast
from error_handling import DusthParseError, DusthExit
from interpreter import create_interpreter, ensure_recursion_limit
from loader import create_loader
from values import NULL, value_to_string


VERSION = "0.1.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='dusth',
      description='Dusth - a small dynamically typed scripting language',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.dh            # Run a Dusth script
  %(prog)s -i                   # Interactive mode
  %(prog)s --parse script.dh    # Parse and show the syntax tree
  %(prog)s --debug script.dh    # Run with debug output
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Dusth script file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the syntax tree'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Print evaluation trace'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=f'%(prog)s {VERSION}'
  )

  return parser


def parse_file(script_path: str, debug: bool = False) -> int:
  """Parse a Dusth script file and show the tree"""
  parser = create_debug_parser() if debug else create_parser()
  try:
    program = parser.parse_file(script_path)
  except DusthParseError as e:
    print(str(e), end='')
    return 1

  print(f"Parsed {len(program.children)} top-level statements:")
  print("=" * 50)
  print(pretty_print_ast(program), end='')
  return 0


def run_script_file(script_path: str, debug: bool = False) -> int:
  """Run a script; returns the process exit code"""
  interpreter = create_interpreter(debug=debug, loader=create_loader(script_path))
  try:
    found = interpreter.run_file(script_path)
  except DusthParseError as e:
    print(str(e), end='')
    return 1
  except DusthExit as e:
    if debug:
      print(f"DEBUG: script exited with {e.code}")
    return e.code
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}")
    return 1

  if not found:
    print(f"Error: Script file '{script_path}' not found")
    return 1
  return 0


def run_interactive_mode(debug: bool = False) -> int:
  """Evaluate one line at a time in a single global environment"""
  interpreter = create_interpreter(debug=debug, loader=create_loader())
  print(f"Dusth {VERSION}")

  while True:
    try:
      line = input("dusth> ")
    except (KeyboardInterrupt, EOFError):
      print()
      return 0

    if not line.strip():
      continue

    try:
      result = interpreter.evaluate(line)
    except DusthParseError as e:
      print(str(e), end='')
      continue
    except DusthExit as e:
      return e.code

    if result.type != NULL:
      print(f"=> {value_to_string(result)}")


def main(argv: Optional[List[str]] = None) -> int:
  """Main entry point for Dusth"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)
  ensure_recursion_limit()

  if args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist")
      return 1
    if args.parse:
      return parse_file(args.script, debug=args.debug)
    return run_script_file(args.script, debug=args.debug)

  return run_interactive_mode(debug=args.debug)


if __name__ == "__main__":
  sys.exit(main())
