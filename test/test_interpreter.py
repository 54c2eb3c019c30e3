"""
Evaluator tests
Operator coercion, scoping, closures, return unwinding and the call protocol
"""

import sys

import pytest

from interpreter import (
  COMPLETED,
  RETURNED,
  EXITED,
  ExitSignal,
  create_debug_interpreter,
  create_global_env,
  eval_node,
  perform_binary_op,
  run,
)
from values import make_int, make_float, make_string, make_null, value_to_string


@pytest.fixture
def low_recursion_limit():
  """Start from the stock Python recursion limit and restore it afterwards"""
  previous = sys.getrecursionlimit()
  sys.setrecursionlimit(1000)
  yield
  sys.setrecursionlimit(previous)


@pytest.fixture
def evaluate(run_source):
  """Value of the last statement, as (type, display string)"""
  def evaluator(source):
    signal, _ = run_source(source)
    return signal.value.type, value_to_string(signal.value)
  return evaluator


class TestArithmetic:
  """Int/Float promotion and sentinels"""

  def test_int_arithmetic(self, evaluate):
    assert evaluate("2 + 3 * 4;") == ("Int", "14")
    assert evaluate("10 - 15;") == ("Int", "-5")

  def test_float_promotion(self, evaluate):
    assert evaluate("1 + 2.5;") == ("Float", "3.5")
    assert evaluate("1.5 * 2;") == ("Float", "3")

  def test_integral_literals_are_ints(self, evaluate):
    assert evaluate("2.0;") == ("Int", "2")
    assert evaluate("2.5;") == ("Float", "2.5")

  def test_division_is_always_float(self, evaluate):
    assert evaluate("7 / 2;") == ("Float", "3.5")
    assert evaluate("4 / 2;") == ("Float", "2")

  @pytest.mark.parametrize("source", ["1 / 0;", "1.5 / 0;", "0 / 0.0;"])
  def test_division_by_zero(self, evaluate, source):
    assert evaluate(source) == ("String", "division by zero")

  @pytest.mark.parametrize("a, b, expected", [
      (7, 3, "1"),
      (-7, 3, "-1"),
      (7, -3, "1"),
      (-7, -3, "-1"),
      (6, 3, "0"),
  ])
  def test_truncating_remainder(self, evaluate, a, b, expected):
    assert evaluate(f"{a} % {b};") == ("Int", expected)

  def test_modulo_by_zero(self, evaluate):
    assert evaluate("5 % 0;") == ("String", "modulo by zero")
    assert evaluate("5.5 % 0;") == ("String", "modulo by zero")

  def test_float_remainder(self, evaluate):
    assert evaluate("5.5 % 2;") == ("Float", "1.5")
    assert evaluate("-5.5 % 2;") == ("Float", "-1.5")

  def test_int_overflow_wraps(self, evaluate):
    source = "let m = 4611686018427387904; m * 2;"
    assert evaluate(source) == ("Int", "-9223372036854775808")

  def test_string_concatenation(self, evaluate):
    assert evaluate('"a" + 1;') == ("String", "a1")
    assert evaluate('1.5 + "x";') == ("String", "1.5x")
    assert evaluate('"n" + null;') == ("String", "nnull")
    assert evaluate('"xs=" + [1, 2];') == ("String", "xs=[1, 2]")

  def test_subtraction_has_no_string_form(self, evaluate):
    assert evaluate('"5" - 2;') == ("Float", "-2")

  def test_unary_minus(self, evaluate):
    assert evaluate("-5;") == ("Int", "-5")
    assert evaluate("-2.5;") == ("Float", "-2.5")
    assert evaluate('-"a";') == ("Null", "null")

  def test_unary_not(self, evaluate):
    assert evaluate("!0;") == ("Bool", "true")
    assert evaluate('!"x";') == ("Bool", "false")
    assert evaluate("![];") == ("Bool", "true")


class TestComparison:

  def test_same_type_equality(self, evaluate):
    assert evaluate('"a" == "a";') == ("Bool", "true")
    assert evaluate('"a" != "b";') == ("Bool", "true")
    assert evaluate("true == true;") == ("Bool", "true")
    assert evaluate("3 == 3;") == ("Bool", "true")

  def test_mixed_types_compare_as_floats(self, evaluate):
    assert evaluate("1 == 1.0;") == ("Bool", "true")
    assert evaluate("null == 0;") == ("Bool", "true")
    assert evaluate('"abc" == 0;') == ("Bool", "true")
    assert evaluate("true == 1;") == ("Bool", "false")

  def test_ordering(self, evaluate):
    assert evaluate("1 < 1.5;") == ("Bool", "true")
    assert evaluate("2 > 3;") == ("Bool", "false")
    assert evaluate("2 <= 2;") == ("Bool", "true")
    assert evaluate("2.5 >= 3;") == ("Bool", "false")

  def test_ordering_coerces_non_numbers(self, evaluate):
    assert evaluate('"z" < 1;') == ("Bool", "true")

  def test_perform_binary_op_directly(self):
    assert perform_binary_op("-", make_int(5), make_float(0.5)).value == 4.5
    assert perform_binary_op("??", make_int(1), make_int(2)).type == "Null"


class TestIndexing:

  def test_list_index(self, evaluate):
    assert evaluate("[10, 20, 30][1];") == ("Int", "20")

  @pytest.mark.parametrize("source", [
      "[1, 2, 3][5];",
      "[1, 2, 3][-1];",
      '{}["missing"];',
      '[1, 2]["0"];',
      '{a: 1}[0];',
      '"text"[0];',
      "null[0];",
  ])
  def test_bad_index_is_null(self, evaluate, source):
    assert evaluate(source) == ("Null", "null")

  def test_map_index(self, evaluate):
    assert evaluate('let m = {a: 1, "b": 2}; m["b"];') == ("Int", "2")

  def test_member_access(self, evaluate):
    assert evaluate("let m = {name: \"dusth\"}; m.name;") == ("String", "dusth")

  def test_nested_index(self, evaluate):
    assert evaluate("let m = {xs: [1, [2, 3]]}; m.xs[1][0];") == ("Int", "2")

  def test_index_returns_a_copy(self, run_source):
    signal, env = run_source("let xs = [[1]]; let inner = xs[0]; push(inner, 2);")
    assert value_to_string(env.lookup("xs")) == "[[1]]"


class TestScoping:
  """let, assignment and block scopes"""

  def test_assignment_reaches_enclosing_binding(self, run_source):
    _, env = run_source("let x = 1; if (true) { x = 2; }")
    assert env.lookup("x").value == 2

  def test_let_in_block_shadows(self, run_source):
    _, env = run_source("let x = 1; if (true) { let x = 2; }")
    assert env.lookup("x").value == 1

  def test_block_locals_do_not_leak(self, run_source):
    _, env = run_source("if (true) { let inner = 1; }")
    assert env.lookup("inner") is None

  def test_assignment_to_new_name_in_block_stays_local(self, run_source):
    _, env = run_source("if (true) { fresh = 1; }")
    assert env.lookup("fresh") is None

  def test_undefined_identifier_is_null(self, evaluate):
    assert evaluate("missing;") == ("Null", "null")

  @pytest.mark.parametrize("op, expected", [
      ("+=", "8"),
      ("-=", "2"),
      ("*=", "15"),
      ("%=", "2"),
  ])
  def test_compound_assignment(self, run_source, op, expected):
    _, env = run_source(f"let x = 5; x {op} 3;")
    assert value_to_string(env.lookup("x")) == expected

  def test_compound_divide_promotes(self, run_source):
    _, env = run_source("let x = 6; x /= 4;")
    assert env.lookup("x").type == "Float"
    assert env.lookup("x").value == 1.5

  def test_compound_on_unbound_name(self, run_source):
    _, env = run_source("y += 1;")
    assert env.lookup("y").type == "Float"
    assert env.lookup("y").value == 1.0

  def test_assignment_value(self, evaluate):
    assert evaluate("let a = 0; a = 7;") == ("Int", "7")

  def test_chained_assignment(self, run_source):
    _, env = run_source("let a = 0; let b = 0; a = b = 4;")
    assert env.lookup("a").value == 4
    assert env.lookup("b").value == 4

  def test_let_stores_a_copy(self, run_source):
    _, env = run_source("let a = [1]; let b = a; b = push(b, 2);")
    assert value_to_string(env.lookup("a")) == "[1]"


class TestControlFlow:

  def test_if_uses_truthiness(self, capsys, run_source):
    run_source('if (0) { say("then"); } else { say("else"); }')
    run_source('if ("") { say("then"); } else { say("else"); }')
    run_source('if ("0") { say("then"); } else { say("else"); }')
    assert capsys.readouterr().out == "else\nelse\nthen\n"

  def test_else_if(self, capsys, run_source):
    run_source('let n = 2; if (n == 1) { say("one"); } else if (n == 2) { say("two"); } else { say("many"); }')
    assert capsys.readouterr().out == "two\n"

  def test_if_without_else_is_null(self, evaluate):
    assert evaluate("if (false) { 1; }") == ("Null", "null")

  def test_while(self, run_source):
    _, env = run_source("let i = 0; let total = 0; while (i < 5) { total += i; i += 1; }")
    assert env.lookup("total").value == 10
    assert env.lookup("i").value == 5

  def test_while_value_is_last_iteration(self, evaluate):
    assert evaluate("let i = 0; while (i < 3) { i = i + 1; i * 10; }") == ("Int", "30")

  def test_while_never_entered(self, evaluate):
    assert evaluate("while (false) { 1; }") == ("Null", "null")

  def test_top_level_return_stops_program(self, capsys, run_source):
    signal, _ = run_source('let a = 1; return a + 1; say("unreachable");')
    assert signal.status == RETURNED
    assert signal.value.value == 2
    assert capsys.readouterr().out == ""

  def test_completed_program(self, run_source):
    signal, _ = run_source("1; 2;")
    assert signal == ExitSignal(COMPLETED, make_int(2), 0)

  def test_empty_program(self, run_source):
    signal, _ = run_source("")
    assert signal.status == COMPLETED
    assert signal.value.type == "Null"


class TestFunctions:
  """Definition, calls and closure capture"""

  def test_simple_call(self, evaluate):
    assert evaluate("fn add(a, b) { return a + b; } add(2, 3);") == ("Int", "5")

  def test_missing_arguments_are_null(self, evaluate):
    assert evaluate("fn f(a, b) { return b; } f(1);") == ("Null", "null")

  def test_extra_arguments_are_ignored(self, evaluate):
    assert evaluate("fn f(a) { return a; } f(1, 2, 3);") == ("Int", "1")

  def test_implicit_result_is_last_statement(self, evaluate):
    assert evaluate("fn f() { 1; 42; } f();") == ("Int", "42")

  def test_bare_return_is_null(self, evaluate):
    assert evaluate("fn f() { return; 5; } f();") == ("Null", "null")

  def test_return_unwinds_nested_blocks(self, evaluate):
    source = """
    fn find(limit) {
      let i = 0;
      while (i < limit) {
        if (i == 3) {
          if (true) { return i; }
        }
        i = i + 1;
      }
      return -1;
    }
    find(10);
    """
    assert evaluate(source) == ("Int", "3")

  def test_return_skips_remaining_statements(self, capsys, evaluate):
    result = evaluate('fn f() { if (true) { return "early"; } say("late"); } f();')
    assert result == ("String", "early")
    assert capsys.readouterr().out == ""

  def test_capture_by_value_at_definition(self, evaluate):
    assert evaluate("let x = 1; fn f() { return x; } x = 2; f();") == ("Int", "1")

  def test_calls_work_on_independent_snapshots(self, run_source):
    source = """
    let x = 10;
    fn counter() { x = x + 1; return x; }
    let first = counter();
    let second = counter();
    """
    _, env = run_source(source)
    assert env.lookup("first").value == 11
    assert env.lookup("second").value == 11
    assert env.lookup("x").value == 10

  def test_function_does_not_see_later_globals(self, evaluate):
    assert evaluate("fn f() { return later; } let later = 1; f();") == ("Null", "null")

  def test_recursion(self, evaluate):
    source = "fn fact(n) { if (n <= 1) { return 1; } return n * fact(n - 1); } fact(10);"
    assert evaluate(source) == ("Int", "3628800")

  def test_deep_recursion_through_run(self, low_recursion_limit, run_source):
    source = "fn down(n) { if (n <= 0) { return 0; } return down(n - 1) + 1; } down(1000);"
    signal, _ = run_source(source)
    assert signal.status == COMPLETED
    assert value_to_string(signal.value) == "1000"

  def test_arguments_are_copies(self, run_source):
    _, env = run_source("let xs = [1]; fn grow(list) { push(list, 2); return list; } let ys = grow(xs);")
    assert value_to_string(env.lookup("xs")) == "[1]"

  def test_arguments_evaluated_in_caller_env(self, evaluate):
    source = "let a = 5; fn f(a) { return a * 2; } fn g() { let a = 7; return f(a); } g();"
    assert evaluate(source) == ("Int", "14")

  def test_function_expression(self, evaluate):
    assert evaluate("let double = fn(x) { return x * 2; }; double(21);") == ("Int", "42")

  def test_immediately_invoked(self, evaluate):
    assert evaluate("(fn(a) { return a + 1; })(4);") == ("Int", "5")

  def test_computed_call_from_map(self, evaluate):
    assert evaluate("let ops = {inc: fn(v) { return v + 1; }}; ops.inc(1);") == ("Int", "2")

  def test_functions_are_values(self, evaluate):
    assert evaluate("fn f() { return 1; } f;") == ("Function", "<function>")

  def test_nested_function_declaration(self, evaluate):
    source = "fn outer() { fn inner() { return 3; } return inner() + 1; } outer();"
    assert evaluate(source) == ("Int", "4")

  def test_undefined_function(self, evaluate):
    assert evaluate("nope(1);") == ("String", "undefined function")

  def test_value_not_callable(self, evaluate):
    assert evaluate("let v = 5; v();") == ("String", "value not callable")
    assert evaluate("[1](0);") == ("String", "value not callable")

  def test_sentinel_flows_like_a_string(self, evaluate):
    assert evaluate('"got: " + (1 / 0);') == ("String", "got: division by zero")

  def test_native_receives_evaluated_arguments(self, run_source):
    seen = []

    def spy(env, args):
      seen.extend(value_to_string(a) for a in args)
      return make_string("ok")

    env = create_global_env()
    from values import make_native
    env.define("spy", make_native(spy, "spy"))
    from parsing import parse
    signal = run(parse("let a = 2; spy(a + 1, \"s\", [a]);"), env)
    assert seen == ["3", "s", "[2]"]
    assert signal.value.value == "ok"

  def test_native_returning_none_is_null(self):
    from values import make_native
    from parsing import parse
    env = create_global_env()
    env.define("quiet", make_native(lambda env, args: None, "quiet"))
    assert run(parse("quiet();"), env).value.type == "Null"


class TestExitAndDebug:

  def test_exit_stops_program(self, capsys, run_source):
    signal, _ = run_source('say("a"); exit(3); say("b");')
    assert signal.status == EXITED
    assert signal.code == 3
    assert capsys.readouterr().out == "a\n"

  def test_exit_inside_function(self, run_source):
    signal, _ = run_source("fn stop() { exit(4); } stop(); 1;")
    assert signal.status == EXITED
    assert signal.code == 4

  def test_debug_trace(self, capsys):
    interpreter = create_debug_interpreter()
    interpreter.run_source("let a = 1;")
    out = capsys.readouterr().out
    assert "DEBUG: eval LET" in out
    assert "DEBUG: let a = 1" in out

  def test_debug_trace_reports_call_depth(self, capsys):
    interpreter = create_debug_interpreter()
    interpreter.run_source("fn inner() { return 1; } fn outer() { return inner(); } outer();")
    out = capsys.readouterr().out
    assert "DEBUG: call outer with 0 args at depth 1" in out
    assert "DEBUG: call inner with 0 args at depth 2" in out

  def test_interpreter_evaluate_keeps_state(self, interpreter):
    interpreter.evaluate("let total = 2;")
    result = interpreter.evaluate("total * 3;")
    assert result.value == 6
    assert interpreter.lookup("total").value == 2

  def test_eval_node_without_context(self):
    from parsing import parse
    env = create_global_env()
    assert eval_node(parse("1 + 1;"), env).value == 2
    assert eval_node(parse("null;"), env) == make_null()
