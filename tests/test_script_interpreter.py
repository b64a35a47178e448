"""Tests for script_interpreter.py: bindings, targets, control flow, builtins, faults."""

import sys
import unittest
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from binder import Binder, BindingKind
from errors import InterpreterFault, ScriptSyntaxError
from field_selectors import SelectorResolver
from record_shape import MappingIntrospector
from script_interpreter import BUILTINS, ScriptInterpreter, apply_selector, compare

_CLASSES = {"Pass": "Passed", "Fail": "Failed"}
_SUBCLASSES = {"Resit": "Subjects to resit"}


def _records():
    return [
        {"Student": "ana", "Subject": "Math", "Grade": 10, "Result": None, "Obs": None},
        {"Student": "ana", "Subject": "Physics", "Grade": 14, "Result": None, "Obs": None},
        {"Student": "bruno", "Subject": "Math", "Grade": 7, "Result": None, "Obs": None},
    ]


def _same_student(a, b):
    return a["Student"] == b["Student"]


class InterpreterTestCase(unittest.TestCase):

    def setUp(self):
        self.records = _records()
        self.item = self.records[0]
        self.context = [r for r in self.records if _same_student(r, self.item)]
        self.resolver = SelectorResolver(MappingIntrospector(self.records).describe())
        self.binder = Binder()
        for name in ("Student", "Subject", "Grade"):
            self.binder.add_binding(name, self.resolver.compile(name), BindingKind.SELECTOR)
        self.binder.add_binding("$ctxI", self.item, BindingKind.LITERAL)
        self.binder.add_binding("$ctxC", self.context, BindingKind.COLLECTION)
        self.binder.add_binding("$pkAll", _same_student, BindingKind.PREDICATE)
        self.binder.add_binding("$result", self.resolver.compile_target("Result"), BindingKind.TARGET)
        self.binder.add_binding("$obs", self.resolver.compile_target("Obs"), BindingKind.TARGET)
        self.binder.add_binding("$classes", _CLASSES, BindingKind.MAPPING)
        self.interpreter = ScriptInterpreter()

    def run_script(self, text):
        return self.interpreter.execute(self.binder, _CLASSES, _SUBCLASSES, text)

    def value_of(self, expr):
        return self.run_script(f"SET $v = {expr}\n")["$v"]


class TestTargets(InterpreterTestCase):

    def test_assign_result_and_obs(self):
        self.run_script('SET $result = "Pass"\nSET $obs = DESCRIBE($result)\n')
        self.assertEqual(self.item["Result"], "Pass")
        self.assertEqual(self.item["Obs"], "Passed")
        self.assertIsNone(self.records[2]["Result"])

    def test_read_target_reads_item_field(self):
        self.item["Result"] = "Fail"
        self.assertEqual(self.value_of("$result"), "Fail")

    def test_set_field_on_item(self):
        self.run_script('SET $ctxI.Obs = "note"\n')
        self.assertEqual(self.item["Obs"], "note")

    def test_assign_to_read_only_binding(self):
        with self.assertRaises(InterpreterFault) as ctx:
            self.run_script("SET $a = 1\nSET $ctxC = 1\n")
        self.assertEqual(ctx.exception.line_number, 2)
        self.assertIn("Cannot assign to bound name $ctxC", str(ctx.exception))

    def test_unbound_target(self):
        self.binder.set_binding_value("$obs", None)
        with self.assertRaises(InterpreterFault) as ctx:
            self.run_script('SET $obs = "x"\n')
        self.assertIn("not bound to a record field", str(ctx.exception))

    def test_computed_target_not_assignable(self):
        self.binder.set_binding_value("$result", self.resolver.compile_target(lambda r: r["Grade"]))
        with self.assertRaises(InterpreterFault):
            self.run_script('SET $result = "x"\n')


class TestVariables(InterpreterTestCase):

    def test_locals_returned(self):
        out = self.run_script("SET $a = 2\nSET $b = $a * 3\n")
        self.assertEqual(out, {"$a": 2, "$b": 6})

    def test_locals_reset_per_execution(self):
        self.run_script("SET $tmp = 1\n")
        with self.assertRaises(InterpreterFault) as ctx:
            self.run_script("SET $x = $tmp\n")
        self.assertIn("Undefined variable $tmp", str(ctx.exception))

    def test_bare_names_and_members(self):
        self.assertEqual(self.value_of("Grade($ctxI)"), 10)
        self.assertEqual(self.value_of("$ctxI.Subject"), "Math")
        self.assertEqual(self.value_of("$ctxC[1].Grade"), 14)

    def test_unknown_bare_name(self):
        with self.assertRaises(InterpreterFault):
            self.value_of("Missing")

    def test_private_member_blocked(self):
        with self.assertRaises(InterpreterFault):
            self.value_of("$ctxC.__class__")

    def test_predicate_call(self):
        self.assertTrue(self.value_of("$pkAll($ctxC[0], $ctxI)"))

    def test_classes_binding_readable(self):
        self.assertEqual(self.value_of('$classes["Pass"]'), "Passed")


class TestControlFlow(InterpreterTestCase):

    _GRADING = (
        "SET $avg = AVG($ctxC, Grade)\n"
        "IF $avg >= 14\n"
        '  SET $result = "Merit"\n'
        "ELIF $avg >= 10\n"
        '  SET $result = "Pass"\n'
        "ELSE\n"
        '  SET $result = "Fail"\n'
        "ENDIF\n"
    )

    def test_elif_branch(self):
        self.run_script(self._GRADING)
        self.assertEqual(self.item["Result"], "Pass")

    def test_else_branch(self):
        self.binder.set_binding_value("$ctxI", self.records[2])
        self.binder.set_binding_value("$ctxC", [self.records[2]])
        self.run_script(self._GRADING)
        self.assertEqual(self.records[2]["Result"], "Fail")

    def test_foreach(self):
        out = self.run_script("SET $n = 0\nFOREACH $r IN $ctxC\n  SET $n = $n + $r.Grade\nENDFOREACH\n")
        self.assertEqual(out["$n"], 24)

    def test_foreach_over_null(self):
        out = self.run_script("SET $n = 0\nFOREACH $r IN NULL\n  SET $n = 1\nENDFOREACH\n")
        self.assertEqual(out["$n"], 0)

    def test_foreach_cannot_shadow_binding(self):
        with self.assertRaises(InterpreterFault):
            self.run_script("FOREACH $ctxI IN $ctxC\nENDFOREACH\n")

    def test_orphan_else_is_syntax_error(self):
        with self.assertRaises(ScriptSyntaxError):
            self.run_script('SET $result = "Pass"\nELSE\n  SET $result = "Fail"\n')

    def test_unclosed_if_is_syntax_error(self):
        with self.assertRaises(ScriptSyntaxError):
            self.run_script('IF $ctxI.Grade > 10\n  SET $result = "Fail"\nSET $obs = "seen"\n')
        self.assertIsNone(self.item["Result"])

    def test_short_circuit(self):
        self.assertFalse(self.value_of("FALSE AND NOPE()"))
        self.assertTrue(self.value_of("TRUE OR NOPE()"))

    def test_linted_lowercase_keywords(self):
        self.run_script('if $ctxI.Grade == 10\n  set $result = "Pass"\nendif\n')
        self.assertEqual(self.item["Result"], "Pass")


class TestExpressions(InterpreterTestCase):

    def test_arithmetic(self):
        self.assertEqual(self.value_of("7 % 4 + 2 * 3 - 1"), 8)
        self.assertEqual(self.value_of("-(2 + 3)"), -5)
        self.assertEqual(self.value_of("9 / 2"), 4.5)

    def test_string_concat(self):
        self.assertEqual(self.value_of('"Grade " + 10'), "Grade 10")

    def test_comparisons(self):
        self.assertTrue(self.value_of("$ctxI.Grade IN [10, 20]"))
        self.assertFalse(self.value_of("NULL < 3"))
        self.assertTrue(self.value_of("NULL == NULL"))
        self.assertTrue(self.value_of("NOT $ctxI.Result"))

    def test_division_by_zero_fault(self):
        with self.assertRaises(InterpreterFault) as ctx:
            self.run_script("SET $a = 1\nIF TRUE\n  SET $b = 1 / 0\nENDIF\n")
        self.assertEqual(ctx.exception.line_number, 3)
        self.assertEqual(str(ctx.exception), "Line 3: Division by zero")


class TestBuiltins(InterpreterTestCase):

    def test_aggregates(self):
        self.assertEqual(self.value_of("COUNT($ctxC)"), 2)
        self.assertEqual(self.value_of("SUM($ctxC, Grade)"), 24)
        self.assertEqual(self.value_of("AVG($ctxC, 'Grade')"), 12)
        self.assertEqual(self.value_of("MIN($ctxC, Grade)"), 10)
        self.assertEqual(self.value_of("MAX($ctxC, Grade)"), 14)
        self.assertIsNone(self.value_of("AVG([], Grade)"))

    def test_values_where_distinct(self):
        self.assertEqual(self.value_of("VALUES($ctxC, Subject)"), ["Math", "Physics"])
        self.assertEqual(self.value_of('COUNT(WHERE($ctxC, Grade, ">", 11))'), 1)
        self.assertEqual(self.value_of("DISTINCT([1, 2, 1])"), [1, 2])

    def test_scalars(self):
        self.assertEqual(self.value_of("ROUND(2.345, 1)"), 2.3)
        self.assertEqual(self.value_of("ABS(-4)"), 4)
        self.assertEqual(self.value_of("STR(NULL)"), "")
        self.assertEqual(self.value_of("NUM('12')"), 12)
        self.assertEqual(self.value_of("NUM('1.5')"), 1.5)
        self.assertEqual(self.value_of("LEN('abc')"), 3)
        self.assertEqual(self.value_of("CONCAT('a', NULL, 1)"), "a1")
        self.assertEqual(self.value_of("COALESCE(NULL, 'x')"), "x")

    def test_classification_maps(self):
        self.assertEqual(self.value_of("DESCRIBE('Pass')"), "Passed")
        self.assertEqual(self.value_of("DESCRIBE('Resit')"), "")
        self.assertEqual(self.value_of("SUBCLASS('Resit')"), "Subjects to resit")
        self.assertTrue(self.value_of("HASCLASS('Resit')"))
        self.assertFalse(self.value_of("HASCLASS('Other')"))

    def test_related(self):
        self.assertEqual(len(self.value_of("RELATED($ctxI)")), 2)
        self.assertEqual(len(self.value_of("RELATED($ctxI, [])")), 0)

    def test_case_insensitive(self):
        self.assertEqual(self.value_of("count($ctxC)"), 2)

    def test_unknown_function(self):
        with self.assertRaises(InterpreterFault) as ctx:
            self.value_of("NOPE(1)")
        self.assertEqual(str(ctx.exception), "Line 1: Unknown function NOPE")

    def test_bad_arity_is_fault(self):
        with self.assertRaises(InterpreterFault):
            self.value_of("ABS(1, 2)")

    def test_registry(self):
        for name in ("COUNT", "SUM", "AVG", "MIN", "MAX", "VALUES", "WHERE", "DISTINCT",
                     "ROUND", "ABS", "STR", "NUM", "LEN", "CONCAT", "COALESCE",
                     "DESCRIBE", "SUBCLASS", "HASCLASS", "RELATED"):
            self.assertIn(name, BUILTINS)

    def test_helpers(self):
        self.assertEqual(apply_selector("Grade", {"Grade": 3}), 3)
        self.assertEqual(apply_selector(None, 5), 5)
        self.assertTrue(compare(1, "<=", 1))
        with self.assertRaises(ValueError):
            compare(1, "~", 2)


class TestCompile(InterpreterTestCase):

    def test_cached_by_text(self):
        text = "SET $a = 1\n"
        self.assertIs(self.interpreter.compile(text), self.interpreter.compile(text))

    def test_ir_passthrough(self):
        ir = self.interpreter.compile("SET $a = 1\n")
        self.assertIs(self.interpreter.compile(ir), ir)
        self.assertEqual(self.interpreter.execute(self.binder, {}, None, ir), {"$a": 1})

    def test_syntax_error(self):
        with self.assertRaises(ScriptSyntaxError):
            self.run_script("SET $a = (1\n")


if __name__ == "__main__":
    unittest.main()
