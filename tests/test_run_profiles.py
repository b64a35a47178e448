"""Tests for run_profiles.py: YAML profile loader and profile execution."""

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

import yaml
from evaluator import Evaluator, RunResult
from record_shape import MappingIntrospector
from run_profiles import (
    RunProfile,
    RunProfileConfig,
    execute_profile,
    get_profile,
    load_profiles,
)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Minimal valid config for testing
_TEST_CONFIG = {
    "profiles": {
        "full_a": {
            "item_key": "key",
            "eval_key": "value",
            "eval_based_key": "key",
            "result_key": "Result",
            "obs_key": "Obs",
            "script": 'SET $result = "Pass"\nSET $obs = DESCRIBE($result)\n',
            "classes": {"Pass": "Passed"},
        },
        "simple_b": {
            "mode": "simple",
            "item_key": "key",
            "equivalence": "key",
            "result_key": "Result",
            "script": 'SET $result = "Fail"\n',
        },
    },
    "default_profile": "simple_b",
}


def _write_test_config(config: dict) -> str:
    """Write config to a temp file and return its path."""
    fd, path = tempfile.mkstemp(suffix=".yaml")
    with os.fdopen(fd, "w") as f:
        yaml.dump(config, f)
    return path


def _records():
    return [
        {"key": "A", "value": 1, "Result": None, "Obs": None},
        {"key": "A", "value": 2, "Result": None, "Obs": None},
        {"key": "B", "value": 3, "Result": None, "Obs": None},
    ]


class TestLoadProfiles(unittest.TestCase):
    """Test profile loading from YAML."""

    def setUp(self):
        self.config_path = _write_test_config(_TEST_CONFIG)

    def tearDown(self):
        os.unlink(self.config_path)

    def test_load_valid_config(self):
        config = load_profiles(self.config_path)
        self.assertIsInstance(config, RunProfileConfig)
        self.assertEqual(len(config.profiles), 2)
        self.assertEqual(config.default_profile, "simple_b")

    def test_profile_fields(self):
        p = load_profiles(self.config_path).profiles["full_a"]
        self.assertIsInstance(p, RunProfile)
        self.assertEqual(p.mode, "full")  # default
        self.assertEqual(p.item_key, "key")
        self.assertEqual(p.classes, {"Pass": "Passed"})
        self.assertEqual(p.subclasses, {})
        self.assertEqual(p.equivalence, [])

    def test_equivalence_string_becomes_list(self):
        p = load_profiles(self.config_path).profiles["simple_b"]
        self.assertEqual(p.equivalence, ["key"])

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_profiles("/nonexistent/path.yaml")

    def _assert_invalid(self, config):
        path = _write_test_config(config)
        try:
            with self.assertRaises(ValueError):
                load_profiles(path)
        finally:
            os.unlink(path)

    def test_malformed_config(self):
        self._assert_invalid({"not_profiles": {}})

    def test_invalid_default_profile(self):
        self._assert_invalid(dict(_TEST_CONFIG, default_profile="nonexistent"))

    def test_unknown_mode(self):
        bad = {"profiles": {"p": dict(_TEST_CONFIG["profiles"]["simple_b"], mode="turbo")}}
        self._assert_invalid(bad)

    def test_full_profile_missing_fields(self):
        profile = dict(_TEST_CONFIG["profiles"]["full_a"])
        del profile["obs_key"]
        self._assert_invalid({"profiles": {"p": profile}})

    def test_missing_script(self):
        profile = dict(_TEST_CONFIG["profiles"]["simple_b"])
        del profile["script"]
        self._assert_invalid({"profiles": {"p": profile}})


class TestGetProfile(unittest.TestCase):

    def setUp(self):
        self.config_path = _write_test_config(_TEST_CONFIG)

    def tearDown(self):
        os.unlink(self.config_path)

    def test_by_name(self):
        self.assertEqual(get_profile("full_a", self.config_path).name, "full_a")

    def test_default(self):
        self.assertEqual(get_profile(None, self.config_path).name, "simple_b")

    def test_unknown(self):
        with self.assertRaises(KeyError):
            get_profile("nope", self.config_path)


class TestExecuteProfile(unittest.TestCase):

    def setUp(self):
        self.config_path = _write_test_config(_TEST_CONFIG)
        self.records = _records()
        self.evaluator = Evaluator(dict, introspector=MappingIntrospector(self.records))

    def tearDown(self):
        os.unlink(self.config_path)

    def test_full_profile(self):
        outcome = execute_profile(self.evaluator, get_profile("full_a", self.config_path), self.records)
        self.assertIsInstance(outcome, RunResult)
        self.assertTrue(outcome.success, outcome.message)
        self.assertEqual(self.records[0]["Obs"], "Passed")
        self.assertIn("Pass:2 -> 100.000 %", outcome.report)

    def test_simple_profile(self):
        outcome = execute_profile(self.evaluator, get_profile("simple_b", self.config_path), self.records)
        self.assertEqual(outcome, "Success")
        self.assertIn("Fail:2 -> 100.0 %", self.evaluator.result_description)

    def test_script_override(self):
        profile = get_profile("simple_b", self.config_path)
        execute_profile(self.evaluator, profile, self.records, script='SET $result = "X"\n')
        self.assertEqual(self.records[0]["Result"], "X")


class TestRealConfig(unittest.TestCase):

    def test_load_real_config(self):
        real_path = _PROJECT_ROOT / "configs" / "run_profiles.yaml"
        if not real_path.exists():
            self.skipTest("Real config not found")

        config = load_profiles(real_path)
        self.assertIn(config.default_profile, config.profiles)
        self.assertIn("grading", config.profiles)
        self.assertTrue(config.profiles["grading"].load_script().startswith("#"))

    def test_grading_example(self):
        data_path = _PROJECT_ROOT / "references" / "examples" / "students.json"
        records = json.loads(data_path.read_text())
        evaluator = Evaluator(dict, introspector=MappingIntrospector(records))
        self.assertIn("Address_City", evaluator.fields)

        outcome = execute_profile(evaluator, get_profile("grading"), records)
        self.assertTrue(outcome.success, outcome.message)
        self.assertEqual(outcome.item_count, 4)
        by_student = {r["Student"]: r["Result"] for r in records if r["Result"] is not None}
        self.assertEqual(by_student, {"ana": "Merit", "bruno": "Pass", "carla": "Fail", "dario": "Pass"})
        self.assertEqual(records[0]["Obs"], "Passed with merit (avg 15.5)")
        self.assertEqual(records[2]["Obs"], "Passed (avg 10.5), resit required")
        self.assertEqual(records[6]["Obs"], "Passed (avg 11.5)")
        self.assertEqual(evaluator.accumulator.counts(), {"Merit": 1, "Pass": 2, "Fail": 1})
        self.assertNotIn("Resit", outcome.report)

    def test_by_city_example(self):
        data_path = _PROJECT_ROOT / "references" / "examples" / "students.json"
        records = json.loads(data_path.read_text())
        evaluator = Evaluator(dict, introspector=MappingIntrospector(records))
        outcome = execute_profile(evaluator, get_profile("by_city"), records)
        self.assertTrue(outcome.success, outcome.message)
        self.assertEqual(evaluator.accumulator.counts(), {"Large": 1, "Small": 2})


if __name__ == "__main__":
    unittest.main()
