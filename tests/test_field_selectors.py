"""Tests for field_selectors.py: compiled readers, display/key selectors, setters."""

import sys
import unittest
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from errors import CompilationError
from field_selectors import (
    CompositeSelector,
    FieldTarget,
    Selector,
    SelectorResolver,
    read_path,
    write_path,
)
from record_shape import MappingIntrospector, flatten_attribute_names, introspect


@dataclass
class AddressInfo:
    City: str
    Zip: str


@dataclass
class Student:
    Name: str
    Grade: int
    Address: Optional[AddressInfo] = None
    Result: Optional[str] = None
    Obs: Optional[str] = None


def _student(**kw):
    defaults = dict(Name="Ana", Grade=15, Address=AddressInfo("Luanda", "1000"))
    defaults.update(kw)
    return Student(**defaults)


class TestRawAccess(unittest.TestCase):

    def test_read_path_objects_and_mappings(self):
        self.assertEqual(read_path(_student(), ["Address", "City"]), "Luanda")
        self.assertEqual(read_path({"a": {"b": 2}}, ["a", "b"]), 2)

    def test_read_through_none(self):
        self.assertIsNone(read_path(_student(Address=None), ["Address", "City"]))
        self.assertIsNone(read_path({"a": None}, ["a", "b"]))

    def test_write_path(self):
        record = {"a": {"b": 1}}
        write_path(record, ["a", "b"], 5)
        self.assertEqual(record["a"]["b"], 5)

    def test_write_through_none_fails(self):
        with self.assertRaises(AttributeError):
            write_path(_student(Address=None), ["Address", "City"], "x")


class TestSelectorResolver(unittest.TestCase):

    def setUp(self):
        self.resolver = SelectorResolver(introspect(Student))

    def test_plain_attribute(self):
        sel = self.resolver.compile("Grade")
        self.assertIsInstance(sel, Selector)
        self.assertEqual(sel(_student()), 15)
        self.assertEqual(sel.path, ("Grade",))

    def test_optional_composite_is_flattened(self):
        shape = introspect(Student)
        self.assertTrue(shape.attribute("Address").is_composite)
        self.assertIn(("Address_City", ("Address", "City")), flatten_attribute_names(shape))

    def test_dotted_and_flattened_paths(self):
        s = _student()
        self.assertEqual(self.resolver.compile("Address.City")(s), "Luanda")
        self.assertEqual(self.resolver.compile("Address_City")(s), "Luanda")
        self.assertEqual(self.resolver.compile("Address_Zip").path, ("Address", "Zip"))

    def test_unknown_attribute(self):
        with self.assertRaises(CompilationError):
            self.resolver.compile("Missing")

    def test_unknown_child(self):
        with self.assertRaises(CompilationError):
            self.resolver.compile("Address.Street")

    def test_malformed_and_empty(self):
        with self.assertRaises(CompilationError):
            self.resolver.compile("Address..City")
        with self.assertRaises(CompilationError):
            self.resolver.compile("  ")

    def test_unsupported_type(self):
        with self.assertRaises(CompilationError):
            self.resolver.compile(42)

    def test_callable_wrapped(self):
        sel = self.resolver.compile(lambda r: r.Grade * 2)
        self.assertEqual(sel(_student()), 30)
        self.assertIsNone(sel.path)

    def test_selector_passthrough(self):
        sel = self.resolver.compile("Grade")
        self.assertIs(self.resolver.compile(sel), sel)

    def test_composite(self):
        sel = self.resolver.compile(["Name", "Address_City"])
        self.assertIsInstance(sel, CompositeSelector)
        self.assertEqual(sel(_student()), ("Ana", "Luanda"))

    def test_display(self):
        sel = self.resolver.compile_display("Grade")
        self.assertEqual(sel(_student()), "15")
        self.assertEqual(self.resolver.compile_display("Result")(_student()), "")

    def test_key_is_hashable(self):
        resolver = SelectorResolver(MappingIntrospector([{"k": [1, 2], "m": {"x": 1, "y": 2}}]).describe())
        self.assertEqual(resolver.compile_key("k")({"k": [1, 2]}), (1, 2))
        key = resolver.compile_key("m")({"m": {"y": 2, "x": 1}})
        self.assertEqual(key, (("x", 1), ("y", 2)))
        hash(key)

    def test_key_with_mixed_type_mapping_keys(self):
        resolver = SelectorResolver(MappingIntrospector([{"m": {1: "a", "b": 2}}]).describe())
        key = resolver.compile_key("m")
        self.assertEqual(key({"m": {1: "a", "b": 2}}), key({"m": {"b": 2, 1: "a"}}))
        hash(key({"m": {1: "a", "b": 2}}))

    def test_setter(self):
        s = _student()
        self.resolver.compile_setter("Result")(s, "Pass")
        self.assertEqual(s.Result, "Pass")
        self.resolver.compile_setter("Address_City")(s, "Huambo")
        self.assertEqual(s.Address.City, "Huambo")

    def test_composite_setter(self):
        s = _student()
        setter = self.resolver.compile_setter(["Result", "Obs"])
        self.assertEqual(setter.width, 2)
        setter(s, ("Pass", "ok"))
        self.assertEqual((s.Result, s.Obs), ("Pass", "ok"))
        with self.assertRaises(ValueError):
            setter(s, ("only-one",))

    def test_setter_rejects_callable(self):
        with self.assertRaises(CompilationError):
            self.resolver.compile_setter(lambda r: r.Grade)

    def test_target_read_write(self):
        target = self.resolver.compile_target("Result")
        self.assertIsInstance(target, FieldTarget)
        s = _student()
        target.write(s, "Fail")
        self.assertEqual(target.read(s), "Fail")
        self.assertEqual(target.expression, "Result")

    def test_computed_target_is_read_only(self):
        target = self.resolver.compile_target(lambda r: r.Grade)
        self.assertIsNone(target.setter)
        self.assertEqual(target.read(_student()), 15)
        with self.assertRaises(AttributeError):
            target.write(_student(), 1)


if __name__ == "__main__":
    unittest.main()
