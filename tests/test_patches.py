"""Tests for the patch registry."""

import unittest

from watchtask.patches import FunctionPatch, Patch, PatchRegistry, default_registry, register_patch


class _SetTimeout(Patch):
    def apply(self, task, data):
        task.timeout = data["timeout"]


class TestPatchRegistry(unittest.TestCase):
    """Verify registration and lookup by name."""

    def setUp(self):
        self.registry = PatchRegistry()

    def test_register_patch_instance(self):
        patch = _SetTimeout()
        self.assertIs(self.registry.register("timeout", patch), patch)
        self.assertIs(self.registry.get("timeout"), patch)
        self.assertIn("timeout", self.registry)

    def test_register_callable_wraps_it(self):
        """Plain callables are wrapped in FunctionPatch."""
        calls = []
        registered = self.registry.register("record", lambda task, data: calls.append((task, data)))
        self.assertIsInstance(registered, FunctionPatch)
        registered.apply("task", {"a": 1})
        self.assertEqual(calls, [("task", {"a": 1})])

    def test_register_rejects_non_callable(self):
        with self.assertRaises(TypeError):
            self.registry.register("bad", 42)

    def test_register_requires_name(self):
        with self.assertRaises(ValueError):
            self.registry.register("", _SetTimeout())

    def test_unknown_name_returns_none(self):
        self.assertIsNone(self.registry.get("missing"))
        self.assertNotIn("missing", self.registry)

    def test_unregister_and_names(self):
        self.registry.register("b", _SetTimeout())
        self.registry.register("a", _SetTimeout())
        self.assertEqual(self.registry.names(), ["a", "b"])
        self.registry.unregister("a")
        self.registry.unregister("never-there")
        self.assertEqual(self.registry.names(), ["b"])


class TestRegisterPatchDecorator(unittest.TestCase):
    """Verify the register_patch decorator."""

    def test_registers_function_into_given_registry(self):
        registry = PatchRegistry()

        @register_patch("noop", registry=registry)
        def noop(task, data):
            return None

        self.assertIn("noop", registry)
        self.assertEqual(noop.__name__, "noop")

    def test_registers_patch_class_instance(self):
        registry = PatchRegistry()
        register_patch("timeout", registry=registry)(_SetTimeout)
        self.assertIsInstance(registry.get("timeout"), _SetTimeout)

    def test_defaults_to_module_registry(self):
        @register_patch("tests.default-registry")
        def marker(task, data):
            return None

        try:
            self.assertIn("tests.default-registry", default_registry)
        finally:
            default_registry.unregister("tests.default-registry")


if __name__ == "__main__":
    unittest.main()
