import unittest

import numpy as np
import torch

from tensorbind import (
    CoercionError,
    ElementKind,
    ExecutionResult,
    ShapeMismatchError,
    UnknownBindingError,
    to_buffer,
)


def _result(**arrays):
    return ExecutionResult(
        {name: to_buffer(value, kind) for name, (value, kind) in arrays.items()}, "serving_default"
    )


class ScalarTests(unittest.TestCase):
    def test_single_element_of_any_rank(self):
        result = _result(a=(7, "int32"), b=([7], "int32"), c=([[7]], "int32"))
        for name in ("a", "b", "c"):
            with self.subTest(name=name):
                self.assertEqual(result.as_scalar(name), 7)

    def test_rejects_other_sizes(self):
        result = _result(pair=([1, 2], "int32"), empty=([], "float32"))
        for name in ("pair", "empty"):
            with self.subTest(name=name):
                with self.assertRaises(ShapeMismatchError) as ctx:
                    result.as_scalar(name)
                self.assertEqual(ctx.exception.expected, [])

    def test_kind_conversion(self):
        result = _result(i=(1, "int32"), f=(1.0, "float64"), t=("2.5", "string"))
        self.assertEqual(result.as_scalar("i", "string"), "1")
        self.assertEqual(result.as_scalar("f", ElementKind.TEXT), "1.0")
        self.assertEqual(result.as_scalar("t", "float32"), 2.5)
        self.assertIs(result.as_scalar("i", "bool"), True)
        with self.assertRaises(CoercionError):
            result.as_scalar("t", "int32")


class ArrayTests(unittest.TestCase):
    def test_rank_one_only(self):
        result = _result(v=([1, 2, 3], "int64"), s=(1, "int64"), m=([[1], [2]], "int64"))
        self.assertEqual(result.as_array("v", "float32"), [1.0, 2.0, 3.0])
        for name in ("s", "m"):
            with self.subTest(name=name):
                with self.assertRaises(ShapeMismatchError):
                    result.as_array(name)

    def test_multidimensional(self):
        result = _result(m=([[1, 2], [3, 4]], "int32"), t=([["abc"]], "string"))
        self.assertEqual(result.as_multidimensional("m", "string"), [["1", "2"], ["3", "4"]])
        self.assertEqual(result.as_multidimensional("t"), [["abc"]])
        with self.assertRaises(CoercionError) as ctx:
            result.as_multidimensional("t", "int32")
        self.assertEqual(ctx.exception.value, "abc")

    def test_numpy_and_tensor(self):
        view = _result(m=([[1, 2], [3, 4]], "int32")).view("m")
        arr = view.as_numpy()
        self.assertEqual(arr.dtype, np.int32)
        self.assertEqual(arr.shape, (2, 2))
        t = view.as_tensor("float32")
        torch.testing.assert_close(t, torch.tensor([[1.0, 2.0], [3.0, 4.0]]))
        self.assertIs(view.as_tensor().dtype, torch.int32)

    def test_no_text_tensors(self):
        view = _result(t=(["a"], "string")).view("t")
        with self.assertRaises(CoercionError):
            view.as_tensor()
        with self.assertRaises(CoercionError):
            _result(n=([1], "int32")).view("n").as_tensor("string")


class ArgmaxTests(unittest.TestCase):
    def test_vector(self):
        self.assertEqual(_result(p=([0.1, 0.7, 0.2], "float32")).view("p").argmax(), 1)
        self.assertEqual(_result(p=([-3.0, -1.0, -2.0], "float64")).view("p").argmax(), 1)
        self.assertEqual(_result(p=([4, 4, 1], "int32")).view("p").argmax(), 0)

    def test_rows(self):
        view = _result(p=([[1, 5, 2], [9, 0, 3]], "int32")).view("p")
        self.assertEqual(view.argmax(), [1, 0])

    def test_unsupported(self):
        cases = [
            (3.0, "float64"),
            ([], "float64"),
            ([[[1.0]]], "float64"),
        ]
        for value, kind in cases:
            with self.subTest(value=value):
                with self.assertRaises(ShapeMismatchError):
                    _result(p=(value, kind)).view("p").argmax()
        with self.assertRaises(CoercionError):
            _result(p=(["a"], "string")).view("p").argmax()


class MappingTests(unittest.TestCase):
    def setUp(self):
        self.result = _result(a=([1], "int32"), b=(["x"], "string"))

    def test_mapping_protocol(self):
        self.assertEqual(len(self.result), 2)
        self.assertEqual(list(self.result), ["a", "b"])
        self.assertIn("a", self.result)
        self.assertNotIn("c", self.result)
        self.assertIsNone(self.result.get("c"))
        self.assertEqual(self.result.signature_id, "serving_default")

    def test_unknown_output(self):
        with self.assertRaises(UnknownBindingError) as ctx:
            self.result.as_scalar("c")
        self.assertEqual(ctx.exception.names, ("c",))
        with self.assertRaises(KeyError):
            self.result["c"]

    def test_read_only(self):
        with self.assertRaises(TypeError):
            self.result["a"] = to_buffer([2], "int32")
        with self.assertRaises(ValueError):
            self.result["a"].data[0] = 2

    def test_views_are_independent(self):
        view = self.result.view("a")
        self.assertEqual(view.as_scalar("float64"), 1.0)
        self.assertEqual(view.as_scalar(), 1)
        self.assertIs(view.kind, ElementKind.INT32)
        self.assertEqual(view.shape, (1,))
