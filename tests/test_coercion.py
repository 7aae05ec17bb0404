import math
import unittest

import numpy as np

from tensorbind import CoercionError, ElementKind, byte_unsigned, coerce, coerce_array, converter

K = ElementKind
INTEGER_KINDS = [K.INT8, K.UINT8, K.INT32, K.INT64]
FLOAT_KINDS = [K.FLOAT32, K.FLOAT64]


class TableTests(unittest.TestCase):
    def test_every_pair_has_a_converter(self):
        for src in ElementKind:
            for dst in ElementKind:
                with self.subTest(src=src, dst=dst):
                    self.assertTrue(callable(converter(src, dst)))

    def test_kind_names_accepted(self):
        self.assertEqual(coerce(3, "int32", "float64"), 3.0)
        self.assertEqual(coerce(3, np.int32, "string"), "3")
        with self.assertRaises(ValueError):
            coerce(3, "int16", "int32")


class BooleanTests(unittest.TestCase):
    def test_bool_to_numbers(self):
        for kind in INTEGER_KINDS + FLOAT_KINDS:
            with self.subTest(kind=kind):
                self.assertEqual(coerce(True, K.BOOL, kind), 1)
                self.assertEqual(coerce(False, K.BOOL, kind), 0)
        self.assertIsInstance(coerce(True, K.BOOL, K.FLOAT64), float)

    def test_nonzero_is_true(self):
        self.assertIs(coerce(-1, K.INT32, K.BOOL), True)
        self.assertIs(coerce(-128, K.INT8, K.BOOL), True)
        self.assertIs(coerce(0, K.INT64, K.BOOL), False)
        self.assertIs(coerce(-0.5, K.FLOAT64, K.BOOL), True)
        self.assertIs(coerce(-0.0, K.FLOAT64, K.BOOL), False)

    def test_nan_and_denormals_are_true(self):
        self.assertIs(coerce(float("nan"), K.FLOAT64, K.BOOL), True)
        self.assertIs(coerce(float("nan"), K.FLOAT32, K.BOOL), True)
        self.assertIs(coerce(5e-324, K.FLOAT64, K.BOOL), True)

    def test_text(self):
        self.assertEqual(coerce(True, K.BOOL, K.TEXT), "true")
        self.assertEqual(coerce(False, K.BOOL, K.TEXT), "false")
        self.assertIs(coerce("true", K.TEXT, K.BOOL), True)
        self.assertIs(coerce("FALSE", K.TEXT, K.BOOL), False)
        with self.assertRaises(CoercionError) as ctx:
            coerce("yes", K.TEXT, K.BOOL)
        self.assertEqual(ctx.exception.value, "yes")
        self.assertIs(ctx.exception.to_kind, K.BOOL)

    def test_source_must_be_boolean(self):
        with self.assertRaises(CoercionError):
            coerce(1, K.BOOL, K.INT32)


class NarrowingTests(unittest.TestCase):
    def test_truncation_toward_zero(self):
        self.assertEqual(coerce(1.9, K.FLOAT64, K.INT32), 1)
        self.assertEqual(coerce(-1.9, K.FLOAT64, K.INT32), -1)
        self.assertEqual(coerce(2.75, K.FLOAT32, K.INT64), 2)
        self.assertEqual(coerce(-0.5, K.FLOAT64, K.UINT8), 0)

    def test_float_overflow_wraps(self):
        self.assertEqual(coerce(300.7, K.FLOAT64, K.INT8), 44)
        self.assertEqual(coerce(float(2**31), K.FLOAT64, K.INT32), -(2**31))
        self.assertEqual(coerce(float(2**63), K.FLOAT64, K.INT64), -(2**63))
        self.assertEqual(coerce(float(2**64), K.FLOAT64, K.INT64), 0)

    def test_non_finite_has_no_integer(self):
        for value in (float("nan"), float("inf"), float("-inf")):
            with self.subTest(value=value):
                with self.assertRaises(CoercionError) as ctx:
                    coerce(value, K.FLOAT64, K.INT32)
                self.assertIs(ctx.exception.from_kind, K.FLOAT64)
                self.assertIs(ctx.exception.to_kind, K.INT32)

    def test_integer_narrowing_wraps(self):
        self.assertEqual(coerce(2**31, K.INT64, K.INT32), -(2**31))
        self.assertEqual(coerce(128, K.INT32, K.INT8), -128)
        self.assertEqual(coerce(-1, K.INT32, K.UINT8), 255)
        self.assertEqual(coerce(256, K.INT64, K.UINT8), 0)

    def test_float64_to_float32(self):
        self.assertEqual(coerce(0.5, K.FLOAT64, K.FLOAT32), 0.5)
        self.assertEqual(coerce(1e300, K.FLOAT64, K.FLOAT32), math.inf)
        self.assertAlmostEqual(coerce(0.1, K.FLOAT64, K.FLOAT32), 0.1, places=7)

    def test_source_value_must_fit_its_kind(self):
        with self.assertRaises(CoercionError):
            coerce(2**40, K.INT32, K.INT64)
        with self.assertRaises(CoercionError):
            coerce(1.5, K.INT32, K.FLOAT64)

    def test_vectorised(self):
        out = coerce_array(np.array([1.9, -1.9, 300.5]), K.FLOAT64, K.INT8)
        self.assertEqual(out.dtype, np.int8)
        self.assertEqual(out.tolist(), [1, -1, 44])


class UnsignedByteTests(unittest.TestCase):
    def test_signed_pattern_reads_unsigned(self):
        self.assertEqual(coerce(coerce(-128, K.INT8, K.UINT8), K.UINT8, K.INT32), 128)
        self.assertEqual(coerce(coerce(-1, K.INT8, K.UINT8), K.UINT8, K.INT32), 255)
        self.assertEqual(coerce(-128, K.UINT8, K.INT32), 128)
        self.assertEqual(coerce(-1, K.UINT8, K.INT64), 255)
        self.assertEqual(coerce(-128, K.UINT8, K.FLOAT64), 128.0)
        self.assertEqual(coerce(-1, K.UINT8, K.TEXT), "255")
        self.assertEqual(byte_unsigned(-1), 255)
        self.assertEqual(byte_unsigned(127), 127)

    def test_unsigned_back_to_signed(self):
        self.assertEqual(coerce(128, K.UINT8, K.INT8), -128)
        self.assertEqual(coerce(255, K.UINT8, K.INT8), -1)

    def test_overflow_wrap_suite(self):
        # 127 + 1 stored in a signed byte is -128, whose unsigned value is 128.
        for value in range(256):
            with self.subTest(value=value):
                stored = coerce(value, K.INT32, K.INT8)
                self.assertEqual(stored, value - 256 if value > 127 else value)
                self.assertEqual(coerce(stored, K.INT8, K.UINT8), value)
                self.assertEqual(coerce(coerce(stored, K.INT8, K.UINT8), K.UINT8, K.INT32), value)

    def test_vectorised(self):
        out = coerce_array(np.array([-128, -1, 0, 127], dtype=np.int8), K.INT8, K.UINT8)
        self.assertEqual(out.tolist(), [128, 255, 0, 127])
        widened = coerce_array(out, K.UINT8, K.INT32)
        self.assertEqual(widened.tolist(), [128, 255, 0, 127])


class TextTests(unittest.TestCase):
    def test_render(self):
        cases = [
            (3, K.INT32, "3"),
            (-7, K.INT8, "-7"),
            (2**40, K.INT64, "1099511627776"),
            (1.0, K.FLOAT64, "1.0"),
            (0.1, K.FLOAT64, "0.1"),
            (0.1, K.FLOAT32, "0.1"),
            (1e20, K.FLOAT64, "1e+20"),
            (float("nan"), K.FLOAT64, "nan"),
            (float("-inf"), K.FLOAT32, "-inf"),
        ]
        for value, kind, text in cases:
            with self.subTest(value=value, kind=kind):
                self.assertEqual(coerce(value, kind, K.TEXT), text)

    def test_parse(self):
        self.assertEqual(coerce("42", K.TEXT, K.INT32), 42)
        self.assertEqual(coerce("-7", K.TEXT, K.INT8), -7)
        self.assertEqual(coerce("+255", K.TEXT, K.UINT8), 255)
        self.assertEqual(coerce("1e3", K.TEXT, K.FLOAT64), 1000.0)
        self.assertEqual(coerce(".5", K.TEXT, K.FLOAT32), 0.5)
        self.assertEqual(coerce("-inf", K.TEXT, K.FLOAT64), -math.inf)
        self.assertTrue(math.isnan(coerce("NaN", K.TEXT, K.FLOAT64)))
        self.assertEqual(coerce(b"12", K.TEXT, K.INT64), 12)

    def test_malformed(self):
        cases = [
            ("256", K.UINT8),
            ("-1", K.UINT8),
            ("128", K.INT8),
            ("1.5", K.INT32),
            ("", K.INT32),
            (" 1", K.INT32),
            ("1_000", K.INT64),
            ("abc", K.FLOAT64),
            ("1.0 ", K.FLOAT64),
            ("0x10", K.FLOAT64),
        ]
        for text, kind in cases:
            with self.subTest(text=text, kind=kind):
                with self.assertRaises(CoercionError) as ctx:
                    coerce(text, K.TEXT, kind)
                self.assertEqual(ctx.exception.value, text)

    def test_shortest_decimal_parses_back(self):
        for value in (0.1, 1 / 3, 1e-300, 123456.789, -2.5e17):
            with self.subTest(value=value):
                text = coerce(value, K.FLOAT64, K.TEXT)
                self.assertEqual(coerce(text, K.TEXT, K.FLOAT64), value)

    def test_bytes_decode(self):
        self.assertEqual(coerce("é".encode("utf-8"), K.TEXT, K.TEXT), "é")
        with self.assertRaises(CoercionError):
            coerce(b"\xff", K.TEXT, K.TEXT)
        with self.assertRaises(CoercionError):
            coerce(5, K.TEXT, K.INT32)


class IdentityTests(unittest.TestCase):
    def test_same_kind(self):
        self.assertIs(coerce(True, K.BOOL, K.BOOL), True)
        self.assertEqual(coerce(-5, K.INT8, K.INT8), -5)
        self.assertEqual(coerce(2**62, K.INT64, K.INT64), 2**62)
        self.assertEqual(coerce(0.1, K.FLOAT64, K.FLOAT64), 0.1)
        self.assertEqual(coerce("x", K.TEXT, K.TEXT), "x")

    def test_same_kind_array_is_untouched(self):
        values = np.array([1, 2, 3], dtype=np.int32)
        self.assertIs(coerce_array(values, K.INT32, K.INT32), values)
