# This file is part of the python-keyedarchive library.
# Copyright (C) 2020 dgelessus
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


import contextlib
import datetime
import io
import os
import plistlib
import sys
import tempfile
import typing
import unittest
import unittest.mock

import keyedarchive
import keyedarchive.__main__
from keyedarchive import advanced_repr
from keyedarchive.values import UID


def class_record(*names: str) -> typing.Dict[str, typing.Any]:
	return {"$classname": names[0], "$classes": list(names)}


ARCHIVE = {
	"$archiver": "NSKeyedArchiver",
	"$version": 100000,
	"$top": {"root": UID(1)},
	"$objects": [
		"$null",
		{"$class": UID(2), "NS.keys": [UID(3), UID(4), UID(5)], "NS.objects": [UID(6), UID(7), UID(8)]},
		class_record("NSMutableDictionary", "NSDictionary", "NSObject"),
		"flag",
		"ratio",
		"items",
		True,
		3.0,
		{"$class": UID(9), "NS.objects": [UID(10), UID(11), UID(12)]},
		class_record("NSArray", "NSObject"),
		-42,
		b"\x00\x01",
		{"$class": UID(13), "NS.time": 86400.0},
		class_record("NSDate", "NSObject"),
	],
}

ARCHIVE_DECODED = {
	"flag": True,
	"ratio": 3.0,
	"items": [-42, b"\x00\x01", datetime.datetime(2001, 1, 2)],
}

XML_ARCHIVE = b"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
	<key>$archiver</key>
	<string>NSKeyedArchiver</string>
	<key>$objects</key>
	<array>
		<string>$null</string>
		<dict>
			<key>$class</key>
			<dict>
				<key>CF$UID</key>
				<integer>3</integer>
			</dict>
			<key>NS.objects</key>
			<array>
				<dict>
					<key>CF$UID</key>
					<integer>2</integer>
				</dict>
				<dict>
					<key>CF$UID</key>
					<integer>2</integer>
				</dict>
			</array>
		</dict>
		<string>hello</string>
		<dict>
			<key>$classes</key>
			<array>
				<string>NSMutableArray</string>
				<string>NSArray</string>
				<string>NSObject</string>
			</array>
			<key>$classname</key>
			<string>NSMutableArray</string>
		</dict>
	</array>
	<key>$top</key>
	<dict>
		<key>root</key>
		<dict>
			<key>CF$UID</key>
			<integer>1</integer>
		</dict>
	</dict>
	<key>$version</key>
	<integer>100000</integer>
</dict>
</plist>
"""

CYCLIC_ARCHIVE = {
	"$archiver": "NSKeyedArchiver",
	"$version": 100000,
	"$top": {"root": UID(1)},
	"$objects": [
		"$null",
		{"$class": UID(2), "NS.keys": [UID(3), UID(4)], "NS.objects": [UID(5), UID(1)]},
		class_record("NSMutableDictionary", "NSDictionary", "NSObject"),
		"a",
		"self",
		1,
	],
}


class UnarchiveTests(unittest.TestCase):
	def test_parsed_archive(self) -> None:
		decoded = keyedarchive.unarchive(ARCHIVE)
		self.assertEqual(decoded, ARCHIVE_DECODED)
		self.assertEqual(list(decoded), ["flag", "ratio", "items"])
		self.assertIs(type(decoded["flag"]), bool)
		self.assertIs(type(decoded["ratio"]), float)
	
	def test_binary_archive(self) -> None:
		"""Numbers read from a binary plist are converted according to their storage type."""
		
		data = plistlib.dumps(ARCHIVE, fmt=plistlib.FMT_BINARY)
		decoded = keyedarchive.unarchive_from_data(data)
		self.assertEqual(decoded, ARCHIVE_DECODED)
		self.assertIs(type(decoded["flag"]), bool)
		self.assertIs(type(decoded["ratio"]), float)
		self.assertIs(type(decoded["items"][0]), int)
	
	def test_binary_archive_metadata(self) -> None:
		unarchiver = keyedarchive.KeyedUnarchiver.from_data(plistlib.dumps(ARCHIVE, fmt=plistlib.FMT_BINARY))
		self.assertEqual(unarchiver.archiver, "NSKeyedArchiver")
		self.assertEqual(unarchiver.version, 100000)
		self.assertIs(type(unarchiver.version), int)
		self.assertEqual(unarchiver.top_keys, ["root"])
		self.assertTrue(repr(unarchiver).startswith("<keyedarchive.unarchiving.KeyedUnarchiver at "))
	
	def test_xml_archive(self) -> None:
		unarchiver = keyedarchive.KeyedUnarchiver.from_data(XML_ARCHIVE)
		self.assertEqual(unarchiver.archiver, "NSKeyedArchiver")
		self.assertEqual(unarchiver.version, 100000)
		
		decoded = unarchiver.decode_object()
		self.assertEqual(decoded, ["hello", "hello"])
	
	def test_stream_and_file(self) -> None:
		data = plistlib.dumps(ARCHIVE, fmt=plistlib.FMT_BINARY)
		self.assertEqual(keyedarchive.unarchive_from_stream(io.BytesIO(data)), ARCHIVE_DECODED)
		
		with tempfile.TemporaryDirectory() as tempdir:
			path = os.path.join(tempdir, "archive.plist")
			with open(path, "wb") as f:
				f.write(data)
			
			self.assertEqual(keyedarchive.unarchive_from_file(path), ARCHIVE_DECODED)
			self.assertEqual(keyedarchive.KeyedUnarchiver.open(path).decode_object("root"), ARCHIVE_DECODED)
	
	def test_dictionary_round_trip(self) -> None:
		archive = {
			"$top": {"root": UID(1)},
			"$objects": [
				"$null",
				{"$class": UID(2), "NS.keys": [UID(3), UID(4)], "NS.objects": [UID(5), UID(6)]},
				class_record("NSMutableDictionary", "NSDictionary", "NSObject"),
				"a",
				"b",
				1,
				True,
			],
		}
		
		decoded = keyedarchive.unarchive(archive)
		self.assertEqual(decoded, {"a": 1, "b": True})
		self.assertIs(type(decoded["a"]), int)
		self.assertIs(type(decoded["b"]), bool)
	
	def test_missing_metadata(self) -> None:
		unarchiver = keyedarchive.KeyedUnarchiver({"$top": {}, "$objects": []})
		self.assertIsNone(unarchiver.archiver)
		self.assertIsNone(unarchiver.version)
		self.assertEqual(unarchiver.top_keys, [])
		self.assertEqual(unarchiver.decode_top(), {})
	
	def test_decode_top(self) -> None:
		archive = {
			"$top": {"root": UID(1), "other": UID(1), "name": UID(3)},
			"$objects": [
				"$null",
				{"$class": UID(2), "NS.objects": [UID(3)]},
				class_record("NSArray", "NSObject"),
				"shared",
			],
		}
		
		decoded = keyedarchive.KeyedUnarchiver(archive).decode_top()
		self.assertEqual(list(decoded), ["root", "other", "name"])
		self.assertEqual(decoded["root"], ["shared"])
		self.assertIs(decoded["root"], decoded["other"])
	
	def test_separate_decodes_share_nothing(self) -> None:
		unarchiver = keyedarchive.KeyedUnarchiver(ARCHIVE)
		first = unarchiver.decode_object()
		second = unarchiver.decode_object()
		self.assertEqual(first, second)
		self.assertIsNot(first, second)
	
	def test_cycle(self) -> None:
		decoded = keyedarchive.unarchive(CYCLIC_ARCHIVE)
		self.assertEqual(list(decoded), ["a", "self"])
		self.assertEqual(decoded["a"], 1)
		self.assertIs(decoded["self"], decoded)
	
	def test_cycle_rejected(self) -> None:
		with self.assertRaises(keyedarchive.CyclicReferenceError) as cm:
			keyedarchive.unarchive(CYCLIC_ARCHIVE, allow_cycles=False)
		self.assertEqual(cm.exception.index, 1)
	
	def test_deep_nesting(self) -> None:
		depth = 10000
		objects: typing.List[typing.Any] = ["$null"]
		for i in range(1, depth):
			objects.append({"$class": UID(depth + 1), "NS.objects": [UID(i + 1)]})
		objects.append({"$class": UID(depth + 1), "NS.objects": []})
		objects.append(class_record("NSArray", "NSObject"))
		
		decoded = keyedarchive.unarchive({"$top": {"root": UID(1)}, "$objects": objects})
		
		levels = 1
		while decoded:
			(decoded,) = decoded
			levels += 1
		self.assertEqual(levels, depth)


class UnarchiveErrorTests(unittest.TestCase):
	def test_malformed_archive(self) -> None:
		for root in [
			["not", "a", "dictionary"],
			None,
			{"$top": {"root": UID(0)}},
			{"$objects": "not an array", "$top": {"root": UID(0)}},
			{"$objects": ["$null"]},
			{"$objects": ["$null"], "$top": ["not", "a", "dictionary"]},
		]:
			with self.subTest(root=root):
				with self.assertRaises(keyedarchive.MalformedArchiveError):
					keyedarchive.unarchive(root)
	
	def test_missing_top_key(self) -> None:
		with self.assertRaises(keyedarchive.MalformedArchiveError):
			keyedarchive.unarchive({"$objects": ["$null"], "$top": {"other": UID(0)}})
		
		with self.assertRaises(keyedarchive.MalformedArchiveError):
			keyedarchive.KeyedUnarchiver(ARCHIVE).decode_object("missing")
	
	def test_dangling_reference(self) -> None:
		with self.assertRaises(keyedarchive.DanglingReferenceError) as cm:
			keyedarchive.unarchive({"$objects": [None], "$top": {"root": UID(7)}})
		self.assertEqual(cm.exception.index, 7)
		self.assertEqual(cm.exception.table_size, 1)
	
	def test_malformed_container(self) -> None:
		archive = {
			"$top": {"root": UID(1)},
			"$objects": [
				"$null",
				{"$class": UID(2), "NS.keys": [UID(3)], "NS.objects": []},
				class_record("NSDictionary", "NSObject"),
				"a",
			],
		}
		
		with self.assertRaises(keyedarchive.MalformedMutableContainerError) as cm:
			keyedarchive.unarchive(archive)
		self.assertEqual(cm.exception.class_name, "NSDictionary")
	
	def test_invalid_plist_data(self) -> None:
		for data in [
			b"not a plist",
			b"",
			b'<?xml version="1.0" encoding="UTF-8"?><plist version="1.0"><integer>x</integer></plist>',
		]:
			with self.subTest(data=data):
				with self.assertRaises(keyedarchive.InvalidPlistError):
					keyedarchive.unarchive_from_data(data)
				with self.assertRaises(ValueError):
					keyedarchive.KeyedUnarchiver.from_stream(io.BytesIO(data))
	
	def test_errors_are_value_errors(self) -> None:
		for error_class in [
			keyedarchive.UnarchivingError,
			keyedarchive.MalformedArchiveError,
			keyedarchive.DanglingReferenceError,
			keyedarchive.CyclicReferenceError,
			keyedarchive.MalformedMutableContainerError,
		]:
			with self.subTest(error_class=error_class):
				self.assertTrue(issubclass(error_class, ValueError))
				self.assertTrue(issubclass(error_class, keyedarchive.UnarchivingError))


class AsMultilineStringTests(unittest.TestCase):
	def test_nested(self) -> None:
		value = {"name": "x", "items": [1, None, b"\x01"], "empty": {}}
		
		self.assertEqual(list(advanced_repr.as_multiline_string(value)), [
			"dictionary, 3 entries:",
			"\t'name': 'x'",
			"\t'items': array, 3 elements:",
			"\t\t1",
			"\t\tnull",
			"\t\tdata, 1 bytes: b'\\x01'",
			"\t'empty': dictionary, empty",
		])
	
	def test_circular_reference(self) -> None:
		decoded = keyedarchive.unarchive(CYCLIC_ARCHIVE)
		
		self.assertEqual(list(advanced_repr.as_multiline_string(decoded)), [
			"dictionary, 2 entries:",
			"\t'a': 1",
			"\t'self': dictionary, 2 entries (circular reference)",
		])
	
	def test_backreference(self) -> None:
		shared = [1]
		
		self.assertEqual(list(advanced_repr.as_multiline_string({"x": shared, "y": shared})), [
			"dictionary, 2 entries:",
			"\t'x': array, 1 element:",
			"\t\t1",
			"\t'y': array, 1 element (backreference)",
		])
	
	def test_sets_and_numbers(self) -> None:
		value = [
			keyedarchive.PlistSet(["a"], ordered=True),
			keyedarchive.PlistSet(ordered=False),
			keyedarchive.Number(keyedarchive.NumberKind.REAL, 1.5),
		]
		
		self.assertEqual(list(advanced_repr.as_multiline_string(value, prefix="value: ")), [
			"value: array, 3 elements:",
			"\tordered set, 1 element:",
			"\t\t'a'",
			"\tset, empty",
			"\treal 1.5",
		])


class CommandLineTests(unittest.TestCase):
	def run_main(self, *args: str) -> typing.List[str]:
		stdout = io.StringIO()
		with unittest.mock.patch.object(sys, "argv", ["keyedarchive", *args]), contextlib.redirect_stdout(stdout):
			with self.assertRaises(SystemExit) as cm:
				keyedarchive.__main__.main()
		self.assertEqual(cm.exception.code, 0)
		return stdout.getvalue().splitlines()
	
	def setUp(self) -> None:
		super().setUp()
		
		self.tempdir = tempfile.TemporaryDirectory()
		self.addCleanup(self.tempdir.cleanup)
		self.path = os.path.join(self.tempdir.name, "archive.plist")
		with open(self.path, "wb") as f:
			f.write(XML_ARCHIVE)
	
	def test_read(self) -> None:
		lines = self.run_main("read", self.path)
		self.assertEqual(lines[:2], [
			"dictionary, 4 entries:",
			"\t'$archiver': 'NSKeyedArchiver'",
		])
		self.assertIn("\t\t\t'$class': UID(3)", lines)
	
	def test_decode(self) -> None:
		self.assertEqual(self.run_main("decode", "--key", "root", self.path), [
			"archiver NSKeyedArchiver, version 100000, 4 objects",
			"",
			"root: array, 2 elements:",
			"\t'hello'",
			"\t'hello'",
		])
	
	def test_decode_help(self) -> None:
		lines = self.run_main("decode", "--help")
		self.assertIn("Python's recursion limit (about 1000 levels) cannot be displayed, even though", lines)
	
	def test_decode_all(self) -> None:
		lines = self.run_main("decode", self.path)
		self.assertEqual(lines[2], "root: array, 2 elements:")
	
	def test_decode_no_cycles(self) -> None:
		with open(self.path, "wb") as f:
			f.write(plistlib.dumps(CYCLIC_ARCHIVE, fmt=plistlib.FMT_BINARY))
		
		self.assertEqual(self.run_main("decode", self.path)[3], "\t'a': 1")
		
		with unittest.mock.patch.object(sys, "argv", ["keyedarchive", "decode", "--no-cycles", self.path]):
			with self.assertRaises(keyedarchive.CyclicReferenceError):
				keyedarchive.__main__.main()


if __name__ == "__main__":
	unittest.main()
