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



"""Reader for the binary property list format (``bplist00``) used by Mac OS X/macOS.

Python's :mod:`plistlib` can read this format as well,
but it rejects the set and ordered set object types,
and it converts numbers directly to ``bool``/``int``/``float``.
Keyed archives can contain sets,
and whether a set is ordered cannot be recovered after the fact,
so this reader is used instead.
It differs from :mod:`plistlib` in the following ways:

* Sets and ordered sets are read as :class:`~keyedarchive.values.PlistSet`,
  with the ``ordered`` flag set according to the object type.
* Booleans, integers and reals are read as :class:`~keyedarchive.values.Number`,
  which records the storage type of the number.
* Fill bytes (type 0x0f) are read as ``None`` instead of an empty ``bytes`` object.
* UIDs wider than 8 bytes are rejected, since :class:`plistlib.UID` cannot hold them.
* Reference cycles between objects are rejected instead of being reproduced.
  Cycles are never written by Apple's implementation;
  keyed archives express cycles using UIDs instead.

All other types are read exactly like :mod:`plistlib` does,
in particular UIDs are read as :class:`plistlib.UID`.

The format is documented in the comments of CFBinaryPList.c in Apple's CoreFoundation sources:
https://opensource.apple.com/source/CF/CF-1153.18/CFBinaryPList.c
"""


import datetime
import io
import logging
import os
import struct
import typing

from . import values


__all__ = [
	"SIGNATURE",
	"InvalidPlistError",
	"deserialize_from_stream",
	"deserialize",
]


logger = logging.getLogger(__name__)


# All binary plists start with this signature,
# followed by a single digit version number.
SIGNATURE = b"bplist0"
_HEADER_LENGTH = len(SIGNATURE) + 1

# The trailer is located in the last 32 bytes of the data:
# 6 unused bytes, offset size, object reference size,
# number of objects, top object reference, offset table offset.
_TRAILER = struct.Struct(">6xBBQQQ")

# Dates in binary plists count seconds since 2001-01-01 00:00:00 UTC.
_REFERENCE_DATE = datetime.datetime(2001, 1, 1)

_FLOAT_STRUCT = struct.Struct(">f")
_DOUBLE_STRUCT = struct.Struct(">d")


class InvalidPlistError(ValueError):
	"""Raised if binary plist data is invalid or uses an unsupported object type."""


def _read_exact(stream: typing.BinaryIO, byte_count: int) -> bytes:
	"""Read ``byte_count`` bytes from ``stream`` and raise an exception if too few bytes are read
	(i. e. if EOF was hit prematurely).
	"""
	
	data = stream.read(byte_count)
	if len(data) != byte_count:
		raise InvalidPlistError(f"Attempted to read {byte_count} bytes of data, but only got {len(data)} bytes")
	return data


class _BinaryPlistParser(object):
	_stream: typing.BinaryIO
	_offsets: typing.List[int]
	_reference_size: int
	_objects: typing.Dict[int, typing.Any]
	_in_progress: typing.Set[int]
	
	def __init__(self, stream: typing.BinaryIO) -> None:
		super().__init__()
		
		self._stream = stream
		self._offsets = []
		self._reference_size = 0
		self._objects = {}
		self._in_progress = set()
	
	def _read_ints(self, count: int, size: int) -> typing.List[int]:
		data = _read_exact(self._stream, count * size)
		return [int.from_bytes(data[i:i + size], "big") for i in range(0, count * size, size)]
	
	def _read_count(self, low_nibble: int) -> int:
		"""Read the element count of a variable-length object.
		
		Counts below 15 are stored directly in the low nibble of the marker byte.
		Larger counts are indicated by a low nibble of 0xf
		and stored as a separate integer object following the marker byte.
		"""
		
		if low_nibble != 0xf:
			return low_nibble
		
		(marker,) = _read_exact(self._stream, 1)
		if marker >> 4 != 0x1:
			raise InvalidPlistError(f"Expected integer marker for object count, not {marker:#04x}")
		return int.from_bytes(_read_exact(self._stream, 1 << (marker & 0xf)), "big")
	
	def parse(self) -> typing.Any:
		header = _read_exact(self._stream, _HEADER_LENGTH)
		if not header.startswith(SIGNATURE):
			raise InvalidPlistError(f"Invalid binary plist signature: {header!r}")
		
		size = self._stream.seek(0, os.SEEK_END)
		if size < _HEADER_LENGTH + _TRAILER.size:
			raise InvalidPlistError(f"Binary plist data is too short ({size} bytes) to contain a trailer")
		
		self._stream.seek(size - _TRAILER.size)
		(
			offset_size, self._reference_size, object_count, top_object, offset_table_offset,
		) = _TRAILER.unpack(_read_exact(self._stream, _TRAILER.size))
		
		logger.debug("Binary plist trailer: offset size %d, reference size %d, %d objects, top object %d, offset table at %d", offset_size, self._reference_size, object_count, top_object, offset_table_offset)
		
		if offset_size == 0 or self._reference_size == 0:
			raise InvalidPlistError(f"Offset size ({offset_size}) and reference size ({self._reference_size}) must not be zero")
		elif top_object >= object_count:
			raise InvalidPlistError(f"Top object reference {top_object} is out of range for {object_count} objects")
		elif offset_table_offset + object_count * offset_size > size - _TRAILER.size:
			raise InvalidPlistError(f"Offset table ({object_count} entries of {offset_size} bytes at {offset_table_offset}) overlaps the trailer")
		
		self._stream.seek(offset_table_offset)
		self._offsets = self._read_ints(object_count, offset_size)
		return self._read_object(top_object)
	
	def _read_object(self, reference: int) -> typing.Any:
		try:
			return self._objects[reference]
		except KeyError:
			pass
		
		if not 0 <= reference < len(self._offsets):
			raise InvalidPlistError(f"Object reference {reference} is out of range for {len(self._offsets)} objects")
		elif reference in self._in_progress:
			raise InvalidPlistError(f"Object {reference} contains a reference to itself")
		
		self._in_progress.add(reference)
		try:
			obj = self._read_object_at(self._offsets[reference])
		finally:
			self._in_progress.discard(reference)
		
		self._objects[reference] = obj
		return obj
	
	def _read_references(self, count: int) -> typing.List[int]:
		return self._read_ints(count, self._reference_size)
	
	def _read_object_at(self, offset: int) -> typing.Any:
		self._stream.seek(offset)
		(marker,) = _read_exact(self._stream, 1)
		high, low = marker >> 4, marker & 0xf
		
		if marker in {0x00, 0x0f}:
			# null and fill
			return None
		elif marker in {0x08, 0x09}:
			return values.Number(values.NumberKind.BOOLEAN, marker == 0x09)
		elif high == 0x1:
			if low > 4:
				raise InvalidPlistError(f"Invalid integer size: {1 << low} bytes")
			# Integers with less than 8 bytes are unsigned,
			# longer ones are signed.
			byte_count = 1 << low
			return values.Number(values.NumberKind.INTEGER, int.from_bytes(_read_exact(self._stream, byte_count), "big", signed=byte_count >= 8))
		elif high == 0x2:
			if low == 2:
				(real,) = _FLOAT_STRUCT.unpack(_read_exact(self._stream, _FLOAT_STRUCT.size))
			elif low == 3:
				(real,) = _DOUBLE_STRUCT.unpack(_read_exact(self._stream, _DOUBLE_STRUCT.size))
			else:
				raise InvalidPlistError(f"Invalid real size: {1 << low} bytes")
			return values.Number(values.NumberKind.REAL, real)
		elif marker == 0x33:
			(seconds,) = _DOUBLE_STRUCT.unpack(_read_exact(self._stream, _DOUBLE_STRUCT.size))
			try:
				return _REFERENCE_DATE + datetime.timedelta(seconds=seconds)
			except (OverflowError, ValueError) as e:
				raise InvalidPlistError(f"Date value out of range: {seconds}") from e
		elif high == 0x4:
			return _read_exact(self._stream, self._read_count(low))
		elif high == 0x5:
			data = _read_exact(self._stream, self._read_count(low))
			try:
				return data.decode("ascii")
			except UnicodeDecodeError as e:
				raise InvalidPlistError(f"ASCII string contains non-ASCII bytes: {data!r}") from e
		elif high == 0x6:
			data = _read_exact(self._stream, self._read_count(low) * 2)
			try:
				return data.decode("utf-16-be")
			except UnicodeDecodeError as e:
				raise InvalidPlistError(f"Invalid UTF-16 string: {data!r}") from e
		elif high == 0x8:
			# The low nibble is the number of bytes minus 1.
			if low > 7:
				raise InvalidPlistError(f"Invalid UID size: {low + 1} bytes")
			return values.UID(int.from_bytes(_read_exact(self._stream, low + 1), "big"))
		elif high in {0xa, 0xb, 0xc}:
			references = self._read_references(self._read_count(low))
			elements = [self._read_object(reference) for reference in references]
			if high == 0xa:
				return elements
			else:
				# 0xb is an ordered set, 0xc is an unordered set.
				return values.PlistSet(elements, ordered=high == 0xb)
		elif high == 0xd:
			count = self._read_count(low)
			key_references = self._read_references(count)
			value_references = self._read_references(count)
			result = {}
			for key_reference, value_reference in zip(key_references, value_references):
				key = self._read_object(key_reference)
				try:
					result[key] = self._read_object(value_reference)
				except TypeError as e:
					raise InvalidPlistError(f"Dictionary keys must be hashable, not {type(key).__name__}") from e
			return result
		else:
			raise InvalidPlistError(f"Unknown/unsupported object marker: {marker:#04x}")


def deserialize_from_stream(stream: typing.BinaryIO) -> typing.Any:
	"""Deserialize a binary plist from the given stream.
	
	The stream is read until EOF,
	because the binary plist format stores its index at the very end of the data.
	"""
	
	return deserialize(stream.read())


def deserialize(data: bytes) -> typing.Any:
	"""Deserialize the given binary plist data."""
	
	return _BinaryPlistParser(io.BytesIO(data)).parse()
