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


"""Python representation of the generic property list values that keyed archives are made of.

Most property list types map directly onto built-in Python types:

* null -> ``None``
* boolean/integer/real -> ``bool``/``int``/``float`` (or :class:`Number`, see below)
* string -> ``str``
* data -> ``bytes``
* date -> ``datetime.datetime`` (naive, in UTC, like :mod:`plistlib`)
* array -> ``list``
* dictionary -> ``dict``
* UID -> :class:`plistlib.UID`

Two types have no built-in equivalent.
Sets and ordered sets are represented as :class:`PlistSet`,
because Python sets can neither hold unhashable members nor remember their order.
Numbers read by :mod:`keyedarchive.binary_plist` are wrapped in :class:`Number`,
which records whether the value was stored as a boolean, an integer or a real.
"""


import enum
import plistlib
import typing

from . import advanced_repr


__all__ = [
	"UID",
	"NumberKind",
	"Number",
	"PlistSet",
]


UID = plistlib.UID


class NumberKind(enum.Enum):
	"""The storage type of a :class:`Number`."""

	BOOLEAN = "boolean"
	INTEGER = "integer"
	REAL = "real"


class Number(advanced_repr.AsMultilineStringBase):
	"""A number as it was stored in a property list, together with its storage type.

	The storage type is what decides the Python type of the number after conversion -
	the value itself is never inspected for this.
	A real that happens to have an integral value stays a ``float``,
	and a boolean stored as 1 becomes ``True`` and not ``1``.
	"""

	detect_backreferences = False

	kind: NumberKind
	value: typing.Union[bool, int, float]

	def __init__(self, kind: NumberKind, value: typing.Union[bool, int, float]) -> None:
		super().__init__()

		self.kind = kind
		self.value = value

	def to_python(self) -> typing.Union[bool, int, float]:
		"""Convert this number to the native Python type corresponding to its storage type."""

		if self.kind == NumberKind.BOOLEAN:
			return bool(self.value)
		elif self.kind == NumberKind.INTEGER:
			return int(self.value)
		elif self.kind == NumberKind.REAL:
			return float(self.value)
		else:
			raise AssertionError(f"Unhandled number kind: {self.kind}")

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Number):
			return NotImplemented
		return self.kind == other.kind and self.value == other.value

	def __hash__(self) -> int:
		return hash((self.kind, self.value))

	def __repr__(self) -> str:
		return f"{type(self).__module__}.{type(self).__qualname__}(kind={self.kind}, value={self.value!r})"

	def _as_multiline_string_header_(self) -> str:
		return f"{self.kind.value} {self.value!r}"

	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		return ()


class PlistSet(advanced_repr.AsMultilineStringBase):
	"""A set or ordered set from a property list.

	The elements are always kept in a list in the order in which they were stored,
	so that unhashable elements (such as dictionaries) can be represented.

	The ``ordered`` flag says whether that order is meaningful.
	It cannot be derived from the elements and is carried along unchanged when the set is rewritten.
	Two ordered sets are equal if their elements are equal pairwise and in the same order.
	Two unordered sets are equal if every element of each one is equal to some element of the other,
	regardless of order and repetitions.
	An ordered set is never equal to an unordered one.
	"""

	elements: typing.List[typing.Any]
	ordered: bool

	def __init__(self, elements: typing.Iterable[typing.Any] = (), *, ordered: bool) -> None:
		super().__init__()

		self.elements = list(elements)
		self.ordered = ordered

	def __len__(self) -> int:
		return len(self.elements)

	def __iter__(self) -> typing.Iterator[typing.Any]:
		return iter(self.elements)

	def __contains__(self, item: object) -> bool:
		return item in self.elements

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, PlistSet):
			return NotImplemented
		elif self.ordered != other.ordered:
			return False
		elif self.ordered:
			return self.elements == other.elements
		else:
			# Elements may be unhashable, so this can't be done with built-in sets.
			return all(element in other.elements for element in self.elements) and all(element in self.elements for element in other.elements)

	# Mutable and compared by contents.
	__hash__ = None # type: ignore

	def __repr__(self) -> str:
		return f"{type(self).__module__}.{type(self).__qualname__}({self.elements!r}, ordered={self.ordered!r})"

	def _as_multiline_string_header_(self) -> str:
		kind = "ordered set" if self.ordered else "set"
		if not self.elements:
			count_desc = "empty"
		elif len(self.elements) == 1:
			count_desc = "1 element"
		else:
			count_desc = f"{len(self.elements)} elements"

		return f"{kind}, {count_desc}"

	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		for element in self.elements:
			yield from advanced_repr.as_multiline_string(element)
