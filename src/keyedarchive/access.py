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



"""Convenient typed access to decoded archive contents.

Decoded archives are plain nested dictionaries and lists,
whose exact shape often isn't known in advance.
The functions in this module look up a value and check its type in one step,
returning ``None`` instead of raising an exception if anything doesn't match.
This allows probing for several possible shapes without any exception handling::

	root = {"intval": 42, "array": [{"inner": "good"}, True]}
	get(root, "intval", int) # 42
	get_in_sequence(root, "array", 1, bool) # True
	inner = get_in_sequence(root, "array", 0, dict)
	if inner is not None:
		get(inner, "inner", str) # "good"

Because ``None`` signals a missing or mismatched value,
a stored ``None`` (null) value cannot be distinguished from a missing one.
"""


import typing

from . import values


__all__ = [
	"get",
	"get_mapping",
	"get_in_sequence",
]


_T = typing.TypeVar("_T")


def _convert(value: typing.Any, value_type: typing.Type[typing.Any]) -> typing.Any:
	"""Return ``value`` as an instance of ``value_type``, or ``None`` if it can't be converted.
	
	The only conversion performed is widening an ``int`` to a ``float``.
	Booleans are never treated as numbers or the other way around,
	even though ``bool`` is a subclass of ``int`` in Python.
	"""
	
	if isinstance(value, values.Number):
		value = value.to_python()
	
	if value_type is object:
		return value
	elif value_type in (int, float) and isinstance(value, bool):
		return None
	elif value_type is float and isinstance(value, int):
		return float(value)
	else:
		try:
			matches = isinstance(value, value_type)
		except TypeError:
			# value_type is not a runtime class, e. g. typing.List[int].
			return None
		return value if matches else None


@typing.overload
def get(node: typing.Any, key: typing.Any) -> typing.Any: ...
@typing.overload
def get(node: typing.Any, key: typing.Any, value_type: typing.Type[_T]) -> typing.Optional[_T]: ...


def get(node: typing.Any, key: typing.Any, value_type: typing.Type[typing.Any] = object) -> typing.Any:
	"""Look up ``key`` in ``node`` and return the value as an instance of ``value_type``.
	
	:param node: The dictionary to look in.
		Any other kind of value is accepted too,
		but never contains any keys.
	:param key: The key to look up.
	:param value_type: The expected type of the value.
		``int`` values are also accepted when a ``float`` is expected.
		If this is ``object`` (the default), values of any type are accepted.
	:return: The value,
		or ``None`` if ``node`` isn't a dictionary,
		``key`` isn't present,
		or the value doesn't have the expected type.
	"""
	
	if not isinstance(node, dict):
		return None
	
	try:
		value = node[key]
	except (KeyError, TypeError):
		# TypeError is raised for unhashable keys,
		# which can't be present in the dictionary either.
		return None
	
	return _convert(value, value_type)


def get_mapping(node: typing.Any, key: typing.Any) -> typing.Optional[typing.Dict[typing.Any, typing.Any]]:
	"""Look up a nested dictionary (usually a decoded archived object) in ``node``.
	
	Shorthand for ``get(node, key, dict)``.
	"""
	
	return get(node, key, dict)


@typing.overload
def get_in_sequence(node: typing.Any, key: typing.Any, index: int) -> typing.Any: ...
@typing.overload
def get_in_sequence(node: typing.Any, key: typing.Any, index: int, value_type: typing.Type[_T]) -> typing.Optional[_T]: ...


def get_in_sequence(node: typing.Any, key: typing.Any, index: int, value_type: typing.Type[typing.Any] = object) -> typing.Any:
	"""Look up a list in ``node`` and return one of its elements as an instance of ``value_type``.
	
	:return: The element,
		or ``None`` if ``key`` doesn't refer to a list,
		``index`` is out of range,
		or the element doesn't have the expected type.
		Negative indices are always out of range -
		they don't count from the end of the list.
	"""
	
	sequence = get(node, key, list)
	if sequence is None:
		return None
	
	if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(sequence):
		return None
	
	return _convert(sequence[index], value_type)
