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



"""Conversion of a resolved keyed archive into plain Python values.

After UID resolution,
archived objects are still dictionaries in the format written by NSKeyedArchiver.
Each has a ``$class`` entry describing the archived class,
and Foundation collections store their contents in ``NS.keys``/``NS.objects`` entries.
Normalization unwraps these records into plain dictionaries, lists and sets,
converts :class:`~keyedarchive.values.Number` wrappers into native numbers,
and strips the ``$class`` entry from all other objects.
"""


import datetime
import enum
import math
import typing

from . import _rewriting
from . import errors
from . import values


__all__ = [
	"ArchivedKind",
	"archived_kinds_by_class_name",
	"class_name",
	"class_hierarchy",
	"lookup_archived_kind",
	"archived_kind",
	"Normalizer",
	"normalize",
]


# Timestamps in keyed archives count seconds since 2001-01-01 00:00:00 UTC.
_REFERENCE_DATE = datetime.datetime(2001, 1, 1)


class ArchivedKind(enum.Enum):
	"""The archived classes that normalization knows how to unwrap.
	
	Every class that isn't listed in :data:`archived_kinds_by_class_name`
	(and doesn't have a superclass that is)
	is treated as :attr:`OBJECT`.
	"""
	
	DICTIONARY = "dictionary"
	ARRAY = "array"
	SET = "set"
	ORDERED_SET = "ordered set"
	STRING = "string"
	DATA = "data"
	DATE = "date"
	OBJECT = "object"


archived_kinds_by_class_name: typing.Mapping[str, ArchivedKind] = {
	"NSDictionary": ArchivedKind.DICTIONARY,
	"NSMutableDictionary": ArchivedKind.DICTIONARY,
	"NSArray": ArchivedKind.ARRAY,
	"NSMutableArray": ArchivedKind.ARRAY,
	"NSSet": ArchivedKind.SET,
	"NSMutableSet": ArchivedKind.SET,
	"NSOrderedSet": ArchivedKind.ORDERED_SET,
	"NSMutableOrderedSet": ArchivedKind.ORDERED_SET,
	"NSString": ArchivedKind.STRING,
	"NSMutableString": ArchivedKind.STRING,
	"NSData": ArchivedKind.DATA,
	"NSMutableData": ArchivedKind.DATA,
	"NSDate": ArchivedKind.DATE,
}


def class_name(mapping: typing.Any) -> typing.Optional[str]:
	"""Get the name of the archived class of a resolved object record.
	
	:return: The ``$classname`` from the record's ``$class`` entry,
		or ``None`` if ``mapping`` isn't a dictionary,
		has no ``$class`` entry,
		or its class information has no string ``$classname``.
	"""
	
	if not isinstance(mapping, dict):
		return None
	
	clazz = mapping.get("$class")
	if not isinstance(clazz, dict):
		return None
	
	name = clazz.get("$classname")
	if not isinstance(name, str):
		return None
	
	return name


def class_hierarchy(mapping: typing.Any) -> typing.List[str]:
	"""Get the names of the archived class of a resolved object record and all of its superclasses.
	
	NSKeyedArchiver stores the superclass chain in the ``$classes`` entry of the class information,
	starting with the class itself.
	If that entry is missing or malformed,
	only the class name itself is returned.
	
	:return: The class names, most specific first,
		or an empty list if the record has no class information.
	"""
	
	name = class_name(mapping)
	if name is None:
		return []
	
	classes = mapping["$class"].get("$classes")
	if isinstance(classes, list) and classes and all(isinstance(superclass, str) for superclass in classes):
		if classes[0] != name:
			return [name, *classes]
		return list(classes)
	else:
		return [name]


def lookup_archived_kind(hierarchy: typing.Iterable[str]) -> typing.Tuple[ArchivedKind, typing.Optional[str]]:
	"""Find the kind of an archived class from its class hierarchy.
	
	If the class itself is not known,
	its superclasses are tried in order,
	so that e. g. a custom subclass of ``NSMutableDictionary`` is still unwrapped like a dictionary.
	
	:return: A tuple of the found kind and the name of the class that matched,
		or ``(ArchivedKind.OBJECT, None)`` if no class in the hierarchy is known.
	"""
	
	for name in hierarchy:
		try:
			return archived_kinds_by_class_name[name], name
		except KeyError:
			pass
	
	return ArchivedKind.OBJECT, None


def archived_kind(mapping: typing.Any) -> ArchivedKind:
	kind, _ = lookup_archived_kind(class_hierarchy(mapping))
	return kind


def _as_real(value: typing.Any) -> typing.Optional[float]:
	if isinstance(value, values.Number):
		value = value.to_python()
	
	if isinstance(value, (int, float)) and not isinstance(value, bool):
		return float(value)
	else:
		return None


def _container_list(record: typing.Mapping[str, typing.Any], key: str, name: str) -> typing.List[typing.Any]:
	if key not in record:
		raise errors.MalformedMutableContainerError(name, f"missing {key} entry")
	
	value = record[key]
	if not isinstance(value, list):
		raise errors.MalformedMutableContainerError(name, f"{key} must be an array, not {type(value).__name__}")
	
	return value


def _dictionary_key(key: typing.Any, name: str) -> str:
	if isinstance(key, str):
		return key
	
	kind, _ = lookup_archived_kind(class_hierarchy(key))
	if kind == ArchivedKind.STRING and isinstance(key.get("NS.string"), str):
		return key["NS.string"]
	
	raise errors.MalformedMutableContainerError(name, f"keys must be strings, not {type(key).__name__}")


class Normalizer(_rewriting.GraphRewriter):
	"""Converts resolved archive records into plain Python values.
	
	Every dictionary, list and set is converted only once,
	so objects that are shared in the input are also shared in the output,
	and cycles in the input are reproduced in the output.
	"""
	
	def _memo_key_(self, value: typing.Any) -> typing.Optional[typing.Hashable]:
		if isinstance(value, (dict, list, values.PlistSet)):
			return id(value)
		else:
			return None
	
	def _rewrite_record(self, record: typing.Mapping[str, typing.Any]) -> typing.Tuple[typing.Any, typing.Optional[_rewriting.Children]]:
		kind, name = lookup_archived_kind(class_hierarchy(record))
		
		if kind == ArchivedKind.DICTIONARY:
			assert name is not None
			keys = _container_list(record, "NS.keys", name)
			objects = _container_list(record, "NS.objects", name)
			if len(keys) != len(objects):
				raise errors.MalformedMutableContainerError(name, f"NS.keys has {len(keys)} entries, but NS.objects has {len(objects)}")
			
			return {}, zip([_dictionary_key(key, name) for key in keys], objects)
		elif kind in {ArchivedKind.ARRAY, ArchivedKind.SET, ArchivedKind.ORDERED_SET}:
			assert name is not None
			objects = _container_list(record, "NS.objects", name)
			
			result: typing.Any
			if kind == ArchivedKind.ARRAY:
				result = []
			else:
				result = values.PlistSet(ordered=kind == ArchivedKind.ORDERED_SET)
			return result, _rewriting.elements_of(objects)
		elif kind == ArchivedKind.STRING:
			string = record.get("NS.string")
			if isinstance(string, str):
				return string, None
		elif kind == ArchivedKind.DATA:
			data = record.get("NS.data")
			if isinstance(data, bytes):
				return data, None
		elif kind == ArchivedKind.DATE:
			seconds = _as_real(record.get("NS.time"))
			if seconds is not None and not math.isnan(seconds):
				try:
					return _REFERENCE_DATE + datetime.timedelta(seconds=seconds), None
				except OverflowError:
					# Dates like NSDate.distantPast are outside of the range that datetime supports.
					return (datetime.datetime.min if seconds < 0 else datetime.datetime.max), None
		
		# Any other object (or a string/data/date record without the expected payload)
		# keeps all of its fields, only the class information is removed.
		return {}, ((key, value) for key, value in record.items() if key != "$class")
	
	def _rewrite_node_(self, value: typing.Any) -> typing.Tuple[typing.Any, typing.Optional[_rewriting.Children]]:
		if isinstance(value, dict):
			return self._rewrite_record(value)
		elif isinstance(value, list):
			return [], _rewriting.elements_of(value)
		elif isinstance(value, values.PlistSet):
			return values.PlistSet(ordered=value.ordered), _rewriting.elements_of(value.elements)
		elif isinstance(value, values.Number):
			return value.to_python(), None
		else:
			return value, None
	
	def normalize(self, node: typing.Any) -> typing.Any:
		"""Convert ``node`` and everything reachable from it into plain Python values."""
		
		return self.rewrite(node)


def normalize(node: typing.Any) -> typing.Any:
	"""Convert an already resolved value into plain Python values.
	
	Shorthand for ``Normalizer().normalize(node)``.
	"""
	
	return Normalizer().normalize(node)
