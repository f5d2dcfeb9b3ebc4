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



"""Resolution of UIDs in a keyed archive.

Keyed archives don't nest objects directly.
Instead every object is stored once in the flat ``$objects`` table,
and all places that refer to an object contain a UID,
i. e. the index of the object in that table.
Resolving a value replaces every UID reachable from it with the object it points to.

Each table entry is resolved at most once,
so two UIDs with the same index resolve to the very same Python object,
and reference cycles in the archive become reference cycles in the result.
"""


import typing

from . import _rewriting
from . import errors
from . import values


__all__ = [
	"GraphResolver",
	"resolve",
]


class GraphResolver(_rewriting.GraphRewriter):
	"""Resolves UIDs against a single ``$objects`` table.
	
	The input values are never modified -
	all containers in the result are newly created.
	"""
	
	objects: typing.Sequence[typing.Any]
	allow_cycles: bool
	
	def __init__(self, objects: typing.Sequence[typing.Any], *, allow_cycles: bool = True) -> None:
		"""Create a resolver for the given objects table.
		
		:param objects: The archive's ``$objects`` table.
		:param allow_cycles: Controls what happens when an object (transitively) references itself.
			By default the cycle is reproduced in the result
			(the resolved object contains a reference to itself).
			If this is ``False``,
			a :class:`~keyedarchive.errors.CyclicReferenceError` is raised instead.
			Multiple references to the same object that *don't* form a cycle are always allowed.
		"""
		
		super().__init__()
		
		self.objects = objects
		self.allow_cycles = allow_cycles
	
	def _target_index(self, uid: values.UID) -> int:
		"""Get the table index that a UID ultimately points to.
		
		A table entry that is itself a UID is followed until a non-UID entry is reached.
		"""
		
		index = uid.data
		seen = set()
		while True:
			if not 0 <= index < len(self.objects):
				raise errors.DanglingReferenceError(index, len(self.objects))
			
			target = self.objects[index]
			if not isinstance(target, values.UID):
				return index
			
			# A chain of UIDs that leads back to itself has no object to tie the cycle to.
			seen.add(index)
			if target.data in seen:
				raise errors.CyclicReferenceError(target.data, f"UID {target.data} is part of a cycle of UIDs that never reaches an object")
			index = target.data
	
	def _memo_key_(self, value: typing.Any) -> typing.Optional[typing.Hashable]:
		if isinstance(value, values.UID):
			return ("uid", self._target_index(value))
		elif isinstance(value, (dict, list, values.PlistSet)):
			return ("id", id(value))
		else:
			return None
	
	def _revisit_in_progress_(self, value: typing.Any, memo_key: typing.Hashable) -> None:
		if not self.allow_cycles:
			if isinstance(value, values.UID):
				raise errors.CyclicReferenceError(self._target_index(value))
			else:
				raise errors.CyclicReferenceError(None)
	
	def _rewrite_node_(self, value: typing.Any) -> typing.Tuple[typing.Any, typing.Optional[_rewriting.Children]]:
		if isinstance(value, values.UID):
			value = self.objects[self._target_index(value)]
		
		if isinstance(value, dict):
			return {}, iter(value.items())
		elif isinstance(value, list):
			return [], _rewriting.elements_of(value)
		elif isinstance(value, values.PlistSet):
			return values.PlistSet(ordered=value.ordered), _rewriting.elements_of(value.elements)
		else:
			return value, None
	
	def resolve(self, node: typing.Any) -> typing.Any:
		"""Return a copy of ``node`` with all UIDs replaced by the objects they point to."""
		
		return self.rewrite(node)


def resolve(objects: typing.Sequence[typing.Any], node: typing.Any, *, allow_cycles: bool = True) -> typing.Any:
	"""Resolve all UIDs in ``node`` against the given objects table.
	
	Shorthand for ``GraphResolver(objects, allow_cycles=allow_cycles).resolve(node)``.
	"""
	
	return GraphResolver(objects, allow_cycles=allow_cycles).resolve(node)
