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



"""Common machinery for rewriting a (possibly cyclic) value graph into a new one.

Rewriting is done with an explicit stack instead of recursion,
so that very deeply nested graphs don't run into Python's recursion limit.
Each container is first replaced by a new, empty result container,
which is registered before any of its children are rewritten,
and only then filled in.
Because of this,
a child that refers back to a container that is still being filled in
simply gets the (partially filled) result container,
which ties the cycle back together in the output.
"""


import abc
import typing

from . import values


__all__ = [
	"Children",
	"GraphRewriter",
]


# Pairs of (key, child value) for a container that's being filled in.
# The key is only used for dictionaries and is None for lists and sets.
Children = typing.Iterator[typing.Tuple[typing.Any, typing.Any]]


class _Frame(object):
	result: typing.Any
	children: Children
	memo_key: typing.Optional[typing.Hashable]
	
	def __init__(self, result: typing.Any, children: Children, memo_key: typing.Optional[typing.Hashable]) -> None:
		super().__init__()
		
		self.result = result
		self.children = children
		self.memo_key = memo_key


def _store(container: typing.Any, key: typing.Any, value: typing.Any) -> None:
	if isinstance(container, dict):
		container[key] = value
	elif isinstance(container, list):
		container.append(value)
	elif isinstance(container, values.PlistSet):
		container.elements.append(value)
	else:
		raise AssertionError(f"Not a container: {type(container)}")


def elements_of(value: typing.Sequence[typing.Any]) -> Children:
	return ((None, element) for element in value)


class GraphRewriter(abc.ABC):
	"""Base class for the graph rewriting passes.
	
	Subclasses define how a single node is rewritten (:meth:`_rewrite_node_`)
	and which nodes are remembered so that they are only rewritten once (:meth:`_memo_key_`).
	
	The memo table lives as long as the rewriter instance,
	so rewriting several values with the same instance preserves sharing between them.
	Rewriter instances are not meant to be shared between threads.
	"""
	
	# Maps memo keys to (original, result) pairs.
	# The original is kept alive so that id-based memo keys can't be reused by other objects.
	_rewritten: typing.Dict[typing.Hashable, typing.Tuple[typing.Any, typing.Any]]
	_in_progress: typing.Set[typing.Hashable]
	
	def __init__(self) -> None:
		super().__init__()
		
		self._rewritten = {}
		self._in_progress = set()
	
	@abc.abstractmethod
	def _memo_key_(self, value: typing.Any) -> typing.Optional[typing.Hashable]:
		"""Return the key under which the rewritten form of ``value`` is remembered,
		or ``None`` if ``value`` should be rewritten again every time it is encountered.
		"""
		
		raise NotImplementedError()
	
	@abc.abstractmethod
	def _rewrite_node_(self, value: typing.Any) -> typing.Tuple[typing.Any, typing.Optional[Children]]:
		"""Rewrite a single node without looking at its children.
		
		:return: A tuple of the result and its children.
			If the node is a container,
			the result should be a new empty container (``dict``, ``list`` or :class:`~keyedarchive.values.PlistSet`)
			and the children are an iterator of ``(key, child)`` pairs
			that will be rewritten and stored into the result in order.
			Otherwise the children should be ``None`` and the result is final.
		"""
		
		raise NotImplementedError()
	
	def _revisit_in_progress_(self, value: typing.Any, memo_key: typing.Hashable) -> None:
		"""Called when a node is encountered again while it is still being filled in,
		i. e. when the graph contains a cycle through this node.
		
		The default implementation does nothing,
		which ties the cycle back together in the result.
		Subclasses can override this to raise an exception instead.
		"""
	
	def _visit(self, value: typing.Any) -> typing.Tuple[typing.Any, typing.Optional[_Frame]]:
		memo_key = self._memo_key_(value)
		if memo_key is not None:
			try:
				_, result = self._rewritten[memo_key]
			except KeyError:
				pass
			else:
				if memo_key in self._in_progress:
					self._revisit_in_progress_(value, memo_key)
				return result, None
		
		result, children = self._rewrite_node_(value)
		if memo_key is not None:
			self._rewritten[memo_key] = (value, result)
		
		if children is None:
			return result, None
		
		if memo_key is not None:
			self._in_progress.add(memo_key)
		return result, _Frame(result, children, memo_key)
	
	def rewrite(self, value: typing.Any) -> typing.Any:
		"""Rewrite ``value`` and everything reachable from it."""
		
		result, frame = self._visit(value)
		if frame is None:
			return result
		
		stack = [frame]
		while stack:
			top = stack[-1]
			try:
				key, child = next(top.children)
			except StopIteration:
				stack.pop()
				if top.memo_key is not None:
					self._in_progress.discard(top.memo_key)
				continue
			
			child_result, child_frame = self._visit(child)
			_store(top.result, key, child_result)
			if child_frame is not None:
				stack.append(child_frame)
		
		return result
