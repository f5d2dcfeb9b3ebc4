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



"""Multiline, indented string representations of decoded value trees.

Keyed archives can contain shared and circular references,
so naive recursive rendering could repeat large subtrees or never terminate.
The rendering functions here remember which containers have already been rendered
and only output a short marker for repeated visits.
"""


import contextvars
import typing


__all__ = [
	"prefix_lines",
	"AsMultilineStringBase",
	"as_multiline_string",
]


def prefix_lines(
	lines: typing.Iterable[str],
	*,
	first: str = "",
	rest: str = "",
) -> typing.Iterable[str]:
	it = iter(lines)
	
	try:
		yield first + next(it)
	except StopIteration:
		if first:
			yield first
	
	if rest:
		for line in it:
			yield rest + line
	else:
		yield from it


_already_rendered_ids: "contextvars.ContextVar[typing.Set[int]]" = contextvars.ContextVar("_already_rendered_ids")
_currently_rendering_ids: "contextvars.ContextVar[typing.Tuple[int, ...]]" = contextvars.ContextVar("_currently_rendering_ids")


def _render_header_and_body(
	obj: object,
	header: str,
	body: typing.Callable[[], typing.Iterable[str]],
	*,
	detect_backreferences: bool,
) -> typing.Iterable[str]:
	"""Render an object as a header line followed by its body lines, indented by one tab each.
	
	If the object is already being rendered further up
	(i. e. it contains itself),
	or if it has already been rendered before and ``detect_backreferences`` is true,
	then the body is *not* rendered again
	and only the header is output,
	followed by a short explanation.
	"""
	
	if id(obj) in _currently_rendering_ids.get()[:-1]: # last element of _currently_rendering_ids is always id(obj)
		yield header + " (circular reference)"
	elif detect_backreferences and id(obj) in _already_rendered_ids.get():
		yield header + " (backreference)"
	else:
		body_it = iter(body())
		# Silly hack: append the colon to the first line only if at least one more line comes after it.
		try:
			second = next(body_it)
		except StopIteration:
			yield header
		else:
			yield header + ":"
			yield "\t" + second
			for line in body_it:
				yield "\t" + line


class AsMultilineStringBase(object):
	"""Base class for classes that want to implement a custom multiline string representation,
	for use by :func:`as_multiline_string`.
	
	This also provides an implementation of ``__str__`` based on :meth:`~AsMultilineStringBase._as_multiline_string_`.
	"""
	
	detect_backreferences: typing.ClassVar[bool] = True
	
	def _as_multiline_string_header_(self) -> str:
		"""Render the header part of this object's multiline string representation.
		
		The header should be a compact single-line overview description of the object,
		e. g. its type and the length of a collection.
		If the body part is non-empty,
		then the header automatically has a colon appended.
		
		Because the header is always fully rendered even for multiple references to the same object,
		it shouldn't recursively render other complex objects.
		"""
		
		raise NotImplementedError()
	
	def _as_multiline_string_body_(self) -> typing.Iterable[str]:
		"""Render the body part of this object's multiline string representation.
		
		Each line in the body is automatically indented by one tab
		so that the body appears visually nested under the header.
		"""
		
		raise NotImplementedError()
	
	def _as_multiline_string_(self) -> typing.Iterable[str]:
		"""Convert ``self`` to a multiline string representation.
		
		This method should not be called directly -
		use :func:`as_multiline_string` instead.
		"""
		
		return _render_header_and_body(
			self,
			self._as_multiline_string_header_(),
			self._as_multiline_string_body_,
			detect_backreferences=type(self).detect_backreferences,
		)
	
	def __str__(self) -> str:
		return "\n".join(self._as_multiline_string_())


def _count_description(count: int, singular: str, plural: str) -> str:
	if count == 0:
		return "empty"
	elif count == 1:
		return f"1 {singular}"
	else:
		return f"{count} {plural}"


def _dict_body(obj: typing.Mapping[typing.Any, typing.Any]) -> typing.Iterable[str]:
	for key, value in obj.items():
		yield from as_multiline_string(value, prefix=f"{key!r}: ")


def _list_body(obj: typing.Sequence[typing.Any]) -> typing.Iterable[str]:
	for element in obj:
		yield from as_multiline_string(element)


def _as_lines(obj: object) -> typing.Iterable[str]:
	if isinstance(obj, AsMultilineStringBase):
		return obj._as_multiline_string_()
	elif isinstance(obj, dict):
		header = f"dictionary, {_count_description(len(obj), 'entry', 'entries')}"
		return _render_header_and_body(obj, header, lambda: _dict_body(obj), detect_backreferences=True)
	elif isinstance(obj, list):
		header = f"array, {_count_description(len(obj), 'element', 'elements')}"
		return _render_header_and_body(obj, header, lambda: _list_body(obj), detect_backreferences=True)
	elif isinstance(obj, bytes):
		return [f"data, {len(obj)} bytes: {obj!r}"]
	elif obj is None:
		return ["null"]
	elif isinstance(obj, str):
		return [repr(obj)]
	else:
		return str(obj).splitlines()


def as_multiline_string(obj: object, *, prefix: str = "") -> typing.Iterable[str]:
	"""Convert an object to a multiline string representation.
	
	Dictionaries, lists and objects with an :meth:`~AsMultilineStringBase._as_multiline_string_` method
	are rendered as a header line with their contents nested below it.
	Strings and bytes are rendered using their ``repr``,
	``None`` is rendered as ``null``,
	and all other objects are converted using default :class:`str` conversion
	and then split into an iterable of lines.
	
	:param obj: The object to represent.
	:param prefix: An optional prefix to add in front of the first line of the string representation.
		Convenience shortcut for :func:`prefix_lines`.
	:return: The string representation as an iterable of lines (line terminators not included).
	"""
	
	already_rendered_ids: typing.Optional[typing.Set[int]] = None
	token: typing.Optional[contextvars.Token] = None
	token2: typing.Optional[contextvars.Token] = None
	
	try:
		try:
			already_rendered_ids = _already_rendered_ids.get()
		except LookupError:
			already_rendered_ids = set()
			token = _already_rendered_ids.set(already_rendered_ids)
		
		try:
			currently_rendering_ids = _currently_rendering_ids.get()
		except LookupError:
			currently_rendering_ids = ()
		else:
			already_rendered_ids.add(currently_rendering_ids[-1])
		
		token2 = _currently_rendering_ids.set(currently_rendering_ids + (id(obj),))
		
		yield from prefix_lines(_as_lines(obj), first=prefix)
	finally:
		if already_rendered_ids is not None:
			already_rendered_ids.add(id(obj))
		
		if token2 is not None:
			_currently_rendering_ids.reset(token2)
		
		if token is not None:
			_already_rendered_ids.reset(token)
