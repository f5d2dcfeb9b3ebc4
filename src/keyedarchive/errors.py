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



import typing


__all__ = [
	"UnarchivingError",
	"MalformedArchiveError",
	"DanglingReferenceError",
	"CyclicReferenceError",
	"MalformedMutableContainerError",
]


class UnarchivingError(ValueError):
	"""Base class for all errors raised while decoding a keyed archive.
	
	Decoding is all-or-nothing -
	when one of these errors is raised,
	no partially decoded result is available.
	"""


class MalformedArchiveError(UnarchivingError):
	"""Raised if the archive root doesn't have the expected structure,
	i. e. it isn't a dictionary,
	or its ``$objects`` or ``$top`` entry is missing or has the wrong type,
	or the requested key is missing from ``$top``.
	"""


class DanglingReferenceError(UnarchivingError):
	"""Raised if a UID points outside of the ``$objects`` table."""
	
	index: int
	table_size: int
	
	def __init__(self, index: int, table_size: int) -> None:
		super().__init__(f"UID {index} is out of range for an objects table with {table_size} entries")
		
		self.index = index
		self.table_size = table_size


class CyclicReferenceError(UnarchivingError):
	"""Raised if an object (transitively) references itself
	and the cycle can't be represented,
	either because it consists only of UIDs pointing at UIDs,
	or because cycles were disallowed by passing ``allow_cycles=False``.
	"""
	
	index: typing.Optional[int]
	
	def __init__(self, index: typing.Optional[int], message: typing.Optional[str] = None) -> None:
		if message is None:
			if index is None:
				message = "Object graph contains a reference cycle"
			else:
				message = f"Object graph contains a reference cycle through UID {index}"
		
		super().__init__(message)
		
		self.index = index


class MalformedMutableContainerError(UnarchivingError):
	"""Raised if an archived container record (such as an ``NSMutableDictionary`` or ``NSMutableArray``)
	is missing its ``NS.keys``/``NS.objects`` entries,
	or if they have the wrong type or mismatched lengths.
	"""
	
	class_name: str
	
	def __init__(self, class_name: str, message: str) -> None:
		super().__init__(f"Invalid {class_name} record: {message}")
		
		self.class_name = class_name
