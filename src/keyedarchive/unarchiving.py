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



import logging
import os
import typing

from . import errors
from . import normalization
from . import plist
from . import resolution
from . import values


__all__ = [
	"ROOT_KEY",
	"KeyedUnarchiver",
	"unarchive",
	"unarchive_from_stream",
	"unarchive_from_data",
	"unarchive_from_file",
]


logger = logging.getLogger(__name__)


# The key in $top under which NSKeyedArchiver stores the root object
# (the value of NSKeyedArchiveRootObjectKey).
ROOT_KEY = "root"


class KeyedUnarchiver(object):
	"""Decodes the objects stored in a keyed archive (as created by NSKeyedArchiver).
	
	A keyed archive is a property list dictionary with the following entries:
	
	* ``$objects``: A flat table of all archived objects.
	  Objects refer to each other using UIDs,
	  which are indices into this table.
	* ``$top``: A dictionary of the top-level objects.
	  The root object of an archive created by ``+[NSKeyedArchiver archivedDataWithRootObject:]``
	  is stored under the key ``root``.
	* ``$archiver`` and ``$version``: Metadata about the archiver that created the archive.
	  This information is exposed as attributes,
	  but not otherwise checked.
	
	Decoding resolves all UIDs
	(see :mod:`keyedarchive.resolution`)
	and then converts the resolved archive records into plain Python values
	(see :mod:`keyedarchive.normalization`).
	"""
	
	root: typing.Mapping[str, typing.Any]
	objects: typing.Sequence[typing.Any]
	top: typing.Mapping[str, typing.Any]
	archiver: typing.Optional[str]
	version: typing.Any
	allow_cycles: bool
	
	@classmethod
	def from_data(cls, data: bytes, *, allow_cycles: bool = True) -> "KeyedUnarchiver":
		"""Create an unarchiver for the given keyed archive data (in binary or XML plist format)."""
		
		return cls(plist.loads(data), allow_cycles=allow_cycles)
	
	@classmethod
	def from_stream(cls, f: typing.BinaryIO, *, allow_cycles: bool = True) -> "KeyedUnarchiver":
		"""Create an unarchiver for the keyed archive data in the given byte stream.
		
		The stream is read until EOF,
		but not closed.
		"""
		
		return cls(plist.load(f), allow_cycles=allow_cycles)
	
	@classmethod
	def open(cls, filename: typing.Union[str, bytes, os.PathLike], *, allow_cycles: bool = True) -> "KeyedUnarchiver":
		"""Create an unarchiver for the keyed archive file at the given path."""
		
		return cls(plist.load_file(filename), allow_cycles=allow_cycles)
	
	def __init__(self, root: typing.Any, *, allow_cycles: bool = True) -> None:
		"""Create a :class:`KeyedUnarchiver` for an already parsed keyed archive property list.
		
		:param root: The parsed property list.
		:param allow_cycles: Controls whether archives whose objects (transitively) reference themselves are decoded
			(as Python objects that reference themselves)
			or rejected with a :class:`~keyedarchive.errors.CyclicReferenceError`.
		:raise MalformedArchiveError: If ``root`` isn't a dictionary with an ``$objects`` array and a ``$top`` dictionary.
		"""
		
		super().__init__()
		
		if not isinstance(root, dict):
			raise errors.MalformedArchiveError(f"Archive root must be a dictionary, not {type(root).__name__}")
		
		try:
			objects = root["$objects"]
		except KeyError:
			raise errors.MalformedArchiveError("Archive root has no $objects entry") from None
		if not isinstance(objects, list):
			raise errors.MalformedArchiveError(f"Archive's $objects must be an array, not {type(objects).__name__}")
		
		try:
			top = root["$top"]
		except KeyError:
			raise errors.MalformedArchiveError("Archive root has no $top entry") from None
		if not isinstance(top, dict):
			raise errors.MalformedArchiveError(f"Archive's $top must be a dictionary, not {type(top).__name__}")
		
		archiver = root.get("$archiver")
		version = root.get("$version")
		if isinstance(version, values.Number):
			version = version.to_python()
		
		self.root = root
		self.objects = objects
		self.top = top
		self.archiver = archiver if isinstance(archiver, str) else None
		self.version = version
		self.allow_cycles = allow_cycles
		
		logger.debug("Keyed archive created by %s version %r, %d objects, top-level keys %r", self.archiver, self.version, len(self.objects), list(self.top))
	
	def __repr__(self) -> str:
		return f"<{type(self).__module__}.{type(self).__qualname__} at {id(self):#x}: archiver {self.archiver}, version {self.version!r}, {len(self.objects)} objects>"
	
	@property
	def top_keys(self) -> typing.List[str]:
		"""The keys of all top-level objects in the archive."""
		
		return list(self.top)
	
	def _decode(self, resolver: resolution.GraphResolver, normalizer: normalization.Normalizer, key: str) -> typing.Any:
		try:
			value = self.top[key]
		except KeyError:
			raise errors.MalformedArchiveError(f"Archive's $top has no {key!r} entry (available keys: {self.top_keys})") from None
		
		logger.debug("Decoding top-level object %r", key)
		return normalizer.normalize(resolver.resolve(value))
	
	def decode_object(self, key: str = ROOT_KEY) -> typing.Any:
		"""Decode the top-level object stored under the given key.
		
		This method is roughly equivalent to the Objective-C method ``-[NSKeyedUnarchiver decodeObjectForKey:]``
		called on an unarchiver for the whole archive.
		
		:raise MalformedArchiveError: If there is no top-level object with the given key.
		"""
		
		return self._decode(resolution.GraphResolver(self.objects, allow_cycles=self.allow_cycles), normalization.Normalizer(), key)
	
	def decode_top(self) -> typing.Dict[str, typing.Any]:
		"""Decode all top-level objects in the archive.
		
		The objects are decoded together,
		so any objects shared between them are also shared between the decoded values.
		"""
		
		resolver = resolution.GraphResolver(self.objects, allow_cycles=self.allow_cycles)
		normalizer = normalization.Normalizer()
		return {key: self._decode(resolver, normalizer, key) for key in self.top}


def unarchive(root: typing.Any, *, allow_cycles: bool = True) -> typing.Any:
	"""Decode the root object of an already parsed keyed archive property list."""
	
	return KeyedUnarchiver(root, allow_cycles=allow_cycles).decode_object()


def unarchive_from_stream(f: typing.BinaryIO, *, allow_cycles: bool = True) -> typing.Any:
	"""Decode the root object of the keyed archive in the given binary data stream."""
	
	return KeyedUnarchiver.from_stream(f, allow_cycles=allow_cycles).decode_object()


def unarchive_from_data(data: bytes, *, allow_cycles: bool = True) -> typing.Any:
	"""Decode the root object of the given keyed archive data."""
	
	return KeyedUnarchiver.from_data(data, allow_cycles=allow_cycles).decode_object()


def unarchive_from_file(path: typing.Union[str, bytes, os.PathLike], *, allow_cycles: bool = True) -> typing.Any:
	"""Decode the root object of the keyed archive file at the given path."""
	
	return KeyedUnarchiver.open(path, allow_cycles=allow_cycles).decode_object()
