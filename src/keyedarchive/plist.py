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



"""Loading of property list data in either binary or XML format.

Binary plists are read using :mod:`keyedarchive.binary_plist`,
so that sets and number types are preserved.
XML plists are read using :mod:`plistlib`.
The XML format has no UID type -
keyed archives in XML format store UIDs as dictionaries with a single ``CF$UID`` key,
which are converted to :class:`~keyedarchive.values.UID` here,
so that both formats produce the same values.
"""


import logging
import os
import plistlib
import typing
import xml.parsers.expat

from . import binary_plist
from . import values


__all__ = [
	"loads",
	"load",
	"load_file",
]


logger = logging.getLogger(__name__)


def _convert_xml_uids(value: typing.Any) -> typing.Any:
	if isinstance(value, dict):
		if len(value) == 1 and "CF$UID" in value:
			uid = value["CF$UID"]
			if isinstance(uid, int) and not isinstance(uid, bool):
				return values.UID(uid)
		return {key: _convert_xml_uids(element) for key, element in value.items()}
	elif isinstance(value, list):
		return [_convert_xml_uids(element) for element in value]
	else:
		return value


def loads(data: bytes) -> typing.Any:
	"""Load a property list from the given data, which may be in binary or XML format."""
	
	if data.startswith(binary_plist.SIGNATURE):
		logger.debug("Reading %d bytes of binary plist data", len(data))
		return binary_plist.deserialize(data)
	else:
		logger.debug("Reading %d bytes of XML plist data", len(data))
		try:
			parsed = plistlib.loads(data, fmt=plistlib.FMT_XML)
		except (xml.parsers.expat.ExpatError, ValueError) as e:
			# plistlib.InvalidFileException is a ValueError.
			raise binary_plist.InvalidPlistError(f"Data is neither a binary nor a valid XML property list: {e}") from e
		return _convert_xml_uids(parsed)


def load(stream: typing.BinaryIO) -> typing.Any:
	"""Load a property list from the given byte stream, which is read until EOF."""
	
	return loads(stream.read())


def load_file(path: typing.Union[str, bytes, os.PathLike]) -> typing.Any:
	"""Load a property list from the file at the given path."""
	
	with open(path, "rb") as f:
		return load(f)
