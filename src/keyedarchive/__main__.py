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



import argparse
import logging
import sys
import typing


from . import __version__
from . import advanced_repr
from . import plist
from . import unarchiving


def make_subcommand_parser(subs: typing.Any, name: str, *, help: str, description: str, **kwargs: typing.Any) -> argparse.ArgumentParser:
	"""Add a subcommand parser with some slightly modified defaults to a subcommand set.
	
	This function is used to ensure that all subcommands use the same base configuration for their ArgumentParser.
	"""
	
	ap = subs.add_parser(
		name,
		formatter_class=argparse.RawDescriptionHelpFormatter,
		help=help,
		description=description,
		allow_abbrev=False,
		add_help=False,
		**kwargs,
	)
	
	ap.add_argument("--help", action="help", help="Display this help message and exit.")
	
	return ap


def load_plist_file(file: str) -> typing.Any:
	if file == "-":
		return plist.load(sys.stdin.buffer)
	else:
		return plist.load_file(file)


def do_read(ns: argparse.Namespace) -> typing.NoReturn:
	for line in advanced_repr.as_multiline_string(load_plist_file(ns.file)):
		print(line)
	
	sys.exit(0)


def dump_decoded_archive(unarchiver: unarchiving.KeyedUnarchiver, key: typing.Optional[str]) -> typing.Iterable[str]:
	yield f"archiver {unarchiver.archiver}, version {unarchiver.version!r}, {len(unarchiver.objects)} objects"
	yield ""
	if key is None:
		for top_key, obj in unarchiver.decode_top().items():
			yield from advanced_repr.as_multiline_string(obj, prefix=f"{top_key}: ")
	else:
		yield from advanced_repr.as_multiline_string(unarchiver.decode_object(key), prefix=f"{key}: ")


def do_decode(ns: argparse.Namespace) -> typing.NoReturn:
	unarchiver = unarchiving.KeyedUnarchiver(load_plist_file(ns.file), allow_cycles=ns.allow_cycles)
	for line in dump_decoded_archive(unarchiver, ns.key):
		print(line)
	
	sys.exit(0)


def main() -> typing.NoReturn:
	"""Main function of the CLI.
	
	This function is a valid setuptools entry point.
	Arguments are passed in sys.argv,
	and every execution path ends with a sys.exit call.
	(setuptools entry points are also permitted to return an integer,
	which will be treated as an exit code.
	We do not use this feature and instead always call sys.exit ourselves.)
	"""
	
	ap = argparse.ArgumentParser(
		formatter_class=argparse.RawDescriptionHelpFormatter,
		description="""
%(prog)s is a tool for dumping keyed archives, which are produced by the
NSKeyedArchiver class in Apple's Foundation framework and stored as binary or
XML property lists.
""",
		allow_abbrev=False,
		add_help=False,
	)
	
	ap.add_argument("--help", action="help", help="Display this help message and exit.")
	ap.add_argument("--version", action="version", version=__version__, help="Display version information and exit.")
	ap.add_argument("--debug", action="store_true", help="Log details about the decoding process to stderr.")
	
	subs = ap.add_subparsers(
		dest="subcommand",
		metavar="SUBCOMMAND",
	)
	
	sub_read = make_subcommand_parser(
		subs,
		"read",
		help="Read and display the raw property list of a keyed archive.",
		description="""
Read and display the raw property list of a keyed archive.

The property list is displayed as it's stored and is processed as little as
possible. In particular, UIDs are not resolved (the objects they refer to can
be found at the corresponding index in the $objects array), and archived
objects are displayed as dictionaries with their $class information.
""",
	)
	sub_read.add_argument("file", help="The property list file to read, or - for stdin.")
	
	sub_decode = make_subcommand_parser(
		subs,
		"decode",
		help="Read, decode and display the objects in a keyed archive.",
		description="""
Read, decode and display the objects in a keyed archive.

All UIDs are resolved, Foundation collections (NSDictionary, NSArray, NSSet,
NSOrderedSet and their mutable subclasses) are converted to plain
dictionaries, arrays and sets, and the class information of all other objects
is removed. Objects that are referenced more than once are displayed in full
only the first time.

The display is produced recursively, so objects nested more deeply than
Python's recursion limit (about 1000 levels) cannot be displayed, even though
they can be decoded using the library API.
""",
	)
	sub_decode.add_argument("--key", help="Decode only the top-level object with this key (usually root). By default all top-level objects are decoded.")
	sub_decode.add_argument("--no-cycles", dest="allow_cycles", action="store_false", help="Fail if an object references itself, instead of displaying the circular reference.")
	sub_decode.add_argument("file", help="The property list file to read, or - for stdin.")
	
	ns = ap.parse_args()
	
	if ns.debug:
		logging.basicConfig(level=logging.DEBUG)
	
	if ns.subcommand is None:
		print("Missing subcommand", file=sys.stderr)
		sys.exit(2)
	elif ns.subcommand == "read":
		do_read(ns)
	elif ns.subcommand == "decode":
		do_decode(ns)
	else:
		print(f"Unknown subcommand: {ns.subcommand!r}", file=sys.stderr)
		sys.exit(2)


if __name__ == "__main__":
	sys.exit(main())
