#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""
crossbind Binding Generation Script

Command line driver for generating C++ and Haskell bindings from interface
definitions. A binding project usually has a small Python file that builds
its interfaces and hands them to run():

    from crossbind.main import run

    if __name__ == "__main__":
        sys.exit(run([my_interface], sys.argv[1:]))

The generation workflow:
1. Select the interface (implicit when only one is given)
2. Generate the C++ shim and/or the Haskell modules in memory
3. Write only the files whose contents changed, so rebuilds stay incremental

Usage:
    # Generate both halves of the bindings
    python my_bindings.py --gen-cpp cpp --gen-hs hs

    # Let crossbind load the interfaces from a module attribute
    python -m crossbind.main --load my_bindings:interfaces --gen-cpp cpp

    # Show what would be generated
    python my_bindings.py --list-cpp-files --list-hs-files
"""

import argparse
import importlib
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .common import GenerationResult, write_file_if_different
from .cpp import CppGenerator
from .haskell import HaskellGenerator
from .spec import Interface

logger = logging.getLogger("Crossbind.Main")


@dataclass
class GeneratorConfig:
    """Configuration for a generation run."""

    cpp_output_dir: Optional[str] = None
    hs_output_dir: Optional[str] = None
    write_to_disk: bool = True
    dry_run: bool = False


class GenerationOrchestrator:
    """
    Runs the generators for one interface and writes their output.

    Both generators run before anything is written, so a failure in either
    leaves the output directories untouched.
    """

    def __init__(self, interface: Interface, config: Optional[GeneratorConfig] = None):
        self.interface = interface
        self.config = config or GeneratorConfig()
        self._outputs: Dict[str, GenerationResult] = {}

    def generate_cpp(self) -> GenerationResult:
        if "cpp" not in self._outputs:
            self._outputs["cpp"] = CppGenerator(self.interface).generate()
        return self._outputs["cpp"]

    def generate_hs(self) -> GenerationResult:
        if "hs" not in self._outputs:
            self._outputs["hs"] = HaskellGenerator(self.interface).generate()
        return self._outputs["hs"]

    def generate(self) -> List[str]:
        """
        Generates every requested half of the bindings.

        Returns:
            Error messages, empty on success
        """
        errors = []
        if self.config.cpp_output_dir is not None:
            result = self.generate_cpp()
            if not result.success:
                errors.append(f"C++ generation failed: {result.error_message}")
        if self.config.hs_output_dir is not None:
            result = self.generate_hs()
            if not result.success:
                errors.append(f"Haskell generation failed: {result.error_message}")
        return errors

    def write_files(self) -> int:
        """Writes the generated files, returning how many changed on disk."""
        if not self.config.write_to_disk or self.config.dry_run:
            return 0

        written = 0
        targets = [
            (self.config.cpp_output_dir, "cpp"),
            (self.config.hs_output_dir, "hs"),
        ]
        for output_dir, key in targets:
            if output_dir is None:
                continue
            for relative_path, contents in sorted(self._outputs[key].files.items()):
                if write_file_if_different(Path(output_dir) / relative_path, contents):
                    written += 1
        return written

    def get_generated_files(self) -> List[str]:
        files = []
        for output_dir, key in ((self.config.cpp_output_dir, "cpp"), (self.config.hs_output_dir, "hs")):
            if output_dir is not None and key in self._outputs:
                files.extend(str(Path(output_dir) / p) for p in sorted(self._outputs[key].files))
        return files


def _select_interface(interfaces: Sequence[Interface], name: Optional[str]) -> Optional[Interface]:
    if name is not None:
        for interface in interfaces:
            if interface.name == name:
                return interface
        logger.error(f"No interface named {name!r}")
        return None
    if len(interfaces) == 1:
        return interfaces[0]
    if not interfaces:
        logger.error("No interfaces to generate")
    else:
        logger.error("Multiple interfaces are defined; select one with --interface")
    return None


def _print_file_list(label: str, result: GenerationResult) -> bool:
    if not result.success:
        logger.error(f"{label} generation failed: {result.error_message}")
        return False
    for path in sorted(result.files):
        print(path)
    return True


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="Generate C++ and Haskell bindings from crossbind interfaces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate both halves of the bindings
  python my_bindings.py --gen-cpp cpp --gen-hs hs

  # Pick one of several interfaces
  python my_bindings.py --interface foo --gen-hs hs

  # List the interfaces and exit
  python my_bindings.py --list-interfaces
        """,
    )

    parser.add_argument(
        "--load",
        metavar="MODULE:ATTR",
        help="Load the interfaces from a module attribute (an Interface or a list of them)",
    )
    parser.add_argument(
        "--interface",
        "-i",
        metavar="NAME",
        help="Interface to generate (required when several are defined)",
    )
    parser.add_argument(
        "--list-interfaces",
        action="store_true",
        help="List the available interfaces and exit",
    )
    parser.add_argument(
        "--gen-cpp",
        metavar="DIR",
        help="Generate the C++ shim into an existing directory",
    )
    parser.add_argument(
        "--gen-hs",
        metavar="DIR",
        help="Generate the Haskell modules into an existing directory",
    )
    parser.add_argument(
        "--list-cpp-files",
        action="store_true",
        help="List the C++ files that would be generated",
    )
    parser.add_argument(
        "--list-hs-files",
        action="store_true",
        help="List the Haskell files that would be generated",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate but don't write files",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    return parser


def load_interfaces(spec: str) -> List[Interface]:
    """Imports MODULE and returns its ATTR, as a list of interfaces."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Expected MODULE:ATTR, got {spec!r}")
    value = getattr(importlib.import_module(module_name), attr)
    if isinstance(value, Interface):
        return [value]
    return list(value)


def run(interfaces: Sequence[Interface], argv: Optional[Sequence[str]] = None) -> int:
    """
    Runs the generator command line over the given interfaces.

    Args:
        interfaces: Interfaces the command line can select from
        argv: Arguments, without the program name (defaults to sys.argv[1:])

    Returns:
        Process exit code
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    interfaces = list(interfaces)
    if args.load:
        try:
            interfaces.extend(load_interfaces(args.load))
        except (ImportError, AttributeError, ValueError) as e:
            logger.error(f"Failed to load interfaces from {args.load}: {e}")
            return 1

    if args.list_interfaces:
        for interface in interfaces:
            print(interface.name)
        return 0

    interface = _select_interface(interfaces, args.interface)
    if interface is None:
        return 1

    for option, directory in (("--gen-cpp", args.gen_cpp), ("--gen-hs", args.gen_hs)):
        if directory is not None and not Path(directory).is_dir():
            logger.error(f"{option}: directory {directory} doesn't exist")
            return 1

    config = GeneratorConfig(
        cpp_output_dir=args.gen_cpp,
        hs_output_dir=args.gen_hs,
        dry_run=args.dry_run,
    )
    orchestrator = GenerationOrchestrator(interface, config)

    if args.list_cpp_files and not _print_file_list("C++", orchestrator.generate_cpp()):
        return 1
    if args.list_hs_files and not _print_file_list("Haskell", orchestrator.generate_hs()):
        return 1

    errors = orchestrator.generate()
    if errors:
        for error in errors:
            logger.error(error)
        return 1

    if args.dry_run:
        generated = orchestrator.get_generated_files()
        logger.info(f"Dry run: would write {len(generated)} files")
        for path in generated:
            logger.info(f"  {path}")
    elif args.gen_cpp is not None or args.gen_hs is not None:
        files_written = orchestrator.write_files()
        logger.info(f"Wrote {files_written} changed files for interface {interface.name}")

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for command-line usage, with interfaces given by --load."""
    return run([], argv)


if __name__ == "__main__":
    sys.exit(main())
