#
# Copyright 2024 gfxbundle Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

import os
import sys
import importlib
import argparse

from gfxbundle.utils.context.namespace import CliNameSpace
from gfxbundle.utils.context.context import CliContext
from gfxbundle.utils.context.command import CliCommand

SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]


# Root Class for Command Line Interface
class Cli(CliCommand):
    def description(self) -> str:
        return """gfxbundle - Android bundle preparation for native graphics demos

Stages resources and the Vulkan validation layer into an Android app module,
then builds its native libraries with CMake and the NDK for every ABI.

USAGE:
    gfxbundle <command> [options]

COMMANDS:
    prepare     Stage assets and validation layer, then build native libraries
    check       Check config, staging sources and native toolchain
    clean       Remove staged files and native build trees
    init        Create a GFXBUNDLE.toml from the bundled template

EXAMPLES:
    gfxbundle init .                          # Create GFXBUNDLE.toml
    gfxbundle check                           # Verify everything before building
    gfxbundle prepare computeshader           # Prepare one app
    gfxbundle prepare all --release           # Prepare every app in release mode
    gfxbundle prepare all --arch arm64 -j 2   # Only arm64-v8a, 2 parallel builds
    gfxbundle clean all --dry-run             # Preview what clean would remove

For more information on a specific command:
    gfxbundle <command> --help
        """

    def get_command_list(self) -> list:
        arr = []
        for command in os.listdir(os.path.join(SCRIPT_PATH, "commands")):
            if not command.startswith("_") and command.endswith(".py"):
                arr.append(os.path.splitext(os.path.basename(command))[0])
        return sorted(arr)

    def _parser(self, add_help) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="gfxbundle",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
            add_help=add_help,
        )
        parser.add_argument(
            "subcommand",
            metavar=f"{self.get_command_list()}",
            type=str,
            nargs="?" if not add_help else None,
            choices=self.get_command_list(),
        )
        return parser

    def cli(self, argv=None) -> CliNameSpace:
        argv = sys.argv[1:] if argv is None else argv
        # gfxbundle --help, but NOT gfxbundle prepare --help
        if len(argv) == 1 and argv[0] in ["--help", "-h"]:
            self._parser(add_help=True).print_help()
            sys.exit(0)
        args, unknown = self._parser(add_help=False).parse_known_args(
            argv, namespace=CliNameSpace()
        )
        args.rest = list(argv)
        if args.subcommand:
            args.rest.remove(args.subcommand)
        return args

    def load_command(self, name) -> CliCommand:
        module = importlib.import_module(f"gfxbundle.commands.{name}")
        klass = getattr(module, name.capitalize())
        return klass()

    def exec(self, context: CliContext, args: CliNameSpace):
        if not args.subcommand:
            print("ERROR: No command specified\n")
            self._parser(add_help=True).print_help()
            sys.exit(1)

        sub_cmd = self.load_command(args.subcommand)
        return sub_cmd.exec(context, sub_cmd.cli(args.rest))


def main(argv=None):
    cmd = Cli()
    return cmd.exec(CliContext(), cmd.cli(argv))


if __name__ == "__main__":
    main()
