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

import sys
import argparse

from gfxbundle.utils.context.namespace import CliNameSpace
from gfxbundle.utils.context.context import CliContext


# Base class of the root command and every subcommand
class CliCommand:
    def description(self) -> str:
        return ""

    def prog(self) -> str:
        return f"gfxbundle {self.name()}"

    def name(self) -> str:
        return type(self).__name__.lower()

    def add_arguments(self, parser: argparse.ArgumentParser):
        pass

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=self.prog(),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        self.add_arguments(parser)
        return parser

    def cli(self, argv=None) -> CliNameSpace:
        if argv is None:
            # drop the subcommand name itself
            argv = [x for x in sys.argv[1:] if x != self.name()]
        args, unknown = self.build_parser().parse_known_args(
            argv, namespace=CliNameSpace()
        )
        if unknown:
            print(f"WARNING: ignoring unknown arguments: {unknown}")
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        raise NotImplementedError
