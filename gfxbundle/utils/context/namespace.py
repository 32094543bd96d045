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

import argparse


# Parsed arguments of one command, as returned by CliCommand.cli()
class CliNameSpace(argparse.Namespace):
    def get(self, name, default=None):
        return getattr(self, name, default)
