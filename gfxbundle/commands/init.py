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
import argparse
from copier import run_copy

from gfxbundle.utils.context.namespace import CliNameSpace
from gfxbundle.utils.context.context import CliContext
from gfxbundle.utils.context.command import CliCommand
from gfxbundle.utils.variant.config import CONFIG_FILE_NAME

SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]
TEMPLATE_PATH = os.path.join(os.path.dirname(SCRIPT_PATH), "templates", "project")


def parse_data(items) -> dict:
    """Parse KEY=VALUE items, "true"/"false" become booleans."""
    data = {}
    for item in items or []:
        if "=" not in item:
            print(f"⚠️  Ignoring --data '{item}', expected KEY=VALUE")
            continue
        key, value = item.split("=", 1)
        if value.lower() == "true":
            value = True
        elif value.lower() == "false":
            value = False
        data[key.strip()] = value
    return data


class Init(CliCommand):
    def description(self) -> str:
        return """
        Create a starter GFXBUNDLE.toml.

        By default, the command runs in non-interactive mode using default values.
        Use --interact to enable interactive mode with prompts.

        Examples:
            gfxbundle init
            gfxbundle init samples --interact
            gfxbundle init --data app_name=computeshader --data validation_layer=false
        """

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument(
            "path",
            nargs="?",
            default=".",
            help="Directory to create GFXBUNDLE.toml in (default: current directory)",
        )
        parser.add_argument(
            "--data",
            action="append",
            help="Template data in KEY=VALUE format (can be used multiple times)",
        )
        parser.add_argument(
            "--interact",
            action="store_true",
            help="Enable interactive mode with prompts (default is non-interactive)",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Overwrite an existing GFXBUNDLE.toml without asking",
        )

    def exec(self, context: CliContext, args: CliNameSpace):
        dst_path = os.path.abspath(args.path)
        config_path = os.path.join(dst_path, CONFIG_FILE_NAME)
        print(f"Initializing {CONFIG_FILE_NAME} in '{dst_path}'")

        if os.path.exists(config_path) and not args.get("force"):
            print(f"\n⚠️  WARNING: {config_path} already exists!")
            response = input("\nDo you want to overwrite it? (y/N): ")
            if response.lower() != "y":
                print("Aborted.")
                sys.exit(0)

        data = parse_data(args.get("data"))
        # Use defaults for unspecified questions unless --interact is provided
        use_defaults = not args.get("interact")

        run_copy(
            TEMPLATE_PATH,
            dst_path,
            data=data,
            defaults=use_defaults,
            overwrite=True,
            quiet=True,
        )

        print(f"\n✅ Created {config_path}")
        print("\nNext steps:")
        print(f"  # Edit {CONFIG_FILE_NAME} and add one [[app]] table per app")
        print("  gfxbundle check")
        print("  gfxbundle prepare")
