# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from buildwatch.cli.parser import cli_main

if __name__ == "__main__":
    cli_main()
