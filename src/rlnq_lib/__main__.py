# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

from rlnq_lib.rlnq import cli

if __name__ == "__main__":
    cli()
