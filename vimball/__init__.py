"""Create and install vimballs without vim.

A vimball is a plain-text container holding the files of a vim plugin:
- a three line signature
- for each member: "<path>\\t[[[1", the line count, then the lines

Packing is driven by recipe files (one member path per line); installing
extracts the members below the vimfiles directory and records them for
later removal.
"""

__version__ = "1.0.217"

__all__ = []
