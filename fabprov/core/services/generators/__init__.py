"""
Generators — render configuration documents from the settings.

Each generator returns a ``GeneratedFile``; whether an existing file is
replaced is decided by the file's ``overwrite`` flag.
"""
