"""Built-in verb packages.

Each sub-package is a command; each public module in it is a verb exposing a
one-command ``app`` and its help ``DEFAULTS``.
"""
