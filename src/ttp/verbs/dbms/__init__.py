# @(#) manage the DBMS instances of the node
"""The ``dbms`` command."""
