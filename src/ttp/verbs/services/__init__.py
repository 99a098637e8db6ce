# @(#) manage the services defined on the node
"""The ``services`` command."""
