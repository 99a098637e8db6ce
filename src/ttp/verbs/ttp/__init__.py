# @(#) The Tools Project: a Tools System and Paradigm for IT Production
"""The ``ttp`` command."""
