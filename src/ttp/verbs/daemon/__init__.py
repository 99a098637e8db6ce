# @(#) manage TTP daemons
"""The ``daemon`` command."""
