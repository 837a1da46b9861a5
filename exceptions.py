# exceptions.py
"""
FILE: exceptions.py
DESCRIPTION:
  Error types raised while reading the DataEasy dumps.
  - Registry errors are fatal at startup (no device list).
  - Channel / readings errors only abort the current cycle of one device.
"""


class DataEasyError(Exception):
    """Base class for every DataEasy bridge error."""


class RegistryFetchError(DataEasyError):
    """The meter registry could not be downloaded."""


class RegistryFormatError(DataEasyError):
    """The meter registry was flagged by the server or has no header row."""


class ChannelFetchError(DataEasyError):
    """The channel definitions of a device are unreadable or missing."""


class ReadingsFetchError(DataEasyError):
    """The last log line of a device is unreadable, empty or flagged."""


class AlignmentError(DataEasyError, ValueError):
    """A reading set does not line up with the channel schema it was decoded against."""
