# exceptions.py
"""Exception hierarchy for the infusion monitor."""


class MonitorException(Exception):
    """Base exception for the infusion monitor."""

    pass


class ApiException(MonitorException):
    """The data service could not be reached or answered with garbage."""

    pass


class ParseException(MonitorException):
    """A single telemetry record could not be decoded."""

    pass


class ConfigException(MonitorException, ValueError):
    """Invalid runtime configuration."""

    pass
