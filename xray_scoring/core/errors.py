"""Exceptions raised while setting up a scoring run."""


class ConfigurationError(ValueError):
    """
    Setup cannot continue: a material, volume or run parameter is invalid.

    Raised immediately during construction. A run with a missing sensitive
    volume or malformed histogram binning cannot produce meaningful scores,
    so there is no recovery path.
    """
