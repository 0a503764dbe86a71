from __future__ import annotations


class InteractionIRError(Exception):
    """Base class for errors raised by the interaction IR engine."""


class IRFormatError(InteractionIRError, ValueError):
    pass


class ConfigError(InteractionIRError):
    pass


class SessionError(InteractionIRError):
    pass
