from __future__ import annotations


class ContractsError(RuntimeError):
    """Base error for contracts package failures"""


class ContractsResourceError(ContractsError):
    """
    Raised when a required contract resource file cannot be located or read

    Raised as a RuntimeError rather than FileNotFoundError so callers treat it as
    a broken or mispackaged `contracts` install, not a missing user path.
    """


class EventValidationError(ContractsError):
    """Inbound event envelope did not validate against its shipped JSON schema"""


class RulesValidationError(ContractsError):
    """Routing rule document did not validate against the shipped JSON schema"""
