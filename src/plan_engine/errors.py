"""Exception hierarchy for the plan engine."""

from __future__ import annotations


class PlanEngineError(Exception):
    """Base class for all plan engine errors."""


class InvalidPlanShellError(PlanEngineError, ValueError):
    """Plan shell parameters cannot produce a plan."""


class CandidateValidationError(PlanEngineError, ValueError):
    """A candidate is missing required data or carries malformed nutrition."""


class ProtocolError(PlanEngineError, ValueError):
    """A protocol request is invalid or unsafe."""


class PhaseLookupError(ProtocolError):
    """A day falls outside every phase of a protocol."""


class GenerationServiceError(PlanEngineError):
    """The external generation service failed or returned nothing usable."""


class ImageResolutionError(PlanEngineError):
    """An image could not be generated or uploaded."""


class StorageError(PlanEngineError):
    """The persistence collaborator rejected a candidate."""
