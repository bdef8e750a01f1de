"""Exceptions raised by the matching engine and its capabilities."""


class MatchingError(Exception):
    """Base class for matching engine errors."""


class JurorNotFoundError(MatchingError):
    """Juror record does not exist in the store."""

    def __init__(self, juror_id: str):
        self.juror_id = juror_id
        super().__init__(f"Juror {juror_id} not found")


class PersonaNotFoundError(MatchingError):
    """Persona record does not exist in the store."""

    def __init__(self, persona_id: str):
        self.persona_id = persona_id
        super().__init__(f"Persona {persona_id} not found")


class CapabilityError(MatchingError):
    """An external capability (embedding or text generation) failed or is unavailable."""
