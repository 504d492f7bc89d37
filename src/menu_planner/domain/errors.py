"""Domain error types."""


class GenerationError(RuntimeError):
    """Raised when the generation capability cannot produce usable output."""


class MalformedOutputError(GenerationError):
    """Raised when generated output violates its JSON schema."""


class SlotGenerationError(GenerationError):
    """Raised when a single meal slot cannot be generated acceptably."""

    def __init__(self, slot_key: str, reason: str) -> None:
        super().__init__(f"{slot_key}: {reason}")
        self.slot_key = slot_key
        self.reason = reason


class JobNotFoundError(LookupError):
    """Raised when a generation or shopping request id is unknown."""
