"""Exceptions shared across the FluidWatch pipeline."""


class FluidWatchError(Exception):
    """Base class for FluidWatch errors."""


class PatientNotFound(FluidWatchError):
    """Raised when a patient id no longer resolves to a stored patient."""

    def __init__(self, patient_id):
        super().__init__(f"patient {patient_id} not found")
        self.patient_id = patient_id


class UpstreamUnavailable(FluidWatchError):
    """Database or sensor feed could not be reached. Callers may retry."""

    retryable = True
