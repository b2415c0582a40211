from __future__ import annotations


class PitchCoachError(Exception):
    """Base class for errors raised by the transcription pipeline."""


class PermissionDenied(PitchCoachError):
    """The platform refused access to the microphone."""


class UnsupportedDevice(PitchCoachError):
    """No audio capture backend or input device is available."""


class AlreadyActive(PitchCoachError):
    """A capture is already running on this client instance."""


class ProviderConnectionFailed(PitchCoachError):
    """A streaming connection to the speech-to-text provider could not be opened."""


class InvalidAudioChunk(PitchCoachError):
    """An inbound audio chunk failed validation."""


class ProcessingFailure(PitchCoachError):
    """Unexpected failure while handling an audio chunk."""


class SessionNotFound(PitchCoachError):
    """No session with the given id exists for the current tenant."""


class InvalidSessionTransition(PitchCoachError):
    """The requested lifecycle change is not allowed from the current status."""
