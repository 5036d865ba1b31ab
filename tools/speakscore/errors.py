from __future__ import annotations


class SpeechPracticeError(Exception):
    """Base error; `code` is the stable identifier callers map to UI text."""

    code = "speech-practice-error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)


class NoRecognizerCapability(SpeechPracticeError):
    code = "no-recognizer"


class NoMediaCapability(SpeechPracticeError):
    code = "no-media"


class MicDenied(SpeechPracticeError):
    code = "mic-denied"


class AlreadyInProgress(SpeechPracticeError):
    code = "already-in-progress"


class NoTarget(SpeechPracticeError):
    code = "no-target"


class StartFailed(SpeechPracticeError):
    code = "connection-failed"


class DecodeError(SpeechPracticeError):
    code = "decode-failed"


class SessionClosed(SpeechPracticeError):
    code = "session-closed"
