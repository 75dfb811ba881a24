"""Errors raised by the detection and synthesis collaborators."""


class DetectionError(RuntimeError):
    """Vision service unreachable, timed out, or returned an error."""


class SynthesisError(RuntimeError):
    """Image synthesis failed or returned unusable data."""


class SynthesisTimeout(SynthesisError):
    """Image synthesis did not finish before the request deadline."""
