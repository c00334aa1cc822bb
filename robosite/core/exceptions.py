# FILE: robosite/core/exceptions.py
"""
Failure taxonomy for the site generation pipeline.

Every error here is terminal for the job: the runner records str(exc) on the
job record and lets the queue decide about redelivery.
"""


class PipelineError(Exception):
    pass


class ValidationError(PipelineError):
    """Bad or missing identifiers/configuration, raised before any external call."""


class GenerationError(PipelineError):
    """Empty or unparseable model output, or a failed model request."""


class GenerationTimeoutError(GenerationError, TimeoutError):
    """Model call exceeded OPENAI_TIMEOUT_MS."""


class BuildError(PipelineError):
    """External toolchain exited non-zero or could not be spawned."""


class PublishError(PipelineError):
    """Object storage write failed."""
