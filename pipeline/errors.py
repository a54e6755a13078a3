class PipelineError(Exception):
    """Base class for errors raised while handling a job message."""


class NoProcessorFound(PipelineError):
    pass


class NotFoundError(PipelineError):
    """Missing job record or missing source blob."""


class ProcessingError(PipelineError):
    """A codec or external tool failed."""


class MessageParseError(PipelineError):
    pass


class InvalidStatusTransition(PipelineError):
    """Update rejected: job already terminal, or progress would go backwards."""


class JobAlreadyClaimed(InvalidStatusTransition):
    """Another delivery of the same job is already processing or finished it."""
