"""Exception hierarchy for the pipeline."""


class NewsroomError(Exception):
    """Base class for pipeline errors."""


class LLMError(NewsroomError):
    """A text-generation or embedding provider call failed."""


class AgentError(NewsroomError):
    """The agent path of a capability failed."""


class AgentTimeoutError(AgentError):
    """The agent path exceeded its time budget."""


class AgentOutputError(AgentError):
    """The agent returned output that could not be parsed or validated."""
