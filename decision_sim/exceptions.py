# decision_sim/exceptions.py


class SimulationError(Exception):
    http_status = 500

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidInput(SimulationError):
    http_status = 400


class NotFound(SimulationError):
    http_status = 404


class InsufficientData(SimulationError):
    http_status = 400


class GenerationError(SimulationError):
    """
    Base for every failure of a call to the generative model.
    """


class TransportFailure(GenerationError):
    pass


class SafetyBlocked(GenerationError):
    def __init__(self, message: str, finish_reason: str | None = None, safety_ratings=None):
        super().__init__(message)
        self.finish_reason = finish_reason
        self.safety_ratings = safety_ratings or []


class EmptyOutput(GenerationError):
    pass


class MalformedOutput(GenerationError):
    def __init__(self, message: str, raw_text: str = "", problems: list[str] | None = None):
        super().__init__(message)
        self.raw_text = raw_text
        self.problems = list(problems or [])


class GenerationFailed(MalformedOutput):
    pass
