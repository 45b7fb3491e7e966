class LadderFuelsError(Exception):
    """Base class for errors raised while processing a single tree profile"""


class MalformedProfileError(LadderFuelsError, ValueError):
    """Profile is empty, has non-increasing heights, or negative LAD values"""


class NoLayersFoundError(LadderFuelsError):
    """No fuel layer with non-negligible LAD above the minimum height"""


class ConvergenceError(LadderFuelsError, RuntimeError):
    """Layer merging loop did not reach a fixed point within its iteration bound"""


class ChangepointFitError(LadderFuelsError):
    """Segmented regression could not be fit to the cumulative LAD curve"""
