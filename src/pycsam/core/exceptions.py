"""
Exceptions raised by the pycsam model engine.
"""


class ConfigurationError(Exception):
    """Fatal model configuration defect.

    Raised when the configuration, parameter combinations or observed
    datasets cannot be used to run the model (malformed index blocks,
    coverage gaps in a process' parameter combinations, unknown enum
    labels, etc.). These are not recoverable mid-run.
    """
    pass
