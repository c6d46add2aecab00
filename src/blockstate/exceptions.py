class InvalidOperation(ValueError):
    """
    Raised when a requested mutation is not allowed on the current state,
    e.g. moving a vertex across a constraint-label barrier or merging
    vertices of an unweighted graph.
    """


class UnsupportedConfiguration(NotImplementedError):
    """
    Raised when a combination of model options is not implemented,
    e.g. the dense entropy of a degree-corrected model.
    """
