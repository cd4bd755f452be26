"""
Error kinds raised by the texturing pipeline.

Every fatal condition of a texturing run derives from TexturingError, so the
two entry points (CLI and library call) can handle them in one place:

    ConfigurationError    — bad settings or a missing destination directory
    LoadError             — mesh, view set or label vector could not be read
    DataCostLoadError     — a precomputed data cost file could not be read
    LabelingMismatchError — a label vector does not fit the mesh/scene
    OutputError           — the model or an intermediate file could not be written

None of these are retried. The CLI reports them and exits with a nonzero
status; the library call turns them into its returned error string.
"""


class TexturingError(Exception):
    """
    Base class for all fatal texturing errors.

    The message is meant to be shown to the user as-is, so it should say
    which input or stage failed.
    """
    pass


class ConfigurationError(TexturingError):
    """Raised for invalid settings or a destination directory that does not exist."""
    pass


class LoadError(TexturingError):
    """Raised when the mesh, the view set or a label vector file fails to load."""
    pass


class DataCostLoadError(LoadError):
    """Raised when a precomputed data cost file fails to load."""
    pass


class LabelingMismatchError(TexturingError):
    """
    Raised when a label vector does not match the mesh/scene combination.

    Either the vector length differs from the number of faces, or it holds
    a label that addresses a view beyond the loaded view set.
    """
    pass


class OutputError(TexturingError):
    """Raised when serializing the model or an intermediate artifact fails."""
    pass
