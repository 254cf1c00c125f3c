"""Exception types raised by treepager."""


class DataSourceError(RuntimeError):
    """A data source could not answer a fetch or count request."""


class OperationCancelledError(RuntimeError):
    """A cancellation token was triggered while work was pending."""
