"""Exception and warning types."""


class ConfigurationError(ValueError):
    """Invalid liftover configuration (bad threshold range or option combination)."""


class ChainDataError(ValueError):
    """A chain violates block ordering, size or span invariants."""

    def __init__(self, message, chain_id=None):
        super().__init__(message)
        self.chain_id = chain_id


class ChainDataWarning(UserWarning):
    """A malformed chain was dropped while building a chain map."""
