"""Error taxonomy shared by the graph store adapter and the services on top of it."""


class BrickshopError(Exception):
    """Base class for every error raised by brickshop."""


class StoreUnavailable(BrickshopError):
    """The graph store could not be reached or the call timed out."""


class QueryFailed(BrickshopError):
    """The store rejected or failed a well-formed request."""


class NotFound(QueryFailed):
    """A referenced entity id does not resolve."""

    def __init__(self, kind: str, entity_id: int):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class ConstraintViolation(QueryFailed):
    """A write would break an invariant of the graph model."""
