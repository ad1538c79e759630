from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request caller identity.

    ``username`` comes from an already verified session token; ``None``
    means an anonymous (guest) caller.
    """

    username: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.username)


GUEST = RequestContext()
