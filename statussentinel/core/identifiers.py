import re

from statussentinel.core.exceptions import IdentifierError

_DISALLOWED = re.compile(r"[^a-z0-9_]")


def normalize_service_id(name: str) -> str:
    """Derive the stable service identifier from a display name.

    Lowercases, turns spaces into underscores, then drops everything that is
    not an ASCII letter, digit or underscore.

        >>> normalize_service_id("My Service!")
        'my_service'
    """
    service_id = _DISALLOWED.sub("", name.lower().replace(" ", "_"))
    if not service_id:
        raise IdentifierError(
            f"Service name {name!r} does not contain any usable characters.",
            details={"name": name},
        )
    return service_id
