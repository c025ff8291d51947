from collections.abc import Mapping
from typing import Any


def read_field(obj: Any, *names: str) -> Any:
    """Read the first non-None field from a mapping or an attribute object.

    Lets the ordering helpers work on raw upstream dicts and pydantic models alike.
    """
    for name in names:
        if isinstance(obj, Mapping):
            if obj.get(name) is not None:
                return obj[name]
        elif getattr(obj, name, None) is not None:
            return getattr(obj, name)
    return None
