"""Citation data model."""
from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class Citation:
    """A numbered reference to a retrieved passage, matching ``[id]`` in the answer."""
    id: int
    text: str
    source: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
