"""Issue target domain objects.

An issue belongs to exactly one publication-catalog entity: either an
edition (state level) or a sub-edition (district level). The two cases are
separate types so that "exactly one" holds by construction.
"""

from dataclasses import dataclass
from typing import Literal

TargetKind = Literal["edition", "sub-edition"]


@dataclass(frozen=True)
class EditionTarget:
    """An issue published for a whole edition.

    Attributes:
        id: Edition identifier
    """

    id: str

    @property
    def kind(self) -> TargetKind:
        return "edition"


@dataclass(frozen=True)
class SubEditionTarget:
    """An issue published for a single sub-edition.

    Attributes:
        id: Sub-edition identifier
    """

    id: str

    @property
    def kind(self) -> TargetKind:
        return "sub-edition"


Target = EditionTarget | SubEditionTarget


def target_for(kind: str, target_id: str) -> Target:
    """Rebuild a target from its persisted kind and id."""
    if kind == "edition":
        return EditionTarget(target_id)
    if kind == "sub-edition":
        return SubEditionTarget(target_id)
    raise ValueError(f"Unknown target kind: {kind}")
