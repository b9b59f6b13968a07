from dataclasses import dataclass, field


@dataclass(frozen=True)
class ListPage:
    """One page of a prefix listing."""

    items: list[str] = field(default_factory=list)
    next_token: str | None = None
