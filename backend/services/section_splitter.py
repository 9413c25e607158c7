"""Split newline-delimited AI text into ordered item lists."""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class SplitItems:
    items: Tuple[str, ...]
    total: int

    @property
    def overflow_count(self) -> int:
        return self.total - len(self.items)

    @property
    def overflow_label(self) -> Optional[str]:
        return overflow_label(self.overflow_count)


def overflow_label(hidden: int, noun: str = "") -> Optional[str]:
    """'+N more' indicator for capped lists, None when nothing was hidden."""
    if hidden <= 0:
        return None
    return f"+{hidden} more {noun}".rstrip()


def cap(items: Sequence[T], max_items: Optional[int]) -> Tuple[T, ...]:
    if max_items is None:
        return tuple(items)
    return tuple(items[:max(max_items, 0)])


def split_items(text: Optional[str], max_items: Optional[int] = None) -> SplitItems:
    """
    Split text on newlines, trimming each line and dropping blank ones.

    With max_items, only the first max_items lines are kept; the number of
    hidden lines is reported through overflow_count / overflow_label so the
    caller can render a "+N more" indicator instead of dropping them silently.
    """
    if not text:
        return SplitItems(items=(), total=0)
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]
    return SplitItems(items=cap(lines, max_items), total=len(lines))
