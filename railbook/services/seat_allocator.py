"""
Fallback seat allocation.

Pure and deterministic: the same (preferred, count) always yields the same
plans. The allocator only proposes candidates; the seat-selection stage and the
API booking path try them against the live site in order.
"""

from collections.abc import Sequence

from railbook.models.flow import SeatAllocationPlan, SeatSource

ROW_LETTERS = ("A", "B", "C", "D", "E", "F")

COMMON_ROW_TEMPLATES: tuple[tuple[str, ...], ...] = (
    ("1A", "1B", "1C", "1D", "1E", "1F"),
    ("2A", "2B", "2C", "2D", "2E", "2F"),
    ("3A", "3B", "3C", "3D", "3E", "3F"),
    ("A1", "A2", "A3", "A4", "A5", "A6"),
    ("B1", "B2", "B3", "B4", "B5", "B6"),
    ("S1", "S2", "S3", "S4", "S5", "S6"),
)


def generic_pattern(count: int) -> list[str]:
    """A1, B1, ... F1, A2, B2, ... for `count` seats."""
    return [
        f"{ROW_LETTERS[i % len(ROW_LETTERS)]}{i // len(ROW_LETTERS) + 1}" for i in range(count)
    ]


def common_pattern(count: int) -> list[str]:
    """Walk the common row templates in order, then pad with S{n}."""
    seats: list[str] = []
    template_index = 0
    for i in range(count):
        if template_index < len(COMMON_ROW_TEMPLATES):
            template = COMMON_ROW_TEMPLATES[template_index]
            seats.append(template[i % len(template)])
            if (i + 1) % len(template) == 0:
                template_index += 1
        else:
            seats.append(f"S{i + 1}")
    return seats


def backup_plans(count: int) -> list[SeatAllocationPlan]:
    """Backup plans in the order callers should try them."""
    assert count > 0, "seat count must be validated by the caller"
    return [
        SeatAllocationPlan(SeatSource.GENERIC_PATTERN, tuple(generic_pattern(count)), count),
        SeatAllocationPlan(SeatSource.COMMON_PATTERN, tuple(common_pattern(count)), count),
        SeatAllocationPlan(SeatSource.COUNT_ONLY, (), count),
    ]


def allocate(preferred: Sequence[str], count: int) -> SeatAllocationPlan:
    """
    Pick the seat plan for a request.

    If there are enough preferred seats, the first `count` of them are used.
    Otherwise the first backup plan is returned; see backup_plans() for the rest.
    """
    assert count > 0, "seat count must be validated by the caller"
    if len(preferred) >= count:
        return SeatAllocationPlan(SeatSource.PREFERRED, tuple(preferred[:count]), count)
    return backup_plans(count)[0]


def candidate_plans(preferred: Sequence[str], count: int) -> list[SeatAllocationPlan]:
    """Preferred seats first (if any), then every backup plan."""
    plans = []
    if preferred:
        plans.append(SeatAllocationPlan(SeatSource.PREFERRED, tuple(preferred[:count]), count))
    plans.extend(backup_plans(count))
    return plans
