from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from railbook.errors import StageFailed


class StageStatus(str, Enum):
    ADVANCED = "advanced"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StageResult:
    stage: str
    status: StageStatus
    reason: str | None = None
    last_strategy: str | None = None

    @classmethod
    def advanced(cls, stage: str, last_strategy: str | None = None) -> "StageResult":
        return cls(stage=stage, status=StageStatus.ADVANCED, last_strategy=last_strategy)

    @classmethod
    def skipped(cls, stage: str) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SKIPPED)

    @classmethod
    def failed(cls, stage: str, reason: str, last_strategy: str | None = None) -> "StageResult":
        return cls(stage=stage, status=StageStatus.FAILED, reason=reason, last_strategy=last_strategy)


class SeatSource(str, Enum):
    PREFERRED = "preferred"
    GENERIC_PATTERN = "generic_pattern"
    COMMON_PATTERN = "common_pattern"
    COUNT_ONLY = "count_only"


@dataclass(frozen=True)
class SeatAllocationPlan:
    """Seat identifiers to attempt, tagged with where they came from.

    COUNT_ONLY plans carry no seats; the count alone asks the site to assign.
    """

    source: SeatSource
    seats: tuple[str, ...]
    count: int

    def __post_init__(self) -> None:
        if len(self.seats) > self.count:
            raise ValueError(
                f"Plan holds {len(self.seats)} seats but only {self.count} were requested"
            )


class FlowStatus(str, Enum):
    COMPLETED = "completed"
    AWAITING_MANUAL_STEP = "awaiting_manual_step"
    FAILED = "failed"


class ManualStepKind(str, Enum):
    OTP = "otp"


@dataclass(frozen=True)
class FlowOutcome:
    """Terminal result of one booking run."""

    status: FlowStatus
    stage: str | None = None
    reason: str | None = None
    last_strategy: str | None = None
    manual_step: ManualStepKind | None = None
    manual_deadline: datetime | None = None
    timed_out: bool = False
    stage_results: tuple[StageResult, ...] = field(default_factory=tuple)

    @classmethod
    def completed(cls, stage_results: tuple[StageResult, ...] = ()) -> "FlowOutcome":
        return cls(status=FlowStatus.COMPLETED, stage_results=stage_results)

    @classmethod
    def awaiting_manual_step(
        cls,
        kind: ManualStepKind,
        deadline: datetime,
        stage: str | None = None,
        timed_out: bool = False,
        stage_results: tuple[StageResult, ...] = (),
    ) -> "FlowOutcome":
        reason = f"{kind.value} not completed before {deadline.isoformat(timespec='seconds')}"
        return cls(
            status=FlowStatus.AWAITING_MANUAL_STEP,
            stage=stage,
            reason=reason if timed_out else None,
            manual_step=kind,
            manual_deadline=deadline,
            timed_out=timed_out,
            stage_results=stage_results,
        )

    @classmethod
    def failed(
        cls,
        stage: str,
        reason: str,
        last_strategy: str | None = None,
        stage_results: tuple[StageResult, ...] = (),
    ) -> "FlowOutcome":
        return cls(
            status=FlowStatus.FAILED,
            stage=stage,
            reason=reason,
            last_strategy=last_strategy,
            stage_results=stage_results,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == FlowStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Raise StageFailed if the run halted on a required stage."""
        if self.status == FlowStatus.FAILED:
            raise StageFailed(self.stage or "unknown", self.reason or "", self.last_strategy)
