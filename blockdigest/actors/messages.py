"""Message vocabulary of the blockdigest actors.

Each actor's message union is its public API:
- CollectorMsg: results flowing into the rendezvous point.
- DispatcherMsg: worker membership and task placement.
- WorkerMsg: digest execution on a worker context.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from casty import ActorRef

if TYPE_CHECKING:
    from blockdigest.digest import DigestTask
    from blockdigest.results import DigestResult

type TaskId = str
type WorkerId = int


# =============================================================================
# Collector
# =============================================================================


@dataclass(frozen=True, slots=True)
class Report:
    """A task's one and only result."""

    result: DigestResult


@dataclass(frozen=True, slots=True)
class WaitForAll:
    """Ask to be told once every expected result has arrived."""

    reply_to: ActorRef[Collected]


@dataclass(frozen=True, slots=True)
class Collected:
    results: tuple[DigestResult, ...]


type CollectorMsg = Report | WaitForAll


# =============================================================================
# Dispatcher
# =============================================================================


@dataclass(frozen=True, slots=True)
class WorkerSlots:
    ref: ActorRef[WorkerMsg]
    total: int
    used: int


@dataclass(frozen=True, slots=True)
class WorkerAvailable:
    worker_id: WorkerId
    ref: ActorRef[WorkerMsg]
    slots: int


@dataclass(frozen=True, slots=True)
class Dispatch:
    task_id: TaskId
    task: DigestTask


@dataclass(frozen=True, slots=True)
class SlotFreed:
    worker_id: WorkerId
    task_id: TaskId


type DispatcherMsg = WorkerAvailable | Dispatch | SlotFreed


# =============================================================================
# Worker
# =============================================================================


@dataclass(frozen=True, slots=True)
class RunDigest:
    task_id: TaskId
    task: DigestTask
    reply_to: ActorRef[SlotFreed]


@dataclass(frozen=True, slots=True)
class _DigestDone:
    task_id: TaskId
    task: DigestTask
    result: DigestResult
    reply_to: ActorRef[SlotFreed]


@dataclass(frozen=True, slots=True)
class _DigestErrored:
    task_id: TaskId
    task: DigestTask
    error: BaseException
    reply_to: ActorRef[SlotFreed]


type WorkerMsg = RunDigest | _DigestDone | _DigestErrored
