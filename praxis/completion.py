"""Background completion details for a finished entity.

When an entity (a task, usually) is completed, a summary and a celebration
image are generated off the request path. Both calls run side by side and
neither can cancel the other; whatever succeeded is merged into one
:class:`CompletionEvent`. The caller applies events through
:class:`EntityVersions`, which ignores any event that arrives after the
entity was undone or changed again.
"""
import asyncio
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from core.logging import logger
from praxis.types import FeatureType, Request, Response

__all__ = [
    "CompletionEvent",
    "CompletionDispatcher",
    "EntityVersions",
    "generate_completion_details",
]

IMAGE_PROMPT = (
    "An abstract, celebratory, vibrant digital artwork representing the successful "
    "completion of the task: \"{title}\". Minimalist, no text."
)


class CompletionEvent(BaseModel):
    """Details generated for one completion, tagged with the version that triggered it."""
    model_config = ConfigDict(frozen=True)

    entity_id: str
    issued_at_version: int
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.payload


def _summary_payload(response: Response) -> Optional[Dict[str, Any]]:
    summary = response.structured_payload
    if not isinstance(summary, dict):
        return None
    return {k: summary[k] for k in ("newTitle", "shortInsight") if isinstance(summary.get(k), str)} or None


async def generate_completion_details(
    orchestrator,
    entity_id: str,
    title: str,
    version: int,
    caller_id: str = "completion",
) -> CompletionEvent:
    """Issue the summary and image requests concurrently and merge the results."""
    summary_request = Request(
        caller_id=caller_id,
        message=f"Completed task: {title}",
        feature_type=FeatureType.COMPLETION_SUMMARY,
    )
    image_request = Request(
        caller_id=caller_id,
        message=IMAGE_PROMPT.format(title=title),
        feature_type=FeatureType.COMPLETION_IMAGE,
    )

    summary, image = await asyncio.gather(
        orchestrator.process(summary_request),
        orchestrator.process(image_request),
        return_exceptions=True,
    )

    payload: Dict[str, Any] = {}
    if isinstance(summary, BaseException):
        logger.error(f"Completion summary for {entity_id} failed: {summary!r}")
    elif not summary.degraded:
        merged = _summary_payload(summary)
        if merged:
            payload["summary"] = merged
        else:
            logger.warning(f"Completion summary for {entity_id} had no usable fields")

    if isinstance(image, BaseException):
        logger.error(f"Completion image for {entity_id} failed: {image!r}")
    elif not image.degraded:
        payload["image_url"] = image.content

    return CompletionEvent(entity_id=entity_id, issued_at_version=version, payload=payload)


class CompletionDispatcher:
    """Fire-and-forget scheduling of completion details.

    Finished events are posted to ``queue``; the consumer decides when to
    apply them.
    """

    def __init__(self, orchestrator, queue: Optional[asyncio.Queue] = None):
        self.orchestrator = orchestrator
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()

    def fire_and_forget(self, entity_id: str, title: str, version: int) -> asyncio.Task:
        task = asyncio.create_task(self._run(entity_id, title, version))
        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, entity_id: str, title: str, version: int) -> None:
        try:
            event = await generate_completion_details(self.orchestrator, entity_id, title, version)
        except Exception as e:
            logger.error(f"Background completion for {entity_id} failed: {e}", exc_info=True)
            return
        if event.empty:
            logger.info(f"No completion details generated for {entity_id}")
            return
        await self.queue.put(event)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled generation to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class EntityVersions:
    """Caller-side record of entity versions used to guard late merges.

    Every state change of an entity (completing it, undoing it) bumps its
    version. An event is applied only when it was issued against the version
    that is still current, so a result arriving after an undo is discarded.
    Applying the same event twice is a no-op.
    """

    def __init__(self):
        self._versions: Dict[str, int] = {}
        self._applied: Set[Tuple[str, int]] = set()
        self.details: Dict[str, Dict[str, Any]] = {}

    def current(self, entity_id: str) -> int:
        return self._versions.get(entity_id, 0)

    def bump(self, entity_id: str) -> int:
        version = self.current(entity_id) + 1
        self._versions[entity_id] = version
        return version

    def invalidate(self, entity_id: str) -> int:
        """Undo: drops merged details and moves the entity past any in-flight event."""
        self.details.pop(entity_id, None)
        return self.bump(entity_id)

    def apply(self, event: CompletionEvent) -> bool:
        marker = (event.entity_id, event.issued_at_version)
        if marker in self._applied:
            return False
        if event.issued_at_version != self.current(event.entity_id):
            logger.info(
                f"Discarding stale completion for {event.entity_id} "
                f"(issued at v{event.issued_at_version}, now v{self.current(event.entity_id)})"
            )
            return False
        self.details.setdefault(event.entity_id, {}).update(event.payload)
        self._applied.add(marker)
        return True

    def apply_all(self, events: List[CompletionEvent]) -> int:
        return sum(1 for event in events if self.apply(event))
