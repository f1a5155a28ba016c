"""Per-conversation sequencing of message sends."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict
from uuid import UUID

import structlog

logger = structlog.get_logger()


@dataclass
class QueuedSend:
    """A unit of work waiting for its turn in a conversation."""

    conversation_id: UUID
    task: Callable[..., Awaitable[Any]]
    args: tuple
    kwargs: dict
    future: asyncio.Future


class ConversationSendQueue:
    """Runs the work queued for one conversation strictly one at a time, in FIFO order.

    Sends to different conversations proceed concurrently. A worker task is
    started for a conversation on its first send and exits once its queue
    drains, so idle conversations hold no tasks.
    """

    def __init__(self) -> None:
        """Initialize an empty set of conversation queues."""
        self._lock = asyncio.Lock()
        self._queues: Dict[UUID, asyncio.Queue] = {}
        self._workers: Dict[UUID, asyncio.Task] = {}
        self._closed = False

    async def enqueue(
        self,
        conversation_id: UUID,
        task: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Queue ``task`` behind earlier sends to the same conversation and wait for its result."""
        future = asyncio.get_running_loop().create_future()
        async with self._lock:
            if self._closed:
                raise RuntimeError("Send queue is closed")
            queue = self._queues.get(conversation_id)
            if queue is None:
                queue = self._queues[conversation_id] = asyncio.Queue()
                self._workers[conversation_id] = asyncio.create_task(
                    self._process_queue(conversation_id, queue)
                )
            queue.put_nowait(QueuedSend(conversation_id, task, args, kwargs, future))
            logger.debug("send_enqueued", conversation_id=str(conversation_id), depth=queue.qsize())
        return await future

    async def _process_queue(self, conversation_id: UUID, queue: asyncio.Queue) -> None:
        while True:
            async with self._lock:
                if queue.empty():
                    self._queues.pop(conversation_id, None)
                    self._workers.pop(conversation_id, None)
                    return
                request = queue.get_nowait()

            # The caller went away before its turn.
            if request.future.done():
                continue
            try:
                result = await request.task(*request.args, **request.kwargs)
            except asyncio.CancelledError:
                if not request.future.done():
                    request.future.cancel()
                raise
            except Exception as e:
                logger.error("send_processing_error", conversation_id=str(conversation_id), error=str(e))
                if not request.future.done():
                    request.future.set_exception(e)
            else:
                if not request.future.done():
                    request.future.set_result(result)

    async def cleanup(self) -> None:
        """Cancel running workers and fail any sends still waiting."""
        async with self._lock:
            self._closed = True
            workers = list(self._workers.values())
            for queue in self._queues.values():
                while not queue.empty():
                    request = queue.get_nowait()
                    if not request.future.done():
                        request.future.cancel()
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            self._queues.clear()
            self._workers.clear()

        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        logger.info("send_queue_cleaned_up", workers=len(workers))
