"""Background execution for bytecode diffs.

A DiffRequest carries {a, b, granularity, request_id}; a DiffResponse
carries {request_id, result | error}. DiffSession only accepts the
response to its most recent request, so inputs that change while a
computation is in flight never surface a stale result.
"""

import asyncio
import itertools
import logging
import multiprocessing
from typing import Optional, Set

from pydantic import BaseModel

from verikit.kernel.bytecode_diff import BytecodeDiffResult, Granularity, diff

logger = logging.getLogger(__name__)


class DiffRequest(BaseModel):
    a: str
    b: str
    granularity: Granularity = "char"
    request_id: int


class DiffResponse(BaseModel):
    request_id: int
    result: Optional[BytecodeDiffResult] = None
    error: Optional[str] = None


def handle_request(request: DiffRequest) -> DiffResponse:
    """Compute one request. Runs in whichever context the executor chose."""
    try:
        result = diff(request.a, request.b, request.granularity)
    except ValueError as e:
        return DiffResponse(request_id=request.request_id, error=str(e))
    return DiffResponse(request_id=request.request_id, result=result)


def _serve(payload: dict, conn) -> None:
    # worker process entry point; plain dicts cross the process boundary
    try:
        conn.send(handle_request(DiffRequest(**payload)).model_dump())
    finally:
        conn.close()


def _receive(conn) -> Optional[dict]:
    try:
        return conn.recv()
    except EOFError:
        # worker exited without answering
        return None
    finally:
        conn.close()


def _terminate(process, timeout: float = 5.0) -> None:
    """Terminate a worker, killing it if it outlives the timeout."""
    if process.exitcode is not None:
        return
    process.terminate()
    process.join(timeout)
    if process.exitcode is None:
        process.kill()
        process.join()


class DiffExecutor:
    """Runs DiffRequests somewhere and returns DiffResponses."""

    async def run(self, request: DiffRequest) -> DiffResponse:
        raise NotImplementedError

    def cancel(self) -> None:
        """Stop work started by run() that is still in flight."""

    def shutdown(self) -> None:
        pass


class LocalDiffExecutor(DiffExecutor):
    """Same-thread execution; yields to the loop once before computing."""

    async def run(self, request: DiffRequest) -> DiffResponse:
        await asyncio.sleep(0)
        return handle_request(request)


class ProcessDiffExecutor(DiffExecutor):
    """One worker process per request, answering over a pipe.

    cancel() terminates the workers, so a superseded diff never keeps a
    CPU busy or delays the next request.
    """

    def __init__(self):
        self._context = multiprocessing.get_context()
        # raises on platforms without working pipes
        for conn in self._context.Pipe(duplex=False):
            conn.close()
        self._workers: Set[multiprocessing.process.BaseProcess] = set()

    @property
    def active_workers(self) -> int:
        return sum(1 for worker in self._workers if worker.is_alive())

    async def run(self, request: DiffRequest) -> DiffResponse:
        loop = asyncio.get_running_loop()
        receiver, sender = self._context.Pipe(duplex=False)
        worker = self._context.Process(target=_serve, args=(request.model_dump(), sender), daemon=True)
        worker.start()
        sender.close()
        self._workers.add(worker)
        try:
            payload = await loop.run_in_executor(None, _receive, receiver)
        except asyncio.CancelledError:
            _terminate(worker)
            raise
        finally:
            self._workers.discard(worker)
        await loop.run_in_executor(None, worker.join)

        if payload is None:
            return DiffResponse(
                request_id=request.request_id,
                error=f"Diff worker exited with code {worker.exitcode}",
            )
        return DiffResponse(**payload)

    def cancel(self) -> None:
        for worker in list(self._workers):
            logger.debug("Terminating diff worker %s", worker.pid)
            _terminate(worker)

    def shutdown(self) -> None:
        self.cancel()


def select_executor(prefer_process: bool = True) -> DiffExecutor:
    """Pick a worker-process executor when the platform supports one."""
    if prefer_process:
        try:
            return ProcessDiffExecutor()
        except (OSError, NotImplementedError, ImportError) as e:
            logger.info("Worker processes unavailable, diffing inline: %s", e)
    return LocalDiffExecutor()


class DiffSession:
    """Tracks the latest diff request for one consumer (e.g. a diff view).

    compute() returns None when its response was superseded by a newer
    request or the session was cancelled in the meantime.
    """

    def __init__(self, executor: Optional[DiffExecutor] = None):
        self._executor = executor or select_executor()
        self._ids = itertools.count(1)
        self._latest_id = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def latest_request_id(self) -> int:
        return self._latest_id

    def accepts(self, response: DiffResponse) -> bool:
        return response.request_id == self._latest_id

    async def compute(self, a: str, b: str, granularity: Granularity = "char") -> Optional[DiffResponse]:
        self.cancel()
        request = DiffRequest(a=a, b=b, granularity=granularity, request_id=next(self._ids))
        self._latest_id = request.request_id
        task = asyncio.ensure_future(self._executor.run(request))
        self._task = task
        try:
            response = await task
        except asyncio.CancelledError:
            if task.cancelled() and self._task is not task:
                # superseded by a newer compute() or cancel()
                return None
            raise
        finally:
            if self._task is task:
                self._task = None

        if not self.accepts(response):
            logger.debug("Discarding stale diff response %s (latest %s)", response.request_id, self._latest_id)
            return None
        return response

    def cancel(self) -> None:
        """Stop any in-flight computation; a fresh request is required afterwards."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._executor.cancel()
        self._task = None
        # bumping the id makes any result already on its way stale
        self._latest_id = next(self._ids)

    def close(self) -> None:
        self.cancel()
        self._executor.shutdown()
