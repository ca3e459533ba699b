"""Dispatcher — run client calls off the host thread, complete each port once.

A host submits ``(port, kind, *args)``. The dispatcher registers a
:class:`PendingRequest` for the port, runs the matching
:class:`~identity_client.client.IdentityClient` method on a worker thread
and posts exactly one :class:`Completion` to the sink:

* a successful call completes with its result code (``OK`` unless the
  method returns an :class:`~identity_client.errors.ErrorCode`) and payload,
* a failing call completes with the error's code and message,
* a worker that exits without producing either completes with ``UNKNOWN``.

Delivery removes the pending request under a lock, so a second delivery
for the same port is detected, logged and dropped.
"""
from __future__ import annotations

import datetime
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from identity_client.errors import ChannelBusyError, ErrorCode, IdentityClientError
from identity_client.state import Operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    """The terminal message delivered to a port."""

    port: int
    code: ErrorCode
    payload: Any = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.message is None

    def to_dict(self) -> dict[str, object]:
        return {
            "port": self.port,
            "code": int(self.code),
            "payload": self.payload,
            "message": self.message,
        }


@dataclass(frozen=True)
class PendingRequest:
    port: int
    kind: Operation
    submitted_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


class CompletionSink(ABC):
    """Receives completions. :meth:`post` is called from worker threads."""

    @abstractmethod
    def post(self, completion: Completion) -> None:
        """Deliver *completion* to the host."""


class CallbackSink(CompletionSink):
    """Forwards every completion to a callable."""

    def __init__(self, callback: Callable[[Completion], None]) -> None:
        self._callback = callback

    def post(self, completion: Completion) -> None:
        self._callback(completion)


class FutureSink(CompletionSink):
    """Resolves one :class:`~concurrent.futures.Future` per port.

    :meth:`future` may be called before or after the completion arrives. A
    completion posted before anyone asked for it is held until :meth:`future`
    collects it.
    """

    def __init__(self) -> None:
        self._futures: dict[int, Future[Completion]] = {}
        self._lock = threading.Lock()

    def future(self, port: int) -> Future[Completion]:
        with self._lock:
            fut = self._futures.get(port)
            if fut is None:
                fut = Future()
                self._futures[port] = fut
            elif fut.done():
                del self._futures[port]
            return fut

    def post(self, completion: Completion) -> None:
        with self._lock:
            fut = self._futures.pop(completion.port, None)
            if fut is None or fut.done():
                # Uncollected; future() hands it out and forgets it.
                held: Future[Completion] = Future()
                held.set_result(completion)
                self._futures[completion.port] = held
                return
        fut.set_result(completion)


class Dispatcher:
    """Runs client operations on a thread pool.

    Parameters
    ----------
    client:
        The client context the operations run against.
    sink:
        Where completions are posted. Defaults to a :class:`FutureSink`.
    max_workers:
        Worker pool size. Defaults to ``client.config.max_workers``.
    """

    def __init__(
        self,
        client: Any,
        sink: Optional[CompletionSink] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self._client = client
        self.sink = sink or FutureSink()
        workers = max_workers or client.config.max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="identity-client"
        )
        self._pending: dict[int, PendingRequest] = {}
        self._waiters: dict[int, Future[Completion]] = {}
        self._lock = threading.Lock()
        # Host ports are non-negative; call() uses negative private ports.
        self._private_ports = itertools.count(-1, -1)

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def dispatch(self, port: int, kind: Union[Operation, str], *args: Any) -> PendingRequest:
        """Schedule *kind* with *args*; its result is posted to *port*.

        Raises
        ------
        ChannelBusyError
            If *port* already has a call in flight. Nothing is posted.
        ValueError
            If *kind* is not a known operation.
        """
        return self._submit(port, Operation(kind), args, None)

    def call(self, kind: Union[Operation, str], *args: Any) -> Future[Completion]:
        """Schedule *kind* on a private port and return a future of its completion."""
        port = next(self._private_ports)
        waiter: Future[Completion] = Future()
        self._submit(port, Operation(kind), args, waiter)
        return waiter

    def _submit(
        self,
        port: int,
        kind: Operation,
        args: tuple[Any, ...],
        waiter: Optional[Future[Completion]],
    ) -> PendingRequest:
        request = PendingRequest(port, kind)
        with self._lock:
            if port in self._pending:
                raise ChannelBusyError(port)
            self._pending[port] = request
            if waiter is not None:
                self._waiters[port] = waiter
        try:
            self._executor.submit(self._run, request, args)
        except RuntimeError:
            with self._lock:
                self._pending.pop(port, None)
                self._waiters.pop(port, None)
            raise
        logger.debug("Dispatched %s on port %d", kind.value, port)
        return request

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run(self, request: PendingRequest, args: tuple[Any, ...]) -> None:
        delivered = False
        try:
            delivered = self._deliver(self._execute(request, args))
        finally:
            if not delivered and self._is_pending(request.port):
                self._deliver(
                    Completion(
                        request.port,
                        ErrorCode.UNKNOWN,
                        message="Worker exited without producing a result.",
                    )
                )

    def _execute(self, request: PendingRequest, args: tuple[Any, ...]) -> Completion:
        method = getattr(self._client, request.kind.value)
        try:
            result = method(*args)
        except IdentityClientError as exc:
            return Completion(request.port, exc.code, message=exc.message)
        except Exception as exc:
            logger.error(
                "Unhandled error in %s on port %d", request.kind.value, request.port,
                exc_info=True,
            )
            return Completion(request.port, ErrorCode.UNKNOWN, message=str(exc) or repr(exc))
        if isinstance(result, ErrorCode):
            return Completion(request.port, result)
        return Completion(request.port, ErrorCode.OK, payload=result)

    def _deliver(self, completion: Completion) -> bool:
        """Post *completion* unless its port was already completed.

        Returns True if this call performed the delivery.
        """
        with self._lock:
            request = self._pending.pop(completion.port, None)
            waiter = self._waiters.pop(completion.port, None)
        if request is None:
            logger.warning(
                "Dropping duplicate completion for port %d (code %s)",
                completion.port,
                completion.code.name,
            )
            return False
        try:
            if waiter is not None:
                waiter.set_result(completion)
            else:
                self.sink.post(completion)
        except Exception:
            logger.exception("Completion sink failed for port %d", completion.port)
        logger.debug("Completed port %d with %s", completion.port, completion.code.name)
        return True

    # ------------------------------------------------------------------
    # Introspection and shutdown
    # ------------------------------------------------------------------

    def _is_pending(self, port: int) -> bool:
        with self._lock:
            return port in self._pending

    def pending(self) -> list[PendingRequest]:
        with self._lock:
            return list(self._pending.values())

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = [
    "CallbackSink",
    "Completion",
    "CompletionSink",
    "Dispatcher",
    "FutureSink",
    "PendingRequest",
]
