"""Single-action invocation with timeout, bounded retries and cancellation."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Mapping
from typing import Any

from owlflow.errors import (
    ActionExecutionError,
    ActionTimeoutError,
    ExecutionStoppedError,
    FlowError,
)
from owlflow.execution.options import RetryPolicy
from owlflow.registry import Action


class CancellationToken:
    """Run-scoped stop signal shared by the engine and the invoker."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; return True if cancelled meanwhile."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


class NodeInvoker:
    """Executes one resolved action under a RetryPolicy.

    The invoker is stateless: attempt counting lives in each `invoke`
    call, so every node gets its own retry budget.
    """

    async def invoke(
        self,
        action: Action,
        inputs: Mapping[str, Any],
        auth_config: dict[str, Any] | None,
        policy: RetryPolicy,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Run `action` until it succeeds or the retry budget is spent.

        Returns:
            The action outputs

        Raises:
            ActionTimeoutError: Last attempt timed out
            ActionExecutionError: Last attempt failed
            ExecutionStoppedError: The token was cancelled
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._attempt(action, inputs, auth_config, policy.timeout, cancel_token)
            except ExecutionStoppedError:
                raise
            except (ActionTimeoutError, ActionExecutionError) as e:
                if attempt > policy.max_retries:
                    sys.stderr.write(
                        f"[INVOKER] {action.id} failed after {attempt} attempt(s): {e}\n"
                    )
                    sys.stderr.flush()
                    raise

                sys.stderr.write(
                    f"[INVOKER] {action.id} attempt {attempt} failed ({e}); "
                    f"retrying in {policy.retry_delay:g}s\n"
                )
                sys.stderr.flush()

            if cancel_token is not None:
                if await cancel_token.sleep(policy.retry_delay):
                    raise ExecutionStoppedError()
            else:
                await asyncio.sleep(policy.retry_delay)

    async def _attempt(
        self,
        action: Action,
        inputs: Mapping[str, Any],
        auth_config: dict[str, Any] | None,
        timeout: float | None,
        cancel_token: CancellationToken | None,
    ) -> dict[str, Any]:
        if cancel_token is not None and cancel_token.cancelled:
            raise ExecutionStoppedError()

        task = asyncio.ensure_future(action.execute(dict(inputs), auth_config))
        waiters: set[asyncio.Future[Any]] = {task}
        stop_waiter = None
        if cancel_token is not None:
            stop_waiter = asyncio.ensure_future(cancel_token.wait())
            waiters.add(stop_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            if stop_waiter is not None:
                stop_waiter.cancel()

        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            if cancel_token is not None and cancel_token.cancelled:
                raise ExecutionStoppedError()
            raise ActionTimeoutError(timeout if timeout is not None else 0.0)

        try:
            result = task.result()
        except FlowError:
            raise
        except asyncio.CancelledError as e:
            raise ActionExecutionError(f"Action {action.id} was cancelled") from e
        except Exception as e:
            raise ActionExecutionError(str(e) or type(e).__name__) from e

        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise ActionExecutionError(
                f"Action {action.id} returned {type(result).__name__}, expected a mapping"
            )
        return dict(result)
