"""Middleware combinators.

Each combinator returns a new middleware of the same kind as its input, so
the result registers into the pipeline like any other entry.

Example:
    >>> auth_once = MiddlewareComposer.once(fetch_token)
    >>> flaky_retry = MiddlewareComposer.with_retry(refresh_session, max_retries=2, delay=0.5)
    >>> posts_only = MiddlewareComposer.conditional(audit, lambda ctx: ctx.config.method == "POST")
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from typing import Callable

from fluxguard.runtime.concurrency import maybe_await

from .middleware import Middleware, MiddlewareContext, MiddlewareKind, MiddlewareResult


class _Wrapped(Middleware):
    """Middleware delegating to a coroutine built around another middleware."""

    def __init__(
        self,
        name: str,
        kind: MiddlewareKind,
        run: Callable[[MiddlewareContext], Awaitable[MiddlewareContext]],
        *,
        template: Middleware | None = None,
    ) -> None:
        super().__init__(
            name,
            priority=template.priority if template else 0,
            enabled=template.enabled if template else True,
            conditions=template.conditions if template else None,
        )
        self.kind = kind
        self._run = run

    def execute(self, context: MiddlewareContext) -> MiddlewareResult:
        return self._run(context)


async def _apply(middleware: Middleware, context: MiddlewareContext) -> MiddlewareContext:
    result = await maybe_await(middleware.execute(context))
    if isinstance(result, MiddlewareContext):
        context.merge(result)
    return context


class MiddlewareComposer:
    """Static combinators over middleware."""

    @staticmethod
    def _compose(kind: MiddlewareKind, middleware: Sequence[Middleware], name: str | None) -> Middleware:
        chain = list(middleware)

        async def run(context: MiddlewareContext) -> MiddlewareContext:
            for mw in chain:
                if mw.should_run(context):
                    context = await _apply(mw, context)
            return context

        return _Wrapped(name or f"composed-{kind}-{'+'.join(m.name for m in chain)}", kind, run)

    @staticmethod
    def compose_request(middleware: Sequence[Middleware], name: str | None = None) -> Middleware:
        """One request middleware running ``middleware`` in the given order."""
        return MiddlewareComposer._compose(MiddlewareKind.REQUEST, middleware, name)

    @staticmethod
    def compose_response(middleware: Sequence[Middleware], name: str | None = None) -> Middleware:
        return MiddlewareComposer._compose(MiddlewareKind.RESPONSE, middleware, name)

    @staticmethod
    def conditional(middleware: Middleware, condition: Callable[[MiddlewareContext], bool]) -> Middleware:
        """Run ``middleware`` only when ``condition(context)`` holds."""
        async def run(context: MiddlewareContext) -> MiddlewareContext:
            return await _apply(middleware, context) if condition(context) else context

        return _Wrapped(f"conditional-{middleware.name}", middleware.kind, run, template=middleware)

    @staticmethod
    def once(middleware: Middleware) -> Middleware:
        """Run ``middleware`` for the first context only; later runs pass through."""
        done = False

        async def run(context: MiddlewareContext) -> MiddlewareContext:
            nonlocal done
            if done:
                return context
            done = True
            return await _apply(middleware, context)

        return _Wrapped(f"once-{middleware.name}", middleware.kind, run, template=middleware)

    @staticmethod
    def with_retry(
        middleware: Middleware,
        max_retries: int = 3,
        delay: float = 1.0,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> Middleware:
        """Retry a failing ``middleware`` up to ``max_retries`` times, ``delay`` seconds apart.

        The last error is re-raised when every attempt fails.
        """
        async def run(context: MiddlewareContext) -> MiddlewareContext:
            for attempt in range(max_retries + 1):
                try:
                    return await _apply(middleware, context)
                except Exception:
                    if attempt >= max_retries:
                        raise
                    await sleep(delay)
            return context

        return _Wrapped(f"retry-{middleware.name}", middleware.kind, run, template=middleware)
