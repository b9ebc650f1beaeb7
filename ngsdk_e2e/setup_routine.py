"""Compile and run the ``setupFn`` sent by a browser test.

The source is trusted test code and runs unsandboxed in the server process.
Two shapes are accepted::

    lambda app, done: done(None, {"customer": app.models.Customer.create(name="a")})

    def setup(app):
        debug("seeding")
        return {"customer": Customer.create(name="a")}

A routine taking two parameters receives ``(app, done)`` and reports through
``done(err=None, data=None)``; otherwise it is called with ``app`` alone and
its return value is the data. Coroutine functions are awaited.
"""

from __future__ import annotations

import builtins
import inspect
import textwrap
from typing import Any, Callable

from ngsdk_backend import BackendApplication
from ngsdk_e2e.core.exceptions import SetupRoutineError, SetupRoutineFailed
from ngsdk_e2e.core.logging import get_logger

logger = get_logger(__name__)

ENTRY_POINT = "setup"


def _complete_immediately(app: BackendApplication, done: Callable[..., None]) -> None:
    done()


def _accepts_callback(function: Callable[..., Any]) -> bool:
    try:
        parameters = inspect.signature(function).parameters.values()
    except (TypeError, ValueError):
        return True
    positional = 0
    for parameter in parameters:
        if parameter.kind is parameter.VAR_POSITIONAL:
            return True
        if parameter.kind in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


class SetupRoutine:
    """A compiled setup routine bound to one test name."""

    def __init__(self, name: str, source: str | None = None) -> None:
        self.name = name
        self.filename = f"<setupFn:{name}>"
        self.namespace: dict[str, Any] = {
            "__builtins__": builtins,
            "__name__": f"setup:{name}",
            "debug": get_logger(f"test:{name}").debug,
        }
        if source and source.strip():
            self.function = self._compile(textwrap.dedent(source).strip())
        else:
            self.function = _complete_immediately

    def _compile(self, source: str) -> Callable[..., Any]:
        try:
            code = compile(source, self.filename, "eval")
            mode = "eval"
        except SyntaxError:
            try:
                code = compile(source, self.filename, "exec")
            except SyntaxError as exc:
                raise SetupRoutineError(
                    f"setupFn of {self.name} is not valid Python: {exc.msg}",
                    details={"line": exc.lineno, "offset": exc.offset},
                ) from exc
            mode = "exec"

        try:
            if mode == "eval":
                function = eval(code, self.namespace)
            else:
                exec(code, self.namespace)
                function = self._entry_point()
        except SetupRoutineError:
            raise
        except Exception as exc:
            raise SetupRoutineError(
                f"setupFn of {self.name} failed to load: {exc}",
                details={"error_type": type(exc).__name__},
            ) from exc

        if not callable(function):
            raise SetupRoutineError(
                f"setupFn of {self.name} must evaluate to a callable",
                details={"type": type(function).__name__},
            )
        return function

    def _entry_point(self) -> Callable[..., Any]:
        candidate = self.namespace.get(ENTRY_POINT)
        if callable(candidate):
            return candidate
        # Otherwise the last function the source itself defined
        defined = [
            value
            for value in self.namespace.values()
            if inspect.isfunction(value) and value.__code__.co_filename == self.filename
        ]
        if not defined:
            raise SetupRoutineError(f"setupFn of {self.name} does not define a function")
        return defined[-1]

    def bind(self, app: BackendApplication) -> None:
        """Expose ``app`` and its models to the routine's globals."""
        self.namespace["app"] = app
        self.namespace.update(app.models)

    async def run(self, app: BackendApplication) -> Any:
        """Run the routine against ``app`` and return the data it produced.

        Raises:
            SetupRoutineFailed: the routine raised or passed an error to ``done``.
        """
        self.bind(app)
        outcome: dict[str, Any] = {}

        def done(err: Any = None, data: Any = None) -> None:
            if outcome:
                logger.warning("setup.done_called_twice", name=self.name)
                return
            outcome.update(err=err, data=data)

        try:
            if _accepts_callback(self.function):
                result = self.function(app, done)
            else:
                result = self.function(app)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            raise SetupRoutineFailed(self.name, exc) from exc

        if not outcome:
            return result
        if outcome["err"]:
            raise SetupRoutineFailed(self.name, outcome["err"])
        return outcome["data"]
