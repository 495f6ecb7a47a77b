"""Termination triggers that restore files before the process goes away.

Three paths lead to :meth:`RestorationCoordinator.cleanup_and_restore`:

- Interrupt/termination signals (SIGINT, SIGTERM, SIGHUP): restore, then
  exit with status 0
- Unhandled exceptions (``sys.excepthook`` / ``threading.excepthook``):
  restore, then hand over to the previous hook so the process keeps its
  normal failure path
- Interpreter shutdown (``atexit``): restore whatever is still registered

All three may fire, in any order and more than once. The coordinator's
drain semantics make every call after the first a no-op.

SIGKILL and power loss cannot be intercepted; files injected at that moment
keep their secrets.
"""
from __future__ import annotations

import atexit
import logging
import signal
import sys
import threading
from types import FrameType, TracebackType
from typing import Any, Callable, Dict, Optional, Sequence

from .exceptions import TriggerInstallError
from .restoration import RestorationCoordinator, RestorationReport

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = ("SIGINT", "SIGTERM", "SIGHUP")


class TerminationTriggers:
    """Install and remove the process-wide termination hooks.

    Args:
        coordinator: Coordinator invoked by every trigger.
        signals: Signal names to handle; names unknown on this platform are skipped.
        exit_code: Exit status used after a signal-triggered restoration.
        use_atexit: Also restore at interpreter shutdown.
    """

    def __init__(
        self,
        coordinator: RestorationCoordinator,
        *,
        signals: Sequence[str] = DEFAULT_SIGNALS,
        exit_code: int = 0,
        use_atexit: bool = True,
    ) -> None:
        self.coordinator = coordinator
        self.signal_names = tuple(signals)
        self.exit_code = exit_code
        self.use_atexit = use_atexit

        self._installed = False
        self._previous_signals: Dict[int, Any] = {}
        self._previous_excepthook: Optional[Callable[..., Any]] = None
        self._previous_threading_excepthook: Optional[Callable[..., Any]] = None

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> "TerminationTriggers":
        """Register every trigger.

        Raises:
            TriggerInstallError: If a handler cannot be installed (for example
                when called outside the main thread). Handlers installed before
                the failure are removed again.
        """
        if self._installed:
            return self

        try:
            for name in self.signal_names:
                signum = getattr(signal, name, None)
                if signum is None:
                    logger.debug("Signal %s not available on this platform", name)
                    continue
                self._previous_signals[signum] = signal.signal(signum, self._on_signal)
        except (ValueError, OSError, RuntimeError) as exc:
            self._restore_signals()
            raise TriggerInstallError(
                f"Failed to install signal handlers: {exc}",
                context={"signals": list(self.signal_names)},
            ) from exc

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._on_exception
        self._previous_threading_excepthook = threading.excepthook
        threading.excepthook = self._on_thread_exception

        if self.use_atexit:
            atexit.register(self._on_exit)

        self._installed = True
        logger.info("Termination handlers registered")
        return self

    def uninstall(self) -> None:
        """Put back the handlers and hooks that were active before ``install``."""
        if not self._installed:
            return

        self._restore_signals()
        if self._previous_excepthook is not None and sys.excepthook == self._on_exception:
            sys.excepthook = self._previous_excepthook
        if (
            self._previous_threading_excepthook is not None
            and threading.excepthook == self._on_thread_exception
        ):
            threading.excepthook = self._previous_threading_excepthook
        if self.use_atexit:
            atexit.unregister(self._on_exit)

        self._previous_excepthook = None
        self._previous_threading_excepthook = None
        self._installed = False

    def _restore_signals(self) -> None:
        for signum, previous in self._previous_signals.items():
            try:
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            except (ValueError, OSError):
                logger.warning("Could not restore previous handler for signal %d", signum)
        self._previous_signals.clear()

    def __enter__(self) -> "TerminationTriggers":
        return self.install()

    def __exit__(self, *exc_info: object) -> None:
        self.uninstall()

    # ------------------------------------------------------------------
    # Trigger callbacks
    # ------------------------------------------------------------------

    def restore_now(self) -> Optional[RestorationReport]:
        """Run the coordinator, logging (never raising) unexpected failures."""
        try:
            return self.coordinator.cleanup_and_restore()
        except Exception:
            logger.exception("Restoration failed")
            return None

    def _on_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s", name)

        if self.coordinator.in_progress:
            # The interrupted frame is already restoring; let it finish.
            logger.warning("Restoration already in progress; finishing before exit")
            return

        self.restore_now()
        sys.exit(self.exit_code)

    def _on_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        logger.critical("Unhandled %s: %s", exc_type.__name__, exc)
        self.restore_now()
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _on_thread_exception(self, args: "threading.ExceptHookArgs") -> None:
        if args.exc_type is not SystemExit:
            thread_name = args.thread.name if args.thread is not None else "?"
            logger.critical("Unhandled %s in thread %s: %s", args.exc_type.__name__, thread_name, args.exc_value)
            self.restore_now()
        previous = self._previous_threading_excepthook or threading.__excepthook__
        previous(args)

    def _on_exit(self) -> None:
        self.restore_now()


__all__ = ["TerminationTriggers", "DEFAULT_SIGNALS"]
