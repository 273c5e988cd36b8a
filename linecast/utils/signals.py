import asyncio
import signal
from collections.abc import Callable

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_handlers(handler: Callable[[], object]) -> Callable[[], None]:
    """Call ``handler`` on the running loop for SIGINT/SIGTERM.

    Returns:
        A function that removes the handlers again
    """
    loop = asyncio.get_running_loop()
    installed = []
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(handler))
        installed.append(sig)

    def remove() -> None:
        for sig in installed:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)

    return remove


def announce(text: str) -> None:
    """Print a startup marker line for process supervisors."""
    print(text, flush=True)
