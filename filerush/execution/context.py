import asyncio
import threading

from ..exceptions import BlockingOnEventLoopError


def on_event_loop() -> bool:
    """
    Whether the current thread is running an event loop right now
    """

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False

    return True


def ensure_off_event_loop(operation: str) -> None:
    """
    Blocking filesystem calls stall everything that shares the loop, so they
    are refused there instead of silently slowing the server down
    """

    if on_event_loop():
        raise BlockingOnEventLoopError(
            f'{operation} blocks the calling thread and must not run on the event loop '
            f'(thread {threading.current_thread().name})'
        )
