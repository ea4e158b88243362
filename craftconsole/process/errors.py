"""Console supervisor exception hierarchy."""


class ConsoleError(Exception):
    """Base error type for supervisor and hub failures."""

    error_code = "CONSOLE_ERROR"


class SpawnError(ConsoleError):
    """Server executable could not be launched."""

    error_code = "SPAWN_FAILED"


class NotRunningError(ConsoleError):
    """Operation requires a live server process."""

    error_code = "PROCESS_NOT_RUNNING"

    def __init__(self, message: str = "server is not running"):
        super().__init__(message)


class ProcessIOError(ConsoleError):
    """Write, flush or wait on the child's streams failed."""

    error_code = "PROCESS_IO"


class DeliveryFailure(ConsoleError):
    """Subscriber delivery channel is closed."""

    error_code = "DELIVERY_FAILED"

    def __init__(self, client_id: int | None = None):
        super().__init__(f"delivery channel closed for client {client_id}")
        self.client_id = client_id
