"""Exceptions raised by steerbrowser."""


class BrowserError(Exception):
    """Base exception for all browser-related errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class BrowserConnectionError(BrowserError):
    """Raised when there is no usable session, or connecting exhausted its retries."""


class TransportClosedError(BrowserConnectionError):
    """Raised for calls that were in flight, or issued, while the transport was closed."""


class TargetNotFoundError(BrowserConnectionError):
    """Raised when no target matches a switch request."""

    def __init__(self, description: str):
        super().__init__(f'No tab(s) matching {description} found')
        self.description = description


class BrowserCrashError(BrowserError):
    """Raised when the browser process or target died.

    The message names the exit code or signal when it is known.
    """

    def __init__(
        self,
        message: str,
        pid: int | None = None,
        exit_code: int | None = None,
        signal: int | None = None,
    ):
        super().__init__(message)
        self.pid = pid
        self.exit_code = exit_code
        self.signal = signal


class NavigationTimeoutError(BrowserError):
    """Raised when an awaited action does not settle within its navigation timeout."""

    def __init__(self, timeout_ms: int):
        super().__init__(
            f'Navigation took more than {timeout_ms}ms. Please increase the navigation_timeout.'
        )
        self.timeout_ms = timeout_ms


class NavigationFailedError(BrowserError):
    """Raised when a top-level navigation fails at the network or HTTP level."""

    def __init__(
        self,
        url: str,
        reason: str | None = None,
        status: int | None = None,
        status_text: str | None = None,
    ):
        if status is not None:
            detail = f'STATUS: {status}, STATUS_TEXT: {status_text or ""}'
        else:
            detail = f'REASON: {reason}'
        super().__init__(f'Navigation to url {url} failed.\n {detail}')
        self.url = url
        self.reason = reason
        self.status = status
        self.status_text = status_text


class ElementNotFoundError(BrowserError):
    """Raised when element retrieval finds no candidates before its retry timeout."""

    def __init__(self, description: str, reason: str | None = None):
        message = f'Element matching {description} not found'
        if reason:
            message = f'{message}: {reason}'
        super().__init__(message)
        self.description = description
        self.reason = reason


class UnsupportedOperationError(BrowserError):
    """Raised for operations the restricted client view does not allow."""

    def __init__(self, operation: str):
        super().__init__(f'Unsupported action {operation} on client')
        self.operation = operation


class ProtocolError(BrowserError):
    """Structured error returned by the remote protocol for a command."""

    def __init__(self, message: str, code: int | None = None, method: str | None = None):
        super().__init__(message)
        self.code = code
        self.method = method

    def __str__(self) -> str:
        if self.method:
            return f'{self.method}: {self.message} ({self.code})'
        return f'{self.message} ({self.code})'


class ScriptExecutionError(BrowserError):
    """Raised when a script evaluated in the page throws."""

    def __init__(self, message: str, description: str | None = None):
        super().__init__(message)
        self.description = description


class WaitTimeoutError(BrowserError):
    """Raised by condition polling when the condition never held."""

    def __init__(self, timeout_ms: int):
        super().__init__(f'Condition not met within {timeout_ms}ms')
        self.timeout_ms = timeout_ms
