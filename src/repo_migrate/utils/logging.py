"""Logging utilities for the migration tool."""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, TextIO, Tuple

from loguru import logger

from ..api.exceptions import MigrationError
from .redaction import DiagnosticRedactor

ERROR_LEVEL_NO = 40
INFO_LEVEL_NO = 20

CONSOLE_FORMAT = '[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {message}'
DEBUG_CONSOLE_FORMAT = '[{time:YYYY-MM-DD[T]HH:mm:ss.SSSSSSZ}] [{level}] {message}'
FILE_FORMAT = '[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {extra[component]} | {message}'

GENERIC_ERROR_MESSAGE = 'An unexpected error happened. Please see the logs for details.'

logger.configure(extra={'component': 'repo-migrate'})


class RedactingSink:
    """Loguru sink that redacts the formatted record before writing it."""

    def __init__(self, write: Callable[[str], None], redactor: DiagnosticRedactor):
        self._write = write
        self._redactor = redactor

    def __call__(self, message) -> None:
        self._write(self._redactor.redact(str(message)))


class RedactingLogFile:
    """Log file sink holding one handle, opened on first write.

    Loguru flushes it after each record and stops it when the handler is
    removed.
    """

    def __init__(self, path: Path, redactor: DiagnosticRedactor):
        self.path = Path(path)
        self._redactor = redactor
        self._file: Optional[TextIO] = None

    def write(self, message) -> None:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, 'a', encoding='utf-8')
        self._file.write(self._redactor.redact(str(message)))

    def flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def stop(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def _stream_writer(stream: TextIO) -> Callable[[str], None]:
    def write(text: str) -> None:
        stream.write(text)
        stream.flush()

    return write


def default_log_files(log_dir: Optional[str] = None) -> Tuple[Path, Path]:
    """Build the per-run log and verbose log paths."""
    stamp = datetime.now().strftime('%Y%m%d%H%M%S')
    base = Path(log_dir) if log_dir else Path('.')
    prefix = f'{stamp}-{os.getpid()}.repo-migrate'
    return base / f'{prefix}.log', base / f'{prefix}.verbose.log'


def setup_logging(
    redactor: DiagnosticRedactor,
    verbose: bool = False,
    log_file: Optional[str] = None,
    verbose_log_file: Optional[str] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    debug_mode: bool = False,
) -> List[int]:
    """Setup the four diagnostic sinks using loguru.

    Every sink writes through the same redactor, regardless of verbosity:

    - console-out: INFO, SUCCESS and WARNING (and DEBUG when verbose)
    - console-err: ERROR and above
    - log file: INFO and above
    - verbose log file: everything

    Args:
        redactor: Redactor holding the registered secrets
        verbose: Echo DEBUG (verbose) messages to the console
        log_file: Optional log file path
        verbose_log_file: Optional verbose log file path
        stdout: Console-out stream (defaults to sys.stdout)
        stderr: Console-err stream (defaults to sys.stderr)
        debug_mode: Use high-resolution console timestamps

    Returns:
        Handler ids added to the logger
    """
    # Remove default handler
    logger.remove()

    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    console_level = INFO_LEVEL_NO if not verbose else 0
    console_format = DEBUG_CONSOLE_FORMAT if debug_mode else CONSOLE_FORMAT

    handler_ids = [
        logger.add(
            RedactingSink(_stream_writer(stdout), redactor),
            format=console_format,
            level='DEBUG',
            filter=lambda r: console_level <= r['level'].no < ERROR_LEVEL_NO,
            colorize=False,
            backtrace=False,
            diagnose=False,
        ),
        logger.add(
            RedactingSink(_stream_writer(stderr), redactor),
            format=console_format,
            level='ERROR',
            colorize=False,
            backtrace=False,
            diagnose=False,
        ),
    ]

    if log_file:
        handler_ids.append(
            logger.add(
                RedactingLogFile(Path(log_file), redactor),
                format=FILE_FORMAT,
                level='INFO',
                enqueue=True,
                backtrace=False,
                diagnose=False,
            )
        )

    if verbose_log_file:
        handler_ids.append(
            logger.add(
                RedactingLogFile(Path(verbose_log_file), redactor),
                format=FILE_FORMAT,
                level='DEBUG',
                enqueue=True,
                backtrace=True,
                diagnose=False,
            )
        )

    logger.debug(f'Logging initialized (verbose={verbose})')
    return handler_ids


def log_exception(error: BaseException, verbose: bool = False) -> None:
    """Log an error the operator can act on.

    MigrationError messages are shown as is; anything else is reduced to a
    generic message unless verbose. The full exception always reaches the
    verbose log.
    """
    if verbose or isinstance(error, MigrationError):
        message = str(error)
    else:
        message = GENERIC_ERROR_MESSAGE

    logger.opt(exception=error if verbose else None).error(message)
    if not verbose:
        logger.opt(exception=error).debug(f'{type(error).__name__}: {error}')
