# Logging V2 - Nested function logger for metadata operations and the metadata router
# Every synchronizer operation logs START/END lines with durations; inner calls are indented

import datetime, logging, os, sys
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

# Configure logging for multi-worker environment
logging.basicConfig(level=logging.INFO, format='%(message)s', handlers=[logging.StreamHandler(sys.stdout)])
logger = logging.getLogger(__name__)

# Global request counter, monotonically increasing across MiddlewareLogger instances
_request_counter = 0

# Format milliseconds into a human-readable string
def format_milliseconds(millisecs: int) -> str:
  if millisecs < 1000: return f"{millisecs} ms"
  if millisecs < 50000:
    seconds_float = round(millisecs / 1000.0, 1)
    unit = "sec" if seconds_float == 1.0 else "secs"
    return f"{seconds_float:.1f} {unit}"
  secs = millisecs // 1000; hours = secs // 3600; minutes = (secs % 3600) // 60; seconds = secs % 60
  parts = []
  if hours: parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
  if minutes: parts.append(f"{minutes} min{'s' if minutes != 1 else ''}")
  if seconds: parts.append(f"{seconds} sec{'s' if seconds != 1 else ''}")
  return ', '.join(parts) if parts else "0 sec"

@dataclass
class MiddlewareLogger:
  """
  Nested function logger shared by the metadata functions and the metadata router.

  Usage:
    logger = MiddlewareLogger.create()
    logger.log_function_header("ensure_text_column()")
    logger.log_function_output("Column 'Category' already exists.")
    logger.log_function_footer()

  The first header sets the top-level function name that prefixes every console line.
  Nested headers/footers are indented by `inner_log_indentation` spaces per level.
  Lines logged via log_function_warning() / log_function_error() go to the WARNING / ERROR levels.
  """

  # Configuration (set at creation)
  log_inner_function_headers_and_footers: bool = True
  inner_log_indentation: int = 2

  # State (managed internally)
  _function_name: str = ""
  _start_time: Optional[datetime.datetime] = None
  _request_number: int = 0
  _nesting_depth: int = 0
  _inner_stack: List[Tuple[str, datetime.datetime]] = field(default_factory=list)

  @classmethod
  def create(cls, log_inner_function_headers_and_footers: bool = True, inner_log_indentation: int = 2) -> "MiddlewareLogger":
    """Factory method. Increments the global request counter."""
    global _request_counter
    _request_counter += 1
    return cls(
      log_inner_function_headers_and_footers=log_inner_function_headers_and_footers,
      inner_log_indentation=inner_log_indentation,
      _request_number=_request_counter,
      _inner_stack=[]
    )

  @property
  def request_number(self) -> int: return self._request_number

  @property
  def nesting_depth(self) -> int: return self._nesting_depth

  def log_function_header(self, function_name: str) -> None:
    """
    Log function start.
    - depth=0: Always logs, sets top-level function name and start time
    - depth>0: Logs only if log_inner_function_headers_and_footers=True
    """
    now = datetime.datetime.now()
    if self._nesting_depth == 0:
      self._function_name = function_name
      self._start_time = now
      self._log_to_console(f"START: {function_name}...")
      self._nesting_depth = 1
      return

    self._inner_stack.append((function_name, now))
    self._nesting_depth += 1
    if self.log_inner_function_headers_and_footers:
      self._log_to_console(self._apply_indentation(f"START: {function_name}..."))

  def log_function_output(self, output: str) -> None:
    """Log intermediate output at the current indentation. Always logs regardless of nesting depth."""
    self._log_to_console(self._apply_indentation(output))

  def log_function_warning(self, output: str) -> None:
    self._log_to_console(self._apply_indentation(f"WARNING: {output}"), logging.WARNING)

  def log_function_error(self, output: str) -> None:
    self._log_to_console(self._apply_indentation(f"ERROR: {output}"), logging.ERROR)

  def log_function_footer(self) -> None:
    """
    Log function end.
    - depth>1: Pops from stack, logs if log_inner_function_headers_and_footers=True
    - depth<=1: Logs total duration of the top-level function
    """
    now = datetime.datetime.now()
    if self._nesting_depth <= 1:
      if self._start_time: duration = format_milliseconds(int((now - self._start_time).total_seconds() * 1000))
      else: duration = "0 ms"
      self._log_to_console(f"END: {self._function_name} ({duration}).")
      self._nesting_depth = 0
      return

    if self._inner_stack:
      inner_func_name, inner_start_time = self._inner_stack.pop()
      if self.log_inner_function_headers_and_footers:
        duration = format_milliseconds(int((now - inner_start_time).total_seconds() * 1000))
        self._log_to_console(self._apply_indentation(f"END: {inner_func_name} ({duration})."))
    self._nesting_depth -= 1

  def _apply_indentation(self, output: str) -> str:
    """Depth 0 and 1 have no indentation."""
    if self._nesting_depth <= 1: return output
    return " " * (self.inner_log_indentation * (self._nesting_depth - 1)) + output

  def _log_to_console(self, message: str, level: int = logging.INFO) -> None:
    process_id = os.getpid()
    timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    logger.log(level, f"[{timestamp},process {process_id},request {self._request_number},{self._function_name}] {message}")
