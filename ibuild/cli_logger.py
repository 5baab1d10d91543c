import datetime
import sys
import time
import threading
import traceback
import os
import shutil
from colorama import Fore, Style, init

# Initialize Colorama
init(autoreset=True)

LOG_DIR = os.path.join(os.path.expanduser("~"), ".ibuild", "logs")
os.makedirs(LOG_DIR, exist_ok=True)

class Logger:
    def __init__(self):
        self.log_file = os.path.join(
            LOG_DIR,
            f"ibuild_{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        )
        # Build tasks log from worker threads
        self._lock = threading.Lock()

    def _get_timestamp(self):
        return datetime.datetime.now().strftime("%H:%M:%S")

    def _log(self, level, message, color, stream=sys.stdout, prefix="", show_timestamp=True):
        with self._lock:
            if show_timestamp:
                timestamp = self._get_timestamp()
                log_message = f"[{timestamp}] [{level}] {prefix}{message}\n"
                print(f"{color}{Style.BRIGHT}[{timestamp}]{Style.RESET_ALL} {prefix}{message}{Style.RESET_ALL}", file=stream)
            else:
                log_message = f"[{level}] {prefix}{message}\n"
                print(f"{color}{prefix}{message}{Style.RESET_ALL}", file=stream)

            with open(self.log_file, "a") as f:
                f.write(log_message)

    def info(self, message):
        self._log("INFO", message, Fore.CYAN)

    def step_info(self, message, indent=0):
        prefix = " " * indent
        self._log("", message, Fore.CYAN, prefix=prefix, show_timestamp=False)

    def success(self, message):
        self._log("SUCCESS", message, Fore.GREEN, prefix=f"{Style.BRIGHT}✓ {Style.RESET_ALL}{Fore.GREEN}")

    def warning(self, message):
        self._log("WARNING", message, Fore.YELLOW, stream=sys.stderr,
                  prefix=f"{Style.BRIGHT}⚠ {Style.RESET_ALL}{Fore.YELLOW}")

    def error(self, message):
        self._log("ERROR", message, Fore.RED, stream=sys.stderr,
                  prefix=f"{Style.BRIGHT}✖ {Style.RESET_ALL}{Fore.RED}")

    def debug(self, message):
        self._log("DEBUG", message, Fore.WHITE + Style.DIM)

    # -------- Progress bar method --------
    def progress(self, iterable, description="Downloading", total=None, bar_length=30):
        """Yield byte chunks from ``iterable`` while drawing a download bar."""
        if not total:
            for item in iterable:
                yield item
            return

        start_time = time.time()
        current_val = 0
        line = ""

        def format_size(bytes_val):
            if bytes_val >= 1024 * 1024 * 1024:
                return f"{bytes_val / (1024*1024*1024):.1f} GB"
            if bytes_val >= 1024 * 1024:
                return f"{bytes_val / (1024*1024):.1f} MB"
            if bytes_val >= 1024:
                return f"{bytes_val / 1024:.1f} KB"
            return f"{int(bytes_val)} B"

        print(f"{description}...")
        sys.stdout.flush()

        for item in iterable:
            yield item
            current_val += len(item)

            elapsed = time.time() - start_time
            percent = min(1.0, current_val / total)
            filled_len = int(bar_length * percent)

            bar = Fore.GREEN + "━" * filled_len
            if filled_len < bar_length:
                bar += Fore.RED + "╺" + Style.RESET_ALL + "━" * (bar_length - filled_len - 1)
            else:
                bar += Style.RESET_ALL

            speed = current_val / elapsed if elapsed > 0 else 0
            line = (
                f"{percent*100:3.0f}% | "
                f"{bar} | "
                f"{format_size(current_val)}/{format_size(total)} • "
                f"{speed/(1024*1024):.1f} MB/s • "
                f"{time.strftime('%M:%S', time.gmtime(elapsed))}"
            )

        terminal_width = shutil.get_terminal_size().columns
        if terminal_width < len(line):
            # for small display
            sys.stdout.write("\x1b[F\x1b[F\r")
        else:
            sys.stdout.write("\x1b[F\r")
        print(line)
        sys.stdout.flush()

    # -------- Exception logging --------
    def exception(self, exc_type, exc_value, exc_traceback):
        """Write the traceback of an exception to the log file only."""
        formatted_lines = traceback.format_exception(exc_type, exc_value, exc_traceback)
        with self._lock:
            with open(self.log_file, "a") as f:
                for line in formatted_lines:
                    for sub_line in line.splitlines():
                        if sub_line.strip():
                            f.write(f"[TRACEBACK] >> {sub_line}\n")


# ---------------- Helper ----------------
logger = Logger()
