"""
Console output helpers shared by the pipeline and the command line.
"""

import os
import sys
import threading

PRINT_LOCK = threading.Lock()

STD_OUTPUT_HANDLE = -11
STD_ERROR_HANDLE = -12
VT_PROCESSING_FLAG = 0x0004


def _enable_windows_vt_mode() -> bool:
    """Turn on escape sequence handling for the stdout and stderr consoles."""
    if os.name != "nt":
        return True

    try:
        import ctypes
        from ctypes import wintypes

        kernel32 = ctypes.windll.kernel32

        for handle_id in (STD_OUTPUT_HANDLE, STD_ERROR_HANDLE):
            h = kernel32.GetStdHandle(handle_id)
            if h in (None, 0, ctypes.c_void_p(-1).value):
                continue

            mode = wintypes.DWORD()
            if not kernel32.GetConsoleMode(h, ctypes.byref(mode)):
                continue

            kernel32.SetConsoleMode(h, mode.value | VT_PROCESSING_FLAG)

        return True
    except (AttributeError, OSError):
        return False


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR") is not None:
        return False

    # Redirected output gets plain text
    if not sys.stdout.isatty():
        return False

    if os.name == "nt":
        return _enable_windows_vt_mode()

    return True


class C:
    RESET  = "\033[0m"
    INFO   = "\033[94m"  # blue
    SUCCESS= "\033[92m"  # green
    WARN   = "\033[93m"  # yellow
    ERROR  = "\033[91m"  # red
    STEP   = "\033[96m"  # cyan
    HEADER = "\033[95m"  # magenta
    DIM    = "\033[90m"  # gray


USE_COLOR = _supports_color()


def _c(color: str, text: str) -> str:
    if not USE_COLOR:
        return text
    return f"{color}{text}{C.RESET}"

def log_info(msg: str):
    with PRINT_LOCK:
        print(_c(C.INFO, f"[INFO] {msg}"))

def log_step(msg: str):
    with PRINT_LOCK:
        print(_c(C.STEP, f"[+] {msg}"))

def log_success(msg: str):
    with PRINT_LOCK:
        print(_c(C.SUCCESS, f"[OK] {msg}"))

def log_warn(msg: str):
    with PRINT_LOCK:
        print(_c(C.WARN, f"[!] {msg}"), file=sys.stderr)

def log_error(msg: str):
    with PRINT_LOCK:
        print(_c(C.ERROR, f"[ERROR] {msg}"), file=sys.stderr)

def log_header(msg: str):
    with PRINT_LOCK:
        print(_c(C.HEADER, f"\n=== {msg} ==="))

def log_dim(msg: str):
    with PRINT_LOCK:
        print(_c(C.DIM, msg))
