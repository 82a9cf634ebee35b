import datetime

from . import config

VERBOSE = config.VERBOSE


def set_verbose(flag):
    """Switches debug output on or off for the active config."""
    global VERBOSE
    VERBOSE = bool(flag)


def is_verbose():
    return VERBOSE


def log(message):
    """Timestamped progress message."""
    print(f"[{datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {message}")

def warn(message):
    """Recoverable fault, e.g. an image that failed to open for one trial."""
    print(f"[{datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] WARNING: {message}")

def debug(message):
    if VERBOSE:
        print(f"[{datetime.datetime.now().strftime('%H:%M:%S')}] {message}")
