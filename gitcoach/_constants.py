"""Constants across gitcoach."""


from argparse import Namespace

from tuikit.textools import style_text as color


CURSOR         = color("  >>> ", "magenta")
GOOD           = "green"
BAD            = "red"
PROMPT         = "yellow"
INFO           = "cyan"
MUTED          = "gray"
SPEED          = 0.0075
HOLD           = 0.01
APP            = "[coach]"
COACH          = color(f"{APP} ", "magenta")
I              = 8

CONFLICT_START     = "<<<<<<<"
CONFLICT_SEPARATOR = "======="
CONFLICT_END       = ">>>>>>>"
UTF8_BOM           = "\ufeff"

# Runtime flags: initialized once per invocation by CLI.
PLAIN           = False
DEBUG           = False
QUIET           = False
ASSUME_YES      = False
NO_TRANSMISSION = False


def sync_runtime_flags(args: Namespace) -> None:
    """Synchronize runtime flags from parsed CLI args."""
    global PLAIN, DEBUG, QUIET, ASSUME_YES, NO_TRANSMISSION

    PLAIN           = bool(getattr(args, "plain", False))
    DEBUG           = bool(getattr(args, "debug", False))
    QUIET           = bool(getattr(args, "quiet", False))
    ASSUME_YES      = bool(getattr(args, "yes", False))
    NO_TRANSMISSION = bool(getattr(args, "no_transmission", False)
                    or getattr(args, "plain", False))
