"""
Terminal output for the import, export and mapping scripts.

Colour is applied only when the target stream is a TTY. Prices are shown
as gold/silver/copper with each coin in its own colour.
"""

import sys
from enum import Enum
from typing import TextIO


class Color(Enum):
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"

    GOLD = "\033[33m"
    SILVER = "\033[37m"
    COPPER = "\033[38;5;173m"


_COIN_COLORS = {"g": Color.GOLD, "s": Color.SILVER, "c": Color.COPPER}


def colorize(text: str, *colors: Color, stream: TextIO | None = None) -> str:
    stream = stream or sys.stdout
    if not (hasattr(stream, "isatty") and stream.isatty()):
        return text
    return "".join(c.value for c in colors) + text + Color.RESET.value


def format_copper(amount: int) -> str:
    """Render a copper amount as ``12g 34s 56c``, omitting leading zero coins."""
    sign = "-" if amount < 0 else ""
    gold, remainder = divmod(abs(round(amount)), 10_000)
    silver, copper = divmod(remainder, 100)

    coins = [(gold, "g"), (silver, "s"), (copper, "c")]
    while len(coins) > 1 and coins[0][0] == 0:
        coins.pop(0)
    return sign + " ".join(f"{value}{unit}" for value, unit in coins)


def coins(amount: int) -> str:
    return " ".join(
        colorize(part, _COIN_COLORS[part[-1]]) for part in format_copper(amount).split(" ")
    )


def info(message: str) -> None:
    print(message)


def success(message: str) -> None:
    print(colorize(f"✓ {message}", Color.GREEN))


def warning(message: str) -> None:
    print(colorize(f"⚠ {message}", Color.YELLOW))


def error(message: str) -> None:
    print(colorize(f"✗ {message}", Color.RED, stream=sys.stderr), file=sys.stderr)


def section_header(title: str) -> None:
    rule = colorize("─" * 60, Color.DIM)
    print(f"\n{rule}\n{colorize(title, Color.BOLD, Color.CYAN)}\n{rule}")


def key_value(key: str, value: str, indent: int = 0) -> None:
    print(f"{' ' * indent}{colorize(key + ':', Color.WHITE)} {value}")


def bullet(message: str, indent: int = 2) -> None:
    print(f"{' ' * indent}{colorize('-', Color.BLUE)} {message}")
