# /carinsight/utils/text.py

import random
from typing import Sequence, Union


def choose_variation(options: Union[str, Sequence[str]], rng: random.Random) -> str:
    """Picks one phrasing with the conversation's random source. A plain string is returned as is."""
    if isinstance(options, str):
        return options
    if not options:
        return ""
    return rng.choice(list(options))


def format_brl(amount: float) -> str:
    """60000 -> '60.000' (Brazilian thousands separator, no cents)."""
    return f"{amount:,.0f}".replace(",", ".")


def format_brl_cents(amount: float) -> str:
    """1234.5 -> '1.234,50'."""
    return f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
