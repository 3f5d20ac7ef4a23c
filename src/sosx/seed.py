"""Bundled seed rates: the floor used when neither cache nor network is available."""

import json
from functools import lru_cache
from importlib import resources

from sosx.models import SUPPORTED_CURRENCIES, RateTable, validate_rate_table


class SeedDataError(RuntimeError):
    """The packaged seed table is missing or incomplete (a packaging defect)."""


@lru_cache
def _load_seed() -> RateTable:
    try:
        raw = json.loads(
            resources.files("sosx").joinpath("data/seed.json").read_text(encoding="utf-8")
        )
        table = validate_rate_table(raw)
    except (OSError, ValueError) as e:
        raise SeedDataError(f"Seed rate table is unusable: {e}") from e

    missing = set(SUPPORTED_CURRENCIES) - set(table)
    if missing:
        raise SeedDataError(f"Seed rate table lacks: {', '.join(sorted(missing))}")
    return table


def load_seed_rates() -> RateTable:
    """Return a fresh copy of the seed table."""
    return dict(_load_seed())
