from __future__ import annotations

import logging
from typing import Callable


logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 20


def expand_all(expand_round: Callable[[], int], *, max_rounds: int = DEFAULT_MAX_ROUNDS) -> int:
    """
    Run `expand_round` until a round expands nothing or `max_rounds` rounds have run.

    Expanding one collapsed message can reveal further collapsed indicators, so a single pass is
    not enough. A failing round ends the loop; whatever is visible by then gets extracted.
    Returns the total number of expansions.
    """
    total = 0
    for round_idx in range(max(0, int(max_rounds))):
        try:
            expanded = int(expand_round() or 0)
        except Exception:
            logger.debug("Thread expansion round %d failed; stopping.", round_idx + 1, exc_info=True)
            break
        if expanded <= 0:
            break
        total += expanded
        logger.debug("Expansion round %d expanded %d element(s).", round_idx + 1, expanded)
    else:
        if max_rounds > 0:
            logger.info("Thread expansion stopped at the round limit (%d); continuing with what rendered.", max_rounds)
    return total
