"""Deterministic draft order generation."""

from collections import Counter

from draft.logic.enums import OrderType
from draft.logic.exceptions import InvalidDraftConfigurationError


def validate_teams(team_ids: list[str] | tuple[str, ...]) -> None:
    """Reject empty team lists, blank ids and duplicates."""
    if not team_ids:
        raise InvalidDraftConfigurationError("a draft needs at least one team")
    if any(not team_id for team_id in team_ids):
        raise InvalidDraftConfigurationError("team ids must be non-empty")
    duplicates = sorted(team for team, count in Counter(team_ids).items() if count > 1)
    if duplicates:
        raise InvalidDraftConfigurationError(f"duplicate team ids: {', '.join(duplicates)}")


def snake_order(team_ids: list[str] | tuple[str, ...], total_rounds: int) -> list[str]:
    """Odd rounds use the given order, even rounds the exact reverse.

    >>> snake_order(["A", "B", "C"], 3)
    ['A', 'B', 'C', 'C', 'B', 'A', 'A', 'B', 'C']
    """
    forward = list(team_ids)
    backward = forward[::-1]
    order: list[str] = []
    for round_number in range(1, total_rounds + 1):
        order.extend(forward if round_number % 2 == 1 else backward)
    return order


def linear_order(team_ids: list[str] | tuple[str, ...], total_rounds: int) -> list[str]:
    """Every round uses the given order."""
    return list(team_ids) * total_rounds


def _validate_custom_order(
    team_ids: list[str] | tuple[str, ...],
    total_rounds: int,
    custom_order: list[str] | tuple[str, ...],
) -> list[str]:
    unknown = sorted(set(custom_order) - set(team_ids))
    if unknown:
        raise InvalidDraftConfigurationError(f"custom order references unknown teams: {', '.join(unknown)}")
    counts = Counter(custom_order)
    uneven = sorted(team for team in team_ids if counts[team] != total_rounds)
    if uneven:
        raise InvalidDraftConfigurationError(
            f"custom order must give every team exactly {total_rounds} picks (wrong count for: {', '.join(uneven)})",
        )
    return list(custom_order)


def generate_draft_order(
    team_ids: list[str] | tuple[str, ...],
    total_rounds: int,
    order_type: OrderType = OrderType.SNAKE,
    custom_order: list[str] | tuple[str, ...] | None = None,
) -> list[str]:
    """Compute the flattened pick-by-pick team sequence.

    Length is total_rounds * len(team_ids). total_rounds == 0 yields an empty
    order; the caller creates such a session already completed.
    """
    validate_teams(team_ids)
    if total_rounds < 0:
        raise InvalidDraftConfigurationError(f"total_rounds must be >= 0, got {total_rounds}")

    if order_type == OrderType.SNAKE:
        return snake_order(team_ids, total_rounds)
    if order_type == OrderType.LINEAR:
        return linear_order(team_ids, total_rounds)
    if custom_order is None:
        raise InvalidDraftConfigurationError("custom order type requires an explicit custom_order")
    return _validate_custom_order(team_ids, total_rounds, custom_order)
