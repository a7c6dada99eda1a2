"""
Gamification rules for the stamp exchange.

Pure functions mapping points to levels, levels to tiers and tiers to weekly
request allowances, plus the weekly request quota calculator. Nothing in this
module touches the database; the ledger and listing services call into it.
"""

import math
from datetime import datetime, timedelta, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime


# Points earned per stamp by the side that receives stamps
POINTS_PER_REQUEST = 1

# Points earned per stamp by the side that supplies stamps
POINTS_PER_OFFERED_STAMP = 2

# Absolute ceiling for a single request, regardless of tier allowance
MAX_WEEKLY_REQUEST = 40

# Length of the rolling request window and of a listing's lifetime
WEEKLY_RESET_PERIOD = timedelta(days=7)
LISTING_LIFETIME = timedelta(days=7)

POINTS_PER_LEVEL_UNIT = 25

DEFAULT_WEEKLY_ALLOWANCE = 5

TIERS = [
    {'tier': 1, 'name': 'Iniciante', 'min_level': 1, 'max_level': 3, 'weekly_allowance': 5},
    {'tier': 2, 'name': 'Regular', 'min_level': 4, 'max_level': 7, 'weekly_allowance': 6},
    {'tier': 3, 'name': 'Experiente', 'min_level': 8, 'max_level': 12, 'weekly_allowance': 7},
    {'tier': 4, 'name': 'Avancado', 'min_level': 13, 'max_level': 20, 'weekly_allowance': 8},
    {'tier': 5, 'name': 'Mestre', 'min_level': 21, 'max_level': 999, 'weekly_allowance': 10},
]


def calculate_level(points):
    """
    Compute the level reached with a given points total.

    Level n spans the points interval [(n-1)^2 * 25, n^2 * 25).

    Args:
        points: Non-negative points total

    Returns:
        int: Level, always >= 1
    """
    points = max(0, int(points))
    return math.isqrt(points // POINTS_PER_LEVEL_UNIT) + 1


def calculate_tier(level):
    """
    Map a level onto its tier (1 to 5).

    Args:
        level: Level as returned by calculate_level()

    Returns:
        int: Tier number
    """
    if level <= 3:
        return 1
    if level <= 7:
        return 2
    if level <= 12:
        return 3
    if level <= 20:
        return 4
    return 5


def weekly_allowance_from_tier(tier):
    """
    Weekly request allowance for a tier.

    Unknown tiers fall back to the tier 1 allowance.
    """
    for entry in TIERS:
        if entry['tier'] == tier:
            return entry['weekly_allowance']
    return DEFAULT_WEEKLY_ALLOWANCE


def get_tier_info(tier):
    """Return the TIERS entry for a tier, or the first tier when unknown."""
    for entry in TIERS:
        if entry['tier'] == tier:
            return dict(entry)
    return dict(TIERS[0])


def level_threshold(level):
    """Minimum points total needed to reach a level."""
    return (level - 1) ** 2 * POINTS_PER_LEVEL_UNIT


def points_for_next_level(points):
    """
    Describe progress from the current level towards the next one.

    Args:
        points: Current points total

    Returns:
        dict: current_level, next_level, points_needed (absolute threshold of
            next_level), points_into_level, points_for_level (span of the
            current level) and progress_percent
    """
    current_level = calculate_level(points)
    next_level = current_level + 1

    current_threshold = level_threshold(current_level)
    next_threshold = level_threshold(next_level)

    points_into_level = points - current_threshold
    points_for_level = next_threshold - current_threshold

    if points_for_level > 0:
        progress_percent = points_into_level / points_for_level * 100
    else:
        progress_percent = 0

    return {
        'current_level': current_level,
        'next_level': next_level,
        'points_needed': next_threshold,
        'points_into_level': points_into_level,
        'points_for_level': points_for_level,
        'progress_percent': progress_percent,
    }


def format_euros(value):
    """
    Render an amount in euros the Portuguese way.

    Zero is shown as "Gratis"; anything else with two decimals, a comma
    separator and a trailing euro sign, e.g. 4.99 -> "4,99 €".
    """
    if value == 0:
        return 'Gratis'
    return f'{value:.2f}'.replace('.', ',') + ' €'


def _as_datetime(value):
    """Accept a datetime or an ISO-8601 string and return an aware datetime."""
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f'Invalid ISO-8601 timestamp: {value!r}')
        value = parsed
    if isinstance(value, datetime) and timezone.is_naive(value):
        value = timezone.make_aware(value, dt_timezone.utc)
    return value


def _quota_field(profile, name):
    if isinstance(profile, dict):
        return profile[name]
    return getattr(profile, name)


def available_request_quota(profile, now=None):
    """
    Remaining number of stamps the profile may request this week.

    Read-only: when the stored reset date has passed, the weekly counter is
    treated as zero for this calculation but nothing is persisted.

    Args:
        profile: Profile instance or mapping with tier, weekly_stamps_requested
            and weekly_reset_at (datetime or ISO-8601 string)
        now: Reference time (defaults to timezone.now())

    Returns:
        int: Value in [0, weekly_allowance_from_tier(tier)]
    """
    if now is None:
        now = timezone.now()

    reset_at = _as_datetime(_quota_field(profile, 'weekly_reset_at'))
    requested = _quota_field(profile, 'weekly_stamps_requested')

    effective_requested = 0 if now > reset_at else requested
    allowance = weekly_allowance_from_tier(_quota_field(profile, 'tier'))

    return max(0, allowance - effective_requested)


def roll_weekly_quota(profile, quantity, now=None):
    """
    Apply the weekly reset rule and charge a new request to the counter.

    Mutates the in-memory profile only; the caller saves it in the same
    transaction that inserts the request listing.

    Args:
        profile: Profile instance (should be locked by the caller)
        quantity: Stamps being requested
        now: Reference time (defaults to timezone.now())

    Returns:
        bool: True if the weekly window was reset
    """
    if now is None:
        now = timezone.now()

    was_reset = False
    if now > _as_datetime(profile.weekly_reset_at):
        profile.weekly_stamps_requested = 0
        profile.weekly_reset_at = now + WEEKLY_RESET_PERIOD
        was_reset = True

    profile.weekly_stamps_requested += quantity
    return was_reset
