import logging

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from people.models import Player
from programs.models import Package, Program, Registration

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = 'dashboard:stats'


def get_upcoming_limit():
    return getattr(settings, 'CLUB_UPCOMING_LIMIT', 5)


def compute_stats():
    return {
        'total_players': Player.objects.count(),
        'total_programs': Program.objects.count(),
        'total_packages': Package.objects.count(),
        'total_registrations': Registration.objects.count(),
    }


def get_stats():
    """Entity counts, cached until the next write or the timeout."""
    stats = cache.get(STATS_CACHE_KEY)
    if stats is None:
        stats = compute_stats()
        cache.set(STATS_CACHE_KEY, stats, getattr(settings, 'CLUB_DASHBOARD_CACHE_TIMEOUT', 300))
    return stats


def invalidate_stats():
    cache.delete(STATS_CACHE_KEY)
    logger.debug("Dashboard stats cache cleared")


def upcoming_programs(limit=None, today=None):
    today = today or timezone.localdate()
    return (
        Program.objects.select_related('level', 'category', 'location')
        .filter(date__gte=today)
        .order_by('date', 'start_time')[:limit or get_upcoming_limit()]
    )


def recent_registrations(limit=None):
    return (
        Registration.objects.select_related('player', 'program', 'package')
        .order_by('-created_at', '-id')[:limit or get_upcoming_limit()]
    )
