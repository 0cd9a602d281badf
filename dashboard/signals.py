from django.dispatch import receiver

from programs.signals import data_changed
from .stats import invalidate_stats

STATS_COLLECTIONS = {'players', 'programs', 'packages', 'registrations'}


@receiver(data_changed)
def clear_cached_stats(sender, collections=(), **kwargs):
    """Drop cached dashboard counts when a counted collection changes."""
    if STATS_COLLECTIONS.intersection(collections):
        invalidate_stats()
