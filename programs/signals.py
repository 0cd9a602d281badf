from django.dispatch import Signal

# Sent after a write with ``collections``: names of the affected collections,
# e.g. ('programs', 'registrations'). Views that cache derived data subscribe.
data_changed = Signal()

COLLECTIONS = (
    'players', 'programs', 'packages', 'programs_packages', 'registrations',
    'levels', 'categories', 'locations', 'seasons',
)


def publish_change(sender, *collections):
    """Notify subscribers that the given collections were written to."""
    unknown = set(collections) - set(COLLECTIONS)
    if unknown:
        raise ValueError(f"Unknown collections: {', '.join(sorted(unknown))}")
    data_changed.send(sender=sender, collections=tuple(collections))
