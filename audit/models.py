from django.db import models
from django.utils import timezone


class OperationLog(models.Model):
    """
    Step-by-step record of a multi-step write.

    Flows such as "create programs, then packages, then links" or
    "issue credit, then delete the registration" are not transactional.
    Each completed step is appended here so that partial state left by a
    failure can be reconciled by hand.
    """
    STATUS_RUNNING = 'running'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_RUNNING, 'Running'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    ]

    operation = models.CharField(
        max_length=100,
        help_text='Name of the multi-step flow, e.g. delete_package_with_programs'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_RUNNING)
    steps = models.JSONField(
        default=list,
        blank=True,
        help_text='Completed steps in order, each {"action": ..., "at": ..., **details}'
    )
    error = models.TextField(blank=True)
    started_at = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['-started_at'], name='audit_oplog_started_idx'),
            models.Index(fields=['status', '-started_at'], name='audit_oplog_status_idx'),
        ]

    def __str__(self):
        return f"{self.operation} ({self.get_status_display()})"

    @property
    def duration(self):
        if self.finished_at:
            return self.finished_at - self.started_at
        return timezone.now() - self.started_at

    def record_step(self, action, **details):
        """Append a completed step and persist it immediately."""
        entry = {'action': action, 'at': timezone.now().isoformat()}
        entry.update(details)
        self.steps = list(self.steps or []) + [entry]
        self.save(update_fields=['steps'])
        return entry

    def mark_completed(self):
        self.status = self.STATUS_COMPLETED
        self.finished_at = timezone.now()
        self.save(update_fields=['status', 'finished_at'])

    def mark_failed(self, error):
        self.status = self.STATUS_FAILED
        self.error = str(error)
        self.finished_at = timezone.now()
        self.save(update_fields=['status', 'error', 'finished_at'])
