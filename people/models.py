from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F
from django.urls import reverse


class Player(models.Model):
    """A club member who can be registered for programs and packages."""
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Matched case-insensitively when importing form responses"
    )
    phone = models.CharField(max_length=30, null=True, blank=True)
    credit = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Stored credit balance, adjusted when registrations are removed"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return self.full_name

    def get_absolute_url(self):
        return reverse('people:player_detail', kwargs={'pk': self.pk})

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def issue_credit(self, amount):
        """Add ``amount`` to the stored credit balance."""
        amount = Decimal(str(amount))
        if amount < 0:
            raise ValidationError("Credit amount cannot be negative.")
        Player.objects.filter(pk=self.pk).update(credit=F('credit') + amount)
        self.refresh_from_db(fields=['credit'])
        return self.credit

    def to_dict(self):
        return {
            'id': self.pk,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'credit': float(self.credit),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
