from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.urls import reverse


class ReferenceItem(models.Model):
    """Flat name-keyed lookup table referenced by programs and packages."""
    name = models.CharField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ['name']

    def __str__(self):
        return self.name

    def to_dict(self):
        return {'id': self.pk, 'name': self.name}


class Level(ReferenceItem):
    """Skill level, e.g. 'Advanced (3.5-4.0)'."""

    class Meta(ReferenceItem.Meta):
        pass


class Category(ReferenceItem):
    """Program category, e.g. 'Adult Clinics'."""

    class Meta(ReferenceItem.Meta):
        verbose_name_plural = 'Categories'


class Location(ReferenceItem):
    """Venue where programs are held."""

    class Meta(ReferenceItem.Meta):
        pass


class Season(ReferenceItem):
    """Season a program belongs to, e.g. 'Winter 2026'."""

    class Meta(ReferenceItem.Meta):
        pass


REFERENCE_MODELS = {
    'levels': Level,
    'categories': Category,
    'locations': Location,
    'seasons': Season,
}


class Program(models.Model):
    """A single scheduled session of a class or clinic."""
    name = models.CharField(max_length=255)
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    # Display only: used for occupancy coloring, never enforced on registration
    max_registrations = models.PositiveIntegerField(default=0)
    level = models.ForeignKey(Level, on_delete=models.SET_NULL, null=True, blank=True, related_name='programs')
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='programs')
    location = models.ForeignKey(Location, on_delete=models.SET_NULL, null=True, blank=True, related_name='programs')
    season = models.ForeignKey(Season, on_delete=models.SET_NULL, null=True, blank=True, related_name='programs')
    original_id = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text="Identifier carried over from imported spreadsheet data"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-date', 'start_time']

    def __str__(self):
        return f"{self.name} - {self.date.strftime('%Y-%m-%d')}"

    def get_absolute_url(self):
        return reverse('programs:program_detail', kwargs={'pk': self.pk})

    @property
    def registration_count(self):
        return self.registrations.count()

    def to_dict(self):
        return {
            'id': self.pk,
            'name': self.name,
            'date': self.date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M:%S'),
            'end_time': self.end_time.strftime('%H:%M:%S'),
            'price': float(self.price),
            'max_registrations': self.max_registrations,
            'level_id': self.level_id,
            'category_id': self.category_id,
            'location_id': self.location_id,
            'season_id': self.season_id,
            'level': self.level.name if self.level else None,
            'category': self.category.name if self.category else None,
            'location': self.location.name if self.location else None,
            'season': self.season.name if self.season else None,
            'original_id': self.original_id or None,
        }


class Package(models.Model):
    """A bundle of programs sold at a single price."""
    name = models.CharField(max_length=255)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    location = models.ForeignKey(Location, on_delete=models.SET_NULL, null=True, blank=True, related_name='packages')
    original_id = models.CharField(max_length=100, blank=True, db_index=True)
    programs = models.ManyToManyField(Program, through='ProgramPackage', related_name='packages', blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def get_absolute_url(self):
        return reverse('programs:package_detail', kwargs={'pk': self.pk})

    def to_dict(self):
        return {
            'id': self.pk,
            'name': self.name,
            'price': float(self.price),
            'location_id': self.location_id,
            'location': self.location.name if self.location else None,
            'original_id': self.original_id or None,
        }


class ProgramPackage(models.Model):
    """Link between a program and a package that contains it."""
    program = models.ForeignKey(Program, on_delete=models.CASCADE, related_name='package_links')
    package = models.ForeignKey(Package, on_delete=models.CASCADE, related_name='program_links')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['program', 'package']
        ordering = ['program__date', 'program__start_time']

    def __str__(self):
        return f"{self.package.name} -> {self.program.name}"

    def to_dict(self):
        return {
            'id': self.pk,
            'program_id': self.program_id,
            'package_id': self.package_id,
            'program': {
                'id': self.program_id,
                'name': self.program.name,
                'date': self.program.date.isoformat(),
            },
        }


class Registration(models.Model):
    """Enrollment of a player in a program, a package, or both."""
    player = models.ForeignKey('people.Player', on_delete=models.CASCADE, related_name='registrations')
    program = models.ForeignKey(
        Program,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='registrations'
    )
    # Package removal keeps the per-program registration and drops the reference
    package = models.ForeignKey(
        Package,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='registrations'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        target = self.program or self.package
        return f"{self.player.full_name} - {target}"

    def clean(self):
        if not self.program_id and not self.package_id:
            raise ValidationError("A registration needs a program or a package.")

    def to_dict(self):
        return {
            'id': self.pk,
            'player_id': self.player_id,
            'program_id': self.program_id,
            'package_id': self.package_id,
            'player': {
                'first_name': self.player.first_name,
                'last_name': self.player.last_name,
                'email': self.player.email,
            },
            'program': {
                'name': self.program.name,
                'date': self.program.date.isoformat(),
                'price': float(self.program.price),
            } if self.program else None,
            'package': {
                'name': self.package.name,
                'price': float(self.package.price),
            } if self.package else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
