from django import forms

from people.models import Player
from .models import Category, Level, Location, Package, Program, Registration, Season
from .services import CREDIT_TYPES


class StyledFormMixin:
    """Applies the shared ``form-control`` class to every widget."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            field.widget.attrs.update({'class': 'form-control'})


class ProgramForm(StyledFormMixin, forms.ModelForm):
    """Form for creating and editing a single program."""

    class Meta:
        model = Program
        fields = [
            'name', 'date', 'start_time', 'end_time', 'price', 'max_registrations',
            'level', 'category', 'location', 'season', 'original_id',
        ]
        widgets = {
            'date': forms.DateInput(attrs={'type': 'date'}),
            'start_time': forms.TimeInput(attrs={'type': 'time'}),
            'end_time': forms.TimeInput(attrs={'type': 'time'}),
            'price': forms.NumberInput(attrs={'step': '0.01', 'min': '0'}),
        }

    def clean(self):
        cleaned_data = super().clean()
        start_time = cleaned_data.get('start_time')
        end_time = cleaned_data.get('end_time')
        if start_time and end_time and end_time <= start_time:
            raise forms.ValidationError("End time must be after start time.")
        return cleaned_data


class PackageForm(StyledFormMixin, forms.ModelForm):
    """Form for creating and editing packages."""

    class Meta:
        model = Package
        fields = ['name', 'price', 'location', 'original_id']
        widgets = {
            'price': forms.NumberInput(attrs={'step': '0.01', 'min': '0'}),
        }


class RegistrationForm(StyledFormMixin, forms.ModelForm):

    class Meta:
        model = Registration
        fields = ['player', 'program', 'package']

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get('program') and not cleaned_data.get('package'):
            raise forms.ValidationError("Select a program or a package.")
        return cleaned_data


class BatchRegistrationForm(StyledFormMixin, forms.Form):
    """Register one player for several programs, optionally under a package."""
    player = forms.ModelChoiceField(queryset=Player.objects.all())
    programs = forms.ModelMultipleChoiceField(queryset=Program.objects.all(), required=False)
    package = forms.ModelChoiceField(queryset=Package.objects.all(), required=False)

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get('programs') and not cleaned_data.get('package'):
            raise forms.ValidationError("Select at least one program or a package.")
        return cleaned_data


class SeriesForm(StyledFormMixin, forms.Form):
    """
    Parameters for generating a weekly program series and its packages.

    Name overrides are submitted as repeated ``program_names`` and
    ``package_names`` fields, read by index from the request.
    """
    start_date = forms.DateField(widget=forms.DateInput(attrs={'type': 'date'}))
    number_of_weeks = forms.IntegerField(min_value=1, max_value=52)
    number_of_packages = forms.IntegerField(min_value=1, max_value=52)
    start_time = forms.TimeField(widget=forms.TimeInput(attrs={'type': 'time'}))
    end_time = forms.TimeField(widget=forms.TimeInput(attrs={'type': 'time'}))
    individual_day_price = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    package_per_day_price = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    package_price_override = forms.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False,
        help_text="Used for every package instead of per-day price x weeks"
    )
    max_registrations = forms.IntegerField(min_value=0, required=False)
    level = forms.ModelChoiceField(queryset=Level.objects.all(), required=False)
    category = forms.ModelChoiceField(queryset=Category.objects.all(), required=False)
    location = forms.ModelChoiceField(queryset=Location.objects.all(), required=False)
    season = forms.ModelChoiceField(queryset=Season.objects.all(), required=False)

    def clean(self):
        cleaned_data = super().clean()
        weeks = cleaned_data.get('number_of_weeks')
        packages = cleaned_data.get('number_of_packages')
        if weeks and packages and packages > weeks:
            raise forms.ValidationError("Cannot split into more packages than weeks.")
        start_time = cleaned_data.get('start_time')
        end_time = cleaned_data.get('end_time')
        if start_time and end_time and end_time <= start_time:
            raise forms.ValidationError("End time must be after start time.")
        return cleaned_data


class CreditForm(StyledFormMixin, forms.Form):
    """Optional credit issued before a registration, program or package is removed."""
    credit_type = forms.ChoiceField(
        choices=[('', 'No credit')] + [(t, t.title()) for t in CREDIT_TYPES],
        required=False
    )
    credit_amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('credit_type') == 'custom' and cleaned_data.get('credit_amount') is None:
            raise forms.ValidationError("Enter an amount for a custom credit.")
        return cleaned_data


def reference_form_class(model):
    """ModelForm for one of the name-only reference tables."""
    meta = type('Meta', (), {'model': model, 'fields': ['name']})
    return type(f'{model.__name__}Form', (StyledFormMixin, forms.ModelForm), {'Meta': meta})
