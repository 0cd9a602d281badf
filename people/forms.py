from decimal import Decimal

from django import forms

from .models import Player


class PlayerForm(forms.ModelForm):
    """Form for creating and editing players."""

    class Meta:
        model = Player
        fields = ['first_name', 'last_name', 'email', 'phone']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            field.widget.attrs.update({'class': 'form-control'})

    def clean_email(self):
        # Stored as NULL rather than '' so blank emails never collide
        return self.cleaned_data.get('email') or None


class IssueCreditForm(forms.Form):
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['amount'].widget.attrs.update({'class': 'form-control', 'step': '0.01'})
