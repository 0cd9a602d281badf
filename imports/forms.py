from django import forms

from programs.models import Location, Season
from .importer import CapacityMapping, FormResponseMapping, RawDataMapping

MAPPING_PREFIX = 'map_'

STAGE_MAPPINGS = {
    'raw': RawDataMapping,
    'capacity': CapacityMapping,
    'responses': FormResponseMapping,
}


class CSVUploadForm(forms.Form):
    """
    A CSV upload, either as a file or pasted text.

    Column mappings are read from ``map_<field>`` entries, e.g.
    ``map_program_id=Program IDs``.
    """
    csv_file = forms.FileField(required=False)
    csv_text = forms.CharField(widget=forms.Textarea, required=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            field.widget.attrs.update({'class': 'form-control'})

    def clean(self):
        cleaned_data = super().clean()
        upload = cleaned_data.get('csv_file')
        if upload:
            try:
                cleaned_data['text'] = upload.read().decode('utf-8-sig')
            except UnicodeDecodeError:
                raise forms.ValidationError("CSV file must be UTF-8 encoded.")
        elif cleaned_data.get('csv_text'):
            cleaned_data['text'] = cleaned_data['csv_text']
        else:
            raise forms.ValidationError("Upload a CSV file or paste CSV text.")
        return cleaned_data

    def mapping(self, mapping_class):
        values = {
            key[len(MAPPING_PREFIX):]: value
            for key, value in self.data.items()
            if key.startswith(MAPPING_PREFIX)
        }
        return mapping_class.from_dict(values)


class RawDataUploadForm(CSVUploadForm):
    location = forms.ModelChoiceField(queryset=Location.objects.all(), required=False)
    season = forms.ModelChoiceField(queryset=Season.objects.all(), required=False)
