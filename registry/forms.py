from django import forms
from django.conf import settings

from registry.services.csv_import import MappingError

IGNORE_CHOICE = ("", "-- ignore this column --")


class CSVUploadForm(forms.Form):
    """Step 1: Upload a CSV file."""

    file = forms.FileField(
        label="CSV File",
        help_text="First line must be the column headers, values separated by commas.",
    )

    def clean_file(self):
        uploaded = self.cleaned_data["file"]
        limit = settings.REGISTRY_IMPORT_MAX_UPLOAD_BYTES
        if uploaded.size > limit:
            raise forms.ValidationError(
                f"File is too large ({uploaded.size} bytes, limit {limit})."
            )
        try:
            self.cleaned_data["content"] = uploaded.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise forms.ValidationError("File must be UTF-8 encoded text.")
        return uploaded


def mapping_choices(fields: list[str], labels: dict[str, str]) -> list[tuple[str, str]]:
    return [IGNORE_CHOICE] + [(f, labels.get(f, f)) for f in fields]


class ColumnMappingForm(forms.Form):
    """
    Step 2: Map CSV columns to record fields.

    Dynamically built from CSV headers; ``validator`` checks the whole
    mapping and raises MappingError.
    """

    def __init__(
        self,
        *args,
        csv_headers: list[str] | None = None,
        field_choices: list[tuple[str, str]] | None = None,
        validator=None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.csv_headers = csv_headers or []
        self.validator = validator
        self.mapping: dict[str, str] = {}
        for header in self.csv_headers:
            self.fields[f"col_{header}"] = forms.ChoiceField(
                choices=field_choices or [IGNORE_CHOICE],
                required=False,
                label=header,
            )

    def clean(self):
        cleaned = super().clean()
        raw_mapping = {
            header: cleaned.get(f"col_{header}") or None for header in self.csv_headers
        }
        if self.validator is not None:
            try:
                self.mapping = self.validator(raw_mapping)
            except MappingError as e:
                raise forms.ValidationError(str(e))
        else:
            self.mapping = {h: tag for h, tag in raw_mapping.items() if tag}
        return cleaned
