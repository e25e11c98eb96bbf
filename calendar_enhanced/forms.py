"""
WTForms Form Classes for the Calendar Enhanced admin screen

Row-level validation is loose: rows with an empty category or
with neither image nor color are dropped by the mapping store on save, so
one bad row never blocks the rest of the table.
"""

from flask_wtf import FlaskForm
from wtforms import BooleanField, FieldList, Form, FormField, StringField, SubmitField
from wtforms.validators import Length, Optional

from calendar_enhanced.domain.colors import sanitize_color
from calendar_enhanced.domain.mapping import MappingEntry, normalize_image_ref


class MappingRowForm(Form):
    """One category → (image, color) row. Nested, so no CSRF field of its own."""

    category = StringField('Category', validators=[Optional(), Length(max=200)])
    image_ref = StringField('Image', validators=[Optional(), Length(max=500)])
    color = StringField('Color', validators=[Optional(), Length(max=20)])

    def to_entry(self) -> MappingEntry:
        return MappingEntry(
            category=(self.category.data or '').strip(),
            image_ref=normalize_image_ref(self.image_ref.data),
            color=sanitize_color(self.color.data or ''),
        )


class CategoryMappingsForm(FlaskForm):
    """Whole-table settings form"""

    mappings = FieldList(FormField(MappingRowForm), min_entries=1)
    general_fallback = StringField('General fallback image', validators=[Optional(), Length(max=500)])
    show_countdown_subline = BooleanField('Show "In N days" below event titles')
    submit = SubmitField('Save Changes')

    def entries(self):
        return [row.form.to_entry() for row in self.mappings]

    def load(self, table, general_fallback: str, show_countdown: bool) -> None:
        """Fill the form from stored settings, keeping one blank row to add to."""
        while len(self.mappings.entries):
            self.mappings.pop_entry()
        for entry in table:
            self.mappings.append_entry({
                'category': entry.category,
                'image_ref': entry.image_ref,
                'color': entry.color,
            })
        self.mappings.append_entry()
        self.general_fallback.data = general_fallback
        self.show_countdown_subline.data = show_countdown
