"""
Invocation Context Module

Values the caller supplies alongside the document text. They bypass text
extraction and are written at the table's reserved paths:

- patient_id      -> settings.subject_id_path     (default "patientDetails")
- scheduled_date  -> settings.scheduled_date_path (default "scheduledDate")

Validated with Pydantic so a blank identifier is rejected before any
extraction work is done.
"""

from datetime import date

from pydantic import BaseModel, Field, field_validator


DATE_FORMAT = "%m/%d/%Y"


def today() -> str:
    """Today's date in the form's MM/DD/YYYY format."""
    return date.today().strftime(DATE_FORMAT)


class ExtractionContext(BaseModel):
    """
    Caller-supplied values for one extraction run.

    An empty or missing scheduled date falls back to today.
    """
    patient_id: str
    scheduled_date: str = Field(default="", validate_default=True)

    model_config = {'frozen': True}

    @field_validator('patient_id', mode='before')
    @classmethod
    def validate_patient_id(cls, v):
        """Subject identifiers must be non-blank."""
        if v is None:
            raise ValueError('Patient id is required')
        v = str(v).strip()
        if not v:
            raise ValueError('Patient id must not be blank')
        return v

    @field_validator('scheduled_date', mode='before')
    @classmethod
    def validate_scheduled_date(cls, v):
        if v is None:
            return today()
        v = str(v).strip()
        return v or today()
