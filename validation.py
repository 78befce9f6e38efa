"""
Declarative validation for product submissions.
"""

import pydantic
from markupsafe import escape
from pydantic import BaseModel, Field, field_validator


class ValidationError(Exception):
    """One or more submitted fields broke their rules."""

    def __init__(self, errors):
        super().__init__(f'{len(errors)} invalid field(s)')
        self.errors = errors

    @property
    def fields(self):
        return [error['path'] for error in self.errors]


class ProductSubmission(BaseModel):
    name: str = Field(..., min_length=1)
    productname: str = Field(..., min_length=1)
    priceperkg_l: float = Field(..., ge=0, allow_inf_nan=False)
    amountkg_l: float = Field(..., ge=0, allow_inf_nan=False)
    description: str = ''

    @field_validator('name', 'productname', 'description', mode='before')
    @classmethod
    def trim(cls, value):
        if value is None:
            return ''
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value).strip()
        return value

    @field_validator('name', 'productname', 'description')
    @classmethod
    def html_escape(cls, value):
        return str(escape(value))

    @field_validator('priceperkg_l', 'amountkg_l', mode='before')
    @classmethod
    def reject_bool(cls, value):
        # lax float parsing would turn true/false into 1.0/0.0
        if isinstance(value, bool):
            raise ValueError('must be a number')
        return value


def validate_product(data):
    """
    Apply the product rules to a request body.

    Returns the normalized fields, or raises ValidationError with one entry
    per failing field.
    """
    if not isinstance(data, dict):
        data = {}
    try:
        submission = ProductSubmission.model_validate(data)
    except pydantic.ValidationError as exc:
        errors = []
        seen = set()
        for err in exc.errors():
            path = str(err['loc'][0]) if err['loc'] else ''
            if path in seen:
                continue
            seen.add(path)
            errors.append({
                'type': 'field',
                'path': path,
                'msg': err['msg'],
                'value': data.get(path),
                'location': 'body',
            })
        raise ValidationError(errors) from exc
    return submission.model_dump()
