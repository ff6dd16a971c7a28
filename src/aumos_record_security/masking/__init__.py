"""Field-level security: field removal and value masking."""
from __future__ import annotations

from aumos_record_security.masking.field_masker import FieldMasker
from aumos_record_security.masking.mask_formats import mask_value, split_into_chunks

__all__ = [
    "FieldMasker",
    "mask_value",
    "split_into_chunks",
]
