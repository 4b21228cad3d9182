"""Structured selector configuration for the target site.

Selector values are opaque to the pipeline; they are only handed to the
browser. The model accepts both the upper-case keys used by the selector
JSON files (``SEARCH_PAGE_URL``) and the snake_case field names.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import ConfigurationError
from Utils.csv_table import Table

logger = logging.getLogger(__name__)

__all__ = ["SelectorConfig", "ColumnRef", "resolve_column"]

ColumnRef = Union[int, str]

REQUIRED_FIELDS: tuple[str, ...] = (
    "search_page_url",
    "name_input_selector",
    "company_input_selector",
    "submit_button_selector",
)


class SelectorConfig(BaseModel):
    """Validated extraction descriptors for one job.

    Attributes:
        search_page_url: Landing/search page opened after login.
        name_input_selector: Person-name search input.
        company_input_selector: Company search input.
        submit_button_selector: Search submit control.
        result_container_selector: Result area read by the regex fallback.
        email_item_selector: One element per revealed email.
        phone_reveal_button_selector: Control that unmasks phone numbers.
        phone_item_selector: One element per phone number.
        multi_value_remove_selector: "x" control clearing a tag-style
            company input between searches.
        full_name_column: 0-based index or header name of the name column.
        company_name_column: 0-based index or header name of the company
            column.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    search_page_url: str = Field(default="", alias="SEARCH_PAGE_URL")
    name_input_selector: str = Field(default="", alias="NAME_INPUT_SELECTOR")
    company_input_selector: str = Field(default="", alias="COMPANY_INPUT_SELECTOR")
    submit_button_selector: str = Field(default="", alias="SUBMIT_BUTTON_SELECTOR")
    result_container_selector: str = Field(default="", alias="RESULT_CONTAINER_SELECTOR")
    email_item_selector: str = Field(default="", alias="EMAIL_ITEM_SELECTOR")
    phone_reveal_button_selector: str = Field(
        default="", alias="PHONE_REVEAL_BUTTON_SELECTOR"
    )
    phone_item_selector: str = Field(default="", alias="PHONE_ITEM_SELECTOR")
    multi_value_remove_selector: str = Field(
        default="", alias="MULTI_VALUE_REMOVE_SELECTOR"
    )
    full_name_column: ColumnRef = Field(default=0, alias="FULL_NAME_COLUMN_INDEX")
    company_name_column: ColumnRef = Field(default=1, alias="COMPANY_NAME_COLUMN_INDEX")

    @field_validator("full_name_column", "company_name_column", mode="before")
    @classmethod
    def coerce_column(cls, v: Any) -> ColumnRef:
        if isinstance(v, bool):
            raise ValueError("column must be an index or a header name")
        if isinstance(v, str):
            v = v.strip()
            return int(v) if v.isdigit() else v
        return v

    @field_validator(
        "search_page_url",
        "name_input_selector",
        "company_input_selector",
        "submit_button_selector",
        "result_container_selector",
        "email_item_selector",
        "phone_reveal_button_selector",
        "phone_item_selector",
        "multi_value_remove_selector",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "SelectorConfig":
        """Build and validate a config, failing fast on missing fields.

        ``FULL_NAME_COLUMN`` / ``COMPANY_NAME_COLUMN`` are accepted as
        name-based aliases of the ``*_COLUMN_INDEX`` keys.

        Raises:
            ConfigurationError: If a required descriptor is absent or a
                value has the wrong type.
        """
        payload: Dict[str, Any] = dict(data or {})
        for alias, key in (
            ("FULL_NAME_COLUMN", "FULL_NAME_COLUMN_INDEX"),
            ("COMPANY_NAME_COLUMN", "COMPANY_NAME_COLUMN_INDEX"),
        ):
            if alias in payload and key not in payload:
                payload[key] = payload.pop(alias)
        try:
            config = cls.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid selector configuration: {exc}") from exc

        missing = [name for name in REQUIRED_FIELDS if not getattr(config, name)]
        if missing:
            keys = ", ".join(cls.model_fields[name].alias or name for name in missing)
            raise ConfigurationError(
                f"Search page selectors must be configured; missing: {keys}"
            )
        return config

    @classmethod
    def from_json(cls, raw: str) -> "SelectorConfig":
        """Parse a JSON object string (the ``JOB_SELECTORS`` env value)."""
        try:
            data = json.loads(raw) if raw and raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Selector configuration is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError("Selector configuration must be a JSON object")
        return cls.from_mapping(data)


def resolve_column(table: Table, ref: ColumnRef, label: str) -> int:
    """Turn an index or header name into a column index of ``table``.

    Raises:
        ConfigurationError: If the index is out of range or the name is not
            in the header.
    """
    if isinstance(ref, int):
        if 0 <= ref < len(table.header):
            return ref
        raise ConfigurationError(
            f"{label} column index {ref} is outside the {len(table.header)}-column header"
        )
    index = table.column_index(ref)
    if index is None:
        raise ConfigurationError(f"{label} column {ref!r} not found in header {table.header}")
    return index
