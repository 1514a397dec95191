"""CSV ingestion for digit images and multi-entity price series."""

from typing import Dict, Optional, Any, List, Union
from dataclasses import dataclass
from pathlib import Path
import logging

import numpy as np
import pandas as pd

from tabwindow.utils.error_handling import EmptyDatasetError, ParseError

logger = logging.getLogger(__name__)

DELIMITER = ","
LABEL_COLUMN = "label"
BYTE_ORDER_MARK = "\ufeff"


@dataclass
class ValidationResult:
    """Result of schema validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    schema_violations: Dict[str, str]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "schema_violations": self.schema_violations,
        }


def read_text(path: Union[str, Path], encoding: str = "utf-8") -> str:
    """
    Read a whole file into memory.

    This is the only place the ingestion layer touches the filesystem; the
    parsers below work on the returned text.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ParseError: If the content cannot be decoded
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    return decode_text(file_path.read_bytes(), encoding=encoding, source=str(path))


def decode_text(
    content: Union[str, bytes],
    encoding: str = "utf-8",
    source: str = "<memory>",
) -> str:
    """
    Return content as text, decoding bytes with the given encoding.

    A leading byte order mark is dropped from both bytes and text input.
    """
    if isinstance(content, str):
        text = content
    else:
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError as e:
            raise ParseError(
                f"Cannot decode {source} as {encoding}: {e.reason} at byte {e.start}",
                details={"source": source, "encoding": encoding, "position": e.start},
            ) from e
    if text.startswith(BYTE_ORDER_MARK):
        text = text[len(BYTE_ORDER_MARK):]
    return text


def split_lines(text: str) -> List[str]:
    """Newline-delimited, non-blank lines with trailing whitespace removed."""
    return [line.rstrip("\r") for line in text.split("\n") if line.strip()]


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return np.nan


class DataLoader:
    """
    Parses delimited text into ordered records.

    Fields are split on commas with no quoting or escaping, so a comma
    inside a value is not supported.
    """

    def parse_digit_csv(
        self,
        content: Union[str, bytes],
        pixel_count: int = 784,
        num_classes: int = 10,
        max_intensity: float = 255.0,
    ) -> pd.DataFrame:
        """
        Parse header-less ``label,p0,...,p{P-1}`` rows.

        Lines whose field count is not exactly ``1 + pixel_count`` are
        dropped, as are lines with a non-numeric field, a label outside
        ``[0, num_classes)`` or an intensity outside ``[0, max_intensity]``.

        Args:
            content: Raw CSV text or UTF-8 bytes
            pixel_count: Number of intensity columns per row
            num_classes: Size of the label space
            max_intensity: Largest valid intensity

        Returns:
            DataFrame with an int64 ``label`` column and float64 ``p0..``
            columns, rows in input order

        Raises:
            ParseError: If bytes cannot be decoded
            EmptyDatasetError: If no line survives
        """
        lines = split_lines(decode_text(content))
        expected_fields = 1 + pixel_count

        rows: List[List[float]] = []
        dropped = {"field_count": 0, "non_numeric": 0, "out_of_range": 0}
        for line in lines:
            parts = line.split(DELIMITER)
            if len(parts) != expected_fields:
                dropped["field_count"] += 1
                continue
            values = [_to_float(p) for p in parts]
            if not all(np.isfinite(v) for v in values):
                dropped["non_numeric"] += 1
                continue
            label = values[0]
            pixels = values[1:]
            if (
                label != int(label)
                or not 0 <= label < num_classes
                or min(pixels) < 0
                or max(pixels) > max_intensity
            ):
                dropped["out_of_range"] += 1
                continue
            rows.append(values)

        total_dropped = sum(dropped.values())
        if total_dropped:
            logger.debug(f"Dropped {total_dropped} malformed digit rows: {dropped}")

        if not rows:
            raise EmptyDatasetError(
                "No valid data found: no line had "
                f"{expected_fields} numeric fields with a valid label",
                details={"lines": len(lines), "dropped": dropped},
            )

        columns = [LABEL_COLUMN] + [f"p{i}" for i in range(pixel_count)]
        df = pd.DataFrame(np.asarray(rows, dtype=np.float64), columns=columns)
        df[LABEL_COLUMN] = df[LABEL_COLUMN].astype(np.int64)
        logger.info(f"Parsed {len(df)} digit rows ({total_dropped} dropped)")
        return df

    def parse_timeseries_csv(
        self,
        content: Union[str, bytes],
        date_column: str = "Date",
        entity_column: str = "Symbol",
    ) -> pd.DataFrame:
        """
        Parse a headered ``Date,Symbol,Open,Close[,...]`` table.

        Columns are matched by name, in any order. Each data row is mapped
        positionally onto the header; short rows leave trailing columns
        missing and extra fields are ignored. Every column other than the
        date and entity columns is numeric, with unparsable values read
        as NaN.

        Args:
            content: Raw CSV text or UTF-8 bytes
            date_column: Name of the date column
            entity_column: Name of the entity identifier column

        Returns:
            DataFrame with string date/entity columns and float64 value
            columns, rows in input order

        Raises:
            ParseError: If bytes cannot be decoded or a required column is
                missing from the header
            EmptyDatasetError: If there are no data rows
        """
        lines = split_lines(decode_text(content))
        if not lines:
            raise EmptyDatasetError("Input contains no lines", details={"lines": 0})

        header = [h.strip() for h in lines[0].split(DELIMITER)]
        missing = [c for c in (date_column, entity_column) if c not in header]
        if missing:
            raise ParseError(
                f"Header is missing required column(s) {missing}; found {header}",
                details={"header": header, "missing": missing},
            )

        data_lines = lines[1:]
        if not data_lines:
            raise EmptyDatasetError(
                "No data rows found after header",
                details={"header": header},
            )

        width = len(header)
        records: List[List[Optional[str]]] = []
        short_rows = 0
        for line in data_lines:
            values: List[Optional[str]] = [v.strip() for v in line.split(DELIMITER)][:width]
            if len(values) < width:
                short_rows += 1
                values.extend([None] * (width - len(values)))
            records.append(values)

        if short_rows:
            logger.debug(f"{short_rows} rows had fewer fields than the header")

        df = pd.DataFrame(records, columns=header)
        # Duplicate header names keep the first column, like a keyed row mapping.
        df = df.loc[:, ~df.columns.duplicated()].copy()
        df[date_column] = df[date_column].fillna("").astype(str)
        df[entity_column] = df[entity_column].fillna("").astype(str)

        value_columns = [c for c in df.columns if c not in (date_column, entity_column)]
        for col in value_columns:
            # inf/-inf tokens count as unparsable
            df[col] = (
                pd.to_numeric(df[col], errors="coerce")
                .astype(np.float64)
                .replace([np.inf, -np.inf], np.nan)
            )

        nan_count = int(df[value_columns].isna().sum().sum()) if value_columns else 0
        if nan_count:
            logger.warning(f"{nan_count} numeric values could not be parsed and are missing")

        logger.info(
            f"Parsed {len(df)} rows with columns {list(df.columns)} "
            f"({df[entity_column].nunique()} entities)"
        )
        return df

    def validate_schema(
        self,
        df: pd.DataFrame,
        schema: Dict[str, str]
    ) -> ValidationResult:
        """
        Validate DataFrame against expected schema.

        Args:
            df: DataFrame to validate
            schema: Expected schema as {column_name: dtype_string}

        Returns:
            ValidationResult with validation details
        """
        errors: List[str] = []
        warnings: List[str] = []
        schema_violations: Dict[str, str] = {}

        for col in schema.keys():
            if col not in df.columns:
                errors.append(f"Missing required column: {col}")
                schema_violations[col] = "missing"

        extra_cols = set(df.columns) - set(schema.keys())
        if extra_cols:
            warnings.append(f"Extra columns found: {sorted(extra_cols)}")

        for col, expected_dtype in schema.items():
            if col in df.columns:
                actual_dtype = str(df[col].dtype)
                if not self._dtype_compatible(actual_dtype, expected_dtype):
                    errors.append(
                        f"Column '{col}' has dtype '{actual_dtype}', "
                        f"expected '{expected_dtype}'"
                    )
                    schema_violations[col] = (
                        f"dtype_mismatch: {actual_dtype} != {expected_dtype}"
                    )

        is_valid = len(errors) == 0
        return ValidationResult(
            is_valid=is_valid,
            errors=errors,
            warnings=warnings,
            schema_violations=schema_violations,
        )

    def _dtype_compatible(self, actual: str, expected: str) -> bool:
        """Check if actual dtype is compatible with expected dtype."""
        actual_norm = actual.lower().replace(" ", "")
        expected_norm = expected.lower().replace(" ", "")

        if actual_norm == expected_norm:
            return True

        float_types = {"float64", "float32", "float", "float16"}
        if actual_norm in float_types and expected_norm in float_types:
            return True

        int_types = {"int64", "int32", "int", "int16", "int8"}
        if actual_norm in int_types and expected_norm in int_types:
            return True

        # pandas may hold strings as object or as the dedicated string dtype
        string_types = {"object", "str", "string"}
        if actual_norm in string_types and expected_norm in string_types:
            return True

        return False
