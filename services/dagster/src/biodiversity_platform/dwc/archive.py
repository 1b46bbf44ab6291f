from __future__ import annotations

import io
import os
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from tempfile import TemporaryDirectory
from xml.etree import ElementTree as ET

import duckdb

DWC_CLASSES = (
    "event",
    "location",
    "measurementorfact",
    "occurrence",
    "record-level",
    "resourcerelationship",
    "taxon",
)
EML_FILENAME = "eml.xml"
META_FILENAME = "meta.xml"
BLANK_BYTES = b"\xef\xbb\xbf \t\r\n"


class ParseError(ValueError):
    pass


@dataclass(frozen=True)
class FileFormat:
    delimiter: str = "\t"
    # empty string disables quoting
    quotechar: str = '"'
    header_lines: int = 1
    columns: tuple[str, ...] = ()


@dataclass
class Worksheet:
    name: str
    headers: list[str]
    rows: list[list[str]]
    table: str | None = None

    def get_row_objects(self) -> list[dict[str, str]]:
        objects = []
        for row in self.rows:
            padded = row + [""] * (len(self.headers) - len(row))
            objects.append(dict(zip(self.headers, padded)))
        return objects


@dataclass
class DWCArchive:
    """A parsed archive. Worksheets read from the zip also live as tables in ``con``."""

    file_name: str
    files: list[str]
    eml: bytes | None = None
    meta: bytes | None = None
    worksheets: dict[str, Worksheet] = field(default_factory=dict)
    con: duckdb.DuckDBPyConnection | None = field(default=None, repr=False, compare=False)

    def close(self) -> None:
        if self.con is not None:
            self.con.close()
            self.con = None

    def __enter__(self) -> DWCArchive:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def table_name(worksheet: str) -> str:
    return re.sub(r"[^a-z0-9_]", "_", worksheet.lower())


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def _unescape(value: str | None, default: str) -> str:
    if value is None:
        return default
    return value.replace("\\t", "\t").replace("\\n", "\n")


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _term_name(term: str) -> str:
    return re.split(r"[/#]", term.rstrip("/"))[-1]


def _column_names(element: ET.Element) -> tuple[str, ...]:
    """Column names by position from the id/coreid and field mappings of a core or extension."""
    by_index: dict[int, str] = {}
    for child in element:
        tag = _local(child.tag)
        index = (child.get("index") or "").strip()
        if not index.isdigit():
            continue
        if tag == "field" and child.get("term"):
            by_index[int(index)] = _term_name(child.get("term"))
        elif tag in ("id", "coreid"):
            by_index.setdefault(int(index), tag)
    if not by_index:
        return ()
    return tuple(by_index.get(position, f"column{position}") for position in range(max(by_index) + 1))


def _read_meta(meta: bytes) -> dict[str, FileFormat]:
    """Map archive member name to the field format declared for it in meta.xml."""
    try:
        root = ET.fromstring(meta)
    except ET.ParseError as exc:
        raise ParseError(f"Invalid {META_FILENAME}: {exc}") from exc

    formats: dict[str, FileFormat] = {}
    for element in root:
        if _local(element.tag) not in ("core", "extension"):
            continue
        try:
            header_lines = int(element.get("ignoreHeaderLines", "1"))
        except ValueError as exc:
            raise ParseError(f"Invalid ignoreHeaderLines in {META_FILENAME}: {exc}") from exc
        fmt = FileFormat(
            delimiter=_unescape(element.get("fieldsTerminatedBy"), "\t"),
            quotechar=element.get("fieldsEnclosedBy", '"'),
            header_lines=max(header_lines, 0),
            columns=_column_names(element),
        )
        for location in element.iter():
            if _local(location.tag) == "location" and location.text:
                formats[location.text.strip()] = fmt
    return formats


def _default_format(member: str) -> FileFormat:
    if member.lower().endswith(".csv"):
        return FileFormat(delimiter=",")
    return FileFormat()


def _read_csv_options(name: str, fmt: FileFormat) -> list[str]:
    options = [
        f"delim={quote_literal(fmt.delimiter)}",
        f"quote={quote_literal(fmt.quotechar)}",
        "all_varchar=true",
        "null_padding=true",
    ]
    if fmt.header_lines > 0:
        options += ["header=true", f"skip={fmt.header_lines - 1}"]
    elif fmt.columns:
        options += ["header=false", "names=[" + ", ".join(quote_literal(c) for c in fmt.columns) + "]"]
    else:
        raise ParseError(f"Worksheet {name} has no header line and no field mapping in {META_FILENAME}")
    return options


def _load_worksheet(con: duckdb.DuckDBPyConnection, name: str, path: Path, fmt: FileFormat) -> Worksheet:
    table = quote_identifier(table_name(name))
    options = ", ".join(_read_csv_options(name, fmt))
    con.execute(
        f"CREATE TABLE {table} AS SELECT * FROM read_csv({quote_literal(path.as_posix())}, {options})"
    )

    headers = [column[0] for column in con.execute(f"SELECT * FROM {table} LIMIT 0").description]
    blank = " AND ".join(f"NULLIF(TRIM({quote_identifier(header)}), '') IS NULL" for header in headers)
    con.execute(f"DELETE FROM {table} WHERE {blank}")

    rows = con.execute(f"SELECT * FROM {table}").fetchall()
    return Worksheet(
        name=name,
        headers=headers,
        rows=[["" if value is None else value for value in row] for row in rows],
        table=table_name(name),
    )


def worksheet_name(member: str) -> str | None:
    base = os.path.basename(member)
    name = os.path.splitext(base)[0].lower()
    return name if name in DWC_CLASSES else None


def parse_dwc_archive(payload: bytes | None, file_name: str) -> DWCArchive:
    if not payload:
        raise ParseError("Archive is empty")

    try:
        archive = zipfile.ZipFile(io.BytesIO(payload))
    except zipfile.BadZipFile as exc:
        raise ParseError(f"{file_name} is not a valid archive") from exc

    con = duckdb.connect()
    worksheets: dict[str, Worksheet] = {}
    try:
        with archive, TemporaryDirectory() as tempdir:
            members = [info.filename for info in archive.infolist() if not info.is_dir()]
            by_basename = {os.path.basename(member).lower(): member for member in members}

            eml = archive.read(by_basename[EML_FILENAME]) if EML_FILENAME in by_basename else None
            meta = archive.read(by_basename[META_FILENAME]) if META_FILENAME in by_basename else None
            formats = _read_meta(meta) if meta else {}

            for idx, member in enumerate(members):
                name = worksheet_name(member)
                if name is None:
                    continue
                if name in worksheets:
                    raise ParseError(f"{file_name} contains more than one {name} worksheet")

                fmt = formats.get(member) or formats.get(os.path.basename(member)) or _default_format(member)
                content = archive.read(member)
                if fmt.header_lines > 0 and not content.strip(BLANK_BYTES):
                    raise ParseError(f"Worksheet {name} is missing its header line")

                staged_path = Path(tempdir) / f"worksheet_{idx}.txt"
                staged_path.write_bytes(content)
                try:
                    worksheets[name] = _load_worksheet(con, name, staged_path, fmt)
                except duckdb.Error as exc:
                    raise ParseError(f"Worksheet {member} could not be read: {exc}") from exc

        if not worksheets:
            raise ParseError(f"{file_name} contains no Darwin Core worksheets")
    except Exception:
        con.close()
        raise

    return DWCArchive(
        file_name=file_name,
        files=members,
        eml=eml,
        meta=meta,
        worksheets=worksheets,
        con=con,
    )
