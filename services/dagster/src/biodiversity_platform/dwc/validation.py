from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

import duckdb

from biodiversity_platform.dwc.archive import (
    DWCArchive,
    Worksheet,
    quote_identifier,
    quote_literal,
    table_name,
)

logger = logging.getLogger(__name__)

BLOCKED_SQL_KEYWORDS = {
    "DROP",
    "DELETE",
    "UPDATE",
    "INSERT",
    "CREATE",
    "ALTER",
    "COPY",
    "ATTACH",
    "DETACH",
    "EXPORT",
    "IMPORT",
    "PRAGMA",
    "INSTALL",
    "LOAD",
}


@dataclass(frozen=True)
class WorksheetRule:
    rule_id: str
    rule_kind: str
    params: dict


@dataclass(frozen=True)
class ValidationFinding:
    worksheet: str | None
    rule_id: str
    rule_kind: str
    violations_count: int
    message: str


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    findings: list[ValidationFinding] = field(default_factory=list)

    def messages(self) -> list[str]:
        return [finding.message for finding in self.findings]


def _strip_sql_comments(sql: str) -> str:
    no_line = re.sub(r"--.*?$", "", sql, flags=re.MULTILINE)
    return re.sub(r"/\*.*?\*/", "", no_line, flags=re.DOTALL)


def _validate_custom_sql(sql: str) -> None:
    cleaned = _strip_sql_comments(sql).strip().rstrip(";")
    if not cleaned.upper().startswith("SELECT"):
        raise ValueError("CUSTOM_SQL must start with SELECT")
    if ";" in cleaned:
        raise ValueError("CUSTOM_SQL must be a single statement")

    upper = cleaned.upper()
    for keyword in sorted(BLOCKED_SQL_KEYWORDS):
        if re.search(rf"\b{keyword}\b", upper):
            raise ValueError(f"CUSTOM_SQL contains blocked keyword: {keyword}")


def load_schema(schema) -> dict | None:
    if schema is None or schema == "":
        return None
    if isinstance(schema, (str, bytes)):
        schema = json.loads(schema)
    if not isinstance(schema, dict):
        raise ValueError("Validation schema must be a JSON object")
    return schema


def parse_rules(worksheet_schema: dict) -> list[WorksheetRule]:
    rules = []
    for index, raw in enumerate(worksheet_schema.get("rules") or []):
        params = {key: value for key, value in raw.items() if key not in ("rule_id", "kind")}
        rules.append(
            WorksheetRule(
                rule_id=raw.get("rule_id") or f"rule_{index + 1}",
                rule_kind=str(raw["kind"]).upper(),
                params=params,
            )
        )
    return rules


def compile_rule_to_query(rule: WorksheetRule, table: str) -> str:
    source = quote_identifier(table)
    kind = rule.rule_kind
    if kind == "NOT_NULL":
        col = quote_identifier(rule.params["column"])
        return f"SELECT count(*) FROM {source} WHERE {col} IS NULL"
    if kind == "ALLOWED_VALUES":
        col = quote_identifier(rule.params["column"])
        quoted = ", ".join(quote_literal(value) for value in rule.params["values"])
        return f"SELECT count(*) FROM {source} WHERE {col} IS NOT NULL AND {col} NOT IN ({quoted})"
    if kind == "REGEX":
        col = quote_identifier(rule.params["column"])
        pattern = quote_literal(rule.params["pattern"])
        return (
            f"SELECT count(*) FROM {source} "
            f"WHERE {col} IS NOT NULL AND regexp_full_match({col}, {pattern}) = FALSE"
        )
    if kind == "UNIQUE":
        columns = rule.params.get("columns") or [rule.params["column"]]
        key_group = ", ".join(quote_identifier(column) for column in columns)
        return (
            "WITH dup AS ("
            f"SELECT {key_group}, count(*) AS c FROM {source} GROUP BY {key_group} HAVING count(*) > 1"
            ") SELECT COALESCE(sum(c), 0) FROM dup"
        )
    if kind == "CUSTOM_SQL":
        user_sql = rule.params.get("sql")
        if not user_sql:
            raise ValueError(f"Rule {rule.rule_id} missing SQL body")
        _validate_custom_sql(user_sql)
        return f"SELECT count(*) FROM ({_strip_sql_comments(user_sql).strip().rstrip(';')}) t"
    raise ValueError(f"Unsupported rule kind: {kind}")


def _materialize_worksheet(con: duckdb.DuckDBPyConnection, worksheet: Worksheet) -> str:
    """Load a worksheet that was built in memory rather than read from an archive."""
    table = table_name(worksheet.name)
    columns = ", ".join(f"{quote_identifier(header)} VARCHAR" for header in worksheet.headers)
    con.execute(f"CREATE TABLE {quote_identifier(table)} ({columns})")
    if worksheet.rows:
        placeholders = ", ".join("?" for _ in worksheet.headers)
        width = len(worksheet.headers)
        con.executemany(
            f"INSERT INTO {quote_identifier(table)} VALUES ({placeholders})",
            [
                [value if value != "" else None for value in (row + [""] * width)[:width]]
                for row in worksheet.rows
            ],
        )
    return table


def validate_dwc_archive(archive: DWCArchive, schema=None) -> ValidationReport:
    """Check an archive's worksheets against a validation schema.

    Without a schema only the structural check applies: the archive must
    carry at least one Darwin Core worksheet.
    """
    findings: list[ValidationFinding] = []
    if not archive.worksheets:
        findings.append(
            ValidationFinding(None, "structure", "STRUCTURE", 1, "Archive contains no worksheets")
        )
        return ValidationReport(valid=False, findings=findings)

    schema = load_schema(schema)
    if not schema:
        return ValidationReport(valid=True)

    for required in schema.get("required_worksheets") or []:
        if required not in archive.worksheets:
            findings.append(
                ValidationFinding(
                    required,
                    "required_worksheets",
                    "REQUIRED_WORKSHEET",
                    1,
                    f"Missing required worksheet: {required}",
                )
            )

    con = archive.con if archive.con is not None else duckdb.connect()
    try:
        for name, worksheet_schema in (schema.get("worksheets") or {}).items():
            worksheet = archive.worksheets.get(name)
            if worksheet is None:
                continue

            missing = [
                column
                for column in worksheet_schema.get("required_columns") or []
                if column not in worksheet.headers
            ]
            for column in missing:
                findings.append(
                    ValidationFinding(
                        name,
                        "required_columns",
                        "REQUIRED_COLUMN",
                        1,
                        f"Missing required column: {name}.{column}",
                    )
                )

            if archive.con is not None and worksheet.table:
                table = worksheet.table
            else:
                table = _materialize_worksheet(con, worksheet)
            for rule in parse_rules(worksheet_schema):
                column = rule.params.get("column")
                if column is not None and column not in worksheet.headers:
                    # reported above when required, otherwise nothing to check
                    continue
                violations = int(con.execute(compile_rule_to_query(rule, table)).fetchone()[0] or 0)
                logger.info(
                    "Validation rule %s (%s) on %s violations=%s",
                    rule.rule_id,
                    rule.rule_kind,
                    name,
                    violations,
                )
                if violations > 0:
                    findings.append(
                        ValidationFinding(
                            name,
                            rule.rule_id,
                            rule.rule_kind,
                            violations,
                            f"{name}: rule {rule.rule_id} ({rule.rule_kind}) failed for {violations} row(s)",
                        )
                    )
    finally:
        if archive.con is None:
            con.close()

    return ValidationReport(valid=not findings, findings=findings)
