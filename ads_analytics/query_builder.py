# Composes report queries from named CTE stages and tagged UNION ALL output sections.
import re
import textwrap
from dataclasses import dataclass
from typing import List, Optional, Sequence

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SECTION_TAG = re.compile(r"^[A-Z][A-Z0-9_]*$")
_LIMIT = re.compile(r"\bLIMIT\b", re.IGNORECASE)


@dataclass(frozen=True)
class Stage:
    name: str
    sql: str
    comment: Optional[str] = None


@dataclass(frozen=True)
class Section:
    tag: str
    payload: str
    source: Optional[str] = None
    comment: Optional[str] = None


def _indent(sql: str, prefix: str = "  ") -> str:
    return textwrap.indent(textwrap.dedent(sql).strip(), prefix)


class ReportQuery:
    """
    A report is a chain of CTE stages followed by one or more sections, each
    rendered as `SELECT '<TAG>' as section, <payload> as summary_data`.

    Sections are joined with UNION ALL and ordered by tag. BigQuery rejects a
    LIMIT on an individual UNION ALL branch, so row caps belong in a stage.
    """

    def __init__(self, title: str, notes: Sequence[str] = ()):
        self.title = title
        self.notes = list(notes)
        self.stages: List[Stage] = []
        self.sections: List[Section] = []

    def stage(self, name: str, sql: str, comment: Optional[str] = None) -> "ReportQuery":
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid stage name: {name!r}")
        if any(s.name == name for s in self.stages):
            raise ValueError(f"Duplicate stage name: {name}")
        self.stages.append(Stage(name, sql, comment))
        return self

    def section(self, tag: str, payload: str, source: Optional[str] = None,
                comment: Optional[str] = None) -> "ReportQuery":
        if not _SECTION_TAG.match(tag):
            raise ValueError(f"Invalid section tag: {tag!r}")
        if any(s.tag == tag for s in self.sections):
            raise ValueError(f"Duplicate section tag: {tag}")
        if source and _LIMIT.search(source):
            raise ValueError(
                f"Section {tag} limits rows inside a UNION ALL branch; apply the limit in a stage instead."
            )
        self.sections.append(Section(tag, payload, source, comment))
        return self

    def stage_names(self) -> List[str]:
        return [s.name for s in self.stages]

    def section_tags(self) -> List[str]:
        return sorted(s.tag for s in self.sections)

    def _render_stage(self, stage: Stage) -> str:
        head = f"-- {stage.comment}\n" if stage.comment else ""
        return f"{head}{stage.name} AS (\n{_indent(stage.sql)}\n)"

    def _render_section(self, section: Section) -> str:
        head = f"-- {section.comment}\n" if section.comment else ""
        sql = f"{head}SELECT\n  '{section.tag}' as section,\n{_indent(section.payload)} as summary_data"
        if section.source:
            sql += f"\nFROM {textwrap.dedent(section.source).strip()}"
        return sql

    def render(self) -> str:
        if not self.sections:
            raise ValueError(f"Report '{self.title}' has no output sections.")

        parts = [f"-- {self.title}"]
        parts.extend(f"-- {note}" for note in self.notes)
        header = "\n".join(parts)

        body = ""
        if self.stages:
            body = "WITH\n" + ",\n\n".join(self._render_stage(s) for s in self.stages) + "\n\n"

        unions = "\n\nUNION ALL\n\n".join(self._render_section(s) for s in self.sections)
        return f"{header}\n\n{body}{unions}\n\nORDER BY section;\n"
