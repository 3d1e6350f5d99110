"""IQ Server entities and the flattened policy violation row."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

VIOLATION_COLUMNS: tuple[str, ...] = (
    "Application",
    "Organization",
    "Policy",
    "Format",
    "Component",
    "Threat",
    "Policy/Action",
    "Constraint Name",
    "Condition",
    "CVE",
)
CONDITION_SEPARATOR = " | "


@dataclass(slots=True, frozen=True)
class Application:
    """One IQ Server application; the unit of work for a report run."""

    id: str
    public_id: str
    organization_id: str

    @property
    def item_id(self) -> str:
        return self.id

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Application:
        return cls(
            id=str(payload.get("id") or ""),
            public_id=str(payload.get("publicId") or ""),
            organization_id=str(payload.get("organizationId") or ""),
        )


@dataclass(slots=True, frozen=True)
class Organization:
    id: str
    name: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Organization:
        return cls(id=str(payload.get("id") or ""), name=str(payload.get("name") or ""))


@dataclass(slots=True, frozen=True)
class ReportInfo:
    """Metadata of the most recent report for an application."""

    stage: str
    report_html_url: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ReportInfo:
        return cls(
            stage=str(payload.get("stage") or ""),
            report_html_url=str(payload.get("reportHtmlUrl") or ""),
        )

    @property
    def report_id(self) -> str | None:
        """Report id taken from the HTML URL, ``None`` when the URL is malformed."""
        _, found, report_id = self.report_html_url.partition("/report/")
        if not found or not report_id.strip():
            return None
        return report_id


@dataclass(slots=True, frozen=True)
class ViolationRow:
    """One policy violation constraint, flattened for CSV output."""

    application: str
    organization: str
    policy: str
    format: str
    component: str
    threat: int
    policy_action: str
    constraint_name: str
    condition: str
    cve: str = ""

    def csv_fields(self) -> tuple[object, ...]:
        return (
            self.application,
            self.organization,
            self.policy,
            self.format,
            self.component,
            self.threat,
            self.policy_action,
            self.constraint_name,
            self.condition,
            self.cve,
        )


def parse_policy_violations(
    payload: Mapping[str, Any],
    *,
    application: str,
    organization: str,
) -> list[ViolationRow]:
    """Flatten a policy report into one row per (component, violation, constraint)."""

    rows: list[ViolationRow] = []
    for component in payload.get("components") or []:
        component_name = str(component.get("displayName") or "")
        identifier = component.get("componentIdentifier") or {}
        component_format = str(identifier.get("format") or "")
        for violation in component.get("violations") or []:
            threat = int(violation.get("policyThreatLevel") or 0)
            for constraint in violation.get("constraints") or []:
                summaries = [
                    str(condition.get("conditionSummary") or "")
                    for condition in constraint.get("conditions") or []
                ]
                rows.append(
                    ViolationRow(
                        application=application,
                        organization=organization,
                        policy=str(violation.get("policyName") or ""),
                        format=component_format,
                        component=component_name,
                        threat=threat,
                        policy_action=f"Security-{threat}",
                        constraint_name=str(constraint.get("constraintName") or ""),
                        condition=CONDITION_SEPARATOR.join(summaries),
                    ),
                )
    return rows
