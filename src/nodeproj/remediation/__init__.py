"""User-mediated remediation of long project paths."""

from nodeproj.remediation.workflow import (
    DEDUP_DID_NOT_HELP,
    LongPathPreference,
    NpmDedupAction,
    RemediationAction,
    RemediationChooser,
    RemediationOutcome,
    RemediationPrompt,
    RemediationWorkflow,
    format_violations,
)

__all__ = [
    "DEDUP_DID_NOT_HELP",
    "LongPathPreference",
    "NpmDedupAction",
    "RemediationAction",
    "RemediationChooser",
    "RemediationOutcome",
    "RemediationPrompt",
    "RemediationWorkflow",
    "format_violations",
]
