"""
vsecm_sdk.identity.matcher

SPIFFE ID role classification.

Responsibilities:
- Decide whether an ID is a workload under the configured trust domain.
- Layer clerk / safe checks strictly on top of the workload check.
- Fail closed on malformed or trust-domain-unanchored patterns.

Pattern rules:
- A pattern starting with `^` is a regular expression and must start with
  `^spiffe://<trust-domain>/`.
- Any other pattern is a literal prefix the ID must start with.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from vsecm_sdk.errors import ConfigurationError
from vsecm_sdk.identity.models import Role
from vsecm_sdk.settings import Settings

_REGEX_MARKER = "^"


@dataclass(frozen=True, slots=True)
class MatcherConfig:
    trust_domain: str
    workload_pattern: str
    clerk_pattern: str
    safe_pattern: str
    workload_name_regexp: str

    @classmethod
    def from_settings(cls, settings: Settings) -> MatcherConfig:
        return cls(
            trust_domain=settings.spiffe_trust_domain,
            workload_pattern=settings.spiffeid_prefix_workload,
            clerk_pattern=settings.spiffeid_prefix_clerk,
            safe_pattern=settings.spiffeid_prefix_safe,
            workload_name_regexp=settings.workload_name_regexp,
        )

    @property
    def id_prefix(self) -> str:
        return f"spiffe://{self.trust_domain}/"

    @property
    def regex_prefix(self) -> str:
        return f"^spiffe://{self.trust_domain}/"


class IdentityMatcher:
    """
    Pure predicates over SPIFFE IDs. Results are computed on every call.

    Any `ConfigurationError` escapes to the caller: a check that cannot be evaluated
    is a denial, and the host decides whether to abort.
    """

    def __init__(self, config: MatcherConfig) -> None:
        self._cfg = config
        self._compiled: dict[str, re.Pattern[str]] = {}

    @property
    def config(self) -> MatcherConfig:
        return self._cfg

    def validate(self) -> None:
        # Compile everything up front so misconfiguration surfaces at startup.
        self._name_regexp()
        for role in Role:
            pattern, setting = self._pattern_for(role)
            if _is_regex(pattern):
                self._compile(pattern, setting)

    def is_workload(self, spiffe_id: str) -> bool:
        if not _well_formed(spiffe_id):
            return False

        pattern, setting = self._pattern_for(Role.WORKLOAD)

        if not _is_regex(pattern) and not spiffe_id.startswith(self._cfg.id_prefix):
            return False

        role_re = self._compile(pattern, setting) if _is_regex(pattern) else None
        name_re = self._name_regexp()

        if name_re.search(spiffe_id) is None:
            return False

        if role_re is not None:
            return role_re.search(spiffe_id) is not None
        return spiffe_id.startswith(pattern)

    def is_clerk(self, spiffe_id: str) -> bool:
        return self.is_privileged(spiffe_id, Role.CLERK)

    def is_safe(self, spiffe_id: str) -> bool:
        return self.is_privileged(spiffe_id, Role.SAFE)

    def is_privileged(self, spiffe_id: str, role: Role) -> bool:
        if role is Role.WORKLOAD:
            return self.is_workload(spiffe_id)
        if not self.is_workload(spiffe_id):
            return False

        pattern, setting = self._pattern_for(role)
        if _is_regex(pattern):
            return self._compile(pattern, setting).search(spiffe_id) is not None
        return spiffe_id.startswith(pattern)

    def extract_workload_name(self, spiffe_id: str) -> str | None:
        if not _well_formed(spiffe_id):
            return None
        match = self._name_regexp().search(spiffe_id)
        if match is None:
            return None
        return match.group(1)

    def _pattern_for(self, role: Role) -> tuple[str, str]:
        if role is Role.WORKLOAD:
            return self._cfg.workload_pattern, "VSECM_SPIFFEID_PREFIX_WORKLOAD"
        if role is Role.CLERK:
            return self._cfg.clerk_pattern, "VSECM_SPIFFEID_PREFIX_CLERK"
        return self._cfg.safe_pattern, "VSECM_SPIFFEID_PREFIX_SAFE"

    def _name_regexp(self) -> re.Pattern[str]:
        pattern = self._cfg.workload_name_regexp
        setting = "VSECM_WORKLOAD_NAME_REGEXP"
        if not pattern.startswith(self._cfg.regex_prefix):
            raise ConfigurationError(
                f"Invalid regular expression pattern for SPIFFE ID. "
                f"Expected: {self._cfg.regex_prefix}... Check the {setting} environment "
                f"variable. val: {pattern} trust: {self._cfg.trust_domain}"
            )
        compiled = self._compile(pattern, setting)
        if compiled.groups < 1:
            raise ConfigurationError(
                f"{setting} must capture the workload name in a group. val: {pattern}"
            )
        return compiled

    def _compile(self, pattern: str, setting: str) -> re.Pattern[str]:
        compiled = self._compiled.get(pattern)
        if compiled is not None:
            return compiled

        if not pattern.startswith(self._cfg.regex_prefix):
            raise ConfigurationError(
                f"Regular expression for SPIFFE ID is not anchored to the trust domain. "
                f"Expected: {self._cfg.regex_prefix}... Check the {setting} environment "
                f"variable. val: {pattern} trust: {self._cfg.trust_domain}"
            )
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(
                f"Failed to compile the regular expression pattern for SPIFFE ID. "
                f"Check the {setting} environment variable. val: {pattern} "
                f"trust: {self._cfg.trust_domain}"
            ) from e
        self._compiled[pattern] = compiled
        return compiled


def _is_regex(pattern: str) -> bool:
    return pattern.startswith(_REGEX_MARKER)


def _well_formed(spiffe_id: str) -> bool:
    # `$` in a Python pattern also matches before a trailing newline.
    return bool(spiffe_id) and all(c.isprintable() and not c.isspace() for c in spiffe_id)


# --- Module Notes -----------------------------------------------------------
# Compiled patterns are kept per matcher; `MatcherConfig` is immutable, so they never go
# stale. A pattern that fails to compile is not cached and fails again on the next check.
