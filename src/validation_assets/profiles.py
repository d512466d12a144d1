"""Validation profile resolution and scoped suppression.

Profiles are read from a YAML document (``validation-profiles.yml``)::

    profiles:
      base:
        description: Defaults shared by every tenant
        suppressions:
          - match: ruleId
            pattern: "CommonRule-0[0-9]+"
            scope: [INVOICE]
        xsd-overrides:
          Invoice:
            - element: cac:Signature
              minOccurs: "0"
        schematron-rules:
          UBL_TR_MAIN:
            - context: /Invoice
              test: "cbc:Note"
              message: Invoice must carry a note
              id: CUSTOM-001
      strict:
        extends: base
        suppressions:
          - match: text
            pattern: ".*IBAN.*"

    suppressions:            # global rules, merged into every evaluation
      - match: ruleIdEquals
        pattern: BR-LEGACY-01

    schematron-rules:        # global custom assertions keyed by schematron type
      UBL_TR_MAIN: []

Resolution semantics:
* Profiles are stored unmerged. Every read walks the ``extends`` chain
    iteratively from the root ancestor to the named profile; a revisited name
    raises :class:`~validation_assets.errors.ProfileCycleError`.
* XSD overrides are merged by element, the more specific profile winning.
* Custom Schematron assertions and suppressions accumulate, ancestor first.
* Suppression rules apply when their scope is unconditional or intersects the
    caller's active document/schematron types. Schematron errors match when
    the rule's pattern fully matches the selected field; raw XSD error
    strings match when a ``text``/``message`` pattern occurs anywhere in them.

Example:
        from pathlib import Path
        from validation_assets.models import SchematronError
        from validation_assets.profiles import ValidationProfileService

        service = ValidationProfileService(Path("validation-profiles.yml"))
        service.reload()
        result = service.apply_schematron_suppressions(
                [SchematronError("CommonRule-01", "cbc:ID", "ID missing")],
                "strict",
                active_types={"INVOICE"},
        )
        print(result.suppressed_count)
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Pattern, Set, Tuple

import yaml

from .cache import SwappableCache
from .errors import AssetIOError, NotFoundError, ProfileConfigError, ProfileCycleError
from .fs import write_text_atomic
from .models import (
    RestrictedTo,
    ReloadResult,
    ReloadStatus,
    SchematronCustomAssertion,
    SchematronError,
    SuppressionResult,
    SuppressionRule,
    SuppressionScope,
    UNCONDITIONAL,
    ValidationProfile,
    XsdOverride,
    make_scope,
)
from .reload import Reloadable

logger = logging.getLogger(__name__)

PROFILES_FILE = "validation-profiles.yml"
GLOBAL_PROFILE_NAME = "(global)"

MATCH_MODES = ("ruleId", "ruleIdEquals", "test", "testEquals", "message", "text")
EQUALS_MODES = ("ruleIdEquals", "testEquals")
TEXT_MODES = ("message", "text")


@dataclass(frozen=True)
class CompiledRule:
    """Suppression rule with its pattern compiled once per reload."""

    match: str
    regex: Pattern[str]
    scope: SuppressionScope
    source: SuppressionRule

    def target(self, error: SchematronError) -> Optional[str]:
        if self.match in ("ruleId", "ruleIdEquals"):
            return error.rule_id
        if self.match in ("test", "testEquals"):
            return error.test
        return error.message

    def matches(self, error: SchematronError) -> bool:
        value = self.target(error)
        return value is not None and self.regex.fullmatch(value) is not None


@dataclass(frozen=True)
class ProfileDocument:
    """One published generation of the profile configuration."""

    profiles: Dict[str, ValidationProfile] = field(default_factory=dict)
    compiled: Dict[str, List[CompiledRule]] = field(default_factory=dict)
    global_suppressions: List[SuppressionRule] = field(default_factory=list)
    global_compiled: List[CompiledRule] = field(default_factory=list)
    global_schematron_rules: Dict[str, List[SchematronCustomAssertion]] = field(
        default_factory=dict
    )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_suppressions(items: Any) -> List[SuppressionRule]:
    rules: List[SuppressionRule] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        pattern = _text(item.get("pattern"))
        if pattern is None:
            continue
        rules.append(
            SuppressionRule(
                match=_text(item.get("match")) or "ruleId",
                pattern=pattern,
                scope=make_scope(item.get("scope")),
                description=_text(item.get("description")),
            )
        )
    return rules


def parse_xsd_overrides(data: Any) -> Dict[str, List[XsdOverride]]:
    overrides: Dict[str, List[XsdOverride]] = {}
    if not isinstance(data, dict):
        return overrides
    for schema_type, items in data.items():
        parsed = [
            XsdOverride(
                element=_text(item.get("element")),
                min_occurs=_text(item.get("minOccurs")),
                max_occurs=_text(item.get("maxOccurs")),
            )
            for item in items or []
            if isinstance(item, dict) and _text(item.get("element"))
        ]
        if parsed:
            overrides[str(schema_type).strip()] = parsed
    return overrides


def parse_schematron_rules(data: Any) -> Dict[str, List[SchematronCustomAssertion]]:
    rules: Dict[str, List[SchematronCustomAssertion]] = {}
    if not isinstance(data, dict):
        return rules
    for schematron_type, items in data.items():
        parsed = []
        for item in items or []:
            if not isinstance(item, dict):
                continue
            context, test, message = (
                _text(item.get("context")),
                _text(item.get("test")),
                _text(item.get("message")),
            )
            if context and test and message:
                parsed.append(
                    SchematronCustomAssertion(context, test, message, _text(item.get("id")))
                )
        if parsed:
            rules[str(schematron_type).strip()] = parsed
    return rules


def parse_profile(name: str, data: Any) -> ValidationProfile:
    data = data if isinstance(data, dict) else {}
    return ValidationProfile(
        name=name,
        description=_text(data.get("description")),
        extends=_text(data.get("extends")),
        suppressions=parse_suppressions(data.get("suppressions")),
        xsd_overrides=parse_xsd_overrides(data.get("xsd-overrides")),
        schematron_rules=parse_schematron_rules(data.get("schematron-rules")),
    )


def _suppression_to_yaml(rule: SuppressionRule) -> Dict[str, Any]:
    data: Dict[str, Any] = {"match": rule.match, "pattern": rule.pattern}
    if isinstance(rule.scope, RestrictedTo):
        data["scope"] = rule.scope.to_list()
    if rule.description:
        data["description"] = rule.description
    return data


def _schematron_rules_to_yaml(
    rules: Dict[str, List[SchematronCustomAssertion]]
) -> Dict[str, List[Dict[str, Any]]]:
    return {key: [r.to_dict() for r in value] for key, value in rules.items()}


def profile_to_yaml(profile: ValidationProfile) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if profile.description:
        data["description"] = profile.description
    if profile.extends:
        data["extends"] = profile.extends
    data["suppressions"] = [_suppression_to_yaml(r) for r in profile.suppressions]
    if profile.xsd_overrides:
        data["xsd-overrides"] = {
            key: [o.to_dict() for o in value] for key, value in profile.xsd_overrides.items()
        }
    if profile.schematron_rules:
        data["schematron-rules"] = _schematron_rules_to_yaml(profile.schematron_rules)
    return data


def compile_rules(
    rules: Iterable[SuppressionRule], errors: Optional[List[str]] = None
) -> List[CompiledRule]:
    """Compile rule patterns; invalid regexes are skipped and reported."""
    compiled: List[CompiledRule] = []
    for rule in rules:
        if rule.match not in MATCH_MODES:
            message = f"Unknown match mode '{rule.match}' for pattern {rule.pattern!r}"
            logger.warning(message)
            if errors is not None:
                errors.append(message)
            continue
        source = re.escape(rule.pattern) if rule.match in EQUALS_MODES else rule.pattern
        try:
            regex = re.compile(source)
        except re.error as e:
            message = f"Skipping invalid suppression pattern {rule.pattern!r}: {e}"
            logger.warning(message)
            if errors is not None:
                errors.append(message)
            continue
        compiled.append(CompiledRule(rule.match, regex, rule.scope, rule))
    return compiled


def walk_chain(profiles: Dict[str, ValidationProfile], name: str) -> List[ValidationProfile]:
    """Return the ``extends`` chain of ``name``, root ancestor first.

    An unknown ``name`` yields an empty chain.

    Raises:
        ProfileCycleError: If the chain revisits a profile.
        ProfileConfigError: If a profile extends an unknown parent.
    """
    chain: List[ValidationProfile] = []
    visited: List[str] = []
    current: Optional[str] = name
    while current:
        if current in visited:
            raise ProfileCycleError(visited + [current])
        profile = profiles.get(current)
        if profile is None:
            if not visited:
                return []
            raise ProfileConfigError(
                f"Profile '{visited[-1]}' extends unknown profile '{current}'", visited[-1]
            )
        visited.append(current)
        chain.append(profile)
        current = profile.extends
    chain.reverse()
    return chain


def parse_adhoc_suppressions(entries: Optional[Iterable[str]]) -> List[CompiledRule]:
    """Compile inline suppressions supplied with a validation request.

    ``test:EXPR`` matches the test expression exactly, ``text:REGEX`` matches
    the message, and a bare value matches the rule id exactly. Ad-hoc rules
    carry no scope.
    """
    compiled: List[CompiledRule] = []
    for entry in entries or []:
        stripped = (entry or "").strip()
        if not stripped:
            continue
        if stripped.startswith("test:"):
            match, pattern = "testEquals", stripped[len("test:"):].strip()
        elif stripped.startswith("text:"):
            match, pattern = "text", stripped[len("text:"):].strip()
        else:
            match, pattern = "ruleIdEquals", stripped
        if pattern:
            compiled.extend(
                compile_rules(
                    [SuppressionRule(match, pattern, UNCONDITIONAL, "Ad-hoc suppression")]
                )
            )
    return compiled


class ValidationProfileService(Reloadable):
    """Load, resolve and persist validation profiles.

    Args:
        profiles_path: Location of the YAML document. A missing file is an
            empty configuration.
    """

    name = "validation-profiles"

    def __init__(self, profiles_path: Path):
        self.profiles_path = Path(profiles_path)
        self.cache: SwappableCache[ProfileDocument] = SwappableCache(
            self.name, initial=ProfileDocument()
        )
        self._write_lock = threading.Lock()

    # -- loading ----------------------------------------------------------

    def _read_raw(self) -> Dict[str, Any]:
        if not self.profiles_path.exists():
            return {}
        with open(self.profiles_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ProfileConfigError(
                f"{self.profiles_path} must contain a mapping at the top level"
            )
        return raw

    def reload(self) -> ReloadResult:
        """Parse the document, compile rules and publish a new generation."""
        start = time.time()
        try:
            raw = self._read_raw()
        except (OSError, yaml.YAMLError, ProfileConfigError) as e:
            elapsed = int((time.time() - start) * 1000)
            logger.error(f"Failed to load validation profiles from {self.profiles_path}: {e}")
            return ReloadResult.failed(self.name, elapsed, str(e))

        errors: List[str] = []
        raw_profiles = raw.get("profiles") or {}
        if not isinstance(raw_profiles, dict):
            errors.append("'profiles' must be a mapping")
            raw_profiles = {}

        profiles = {
            str(name).strip(): parse_profile(str(name).strip(), data)
            for name, data in raw_profiles.items()
        }
        compiled = {}
        for name, profile in profiles.items():
            profile_errors: List[str] = []
            compiled[name] = compile_rules(profile.suppressions, profile_errors)
            errors.extend(f"{name}: {message}" for message in profile_errors)

        global_suppressions = parse_suppressions(raw.get("suppressions"))
        global_errors: List[str] = []
        global_compiled = compile_rules(global_suppressions, global_errors)
        errors.extend(f"{GLOBAL_PROFILE_NAME}: {message}" for message in global_errors)

        for name in profiles:
            try:
                walk_chain(profiles, name)
            except ProfileConfigError as e:
                errors.append(f"{name}: {e}")

        document = ProfileDocument(
            profiles=profiles,
            compiled=compiled,
            global_suppressions=global_suppressions,
            global_compiled=global_compiled,
            global_schematron_rules=parse_schematron_rules(raw.get("schematron-rules")),
        )
        self.cache.swap(document, source_key=str(self.profiles_path))
        elapsed = int((time.time() - start) * 1000)

        logger.info(
            f"Loaded {len(profiles)} validation profile(s), "
            f"{len(global_suppressions)} global suppression(s)"
        )
        if errors:
            return ReloadResult.partial(self.name, len(profiles), elapsed, errors)
        return ReloadResult.success(self.name, len(profiles), elapsed)

    def _document(self) -> ProfileDocument:
        return self.cache.data or ProfileDocument()

    # -- resolution -------------------------------------------------------

    def resolve_xsd_overrides(self, profile_name: Optional[str], schema_type: str) -> List[XsdOverride]:
        """Merged XSD overrides for ``schema_type``; child overrides win by element."""
        if not profile_name:
            return []
        merged: Dict[str, XsdOverride] = {}
        for profile in walk_chain(self._document().profiles, profile_name):
            for override in profile.xsd_overrides.get(schema_type, []):
                merged[override.element] = override
        return list(merged.values())

    def resolve_schematron_rules(
        self, profile_name: Optional[str], schematron_type: str
    ) -> List[SchematronCustomAssertion]:
        """Accumulated custom assertions for ``schematron_type``, ancestor first."""
        if not profile_name:
            return []
        rules: List[SchematronCustomAssertion] = []
        for profile in walk_chain(self._document().profiles, profile_name):
            rules.extend(profile.schematron_rules.get(schematron_type, []))
        return rules

    def _gather_rules(
        self,
        profile_name: Optional[str],
        additional_suppressions: Optional[Iterable[str]],
        active_types: Optional[Iterable[str]],
    ) -> List[CompiledRule]:
        document = self._document()
        active: Set[str] = set(active_types or ())
        candidates: List[CompiledRule] = []

        if profile_name:
            chain = walk_chain(document.profiles, profile_name)
            if not chain:
                logger.warning(f"Validation profile not found: {profile_name}")
            for profile in chain:
                candidates.extend(document.compiled.get(profile.name, []))
        candidates.extend(document.global_compiled)

        rules = [rule for rule in candidates if rule.scope.applies_to(active)]
        rules.extend(parse_adhoc_suppressions(additional_suppressions))
        return rules

    def apply_schematron_suppressions(
        self,
        raw_errors: List[SchematronError],
        profile_name: Optional[str] = None,
        additional_suppressions: Optional[Iterable[str]] = None,
        active_types: Optional[Iterable[str]] = None,
    ) -> SuppressionResult:
        """Partition raw Schematron errors into active and suppressed."""
        if not raw_errors:
            return SuppressionResult([], [], profile_name)
        rules = self._gather_rules(profile_name, additional_suppressions, active_types)

        active: List[SchematronError] = []
        suppressed: List[SchematronError] = []
        for error in raw_errors:
            if any(rule.matches(error) for rule in rules):
                suppressed.append(error)
            else:
                active.append(error)
        return SuppressionResult(active, suppressed, profile_name)

    def apply_xsd_suppressions(
        self,
        raw_errors: List[str],
        profile_name: Optional[str] = None,
        additional_suppressions: Optional[Iterable[str]] = None,
        active_types: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """Drop raw XSD error strings matched by a text/message rule."""
        if not raw_errors:
            return []
        rules = [
            rule
            for rule in self._gather_rules(profile_name, additional_suppressions, active_types)
            if rule.match in TEXT_MODES
        ]
        if not rules:
            return list(raw_errors)
        return [
            error for error in raw_errors if not any(rule.regex.search(error) for rule in rules)
        ]

    # -- queries ----------------------------------------------------------

    def get_profile(self, name: str) -> ValidationProfile:
        """Resolved view of a profile (inheritance applied).

        Raises:
            NotFoundError: Unknown profile.
        """
        chain = walk_chain(self._document().profiles, name)
        if not chain:
            raise NotFoundError(f"Validation profile not found: {name}", name)
        leaf = chain[-1]
        overrides: Dict[str, Dict[str, XsdOverride]] = {}
        schematron_rules: Dict[str, List[SchematronCustomAssertion]] = {}
        suppressions: List[SuppressionRule] = []
        for profile in chain:
            suppressions.extend(profile.suppressions)
            for schema_type, items in profile.xsd_overrides.items():
                by_element = overrides.setdefault(schema_type, {})
                for override in items:
                    by_element[override.element] = override
            for schematron_type, items in profile.schematron_rules.items():
                schematron_rules.setdefault(schematron_type, []).extend(items)
        return ValidationProfile(
            name=leaf.name,
            description=leaf.description,
            extends=leaf.extends,
            suppressions=suppressions,
            xsd_overrides={k: list(v.values()) for k, v in overrides.items()},
            schematron_rules=schematron_rules,
        )

    def get_raw_profile(self, name: str) -> ValidationProfile:
        profile = self._document().profiles.get(name)
        if profile is None:
            raise NotFoundError(f"Validation profile not found: {name}", name)
        return profile

    def list_profiles(self) -> List[ValidationProfile]:
        return list(self._document().profiles.values())

    def get_global_schematron_rules(self) -> Dict[str, List[SchematronCustomAssertion]]:
        return {k: list(v) for k, v in self._document().global_schematron_rules.items()}

    def suppression_index(self) -> List[Tuple[str, SuppressionRule]]:
        """Every stored suppression rule with the profile that declares it."""
        document = self._document()
        pairs = [
            (name, rule)
            for name, profile in document.profiles.items()
            for rule in profile.suppressions
        ]
        pairs.extend((GLOBAL_PROFILE_NAME, rule) for rule in document.global_suppressions)
        return pairs

    # -- persistence ------------------------------------------------------

    def _read_raw_for_write(self) -> Dict[str, Any]:
        try:
            return self._read_raw()
        except (OSError, yaml.YAMLError) as e:
            raise AssetIOError(f"Cannot read {self.profiles_path}: {e}")

    def _write_raw(self, raw: Dict[str, Any]) -> None:
        try:
            text = yaml.safe_dump(raw, sort_keys=False, allow_unicode=True)
            write_text_atomic(self.profiles_path, text)
        except (OSError, yaml.YAMLError) as e:
            raise AssetIOError(f"Cannot write {self.profiles_path}: {e}")

    def _reload_after_write(self) -> ReloadResult:
        result = self.reload()
        if result.status == ReloadStatus.FAILED:
            raise AssetIOError(
                f"Profiles written but reload failed: {'; '.join(result.errors)}"
            )
        return result

    def save_profile(self, profile: ValidationProfile) -> ReloadResult:
        """Create or replace a profile, then reload this component.

        Raises:
            ProfileConfigError: Blank name, unknown parent or a resulting cycle;
                nothing is written in that case.
            AssetIOError: Configuration write failed.
        """
        name = (profile.name or "").strip()
        if not name:
            raise ProfileConfigError("Profile name must not be blank")
        with self._write_lock:
            raw = self._read_raw_for_write()
            raw_profiles = dict(raw.get("profiles") or {})

            candidate = {
                str(k).strip(): parse_profile(str(k).strip(), v) for k, v in raw_profiles.items()
            }
            candidate[name] = profile
            # Only this profile's parent link changes, so any new cycle runs through it.
            walk_chain(candidate, name)

            raw_profiles[name] = profile_to_yaml(profile)
            raw["profiles"] = raw_profiles
            self._write_raw(raw)
            logger.info(f"Saved validation profile {name}")
            return self._reload_after_write()

    def delete_profile(self, name: str) -> bool:
        """Remove a profile; returns ``False`` if it does not exist.

        Raises:
            ProfileConfigError: Other profiles still extend ``name``.
        """
        with self._write_lock:
            raw = self._read_raw_for_write()
            raw_profiles = dict(raw.get("profiles") or {})
            if name not in raw_profiles:
                return False
            dependents = sorted(
                other
                for other, data in raw_profiles.items()
                if other != name and parse_profile(other, data).extends == name
            )
            if dependents:
                raise ProfileConfigError(
                    f"Profile '{name}' is extended by: {', '.join(dependents)}", name
                )
            del raw_profiles[name]
            raw["profiles"] = raw_profiles
            self._write_raw(raw)
            logger.info(f"Deleted validation profile {name}")
            self._reload_after_write()
            return True

    def save_global_schematron_rules(
        self, rules: Dict[str, List[SchematronCustomAssertion]]
    ) -> ReloadResult:
        """Replace the global custom Schematron rules section."""
        with self._write_lock:
            raw = self._read_raw_for_write()
            ordered: Dict[str, Any] = {
                "schematron-rules": _schematron_rules_to_yaml(rules)
            }
            ordered.update((k, v) for k, v in raw.items() if k != "schematron-rules")
            self._write_raw(ordered)
            logger.info(
                f"Saved {sum(len(v) for v in rules.values())} global Schematron rule(s)"
            )
            return self._reload_after_write()
