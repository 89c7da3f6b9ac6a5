"""Pipeline trigger models and trigger list reconciliation.

Build definitions carry a heterogeneous ``triggers`` array keyed by
``triggerType``. It is modelled as a closed set of variants:

- ContinuousIntegrationTrigger (``continuousIntegration``)
- PullRequestTrigger (``pullRequest``)
- ScheduleTrigger (``schedule``)
- OtherTrigger (anything else)

Every variant keeps the raw JSON it was parsed from. Serialising a trigger
only rewrites the keys whose typed value actually changed, so unknown keys
and unknown kinds round-trip unchanged.
"""

import copy
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

CI_TRIGGER_TYPE = 'continuousIntegration'
PR_TRIGGER_TYPE = 'pullRequest'
SCHEDULE_TRIGGER_TYPE = 'schedule'

DEFAULT_BRANCH_FILTERS = ['+refs/heads/*']

# settingsSourceType 2 = use YAML definitions, 1 = override from UI
YAML_SETTINGS_SOURCE = 2


def parse_report_build_status(value: Any) -> Optional[bool]:
    """Normalise a reportBuildStatus value (bool or "true"/"false" string)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == 'true'
    return bool(value)


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_bool(value: Any) -> bool:
    return bool(parse_report_build_status(value))


def _read(raw: Dict[str, Any], path: Tuple[str, ...]) -> Any:
    node: Any = raw
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _write(payload: Dict[str, Any], path: Tuple[str, ...], value: Any) -> None:
    node = payload
    for key in path[:-1]:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    node[path[-1]] = value


FieldSpec = Tuple[Tuple[str, ...], Callable[[Any], Any]]


class TriggerBase(BaseModel):
    """Common behaviour of all trigger variants."""

    trigger_type: ClassVar[str] = ''
    field_specs: ClassVar[Dict[str, FieldSpec]] = {}

    raw: Dict[str, Any] = Field(
        default_factory=dict, description='JSON the trigger was parsed from'
    )

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]):
        """Parse a trigger from its JSON representation."""
        values = {
            name: convert(_read(raw, path))
            for name, (path, convert) in cls.field_specs.items()
        }
        return cls(raw=copy.deepcopy(raw), **values)

    def to_payload(self) -> Dict[str, Any]:
        """Serialise back to JSON, rewriting only the fields that changed."""
        payload = copy.deepcopy(self.raw)
        if not self.field_specs:
            return payload

        original = type(self).from_payload(self.raw)
        payload['triggerType'] = self.trigger_type
        for name, (path, _) in self.field_specs.items():
            value = getattr(self, name)
            if value != getattr(original, name):
                _write(payload, path, copy.deepcopy(value))
        return payload


class ContinuousIntegrationTrigger(TriggerBase):
    """Trigger that fires on pushes to matching branches."""

    trigger_type: ClassVar[str] = CI_TRIGGER_TYPE
    field_specs: ClassVar[Dict[str, FieldSpec]] = {
        'branch_filters': (('branchFilters',), _as_list),
        'report_build_status': (('reportBuildStatus',), parse_report_build_status),
    }

    branch_filters: List[str] = Field(default_factory=list)
    report_build_status: Optional[bool] = Field(default=None)


class PullRequestTrigger(TriggerBase):
    """Trigger that fires on pull requests targeting matching branches."""

    trigger_type: ClassVar[str] = PR_TRIGGER_TYPE
    field_specs: ClassVar[Dict[str, FieldSpec]] = {
        'branch_filters': (('branchFilters',), _as_list),
        'path_filters': (('pathFilters',), _as_list),
        'report_build_status': (('reportBuildStatus',), parse_report_build_status),
        'forks_enabled': (('forks', 'enabled'), _as_bool),
        'forks_allow_secrets': (('forks', 'allowSecrets'), _as_bool),
        'comment_required': (('isCommentRequiredForPullRequest',), _as_bool),
        'comments_for_non_team_members_only': (
            ('requireCommentsForNonTeamMembersOnly',),
            _as_bool,
        ),
    }

    branch_filters: List[str] = Field(default_factory=list)
    path_filters: List[str] = Field(default_factory=list)
    report_build_status: Optional[bool] = Field(default=None)
    forks_enabled: bool = Field(default=False)
    forks_allow_secrets: bool = Field(default=False)
    comment_required: bool = Field(default=False)
    comments_for_non_team_members_only: bool = Field(default=False)


class ScheduleTrigger(TriggerBase):
    """Scheduled trigger, passed through untouched."""

    trigger_type: ClassVar[str] = SCHEDULE_TRIGGER_TYPE


class OtherTrigger(TriggerBase):
    """Trigger of a kind this tool does not interpret."""

    raw: Any = Field(default=None, description='Original JSON value')

    @classmethod
    def from_payload(cls, raw: Any):
        return cls(raw=copy.deepcopy(raw))

    def to_payload(self) -> Any:
        return copy.deepcopy(self.raw)


Trigger = Union[ContinuousIntegrationTrigger, PullRequestTrigger, ScheduleTrigger, OtherTrigger]

_VARIANTS = {
    CI_TRIGGER_TYPE: ContinuousIntegrationTrigger,
    PR_TRIGGER_TYPE: PullRequestTrigger,
    SCHEDULE_TRIGGER_TYPE: ScheduleTrigger,
}


def parse_trigger(raw: Any) -> Trigger:
    """Parse one trigger; already-parsed triggers are returned as is."""
    if isinstance(raw, TriggerBase):
        return raw
    if not isinstance(raw, dict):
        return OtherTrigger.from_payload(raw)

    variant = _VARIANTS.get(raw.get('triggerType'), OtherTrigger)
    return variant.from_payload(raw)


def parse_triggers(raw: Optional[Iterable[Any]]) -> List[Trigger]:
    """Parse a triggers array. None means no triggers."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = [raw]
    return [parse_trigger(item) for item in raw]


def triggers_to_payload(triggers: Iterable[Trigger]) -> List[Any]:
    """Serialise a trigger list back to JSON."""
    return [trigger.to_payload() for trigger in triggers]


def build_ci_trigger(
    branch_filters: Optional[List[str]] = None,
    report_build_status: bool = False,
) -> ContinuousIntegrationTrigger:
    """Create a YAML-controlled CI trigger."""
    return ContinuousIntegrationTrigger.from_payload(
        {
            'triggerType': CI_TRIGGER_TYPE,
            'settingsSourceType': YAML_SETTINGS_SOURCE,
            'branchFilters': list(branch_filters or DEFAULT_BRANCH_FILTERS),
            'pathFilters': [],
            'batchChanges': False,
            'reportBuildStatus': report_build_status,
        }
    )


def build_pull_request_trigger(
    branch_filters: Optional[List[str]] = None,
    report_build_status: bool = True,
) -> PullRequestTrigger:
    """Create a PR validation trigger with the fixed rewiring settings.

    Comments are never required, forks are never built and never get
    secrets, and path filters are cleared so YAML stays in control.
    """
    return PullRequestTrigger.from_payload(
        {
            'triggerType': PR_TRIGGER_TYPE,
            'settingsSourceType': YAML_SETTINGS_SOURCE,
            'isCommentRequiredForPullRequest': False,
            'requireCommentsForNonTeamMembersOnly': False,
            'forks': {'enabled': False, 'allowSecrets': False},
            'branchFilters': list(branch_filters or DEFAULT_BRANCH_FILTERS),
            'pathFilters': [],
            'reportBuildStatus': report_build_status,
        }
    )


def _keep_first(triggers: List[Trigger], variant: type) -> List[Trigger]:
    seen = False
    result = []
    for trigger in triggers:
        if isinstance(trigger, variant):
            if seen:
                continue
            seen = True
        result.append(trigger)
    return result


def _index_of(triggers: List[Trigger], variant: type) -> Optional[int]:
    for i, trigger in enumerate(triggers):
        if isinstance(trigger, variant):
            return i
    return None


def ensure_ci_trigger(
    triggers: Iterable[Any], report_build_status: bool
) -> List[Trigger]:
    """Return triggers with exactly one CI trigger reporting build status as given.

    The first existing CI trigger keeps its position and branch filters;
    further CI triggers are dropped. Without one, a new trigger filtering
    ``+refs/heads/*`` is put first.
    """
    result = _keep_first(parse_triggers(triggers), ContinuousIntegrationTrigger)
    index = _index_of(result, ContinuousIntegrationTrigger)

    if index is None:
        result.insert(0, build_ci_trigger(report_build_status=report_build_status))
        return result

    existing = result[index]
    result[index] = ContinuousIntegrationTrigger(
        raw=existing.raw,
        branch_filters=existing.branch_filters,
        report_build_status=report_build_status,
    )
    return result


def ensure_pull_request_trigger(
    triggers: Iterable[Any], report_build_status: bool
) -> List[Trigger]:
    """Return triggers with exactly one PR trigger using the fixed settings.

    An existing PR trigger keeps its position, its branch filters and any
    keys not covered by the fixed settings. A new one is placed right after
    the CI trigger (or first when there is none).
    """
    result = _keep_first(parse_triggers(triggers), PullRequestTrigger)
    index = _index_of(result, PullRequestTrigger)

    if index is None:
        ci_index = _index_of(result, ContinuousIntegrationTrigger)
        position = 0 if ci_index is None else ci_index + 1
        result.insert(
            position,
            build_pull_request_trigger(report_build_status=report_build_status),
        )
        return result

    existing = result[index]
    fresh = build_pull_request_trigger(
        branch_filters=existing.branch_filters,
        report_build_status=report_build_status,
    )
    merged = copy.deepcopy(existing.raw)
    merged.update(fresh.raw)
    result[index] = PullRequestTrigger.from_payload(merged)
    return result


def reconcile_triggers(
    original_triggers: Optional[Iterable[Any]], required: bool
) -> List[Trigger]:
    """Build the trigger list for a rewired pipeline.

    Args:
        original_triggers: Trigger list captured before rewiring (raw or parsed)
        required: Pipeline is required by an enabled build validation policy

    Returns:
        Reconciled triggers: other kinds unchanged and in order, one CI
        trigger reporting ``required``, and one PR trigger when required.
        When not required an existing PR trigger is left as it was.
    """
    triggers = ensure_ci_trigger(original_triggers, report_build_status=required)

    if required:
        return ensure_pull_request_trigger(triggers, report_build_status=required)

    return _keep_first(triggers, PullRequestTrigger)
