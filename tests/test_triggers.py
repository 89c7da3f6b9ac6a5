"""Tests for trigger models and reconciliation."""

import pytest

from repo_migrate.models.triggers import (
    ContinuousIntegrationTrigger,
    OtherTrigger,
    PullRequestTrigger,
    ScheduleTrigger,
    build_ci_trigger,
    build_pull_request_trigger,
    ensure_ci_trigger,
    ensure_pull_request_trigger,
    parse_report_build_status,
    parse_trigger,
    parse_triggers,
    reconcile_triggers,
    triggers_to_payload,
)

SCHEDULE = {
    'triggerType': 'schedule',
    'schedules': [{'branchFilters': ['+refs/heads/main'], 'startHours': 3}],
}
GATED = {'triggerType': 'gatedCheckIn', 'useWorkspaceMappings': True}


def _of_type(payload, trigger_type):
    return [t for t in payload if t.get('triggerType') == trigger_type]


class TestParsing:
    """Test trigger parsing and serialisation."""

    def test_parse_variants(self):
        """Test each trigger kind maps to its variant."""
        triggers = parse_triggers(
            [
                {'triggerType': 'continuousIntegration'},
                {'triggerType': 'pullRequest'},
                SCHEDULE,
                GATED,
            ]
        )

        assert [type(t) for t in triggers] == [
            ContinuousIntegrationTrigger,
            PullRequestTrigger,
            ScheduleTrigger,
            OtherTrigger,
        ]

    def test_parse_none(self):
        """Test a missing triggers array parses as empty."""
        assert parse_triggers(None) == []

    def test_parse_pull_request_fields(self):
        """Test pull request fields are read from nested keys."""
        trigger = parse_trigger(
            {
                'triggerType': 'pullRequest',
                'branchFilters': ['+refs/heads/release/*'],
                'forks': {'enabled': True, 'allowSecrets': 'true'},
                'isCommentRequiredForPullRequest': True,
                'reportBuildStatus': 'True',
            }
        )

        assert trigger.branch_filters == ['+refs/heads/release/*']
        assert trigger.forks_enabled is True
        assert trigger.forks_allow_secrets is True
        assert trigger.comment_required is True
        assert trigger.report_build_status is True

    def test_unchanged_round_trip_is_lossless(self):
        """Test unknown keys and kinds survive parse then serialise."""
        raw = [
            {
                'triggerType': 'continuousIntegration',
                'branchFilters': ['+refs/heads/main'],
                'maxConcurrentBuildsPerBranch': 1,
                'pollingInterval': 0,
                'reportBuildStatus': 'true',
            },
            SCHEDULE,
            GATED,
            'not-an-object',
        ]

        assert triggers_to_payload(parse_triggers(raw)) == raw

    def test_only_changed_fields_rewritten(self):
        """Test serialising writes changed typed fields over the raw JSON."""
        original = parse_trigger(
            {
                'triggerType': 'continuousIntegration',
                'branchFilters': ['+refs/heads/main'],
                'pollingJobId': 'abc',
            }
        )
        changed = ContinuousIntegrationTrigger(
            raw=original.raw,
            branch_filters=original.branch_filters,
            report_build_status=True,
        )

        assert changed.to_payload() == {
            'triggerType': 'continuousIntegration',
            'branchFilters': ['+refs/heads/main'],
            'pollingJobId': 'abc',
            'reportBuildStatus': True,
        }

    @pytest.mark.parametrize(
        'value,expected',
        [(True, True), (False, False), ('true', True), ('FALSE', False), (None, None)],
    )
    def test_parse_report_build_status(self, value, expected):
        """Test bool and string build status values."""
        assert parse_report_build_status(value) is expected


class TestBuilders:
    """Test trigger builders."""

    def test_build_ci_trigger(self):
        """Test a new CI trigger uses the default branch filter."""
        payload = build_ci_trigger(report_build_status=True).to_payload()

        assert payload['triggerType'] == 'continuousIntegration'
        assert payload['branchFilters'] == ['+refs/heads/*']
        assert payload['reportBuildStatus'] is True
        assert payload['settingsSourceType'] == 2

    def test_build_pull_request_trigger(self):
        """Test a new PR trigger carries the fixed settings."""
        payload = build_pull_request_trigger().to_payload()

        assert payload['branchFilters'] == ['+refs/heads/*']
        assert payload['pathFilters'] == []
        assert payload['isCommentRequiredForPullRequest'] is False
        assert payload['requireCommentsForNonTeamMembersOnly'] is False
        assert payload['forks'] == {'enabled': False, 'allowSecrets': False}
        assert payload['reportBuildStatus'] is True


class TestEnsure:
    """Test ensure helpers."""

    def test_ensure_ci_keeps_position_and_drops_duplicates(self):
        """Test the first CI trigger is kept in place."""
        triggers = ensure_ci_trigger(
            [
                SCHEDULE,
                {'triggerType': 'continuousIntegration', 'branchFilters': ['+a']},
                {'triggerType': 'continuousIntegration', 'branchFilters': ['+b']},
            ],
            report_build_status=False,
        )
        payload = triggers_to_payload(triggers)

        assert payload[0] == SCHEDULE
        assert len(_of_type(payload, 'continuousIntegration')) == 1
        assert payload[1]['branchFilters'] == ['+a']
        assert payload[1]['reportBuildStatus'] is False

    def test_ensure_ci_adds_trigger_first(self):
        """Test a missing CI trigger is inserted first."""
        payload = triggers_to_payload(ensure_ci_trigger([SCHEDULE], True))

        assert payload[0]['triggerType'] == 'continuousIntegration'
        assert payload[1] == SCHEDULE

    def test_ensure_pull_request_after_ci(self):
        """Test a new PR trigger follows the CI trigger."""
        triggers = ensure_pull_request_trigger(
            [SCHEDULE, {'triggerType': 'continuousIntegration'}, GATED], True
        )

        assert [type(t) for t in triggers] == [
            ScheduleTrigger,
            ContinuousIntegrationTrigger,
            PullRequestTrigger,
            OtherTrigger,
        ]

    def test_ensure_pull_request_keeps_extra_keys(self):
        """Test an existing PR trigger keeps keys outside the fixed settings."""
        triggers = ensure_pull_request_trigger(
            [
                {
                    'triggerType': 'pullRequest',
                    'branchFilters': ['+refs/heads/develop'],
                    'autoCancel': True,
                    'forks': {'enabled': True, 'allowSecrets': True},
                    'pathFilters': ['+src/*'],
                }
            ],
            True,
        )
        payload = triggers[0].to_payload()

        assert payload['autoCancel'] is True
        assert payload['branchFilters'] == ['+refs/heads/develop']
        assert payload['forks'] == {'enabled': False, 'allowSecrets': False}
        assert payload['pathFilters'] == []


class TestReconcileTriggers:
    """Test trigger reconciliation."""

    def test_required_adds_pull_request_trigger(self):
        """Test a required pipeline without PR trigger gets one."""
        original = [
            {
                'triggerType': 'continuousIntegration',
                'branchFilters': ['+refs/heads/main'],
            }
        ]

        payload = triggers_to_payload(reconcile_triggers(original, True))

        pull_requests = _of_type(payload, 'pullRequest')
        assert len(pull_requests) == 1
        assert pull_requests[0]['branchFilters'] == ['+refs/heads/*']
        assert pull_requests[0]['reportBuildStatus'] is True
        ci = _of_type(payload, 'continuousIntegration')[0]
        assert ci['reportBuildStatus'] is True
        assert ci['branchFilters'] == ['+refs/heads/main']

    def test_required_preserves_custom_pr_filters(self):
        """Test custom PR branch filters are reused."""
        original = [
            {
                'triggerType': 'pullRequest',
                'branchFilters': ['+refs/heads/main', '+refs/heads/release/*'],
            }
        ]

        payload = triggers_to_payload(reconcile_triggers(original, True))

        pr = _of_type(payload, 'pullRequest')[0]
        assert pr['branchFilters'] == ['+refs/heads/main', '+refs/heads/release/*']

    @pytest.mark.parametrize('required', [True, False])
    def test_schedule_and_unknown_triggers_never_dropped(self, required):
        """Test other trigger kinds survive unchanged and in order."""
        original = [SCHEDULE, {'triggerType': 'continuousIntegration'}, GATED]

        payload = triggers_to_payload(reconcile_triggers(original, required))

        others = [
            t
            for t in payload
            if t['triggerType'] not in ('continuousIntegration', 'pullRequest')
        ]
        assert others == [SCHEDULE, GATED]

    @pytest.mark.parametrize('required', [True, False])
    def test_ci_report_build_status_matches_required(self, required):
        """Test the CI trigger reports build status iff required."""
        payload = triggers_to_payload(reconcile_triggers(None, required))

        ci = _of_type(payload, 'continuousIntegration')
        assert len(ci) == 1
        assert ci[0]['reportBuildStatus'] is required
        assert ci[0]['branchFilters'] == ['+refs/heads/*']

    def test_not_required_adds_no_pull_request_trigger(self):
        """Test no PR trigger is added when not required."""
        payload = triggers_to_payload(reconcile_triggers([SCHEDULE], False))

        assert _of_type(payload, 'pullRequest') == []

    def test_not_required_leaves_existing_pull_request_untouched(self):
        """Test an existing PR trigger is kept as it was."""
        pr = {
            'triggerType': 'pullRequest',
            'branchFilters': ['+refs/heads/main'],
            'forks': {'enabled': True, 'allowSecrets': False},
            'isCommentRequiredForPullRequest': True,
        }

        payload = triggers_to_payload(reconcile_triggers([pr], False))

        assert _of_type(payload, 'pullRequest') == [pr]

    def test_at_most_one_ci_and_pr(self):
        """Test duplicates collapse to one CI and one PR trigger."""
        original = [
            {'triggerType': 'pullRequest'},
            {'triggerType': 'continuousIntegration'},
            {'triggerType': 'pullRequest'},
            {'triggerType': 'continuousIntegration'},
        ]

        for required in (True, False):
            payload = triggers_to_payload(reconcile_triggers(original, required))
            assert len(_of_type(payload, 'continuousIntegration')) == 1
            assert len(_of_type(payload, 'pullRequest')) == 1

    def test_original_list_not_mutated(self):
        """Test reconciliation works on copies."""
        original = [{'triggerType': 'continuousIntegration', 'branchFilters': ['+x']}]

        reconcile_triggers(original, True)

        assert original == [
            {'triggerType': 'continuousIntegration', 'branchFilters': ['+x']}
        ]
