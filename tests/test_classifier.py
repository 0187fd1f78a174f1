"""Tests for error classification and failure downgrading."""

import pytest

from gitlab_move.api.client import error_for_status
from gitlab_move.git.runner import GitCommandError
from gitlab_move.migration import downgrade
from gitlab_move.migration.classifier import classify, describe_failure
from gitlab_move.models.record import ErrorCategory, StepName


class TestClassify:
    """Test categorization of failure messages."""

    @pytest.mark.parametrize(
        'message, category',
        [
            ('fatal: could not read from remote repository', ErrorCategory.TRANSFER_OPERATION),
            ('Authentication failed for https://host/x.git', ErrorCategory.TRANSFER_OPERATION),
            ('API request failed (HTTP 500): boom', ErrorCategory.API_OPERATION),
            ('Name has already been taken', ErrorCategory.API_OPERATION),
            ('Network timeout after 30 seconds', ErrorCategory.NETWORK),
            ('ECONNREFUSED 127.0.0.1:443', ErrorCategory.NETWORK),
            ('EBUSY: resource busy or locked', ErrorCategory.FILESYSTEM),
            ('Permission denied: /srv/mirrors', ErrorCategory.FILESYSTEM),
            ('insufficient privileges for this group', ErrorCategory.PERMISSION),
            ('name contains invalid characters', ErrorCategory.VALIDATION),
            ('something odd happened', ErrorCategory.UNKNOWN),
            ('', ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, message, category):
        """Test each pattern group."""
        assert classify(message) == category

    def test_case_insensitive(self):
        """Test matching ignores case."""
        assert classify('CONNECTION RESET') == ErrorCategory.NETWORK

    def test_first_group_wins(self):
        """Test transfer patterns take precedence over network patterns."""
        assert classify('push timed out') == ErrorCategory.TRANSFER_OPERATION

    def test_api_claims_status_codes_before_permission(self):
        """Test a 403 is an API failure even though it means forbidden."""
        assert classify('HTTP 403 access denied') == ErrorCategory.API_OPERATION

    def test_api_error_messages(self):
        """Test errors raised by the API client classify as API failures."""
        for status in (401, 403, 404, 409, 422, 500, 502):
            error = error_for_status(status, {}, {'message': 'Name has already been taken'})
            assert classify(str(error)) == ErrorCategory.API_OPERATION

    def test_git_error_messages(self):
        """Test errors raised by git commands classify as transfer failures."""
        error = GitCommandError(
            'git clone --mirror https://x/a.git /tmp/a.git', 'fatal: boom', 128
        )

        assert classify(str(error)) == ErrorCategory.TRANSFER_OPERATION


class TestDescribeFailure:
    """Test human-readable failure reasons."""

    def test_tagged_with_hint(self):
        """Test the reason carries the category and a matching hint."""
        reason = describe_failure('API request failed (HTTP 409): taken',
                                  ErrorCategory.API_OPERATION)

        assert reason.startswith('[api_operation] API request failed (HTTP 409)')
        assert 'may already exist' in reason

    def test_fallback_hint(self):
        """Test the category fallback hint is used without a trigger."""
        reason = describe_failure('weird', ErrorCategory.NETWORK)

        assert reason == '[network] weird (Check the network connection.)'

    def test_unknown_has_no_hint(self):
        """Test unknown failures are only tagged."""
        assert describe_failure('weird', ErrorCategory.UNKNOWN) == '[unknown] weird'

    def test_long_message_truncated(self):
        """Test long messages are cut to 200 characters."""
        reason = describe_failure('x' * 500, ErrorCategory.UNKNOWN)

        assert reason == '[unknown] ' + 'x' * 200 + '...'


class TestDowngrade:
    """Test recognition of benign push and cleanup noise."""

    @pytest.mark.parametrize(
        'message',
        [
            ' ! [remote rejected] refs/merge-requests/1/head (deny updating a hidden ref)',
            'remote: GitLab: You are not allowed to push code to protected branches '
            'on this project. ! [remote rejected] main -> main (pre-receive hook declined)',
            'error: failed to push some refs to origin',
            'Everything up-to-date',
            'EBUSY: resource busy or locked, rmdir /tmp/x',
            "ENOENT: no such file or directory, unlink 'x'",
            'cleanup failed',
        ],
    )
    def test_downgradable(self, message):
        """Test known-benign messages."""
        assert downgrade.is_downgradable(message)

    @pytest.mark.parametrize(
        'message',
        [
            'To https://gitlab.example.com/g/x.git',
            'fatal: unable to access repository',
            'ENOSPC: no space left on device',
            'refs/heads/main',
            'refs/tags/v1.0',
        ],
    )
    def test_not_downgradable(self, message):
        """Test real failures are not downgraded."""
        assert not downgrade.is_downgradable(message)

    def test_applies_only_to_transfer_and_verify(self):
        """Test only transfer and verification failures are downgraded."""
        assert downgrade.applies_to(StepName.TRANSFER_CONTENT)
        assert downgrade.applies_to(StepName.VERIFY_FINAL)
        assert not downgrade.applies_to(StepName.FETCH_SOURCE)
        assert not downgrade.applies_to(StepName.CREATE_DESTINATION)

    def test_warning_text(self):
        """Test warnings are prefixed with the step and collapsed."""
        text = downgrade.warning_text(
            StepName.TRANSFER_CONTENT, ' ! [remote rejected]\n  hidden ref '
        )

        assert text == 'transfer-content: ! [remote rejected] hidden ref'

    def test_warning_text_truncated(self):
        """Test long warnings are cut to 500 characters."""
        text = downgrade.warning_text(StepName.VERIFY_FINAL, 'y' * 800)

        assert text == 'verify-final: ' + 'y' * 500 + '...'
